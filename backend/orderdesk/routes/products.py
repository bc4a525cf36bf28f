# Overview: Flask API routes for catalog resolution and fuzzy product suggestions.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import product_resolver


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("/resolve")
@require_auth
def resolve_route():
    """
    Exact catalog match for a product name.

    Request body: {"name": "...", "vendor": optional mall name or id}
    Returns 404 when nothing matches; the client then asks for suggestions.
    """
    data = request.get_json(silent=True) or {}
    name = data.get("name")
    if not name or not str(name).strip():
        return jsonify({"success": False, "error": "name is required"}), 400

    match = product_resolver.resolve_product(g.company_id, name, data.get("vendor"))
    if match is None:
        return jsonify({"success": False, "error": "Product not found"}), 404
    return jsonify({"success": True, "product": match.to_dict()})


@products_bp.post("/suggest")
@require_auth
def suggest_route():
    """
    Similarity-ranked candidates.

    Request body: {"name": "...", "limit": optional int}
    """
    data = request.get_json(silent=True) or {}
    limit = data.get("limit")
    if limit is not None:
        try:
            limit = max(int(limit), 1)
        except (TypeError, ValueError):
            return jsonify({"success": False, "error": "limit must be an integer"}), 400

    suggestions = product_resolver.suggest_products(g.company_id, data.get("name"), limit=limit)
    body = suggestions.to_dict()
    body["success"] = True
    return jsonify(body)
