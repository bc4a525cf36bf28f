# Overview: Flask API routes for listing, updating and deleting order rows.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import order_service
from ..services.order_service import FILTER_KEYS
from ..validation import OrderDeskError, error_response


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    List order rows for the current company.

    Query parameters: any of date_from, date_to, vendor, order_status, type,
    carrier, search_field + search_value; limit (default 100), offset.

    Returns:
        {success, items: OrderRow[], count: int, limit: int, offset: int}
    """
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)

    # Clamp limit
    if limit < 1:
        limit = 1
    if limit > 1000:
        limit = 1000
    if offset < 0:
        offset = 0

    filters = {key: request.args[key] for key in FILTER_KEYS if key in request.args}

    try:
        rows, total = order_service.list_rows(g.company_id, filters, limit=limit, offset=offset)
    except OrderDeskError as e:
        return error_response(e)

    return jsonify({
        "success": True,
        "items": [r.to_dict() for r in rows],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@orders_bp.put("/cancel")
@require_auth
def cancel_orders_route():
    """Request body: {"rowIds": [..]}"""
    data = request.get_json(silent=True) or {}
    try:
        changed = order_service.cancel_rows(g.company_id, data.get("rowIds", data.get("row_ids")))
        return jsonify({"success": True, "updated": len(changed), "rowIds": changed})
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel orders")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@orders_bp.put("/status")
@require_auth
def update_status_route():
    """Request body: {"rowIds": [..], "status": "배송중"}"""
    data = request.get_json(silent=True) or {}
    try:
        changed = order_service.update_status(
            g.company_id,
            data.get("rowIds", data.get("row_ids")),
            data.get("status"),
        )
        return jsonify({"success": True, "updated": len(changed), "rowIds": changed})
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@orders_bp.put("/code")
@require_auth
def remap_code_route():
    """Request body: {"rowIds": [..], "code": "P-100"} or {"rowIds": [..], "productId": 7}"""
    data = request.get_json(silent=True) or {}
    try:
        changed = order_service.remap_product(
            g.company_id,
            data.get("rowIds", data.get("row_ids")),
            code=data.get("code"),
            product_id=data.get("productId", data.get("product_id")),
        )
        return jsonify({"success": True, "updated": len(changed), "rowIds": changed})
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product codes")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@orders_bp.delete("")
@require_auth
def delete_orders_route():
    """
    Permanently delete order rows (admin grade only).

    Request body: {"rowIds": [..]}
    """
    data = request.get_json(silent=True) or {}
    try:
        deleted = order_service.delete_rows(
            g.company_id, g.current_user, data.get("rowIds", data.get("row_ids"))
        )
        current_app.logger.info(
            "User %s deleted %s order row(s) in company %s", g.current_user.id, len(deleted), g.company_id
        )
        return jsonify({"success": True, "deletedCount": len(deleted), "deletedIds": deleted})
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete orders")
        return jsonify({"success": False, "error": "Internal server error"}), 500
