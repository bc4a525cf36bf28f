# Overview: Read-only product resolution and fuzzy suggestion against a company's catalog.

"""
Product/Vendor Resolver

resolve_product: exact trimmed-name match, returning the routing attributes
the confirm pipeline needs. suggest_products: similarity-ranked candidates
for the interactive picker. Nothing here writes to the database; the
name -> code choices a user makes live on the StagedFile.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Callable, Optional

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Mall, Product

Scorer = Callable[[str, str], float]

DEFAULT_MIN_SCORE = 0.35
DEFAULT_LIMIT = 10

_WS_RE = re.compile(r"\s+")


def normalize_name(value) -> str:
    """Collapse whitespace and case-fold; None becomes ""."""
    if value is None:
        return ""
    return _WS_RE.sub(" ", str(value)).strip().casefold()


def sequence_ratio(query: str, candidate: str) -> float:
    """Default scorer: difflib ratio over normalized names."""
    a = normalize_name(query)
    b = normalize_name(candidate)
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b).ratio()


@dataclass(frozen=True)
class ProductMatch:
    product_id: int
    code: str
    name: str
    type: Optional[str]
    carrier: Optional[str]
    price: Optional[int]
    sale_price: Optional[int]
    sabang_name: Optional[str]

    @classmethod
    def from_product(cls, product: Product) -> "ProductMatch":
        return cls(
            product_id=product.id,
            code=product.code,
            name=product.name,
            type=product.type,
            carrier=product.post_type,
            price=product.price,
            sale_price=product.sale_price,
            sabang_name=product.sabang_name,
        )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "carrier": self.carrier,
            "price": self.price,
            "sale_price": self.sale_price,
            "sabang_name": self.sabang_name,
        }


@dataclass
class Suggestion:
    product: Product
    score: float

    def to_dict(self) -> dict:
        out = self.product.to_dict()
        out["score"] = round(self.score, 4)
        return out


@dataclass
class Suggestions:
    items: list[Suggestion] = field(default_factory=list)
    # No candidate was good enough; the user types the code directly.
    direct_input: bool = True

    def products(self) -> list[Product]:
        return [s.product for s in self.items]

    def to_dict(self) -> dict:
        return {
            "items": [s.to_dict() for s in self.items],
            "direct_input": self.direct_input,
        }


def _hint_mall_name(company_id: int, vendor_hint) -> Optional[str]:
    if vendor_hint is None or vendor_hint == "":
        return None
    if isinstance(vendor_hint, int) and not isinstance(vendor_hint, bool):
        mall = db.session.query(Mall).filter_by(id=vendor_hint, company_id=company_id).first()
        return mall.name if mall else None
    return str(vendor_hint).strip() or None


def _exact_candidates(company_id: int, name: str) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(
            Product.company_id == company_id,
            db.or_(
                func.trim(Product.name) == name,
                func.trim(Product.sabang_name) == name,
            ),
        )
        .order_by(Product.id)
        .all()
    )


def resolve_product(company_id: int, name, vendor_hint=None) -> Optional[ProductMatch]:
    """
    Exact match on the trimmed product name.

    When several catalog entries share the name, prefer the one purchased
    from the hinted mall, then one with a carrier set, then the oldest.
    Returns None when nothing matches; callers fall back to suggest_products.
    """
    trimmed = str(name).strip() if name is not None else ""
    if not trimmed:
        return None

    candidates = _exact_candidates(company_id, trimmed)
    if not candidates:
        return None

    # Catalog name beats vendor-facing name
    by_name = [p for p in candidates if (p.name or "").strip() == trimmed]
    pool = by_name or candidates

    hint = _hint_mall_name(company_id, vendor_hint)
    hint_key = normalize_name(hint) if hint else None

    def rank(product: Product):
        routed = hint_key is not None and normalize_name(product.purchase) == hint_key
        has_carrier = bool((product.post_type or "").strip())
        return (0 if routed else 1, 0 if has_carrier else 1, product.id)

    best = min(pool, key=rank)
    return ProductMatch.from_product(best)


def find_by_code(company_id: int, code) -> Optional[Product]:
    if code is None or not str(code).strip():
        return None
    return (
        db.session.query(Product)
        .filter_by(company_id=company_id, code=str(code).strip())
        .first()
    )


def find_by_id(company_id: int, product_id) -> Optional[Product]:
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        return None
    return db.session.query(Product).filter_by(company_id=company_id, id=pid).first()


def _config_value(key: str, default):
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return default


def suggest_products(
    company_id: int,
    name,
    *,
    limit: Optional[int] = None,
    min_score: Optional[float] = None,
    scorer: Optional[Scorer] = None,
) -> Suggestions:
    """
    Rank catalog entries by similarity to `name`.

    Each product scores the best of its catalog name and vendor-facing name;
    an exact code hit scores 1.0. Candidates under `min_score` are dropped.
    Order is score descending, ties by catalog insertion order (id).
    """
    query = normalize_name(name)
    if not query:
        return Suggestions()

    if limit is None:
        limit = int(_config_value("SUGGEST_LIMIT", DEFAULT_LIMIT))
    if min_score is None:
        min_score = float(_config_value("SUGGEST_MIN_SCORE", DEFAULT_MIN_SCORE))
    scorer = scorer or sequence_ratio

    products = (
        db.session.query(Product)
        .filter(Product.company_id == company_id)
        .order_by(Product.id)
        .all()
    )

    scored: list[Suggestion] = []
    for product in products:
        if normalize_name(product.code) == query:
            score = 1.0
        else:
            score = scorer(query, product.name or "")
            if product.sabang_name:
                score = max(score, scorer(query, product.sabang_name))
        if score >= min_score:
            scored.append(Suggestion(product=product, score=score))

    scored.sort(key=lambda s: (-s.score, s.product.id))
    items = scored[:limit] if limit > 0 else scored
    return Suggestions(items=items, direct_input=not items)
