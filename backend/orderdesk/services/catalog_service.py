# Overview: Catalog seeding from spreadsheet tables (upsert by product code).

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product
from ..validation import ValidationError
from .row_fields import is_blank, parse_amount

# Product attribute -> headers accepted for it
CATALOG_COLUMNS = {
    "code": ("매핑코드", "상품코드", "code"),
    "name": ("상품명", "name"),
    "sabang_name": ("사방넷명", "sabang_name"),
    "price": ("가격", "원가", "price"),
    "sale_price": ("판매가", "공급가", "sale_price"),
    "purchase": ("매입처", "purchase"),
    "type": ("내외주", "type"),
    "post_type": ("택배사", "post_type"),
    "pkg": ("합포수량", "pkg"),
    "post_fee": ("택배비", "post_fee"),
    "bill_type": ("세금구분", "bill_type"),
    "category": ("카테고리", "category"),
}
AMOUNT_FIELDS = {"price", "sale_price", "pkg", "post_fee"}


def _column_positions(header: list) -> dict[str, int]:
    trimmed = [str(h).strip() if h is not None else "" for h in header]
    positions: dict[str, int] = {}
    for attr, names in CATALOG_COLUMNS.items():
        for name in names:
            if name in trimmed:
                positions[attr] = trimmed.index(name)
                break
    return positions


def import_products(company_id: int, table: list[list]) -> tuple[int, int]:
    """
    Create or update products from a header row plus data rows.

    Rows are matched on code; rows without a code or name are skipped.
    Returns (created, updated).
    """
    if not table:
        raise ValidationError("catalog table is empty")
    positions = _column_positions(table[0])
    if "code" not in positions or "name" not in positions:
        raise ValidationError("catalog needs a code column and a name column")

    existing = {p.code: p for p in db.session.query(Product).filter_by(company_id=company_id).all()}
    created = updated = 0
    for cells in table[1:]:
        values = {
            attr: cells[idx] if idx < len(cells) else None
            for attr, idx in positions.items()
        }
        code = values.pop("code")
        name = values.pop("name")
        if is_blank(code) or is_blank(name):
            continue
        code = str(code).strip()

        product = existing.get(code)
        if product is None:
            product = Product(company_id=company_id, code=code)
            db.session.add(product)
            existing[code] = product
            created += 1
        else:
            updated += 1
        product.name = str(name).strip()

        for attr, value in values.items():
            if attr in AMOUNT_FIELDS:
                value = parse_amount(value)
            elif is_blank(value):
                value = None
            else:
                value = str(value).strip()
            setattr(product, attr, value)

    db.session.commit()
    current_app.logger.info(
        "Catalog import for company %s: %s created, %s updated", company_id, created, updated
    )
    return created, updated
