# Overview: Header alias table: canonical column keys and the spreadsheet headers that mean them.

from __future__ import annotations

from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import HeaderAlias
from ..validation import ValidationError

# column_key -> (canonical header, other headers seen in vendor files)
DEFAULT_ALIASES = {
    "vendor_name": ("업체명", ["업체", "쇼핑몰명(1)", "쇼핑몰명", "고객주문처명"]),
    "internal_code": ("내부코드", []),
    "order_number": ("주문번호", ["사방넷주문번호", "주문번호(사방넷)"]),
    "orderer_name": ("주문자명", ["주문하신분", "보낸사람", "주문자"]),
    "orderer_phone": ("주문자 전화번호", ["주문자전화번호", "주문자연락처"]),
    "recipient_name": ("수취인명", ["수취인", "수령인명", "수령인", "받는분", "받는사람"]),
    "recipient_phone": ("수취인 전화번호", ["수취인전화번호", "수취인연락처", "전화번호1"]),
    "postal_code": ("우편", ["우편번호", "우편 번호"]),
    "address": ("주소", ["수취인주소", "수취인 주소", "받는사람주소"]),
    "product_name": ("상품명", ["제품명", "품명"]),
    "mapping_code": ("매핑코드", ["상품코드"]),
    "quantity": ("수량", ["주문수량", "개수"]),
    "supply_price": ("공급가", ["공급단가"]),
    "delivery_message": ("배송메시지", ["배송메세지", "배송 메시지", "배메", "배송요청", "요청사항", "배송요청사항"]),
    "carrier": ("택배사", ["배송사"]),
    "product_type": ("내외주", []),
    "order_status": ("주문상태", []),
}


def alias_table(company_id: Optional[int]) -> dict[str, HeaderAlias]:
    """column_key -> alias row; company rows override global ones."""
    query = db.session.query(HeaderAlias)
    if company_id is None:
        query = query.filter(HeaderAlias.company_id.is_(None))
    else:
        query = query.filter(db.or_(HeaderAlias.company_id.is_(None), HeaderAlias.company_id == company_id))
    table: dict[str, HeaderAlias] = {}
    for row in query.order_by(HeaderAlias.id).all():
        if row.column_key not in table or row.company_id is not None:
            table[row.column_key] = row
    return table


def set_alias(company_id: Optional[int], column_key: str, column_label: str, aliases: list) -> HeaderAlias:
    """Create or replace one alias row. Does not commit."""
    column_key = (column_key or "").strip()
    column_label = (column_label or "").strip()
    if not column_key or not column_label:
        raise ValidationError("column_key and column_label are required")
    row = db.session.query(HeaderAlias).filter_by(company_id=company_id, column_key=column_key).first()
    if row is None:
        row = HeaderAlias(company_id=company_id, column_key=column_key)
        db.session.add(row)
    row.column_label = column_label
    row.aliases = [str(a).strip() for a in aliases or [] if str(a).strip()]
    return row


def seed_default_aliases(company_id: Optional[int] = None) -> int:
    """Insert the default keys that are missing for the scope. Returns how many were added."""
    existing = {
        row.column_key
        for row in db.session.query(HeaderAlias).filter_by(company_id=company_id).all()
    }
    added = 0
    for key, (label, aliases) in DEFAULT_ALIASES.items():
        if key in existing:
            continue
        set_alias(company_id, key, label, aliases)
        added += 1
    db.session.commit()
    current_app.logger.info("Seeded %s header alias(es) for company %s", added, company_id)
    return added
