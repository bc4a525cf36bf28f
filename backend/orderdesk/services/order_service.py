# Overview: Querying, status changes and maintenance for permanent order rows.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import delete, update

from ..extensions import db
from ..models import OrderRow, Upload, User
from ..validation import ForbiddenError, NotFoundError, ValidationError, require_id_list
from orderdesk.time_utils import end_of_day_exclusive, parse_iso_datetime
from . import order_status, product_resolver
from .row_fields import (
    CARRIER,
    INOUT,
    MAPPING_CODE,
    PRICE,
    PRODUCT_ID,
    SEARCHABLE_FIELDS,
    VENDOR,
    apply_product_routing,
    is_blank,
)
from .security_service import log_access_denied

FILTER_KEYS = (
    "date_from",
    "date_to",
    "vendor",
    "order_status",
    "type",
    "carrier",
    "search_field",
    "search_value",
)


@dataclass
class RowSelector:
    """Exactly one of: explicit ids, a filter, or every row of the company."""
    row_ids: Optional[list[int]] = None
    filters: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, row_ids: Any = None, filters: Any = None) -> "RowSelector":
        has_ids = row_ids is not None and row_ids != []
        clean = _clean_filters(filters)
        if has_ids and clean:
            raise ValidationError("Provide either rowIds or filters, not both")
        if has_ids:
            return cls(row_ids=require_id_list(row_ids, "rowIds"))
        return cls(filters=clean)

    @property
    def kind(self) -> str:
        if self.row_ids is not None:
            return "ids"
        return "filters" if self.filters else "all"


_CAMEL_ALIASES = {
    "dateFrom": "date_from",
    "uploadTimeFrom": "date_from",
    "dateTo": "date_to",
    "uploadTimeTo": "date_to",
    "orderStatus": "order_status",
    "postType": "carrier",
    "searchField": "search_field",
    "searchValue": "search_value",
}


def _clean_filters(filters: Any) -> dict:
    if filters is None:
        return {}
    if not isinstance(filters, dict):
        raise ValidationError("filters must be an object")
    clean: dict = {}
    for raw_key, value in filters.items():
        key = _CAMEL_ALIASES.get(raw_key, raw_key)
        if key not in FILTER_KEYS:
            raise ValidationError(f"Unknown filter: {raw_key}")
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        clean[key] = value.strip() if isinstance(value, str) else value

    if ("search_field" in clean) != ("search_value" in clean):
        raise ValidationError("search_field and search_value must be given together")
    if "search_field" in clean and clean["search_field"] not in SEARCHABLE_FIELDS:
        raise ValidationError(f"search_field must be one of: {', '.join(SEARCHABLE_FIELDS)}")
    if "order_status" in clean and not order_status.is_known(clean["order_status"]):
        raise ValidationError(f"Unknown order status: {clean['order_status']}")
    return clean


def _json_text(key: str):
    return OrderRow.row_data[key].as_string()


def _apply_filters(query, filters: dict):
    if "date_from" in filters or "date_to" in filters:
        query = query.join(Upload, Upload.id == OrderRow.upload_id)
        try:
            start = parse_iso_datetime(filters.get("date_from"))
            end = end_of_day_exclusive(filters.get("date_to"))
        except ValueError:
            raise ValidationError("date_from/date_to must be ISO-8601 dates")
        if start is not None:
            query = query.filter(Upload.created_at >= start)
        if end is not None:
            query = query.filter(Upload.created_at < end)

    if "vendor" in filters:
        vendor = filters["vendor"]
        query = query.filter(db.or_(OrderRow.vendor_name == vendor, _json_text(VENDOR) == vendor))
    if "order_status" in filters:
        query = query.filter(OrderRow.order_status == filters["order_status"])
    if "type" in filters:
        query = query.filter(_json_text(INOUT) == filters["type"])
    if "carrier" in filters:
        query = query.filter(_json_text(CARRIER) == filters["carrier"])
    if "search_field" in filters:
        query = query.filter(_json_text(filters["search_field"]).ilike(f"%{filters['search_value']}%"))
    return query


def select_rows(company_id: int, selector: RowSelector) -> list[OrderRow]:
    """Load rows for a selector, in upload then original file order."""
    query = db.session.query(OrderRow).filter(OrderRow.company_id == company_id)
    if selector.row_ids is not None:
        query = query.filter(OrderRow.id.in_(selector.row_ids))
    else:
        query = _apply_filters(query, selector.filters)
    return query.order_by(OrderRow.upload_id, OrderRow.row_order, OrderRow.id).all()


def list_rows(
    company_id: int,
    filters: Any = None,
    *,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[OrderRow], int]:
    query = db.session.query(OrderRow).filter(OrderRow.company_id == company_id)
    query = _apply_filters(query, _clean_filters(filters))
    total = query.count()
    rows = (
        query.order_by(OrderRow.upload_id.desc(), OrderRow.row_order)
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def _set_status(company_id: int, row_ids: list[int], status: str, only_from: tuple | None = None) -> list[int]:
    """
    Move rows to `status` in one UPDATE statement.

    Returns the ids that changed. With `only_from`, rows in any other state
    are left alone. OrderRow.order_status is authoritative; row_data keeps
    the status seen at upload time.
    """
    conditions = [OrderRow.company_id == company_id, OrderRow.id.in_(row_ids)]
    if only_from is not None:
        allowed = [s for s in only_from if s is not None]
        states = [OrderRow.order_status.in_(allowed)] if allowed else []
        if None in only_from:
            states.append(OrderRow.order_status.is_(None))
        conditions.append(db.or_(*states))

    changed = [r[0] for r in db.session.query(OrderRow.id).filter(*conditions).all()]
    if changed:
        db.session.execute(
            update(OrderRow)
            .where(*conditions)
            .values(order_status=status)
            .execution_options(synchronize_session="fetch")
        )
    return changed


def advance_to_po_downloaded(company_id: int, row_ids: list[int]) -> list[int]:
    """Purchase-order export side effect. Never regresses a row."""
    return _set_status(
        company_id,
        row_ids,
        order_status.PO_DOWNLOADED,
        only_from=order_status.ADVANCEABLE_TO_PO,
    )


def cancel_rows(company_id: int, row_ids: Any) -> list[int]:
    ids = require_id_list(row_ids, "rowIds")
    changed = _set_status(company_id, ids, order_status.CANCELLED)
    db.session.commit()
    return changed


def update_status(company_id: int, row_ids: Any, status: Any) -> list[int]:
    ids = require_id_list(row_ids, "rowIds")
    if not order_status.is_known(status):
        raise ValidationError(f"Unknown order status: {status}")
    changed = _set_status(company_id, ids, status)
    db.session.commit()
    return changed


def remap_product(company_id: int, row_ids: Any, *, code: Any = None, product_id: Any = None) -> list[int]:
    """
    Point confirmed rows at another catalog product.

    The product is looked up by id when one is given, else by code.
    매핑코드, productId, 가격, 내외주 and 택배사 follow the product; the
    row's own 상품명 is kept. Returns the ids that were updated.
    """
    ids = require_id_list(row_ids, "rowIds")
    if not is_blank(product_id):
        product = product_resolver.find_by_id(company_id, product_id)
    elif not is_blank(code):
        product = product_resolver.find_by_code(company_id, code)
    else:
        raise ValidationError("code or productId is required")
    if product is None:
        raise NotFoundError("Product not found")

    rows = (
        db.session.query(OrderRow)
        .filter(OrderRow.company_id == company_id, OrderRow.id.in_(ids))
        .all()
    )
    for row in rows:
        data = dict(row.row_data or {})
        data[MAPPING_CODE] = product.code
        data[PRODUCT_ID] = product.id
        if product.price is not None:
            data[PRICE] = product.price
        apply_product_routing(data, product, overwrite=True)
        row.row_data = data
    db.session.commit()
    return [row.id for row in rows]


def delete_rows(company_id: int, user: User, row_ids: Any) -> list[int]:
    """Hard-delete rows of the company. Admin grade only."""
    ids = require_id_list(row_ids, "rowIds")
    if not user.is_admin:
        log_access_denied(
            "ORDER_DELETE_DENIED",
            f"User {user.id} with grade {user.grade!r} tried to delete {len(ids)} row(s)",
            company_id=company_id,
            user_id=user.id,
        )
        raise ForbiddenError("관리자만 주문을 삭제할 수 있습니다.")

    conditions = [OrderRow.company_id == company_id, OrderRow.id.in_(ids)]
    found = [r[0] for r in db.session.query(OrderRow.id).filter(*conditions).all()]
    if not found:
        raise NotFoundError("삭제할 데이터를 찾을 수 없습니다.")
    db.session.execute(
        delete(OrderRow).where(*conditions).execution_options(synchronize_session="fetch")
    )
    db.session.commit()
    return found
