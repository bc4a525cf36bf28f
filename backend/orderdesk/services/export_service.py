# Overview: Template-driven spreadsheet export with catalog enrichment and status advancement.

"""
Template export

export_template() turns stored order rows into the bytes of a vendor
spreadsheet:

  1. load the company's template and its column specs
  2. apply the CJ outsourcing column convention when the template asks for it
  3. select rows (ids, filters or everything), then the in-house/CJ filters
  4. enrich rows from the catalog (product id first, then mapping code)
  5. map each row onto the template columns and sort for display
  6. write the workbook, reusing the template's original file when present
  7. purchase-order templates move exported rows to "발주서 다운"

Nothing is written to the database unless step 7 applies, and then only
after the workbook has been built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from flask import current_app

from ..extensions import db
from ..models import OrderRow, Product, User
from ..validation import NotFoundError, ValidationError
from orderdesk.time_utils import business_today
from .field_mapping import MappingOptions, map_rows
from .order_service import RowSelector, advance_to_po_downloaded, select_rows
from .row_fields import (
    INOUT,
    MAPPING_CODE,
    PRICE,
    PRODUCT_ID,
    SABANG_NAME,
    SABANG_NAME_KEYS,
    SUPPLY_PRICE,
    VENDOR,
    is_blank,
    row_product_name,
    row_recipient_name,
    sort_text,
)
from .spreadsheet import (
    XLSX_CONTENT_TYPE,
    CorruptTemplateError,
    build_fresh,
    decode_workbook,
    fill_original,
    workbook_bytes,
)
from .template_service import get_template, parse_template
from .vendor_conventions import CJ_PRODUCT_CODES, INHOUSE, apply_cj_columns, is_cj_outsource_template, is_cj_row

PURCHASE_ORDER_MARKER = "발주서"
DEFAULT_FILENAME = "download"

__all__ = [
    "CorruptTemplateError",
    "ExportOptions",
    "ExportResult",
    "NoDataError",
    "export_template",
]


class NoDataError(NotFoundError):
    """No rows left to export after selection and filtering."""


def _flag(payload: Mapping, *keys, default: bool) -> bool:
    for key in keys:
        if key in payload and payload[key] is not None:
            value = payload[key]
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "y")
            return bool(value)
    return default


@dataclass(frozen=True)
class ExportOptions:
    # Only in-house rows (CJ allow-list codes excluded)
    is_inhouse: bool = False
    prefer_sabang_name: bool = True

    @classmethod
    def from_payload(cls, payload: Any) -> "ExportOptions":
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise ValidationError("options must be an object")
        return cls(
            is_inhouse=_flag(payload, "isInhouse", "is_inhouse", default=False),
            prefer_sabang_name=_flag(payload, "preferSabangName", "prefer_sabang_name", default=True),
        )


@dataclass
class ExportResult:
    content: bytes
    filename: str
    content_type: str = XLSX_CONTENT_TYPE
    row_ids: list[int] = field(default_factory=list)
    advanced: list[int] = field(default_factory=list)


def export_filename(template_name: Optional[str], now=None) -> str:
    tz_name = current_app.config.get("ORDERDESK_TIMEZONE", "Asia/Seoul")
    day = business_today(tz_name, now).isoformat()
    return f"{(template_name or '').strip() or DEFAULT_FILENAME}_{day}.xlsx"


def _row_payload(row: OrderRow) -> dict:
    data = row.current_data()
    if is_blank(data.get(VENDOR)) and row.vendor_name:
        data[VENDOR] = row.vendor_name
    if row.sabang_code:
        data["sabang_code"] = row.sabang_code
    return data


def _is_inhouse_row(data: Mapping) -> bool:
    if str(data.get(INOUT) or "").strip() != INHOUSE:
        return False
    return str(data.get(MAPPING_CODE) or "").strip() not in CJ_PRODUCT_CODES


def _as_int(value) -> Optional[int]:
    if is_blank(value) or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _load_products(company_id: int, payloads: list[dict]) -> tuple[dict, dict]:
    ids: set[int] = set()
    codes: set[str] = set()
    for data in payloads:
        product_id = _as_int(data.get(PRODUCT_ID))
        if product_id is not None:
            ids.add(product_id)
        if not is_blank(data.get(MAPPING_CODE)):
            codes.add(str(data[MAPPING_CODE]).strip())

    by_id: dict[int, Product] = {}
    by_code: dict[str, Product] = {}
    if ids:
        for product in db.session.query(Product).filter(Product.company_id == company_id, Product.id.in_(ids)):
            by_id[product.id] = product
    if codes:
        for product in db.session.query(Product).filter(Product.company_id == company_id, Product.code.in_(codes)):
            by_code[product.code] = product
    return by_id, by_code


def _product_for(data: Mapping, by_id: dict, by_code: dict) -> Optional[Product]:
    product = by_id.get(_as_int(data.get(PRODUCT_ID)))
    if product is None and not is_blank(data.get(MAPPING_CODE)):
        product = by_code.get(str(data[MAPPING_CODE]).strip())
    return product


def enrich_row(data: dict, product: Optional[Product]) -> dict:
    """
    Overlay catalog values on a row payload.

    Sale price wins over the stored supply price; cost price only fills a
    blank one. The vendor-facing name replaces 사방넷명, or removes it when
    the catalog has none.
    """
    if product is None:
        return data
    if product.sale_price is not None:
        data[SUPPLY_PRICE] = product.sale_price
        data[PRICE] = product.sale_price
    elif product.price is not None and is_blank(data.get(SUPPLY_PRICE)):
        data[SUPPLY_PRICE] = product.price

    sabang_name = (product.sabang_name or "").strip()
    if sabang_name:
        data[SABANG_NAME] = sabang_name
    else:
        for key in SABANG_NAME_KEYS:
            data.pop(key, None)
    return data


def _sort_columns(labels: list[str]) -> tuple[Optional[int], Optional[int]]:
    def first(*markers):
        for marker in markers:
            for i, label in enumerate(labels):
                if marker in label:
                    return i
        return None

    return first("상품명", "상품"), first("수취인명", "수취인")


def _display_key(values: list, data: Mapping, product_idx, recipient_idx) -> tuple:
    product = values[product_idx] if product_idx is not None else row_product_name(data)
    recipient = values[recipient_idx] if recipient_idx is not None else row_recipient_name(data)
    return (sort_text(str(product or "").strip()), sort_text(str(recipient or "").strip()))


def export_template(
    company_id: int,
    template_id,
    selector: Optional[RowSelector] = None,
    options: Optional[ExportOptions] = None,
    user: Optional[User] = None,
) -> ExportResult:
    """
    Build the export workbook for a template.

    Raises NotFoundError (template), ValidationError (template without a
    column order), NoDataError and CorruptTemplateError.
    """
    selector = selector or RowSelector()
    options = options or ExportOptions()

    template = get_template(company_id, template_id)
    spec = parse_template(template)
    columns = spec.columns
    cj = is_cj_outsource_template(template.name)
    if cj:
        columns = apply_cj_columns(columns)

    entries = [(row.id, _row_payload(row)) for row in select_rows(company_id, selector)]
    if options.is_inhouse:
        entries = [(rid, data) for rid, data in entries if _is_inhouse_row(data)]
    if cj:
        entries = [(rid, data) for rid, data in entries if is_cj_row(data)]
    if not entries:
        raise NoDataError("다운로드할 데이터가 없습니다.")

    by_id, by_code = _load_products(company_id, [data for _, data in entries])
    missing = 0
    for _, data in entries:
        product = _product_for(data, by_id, by_code)
        if product is None:
            missing += 1
        enrich_row(data, product)
    if missing:
        current_app.logger.warning(
            "Export of template %s: %s of %s row(s) have no catalog match", template.id, missing, len(entries)
        )

    mapping = MappingOptions(
        prefer_sabang_name=options.prefer_sabang_name,
        online=bool(user is not None and user.is_online),
    )
    labels = [c.label for c in columns]
    values = map_rows([data for _, data in entries], columns, mapping)

    product_idx, recipient_idx = _sort_columns(labels)
    ordered = sorted(
        zip(entries, values),
        key=lambda pair: _display_key(pair[1], pair[0][1], product_idx, recipient_idx),
    )
    row_ids = [rid for (rid, _), _ in ordered]
    grid = [vals for _, vals in ordered]

    if spec.original_file:
        wb = decode_workbook(spec.original_file)
        fill_original(
            wb,
            labels,
            grid,
            worksheet_name=spec.worksheet_name,
            column_widths=spec.column_widths,
        )
    else:
        wb = build_fresh(labels, grid, column_widths=spec.column_widths)
    content = workbook_bytes(wb)

    advanced: list[int] = []
    if PURCHASE_ORDER_MARKER in template.name:
        advanced = advance_to_po_downloaded(company_id, row_ids)
        db.session.commit()

    current_app.logger.info(
        "Exported %s row(s) with template %s for company %s (%s advanced)",
        len(row_ids),
        template.id,
        company_id,
        len(advanced),
    )
    return ExportResult(
        content=content,
        filename=export_filename(template.name),
        row_ids=row_ids,
        advanced=advanced,
    )
