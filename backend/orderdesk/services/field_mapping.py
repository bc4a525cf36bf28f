# Overview: Maps an enriched order row onto one template column.

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Optional

from .row_fields import (
    DELIVERY_MESSAGE_COLUMNS,
    INTERNAL_CODE,
    MAPPING_CODE,
    MESSAGE_SENTINEL,
    PRICE,
    PRODUCT_NAME,
    SABANG_NAME_KEYS,
    SALE_PRICE_KEYS,
    SUPPLY_PRICE,
    VENDOR,
    first_present,
    is_blank,
    is_recipient_column,
    row_recipient_name,
)
from .template_service import ColumnSpec

BOX_UNITS = 2
VOLUME_UNITS = 60
PACKAGING_CODE = "05"

# Template header -> stored row field
HEADER_MAP = {
    "수취인주소": "주소",
    "수취인 주소": "주소",
    "고객주문처명": VENDOR,
    "상품코드": MAPPING_CODE,
    "공급가": PRICE,
    "배메": "배송메시지",
    "배송 메시지": "배송메시지",
    "배송메세지": "배송메시지",
    "배송메시지": "배송메시지",
}

POSTAL_KEYS = ("우편", "우편번호", "우편 번호")
PRICE_KEYS = (PRICE, "price")
MESSAGE_KEYS = ("배송메시지", "배송 메시지", "배메") + DELIVERY_MESSAGE_COLUMNS[1:]
ORDER_NUMBER_HEADER = "주문번호"

_WS_RE = re.compile(r"\s+")
_DIGITS_RE = re.compile(r"\D")


@dataclass(frozen=True)
class MappingOptions:
    prefer_sabang_name: bool = True
    # Online users export the marketplace order number instead of the internal code
    online: bool = False


def _normalize_header(header: str) -> str:
    return _WS_RE.sub("", header).lower()


def _number(value):
    """Numeric value of an amount cell, or the value unchanged when it does not parse."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value
    text = str(value).replace(",", "").strip()
    try:
        number = float(text)
    except ValueError:
        return value
    return int(number) if number.is_integer() else number


def _postal(value) -> str:
    text = str(value).strip()
    digits = _DIGITS_RE.sub("", text)
    if 4 <= len(digits) <= 5:
        return digits.zfill(5)
    return text


def _product_name(row: Mapping, header: str, prefer_sabang_name: bool):
    if prefer_sabang_name:
        sabang = first_present(row, SABANG_NAME_KEYS)
        if sabang is not None:
            text = str(sabang).strip()
            if text.startswith("ㄱ") and len(text) > 1:
                text = text[1:]
            return text
    return first_present(row, (PRODUCT_NAME, header, _WS_RE.sub("", header))) or ""


def _generic(row: Mapping, header: str):
    mapped = HEADER_MAP.get(header, header)
    value = first_present(row, (mapped, header, _WS_RE.sub("", header), header.lower()))
    if value is None and ("배송" in header or "배메" in header):
        value = first_present(row, MESSAGE_KEYS)
    return "" if value is None else value


def _lookup(row: Mapping, header: str, normalized: str, options: MappingOptions):
    if "우편" in normalized:
        postal = first_present(row, POSTAL_KEYS)
        if postal is not None:
            return _postal(postal)

    if "공급가" in normalized or ("가격" in normalized and "공급" in header):
        price = first_present(row, (SUPPLY_PRICE,) + SALE_PRICE_KEYS + (PRICE,))
        return "" if price is None else _number(price)

    if "가격" in normalized:
        price = first_present(row, PRICE_KEYS)
        return "" if price is None else _number(price)

    if PRODUCT_NAME in normalized:
        return _product_name(row, header, options.prefer_sabang_name)

    if ORDER_NUMBER_HEADER in normalized:
        if options.online:
            number = first_present(row, ("sabang_code", ORDER_NUMBER_HEADER))
        else:
            number = first_present(row, (INTERNAL_CODE, ORDER_NUMBER_HEADER))
        return "" if number is None else number

    return _generic(row, header)


def _with_sentinel(value) -> str:
    text = "" if value is None else str(value).strip()
    text = text[len(MESSAGE_SENTINEL):].strip() if text.startswith(MESSAGE_SENTINEL) else text
    return f"{MESSAGE_SENTINEL}{text}" if text else ""


def map_value(row: Mapping, column: ColumnSpec, options: Optional[MappingOptions] = None):
    """
    Value of `column` for one row.

    Blank columns stay empty; box, volume and packaging columns carry fixed
    logistics values; aliased columns try their alias keys first. Recipient
    columns fall back to the row's recipient name and get the ★ prefix
    exactly once.
    """
    options = options or MappingOptions()
    if column.is_blank:
        return ""

    header = column.source.strip()
    normalized = _normalize_header(header)

    if "박스" in normalized:
        return BOX_UNITS
    if "부피" in normalized:
        return VOLUME_UNITS
    if "포장" in normalized:
        return PACKAGING_CODE

    value = None
    if column.column_key:
        value = first_present(row, (header,) + tuple(column.aliases))
    if is_blank(value):
        value = _lookup(row, header, normalized, options)

    if is_recipient_column(header) or is_recipient_column(column.label):
        if is_blank(value):
            value = row_recipient_name(row)
        return _with_sentinel(value)
    return value


def map_rows(rows: list[Mapping], columns: list[ColumnSpec], options: Optional[MappingOptions] = None) -> list[list]:
    return [[map_value(row, column, options) for column in columns] for row in rows]
