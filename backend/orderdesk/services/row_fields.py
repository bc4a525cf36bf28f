# Overview: Localized column names used in order row payloads, plus lookup helpers.

from __future__ import annotations

import unicodedata
from typing import Iterable, Mapping, Optional

STATUS = "주문상태"
INTERNAL_CODE = "내부코드"
MAPPING_CODE = "매핑코드"
PRODUCT_ID = "productId"
VENDOR = "업체명"
INOUT = "내외주"
CARRIER = "택배사"
PRODUCT_NAME = "상품명"
RECIPIENT_NAME = "수취인명"
ORDERER_NAME = "주문자명"
SUPPLY_PRICE = "공급가"
PRICE = "가격"
SABANG_NAME = "사방넷명"
POSTAL = "우편"
ORDER_NUMBER_COLUMNS = ("주문번호", "사방넷주문번호", "주문번호(사방넷)")

SABANG_NAME_KEYS = (SABANG_NAME, "sabangName", "sabang_name")
SALE_PRICE_KEYS = ("salePrice", "sale_price")

# Per-row vendor columns, in priority order
VENDOR_COLUMNS = (VENDOR, "업체")
SHOP_COLUMNS = ("쇼핑몰명(1)", "쇼핑몰명", "쇼핑몰")

DELIVERY_MESSAGE_COLUMNS = ("배송메시지", "배송메세지", "배송요청", "요청사항", "배송요청사항")
MESSAGE_SENTINEL = "★"

RECIPIENT_COLUMNS = (RECIPIENT_NAME, "수취인", "수령인명", "수령인", "받는분", "받는사람", "수하인명")

SEARCHABLE_FIELDS = (RECIPIENT_NAME, ORDERER_NAME, PRODUCT_NAME, MAPPING_CODE)


def is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def first_present(row: Mapping, keys: Iterable[str]):
    """First non-blank value among `keys`, or None."""
    for key in keys:
        value = row.get(key)
        if not is_blank(value):
            return value
    return None


def header_index(headers: list, candidates: Iterable[str]) -> Optional[int]:
    """Index of the first header equal (after trim) to one of `candidates`, in candidate order."""
    trimmed = [str(h).strip() if h is not None else "" for h in headers]
    for name in candidates:
        if name in trimmed:
            return trimmed.index(name)
    return None


def product_name_index(headers: list) -> Optional[int]:
    """The product-name column: an exact 상품명 header, else the first header containing it."""
    exact = header_index(headers, (PRODUCT_NAME,))
    if exact is not None:
        return exact
    for idx, h in enumerate(headers):
        if h is not None and PRODUCT_NAME in str(h):
            return idx
    return None


def row_product_name(row: Mapping) -> str:
    value = row.get(PRODUCT_NAME)
    if is_blank(value):
        for key, candidate in row.items():
            if PRODUCT_NAME in str(key) and not is_blank(candidate):
                value = candidate
                break
    return "" if value is None else str(value).strip()


def row_recipient_name(row: Mapping) -> str:
    value = first_present(row, RECIPIENT_COLUMNS)
    return "" if value is None else str(value).strip()


def is_recipient_column(header) -> bool:
    text = str(header or "").strip()
    if text in RECIPIENT_COLUMNS:
        return True
    return text.endswith("명") and ("수취인" in text or "수령인" in text)


def parse_amount(value) -> Optional[int]:
    """Whole-won amount from a cell ("12,000", "12000원", 12000.0); None when not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(round(value))
    text = str(value).replace(",", "").replace("원", "").strip()
    if not text:
        return None
    try:
        return int(round(float(text)))
    except ValueError:
        return None


# Korean collation order: symbols, digits, Hangul, Hanja, Latin, everything else
_SYMBOL, _DIGIT, _HANGUL, _HANJA, _LATIN, _OTHER = range(6)

_HANGUL_RANGES = (
    (0x1100, 0x11FF),  # conjoining jamo
    (0x3130, 0x318F),  # compatibility jamo
    (0xA960, 0xA97F),
    (0xAC00, 0xD7A3),  # syllables
    (0xD7B0, 0xD7FF),
)


def _collation_weight(ch: str) -> tuple:
    code = ord(ch)
    if any(lo <= code <= hi for lo, hi in _HANGUL_RANGES):
        return (_HANGUL, code)
    category = unicodedata.category(ch)
    if category == "Nd":
        return (_DIGIT, unicodedata.digit(ch, 0))
    if category[0] in "ZPSC":
        return (_SYMBOL, code)
    name = unicodedata.name(ch, "")
    if name.startswith("CJK"):
        return (_HANJA, code)
    if name.startswith("LATIN"):
        return (_LATIN, code)
    return (_OTHER, code)


def sort_text(value: str) -> tuple:
    """
    Collation key following Korean dictionary order.

    Hangul sorts before Latin and digits before both. NFKD splits syllables
    into jamo, so a syllable sorts right after its own prefix (ㄱ < 가 < 각),
    and letters compare without case or accents. Ties fall back to the
    case-folded text.
    """
    folded = unicodedata.normalize("NFC", value).casefold()
    primary = tuple(
        _collation_weight(ch)
        for ch in unicodedata.normalize("NFKD", folded)
        if unicodedata.category(ch) != "Mn"
    )
    return (primary, folded)


def display_sort_key(row: Mapping) -> tuple:
    """Product name then recipient name, in Korean collation order."""
    return (sort_text(row_product_name(row)), sort_text(row_recipient_name(row)))


def apply_product_routing(data: dict, product, *, overwrite: bool = False) -> None:
    """
    Copy the product's 내외주 and 택배사 onto a row payload.

    Only blank fields are filled unless `overwrite`, which also clears
    fields the product leaves unset.
    """
    for key, value in ((INOUT, product.type), (CARRIER, product.post_type)):
        if overwrite and not value:
            data.pop(key, None)
        elif value and (overwrite or is_blank(data.get(key))):
            data[key] = value


def stamp_delivery_message(message, code: str) -> str:
    """
    Append `code` after the sentinel, replacing an earlier stamped code.

    "빠른배송★OLD123" with "NEW456" -> "빠른배송★NEW456".
    """
    text = "" if message is None else str(message)
    base = text.split(MESSAGE_SENTINEL, 1)[0]
    return f"{base}{MESSAGE_SENTINEL}{code}"
