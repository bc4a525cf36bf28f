# Overview: CJ outsourcing purchase-order convention, kept apart from the generic export path.

from __future__ import annotations

from typing import Mapping

from .row_fields import INOUT, MAPPING_CODE, VENDOR
from .template_service import ColumnSpec

CJ_PRODUCT_CODES = ("106464", "108640", "108788", "108879", "108221")
INHOUSE = "내주"


def is_cj_outsource_template(name) -> bool:
    text = str(name or "")
    return "외주" in text and "CJ" in text


def _is_address(column: ColumnSpec) -> bool:
    return "주소" in column.label and "우편" not in column.label


def apply_cj_columns(columns: list[ColumnSpec]) -> list[ColumnSpec]:
    """
    CJ sheets expect a spacer column after the second address column and a
    vendor column after the box column. Both are only added when missing.
    """
    out = list(columns)

    addresses = [i for i, c in enumerate(out) if _is_address(c)]
    if len(addresses) >= 2:
        after = addresses[1] + 1
        if after >= len(out) or not out[after].is_blank:
            out.insert(after, ColumnSpec(source="", label=""))

    if not any(c.label == VENDOR or c.source == VENDOR for c in out):
        box = next((i for i, c in enumerate(out) if "박스" in c.label), None)
        if box is not None:
            out.insert(box + 1, ColumnSpec(source=VENDOR, label=VENDOR))

    return out


def is_cj_row(row: Mapping) -> bool:
    """In-house rows whose product code is on the CJ allow-list."""
    return str(row.get(INOUT) or "").strip() == INHOUSE and str(row.get(MAPPING_CODE) or "").strip() in CJ_PRODUCT_CODES
