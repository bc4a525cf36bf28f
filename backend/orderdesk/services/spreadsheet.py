# Overview: openpyxl helpers for reading uploads and materializing export workbooks.

from __future__ import annotations

import base64
import binascii
import io
import json
import zipfile
from copy import copy
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from ..validation import CorruptInputError


PHONE_MARKERS = ("전화", "전번", "핸드폰", "휴대폰", "연락처", "연락")
TEXT_FORMAT = "@"
INTEGER_FORMAT = "0"

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER_FILL = PatternFill(start_color="FFFFFD01", end_color="FFFFFD01", fill_type="solid")
HEADER_FONT = Font(size=10, bold=True)
_THIN = Side(style="thin")
HEADER_BORDER = Border(left=_THIN, right=_THIN, top=_THIN, bottom=_THIN)
HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center")
DEFAULT_COLUMN_WIDTH = 15

_DECODE_ERRORS = (
    binascii.Error,
    InvalidFileException,
    zipfile.BadZipFile,
    KeyError,
    ValueError,
    OSError,
)


class CorruptTemplateError(CorruptInputError):
    """The template's original workbook could not be decoded; __cause__ holds the decoder error."""


def is_phone_column(header) -> bool:
    text = str(header or "")
    return any(marker in text for marker in PHONE_MARKERS)


def _json_safe(value):
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, str):
        return value.strip()
    return value


def read_table(stream) -> list[list]:
    """
    First worksheet of an uploaded workbook as a JSON-safe grid.

    Trailing empty rows and columns are dropped. Raises CorruptInputError
    for anything openpyxl cannot open.
    """
    try:
        wb = load_workbook(stream, data_only=True, read_only=True)
    except _DECODE_ERRORS as exc:
        raise CorruptInputError(f"Could not read spreadsheet: {exc}") from exc

    try:
        sheet = wb.worksheets[0] if wb.worksheets else None
        if sheet is None:
            return []
        grid = [[_json_safe(v) for v in row] for row in sheet.iter_rows(values_only=True)]
    finally:
        wb.close()

    while grid and all(v == "" for v in grid[-1]):
        grid.pop()
    if not grid:
        return []
    width = max(
        (max((i + 1 for i, v in enumerate(row) if v != ""), default=0) for row in grid),
        default=0,
    )
    return [(row + [""] * width)[:width] for row in grid]


def decode_workbook(original_file: str) -> Workbook:
    """Decode a base64 xlsx; failures raise CorruptTemplateError chained to the decoder error."""
    try:
        raw = base64.b64decode(original_file, validate=True)
        if not raw:
            raise ValueError("original file is empty")
        return load_workbook(io.BytesIO(raw))
    except _DECODE_ERRORS as exc:
        raise CorruptTemplateError(f"원본 파일을 읽을 수 없습니다: {exc}") from exc


def encode_workbook(wb: Workbook) -> str:
    return base64.b64encode(workbook_bytes(wb)).decode("ascii")


def workbook_bytes(wb: Workbook) -> bytes:
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@dataclass
class CellStyle:
    """Detached copy of a cell's style, safe to keep after the cell is deleted."""
    font: Any
    border: Any
    fill: Any
    number_format: str
    protection: Any
    alignment: Any

    @classmethod
    def of(cls, cell, *, keep_default: bool = False) -> Optional["CellStyle"]:
        """Snapshot of `cell`; unstyled cells give None unless `keep_default`."""
        if cell is None or not (cell.has_style or keep_default):
            return None
        return cls(
            font=copy(cell.font),
            border=copy(cell.border),
            fill=copy(cell.fill),
            number_format=copy(cell.number_format),
            protection=copy(cell.protection),
            alignment=copy(cell.alignment),
        )

    def apply(self, cell) -> None:
        cell.font = copy(self.font)
        cell.border = copy(self.border)
        cell.fill = copy(self.fill)
        cell.number_format = self.number_format
        cell.protection = copy(self.protection)
        cell.alignment = copy(self.alignment)


def cell_value(value):
    """Normalize a row value to something openpyxl can store."""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, str) and value == "":
        return None
    return value


def write_value(cell, value, *, phone: bool) -> None:
    """
    Set a data cell. Phone columns become text ("@") so leading zeros
    survive; other numbers get the integer format.
    """
    value = cell_value(value)
    if phone:
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        cell.value = None if value is None else str(value)
        cell.number_format = TEXT_FORMAT
        return
    cell.value = value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        cell.number_format = INTEGER_FORMAT


def _widths_by_index(headers: list[str], column_widths) -> dict[int, float]:
    """Accept {header: width}, {column_number: width} or a list of widths."""
    widths: dict[int, float] = {}
    if isinstance(column_widths, list):
        for idx, width in enumerate(column_widths, start=1):
            if isinstance(width, (int, float)) and width > 0:
                widths[idx] = width
    elif isinstance(column_widths, dict):
        for key, width in column_widths.items():
            if not isinstance(width, (int, float)) or width <= 0:
                continue
            if isinstance(key, int) or (isinstance(key, str) and key.isdigit()):
                widths[int(key)] = width
            elif key in headers:
                widths[headers.index(key) + 1] = width
    return widths


def _select_sheet(wb: Workbook, worksheet_name: Optional[str]):
    if worksheet_name and worksheet_name in wb.sheetnames:
        return wb[worksheet_name]
    if wb.worksheets:
        return wb.worksheets[0]
    return wb.create_sheet(worksheet_name or "Sheet1")


def fill_original(
    wb: Workbook,
    headers: list[str],
    rows: list[list],
    *,
    worksheet_name: Optional[str] = None,
    column_widths=None,
):
    """
    Reuse a template workbook: keep its header and first data row styles,
    drop its data rows, then write our header and rows with cloned styles.
    Data cells take the first data row's style, plain or not; the header
    cell's style is used only when the template has no data row.
    """
    ws = _select_sheet(wb, worksheet_name)
    ncols = len(headers)
    original_columns = ws.max_column

    header_height = ws.row_dimensions[1].height
    has_data_row = ws.max_row > 1
    data_height = ws.row_dimensions[2].height if has_data_row else None
    header_styles = {c: CellStyle.of(ws.cell(row=1, column=c)) for c in range(1, ncols + 1)}
    if has_data_row:
        data_styles = {c: CellStyle.of(ws.cell(row=2, column=c), keep_default=True) for c in range(1, ncols + 1)}
    else:
        data_styles = header_styles
    original_widths = {
        c: ws.column_dimensions[get_column_letter(c)].width
        for c in range(1, ncols + 1)
        if ws.column_dimensions[get_column_letter(c)].width
    }

    if has_data_row:
        ws.delete_rows(2, ws.max_row - 1)

    if header_height:
        ws.row_dimensions[1].height = header_height
    for c, label in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=c)
        cell.value = label
        if c > original_columns and header_styles.get(c) is None:
            _style_header_cell(cell)

    widths = dict(original_widths)
    widths.update(_widths_by_index(headers, column_widths))
    for c, width in widths.items():
        if c <= ncols:
            ws.column_dimensions[get_column_letter(c)].width = width

    phone_cols = {c for c, label in enumerate(headers, start=1) if is_phone_column(label)}
    for r, values in enumerate(rows, start=2):
        if data_height:
            ws.row_dimensions[r].height = data_height
        for c, value in enumerate(values, start=1):
            cell = ws.cell(row=r, column=c)
            style = data_styles.get(c)
            if style is not None:
                style.apply(cell)
            write_value(cell, value, phone=c in phone_cols)

    return ws


def _style_header_cell(cell) -> None:
    cell.font = copy(HEADER_FONT)
    cell.fill = copy(HEADER_FILL)
    cell.border = copy(HEADER_BORDER)
    cell.alignment = copy(HEADER_ALIGNMENT)


def build_fresh(headers: list[str], rows: list[list], *, column_widths=None, title: str = "Sheet1") -> Workbook:
    """New workbook with a styled header row."""
    wb = Workbook()
    ws = wb.active
    ws.title = title

    widths = _widths_by_index(headers, column_widths)
    for c, label in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=c, value=label)
        _style_header_cell(cell)
        ws.column_dimensions[get_column_letter(c)].width = widths.get(c, DEFAULT_COLUMN_WIDTH)
    if headers:
        ws.freeze_panes = "A2"
        ws.auto_filter.ref = f"A1:{get_column_letter(len(headers))}1"

    phone_cols = {c for c, label in enumerate(headers, start=1) if is_phone_column(label)}
    for r, values in enumerate(rows, start=2):
        for c, value in enumerate(values, start=1):
            write_value(ws.cell(row=r, column=c), value, phone=c in phone_cols)
    return wb
