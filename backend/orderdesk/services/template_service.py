# Overview: Export template storage and parsing of template_data into column specs.

from __future__ import annotations

import base64
import io
from dataclasses import dataclass
from typing import Optional

from openpyxl import load_workbook
from openpyxl.utils import get_column_letter

from ..extensions import db
from ..models import UploadTemplate
from ..validation import ConflictError, CorruptInputError, NotFoundError, ValidationError
from .alias_service import alias_table
from .spreadsheet import DEFAULT_COLUMN_WIDTH, _DECODE_ERRORS


@dataclass(frozen=True)
class ColumnSpec:
    """
    One output column.

    `source` is the row field the value comes from ("" for a blank column),
    `label` the header written to the sheet, `aliases` extra row keys tried
    when `source` is absent.
    """
    source: str
    label: str
    column_key: Optional[str] = None
    aliases: tuple = ()

    @property
    def is_blank(self) -> bool:
        return not self.source.strip()


@dataclass
class TemplateSpec:
    id: int
    name: str
    columns: list[ColumnSpec]
    column_widths: object = None
    worksheet_name: Optional[str] = None
    original_file: Optional[str] = None


def _pick(data: dict, *keys):
    for key in keys:
        if key in data and data[key] not in (None, ""):
            return data[key]
    return None


def parse_template(template: UploadTemplate) -> TemplateSpec:
    """
    Build column specs from template_data.

    Triples under `columns` win; otherwise `column_order` (falling back to
    `headers`) names both the row field and the header label. Raises
    ValidationError when no column order can be found.
    """
    data = dict(template.template_data or {})
    triples = data.get("columns")
    columns: list[ColumnSpec] = []

    if isinstance(triples, list) and triples:
        aliases = alias_table(template.company_id)
        for item in triples:
            if not isinstance(item, dict):
                raise ValidationError(f"Template {template.name!r} has a malformed column entry")
            key = item.get("column_key")
            alias = aliases.get(key) if key else None
            label = str(item.get("column_label") or (alias.column_label if alias else "") or "")
            display = str(item.get("display_name") or label)
            columns.append(
                ColumnSpec(
                    source=label,
                    label=display,
                    column_key=key,
                    aliases=tuple(alias.aliases or ()) if alias else (),
                )
            )
    else:
        order = _pick(data, "column_order", "columnOrder") or _pick(data, "headers") or []
        if not isinstance(order, list):
            raise ValidationError(f"Template {template.name!r} column order must be a list")
        columns = [ColumnSpec(source=str(h or ""), label=str(h or "")) for h in order]

    if not columns:
        raise ValidationError("컬럼 순서가 설정되지 않았습니다")

    return TemplateSpec(
        id=template.id,
        name=template.name,
        columns=columns,
        column_widths=_pick(data, "column_widths", "columnWidths"),
        worksheet_name=_pick(data, "worksheet_name", "worksheetName"),
        original_file=_pick(data, "original_file", "originalFile"),
    )


def get_template(company_id: int, template_id) -> UploadTemplate:
    try:
        tid = int(template_id)
    except (TypeError, ValueError):
        raise ValidationError("templateId must be an integer")
    template = db.session.query(UploadTemplate).filter_by(id=tid, company_id=company_id).first()
    if not template:
        raise NotFoundError(f"Template not found: {template_id}")
    return template


def create_template(company_id: int, name: str, template_data: dict) -> UploadTemplate:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if not isinstance(template_data, dict):
        raise ValidationError("template_data must be an object")
    if db.session.query(UploadTemplate).filter_by(company_id=company_id, name=name).first():
        raise ConflictError(f"Template already exists: {name}")
    template = UploadTemplate(company_id=company_id, name=name, template_data=template_data)
    db.session.add(template)
    db.session.commit()
    return template


def template_data_from_workbook(raw: bytes) -> dict:
    """
    Capture a sample workbook as template_data: first sheet's non-blank
    headers, their widths, and the file itself for style cloning.
    """
    try:
        wb = load_workbook(io.BytesIO(raw))
    except _DECODE_ERRORS as exc:
        raise CorruptInputError(f"Could not read template workbook: {exc}") from exc

    if not wb.worksheets:
        raise ValidationError("워크시트가 없습니다.")
    ws = wb.worksheets[0]
    header_cells = next(ws.iter_rows(min_row=1, max_row=1), ())
    headers: list[str] = []
    widths: dict[str, float] = {}
    for cell in header_cells:
        if cell.value is None or not str(cell.value).strip():
            continue
        label = str(cell.value).strip()
        headers.append(label)
        dim = ws.column_dimensions.get(get_column_letter(cell.column))
        widths[label] = dim.width if dim is not None and dim.width else DEFAULT_COLUMN_WIDTH

    if not headers:
        raise ValidationError("유효한 헤더가 없습니다.")

    return {
        "headers": headers,
        "column_order": list(headers),
        "column_widths": widths,
        "worksheet_name": ws.title,
        "original_file": base64.b64encode(raw).decode("ascii"),
    }
