# Overview: Staged upload lifecycle: save, list, assign product codes, discard.

from __future__ import annotations

from typing import Any, Optional

from flask import current_app

from ..extensions import db
from ..models import StagedFile, Upload
from ..validation import (
    DuplicateFilenamesError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from . import product_resolver
from .row_fields import is_blank, product_name_index
from .security_service import log_access_denied


def _clean_header(header: list) -> list[str]:
    return ["" if h is None else str(h).strip() for h in header]


def _validate_table(table_data: Any) -> list[list]:
    if not isinstance(table_data, list) or not table_data:
        raise ValidationError("table_data must be a non-empty list of rows")
    if not all(isinstance(row, list) for row in table_data):
        raise ValidationError("table_data rows must be lists")
    header = _clean_header(table_data[0])
    if not any(header):
        raise ValidationError("table_data header row is empty")
    return [header] + [list(row) for row in table_data[1:]]


def get_owned_staged_file(company_id: int, user_id: int, file_id: str) -> StagedFile:
    """
    Load a staged file the acting user owns.

    Raises NotFoundError when no such file exists anywhere and ForbiddenError
    (after recording a security event) when it belongs to someone else.
    """
    candidates = db.session.query(StagedFile).filter_by(file_id=str(file_id)).all()
    if not candidates:
        raise NotFoundError(f"Staged file not found: {file_id}")

    for staged in candidates:
        if staged.company_id == company_id and staged.user_id == user_id:
            return staged

    owner = candidates[0]
    event_type = (
        "CROSS_TENANT_ACCESS_DENIED" if owner.company_id != company_id else "STAGED_FILE_ACCESS_DENIED"
    )
    log_access_denied(
        event_type,
        f"Staged file {file_id} is owned by user {owner.user_id} in company {owner.company_id}",
        company_id=company_id,
        user_id=user_id,
    )
    raise ForbiddenError("You do not have access to this staged file")


def _existing_upload_names(company_id: int, names: list[str]) -> list[str]:
    if not names:
        return []
    rows = (
        db.session.query(Upload.file_name)
        .filter(Upload.company_id == company_id, Upload.file_name.in_(names))
        .all()
    )
    return sorted({r[0] for r in rows})


def autofill_product_codes(staged: StagedFile) -> int:
    """
    Fill name -> code/id maps for product names the catalog resolves exactly.

    Names the user already mapped are left alone. Returns how many names were added.
    """
    table = staged.table_data or []
    if len(table) < 2:
        return 0
    idx = product_name_index(table[0])
    if idx is None:
        return 0

    code_map = dict(staged.product_code_map or {})
    id_map = dict(staged.product_id_map or {})
    added = 0
    seen: set[str] = set()
    for row in table[1:]:
        if idx >= len(row) or is_blank(row[idx]):
            continue
        name = str(row[idx]).strip()
        if name in seen or name in code_map:
            continue
        seen.add(name)
        match = product_resolver.resolve_product(staged.company_id, name, staged.vendor_name)
        if match is None:
            continue
        code_map[name] = match.code
        id_map[name] = match.product_id
        added += 1

    if added:
        staged.product_code_map = code_map
        staged.product_id_map = id_map
    return added


def stage_file(
    *,
    company_id: int,
    user_id: int,
    file_id: str,
    file_name: str,
    table_data: Any,
    vendor_name: Optional[str] = None,
    product_code_map: Optional[dict] = None,
    product_id_map: Optional[dict] = None,
) -> StagedFile:
    """
    Create or replace a staged file.

    Re-saving an existing file_id replaces its table and keeps user-assigned
    codes unless new maps are supplied. A file name that is already a
    permanent upload, or is staged under another id, is rejected.
    """
    file_id = str(file_id or "").strip()
    file_name = str(file_name or "").strip()
    if not file_id:
        raise ValidationError("file_id is required")
    if not file_name:
        raise ValidationError("file_name is required")
    table = _validate_table(table_data)
    raw_header = list(table_data[0])

    taken = _existing_upload_names(company_id, [file_name])
    other_staged = (
        db.session.query(StagedFile)
        .filter(
            StagedFile.company_id == company_id,
            StagedFile.user_id == user_id,
            StagedFile.file_name == file_name,
            StagedFile.file_id != file_id,
        )
        .first()
    )
    if taken or other_staged:
        raise DuplicateFilenamesError([file_name])

    staged = db.session.query(StagedFile).filter_by(company_id=company_id, file_id=file_id).first()
    if staged is not None and staged.user_id != user_id:
        staged = get_owned_staged_file(company_id, user_id, file_id)

    if staged is None:
        staged = StagedFile(
            file_id=file_id,
            company_id=company_id,
            user_id=user_id,
            product_code_map={},
            product_id_map={},
        )
        db.session.add(staged)

    staged.file_name = file_name
    staged.vendor_name = (vendor_name or "").strip() or None
    staged.table_data = table
    staged.original_header = raw_header
    if product_code_map is not None:
        staged.product_code_map = {str(k).strip(): v for k, v in product_code_map.items()}
    if product_id_map is not None:
        staged.product_id_map = {str(k).strip(): v for k, v in product_id_map.items()}

    added = autofill_product_codes(staged)
    db.session.commit()

    current_app.logger.info(
        "Staged file %s (%s rows, %s codes resolved) for user %s",
        file_id,
        staged.row_count,
        added,
        user_id,
    )
    return staged


def list_staged_files(company_id: int, user_id: int) -> list[StagedFile]:
    return (
        db.session.query(StagedFile)
        .filter_by(company_id=company_id, user_id=user_id)
        .order_by(StagedFile.created_at, StagedFile.id)
        .all()
    )


def assign_product_codes(
    *,
    company_id: int,
    user_id: int,
    file_id: str,
    assignments: Any,
) -> StagedFile:
    """
    Record the user's product choices on a staged file.

    `assignments` is a list of {"name", "code"} (optionally "product_id").
    Codes must exist in the catalog; the product id defaults to the code's
    product. A blank code clears the name's mapping.
    """
    if not isinstance(assignments, list) or not assignments:
        raise ValidationError("codes must be a non-empty list")

    staged = get_owned_staged_file(company_id, user_id, file_id)
    code_map = dict(staged.product_code_map or {})
    id_map = dict(staged.product_id_map or {})

    for item in assignments:
        if not isinstance(item, dict):
            raise ValidationError("each code assignment must be an object")
        name = str(item.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required for each code assignment")
        code = item.get("code")
        if is_blank(code):
            code_map.pop(name, None)
            id_map.pop(name, None)
            continue

        code = str(code).strip()
        product = None
        if item.get("product_id") is not None:
            product = product_resolver.find_by_id(company_id, item.get("product_id"))
            if product is None:
                raise ValidationError(f"Unknown product id: {item.get('product_id')}")
        if product is None or product.code != code:
            by_code = product_resolver.find_by_code(company_id, code)
            if by_code is None:
                raise ValidationError(f"Unknown product code: {code}")
            if product is None:
                product = by_code

        code_map[name] = code
        id_map[name] = product.id

    staged.product_code_map = code_map
    staged.product_id_map = id_map
    db.session.commit()
    return staged


def delete_staged_file(*, company_id: int, user_id: int, file_id: str) -> None:
    staged = get_owned_staged_file(company_id, user_id, file_id)
    db.session.delete(staged)
    db.session.commit()
