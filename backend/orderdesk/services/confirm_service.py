# Overview: Converts staged files into permanent uploads and order rows with fresh internal codes.

"""
Upload confirmation

Preconditions are all checked before anything is written:
  - a company and acting user are present and agree
  - every staged file is owned by the acting user (ForbiddenError otherwise)
  - no staged file was already confirmed (DuplicateFilenamesError)
  - no file name repeats in the batch or among the company's uploads

The write phase (uploads, rows, counters, staged-file deletion) is one
transaction. Losing a race to another request on a unique constraint rolls
it back and re-runs the whole operation, prechecks included, so the loser
ends with a conflict instead of a second copy.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import OrderRow, StagedFile, Upload, User
from ..validation import DuplicateFilenamesError, ForbiddenError, ValidationError, require_str_list
from . import order_status, product_resolver
from .concurrency import ALLOCATION_RETRYABLE_ERRORS, run_with_retry
from .internal_code_service import CodeCollisionError, allocate_codes
from .mall_service import MallLookup
from .row_fields import (
    DELIVERY_MESSAGE_COLUMNS,
    INTERNAL_CODE,
    MAPPING_CODE,
    ORDER_NUMBER_COLUMNS,
    PRODUCT_ID,
    SHOP_COLUMNS,
    STATUS,
    SUPPLY_PRICE,
    VENDOR,
    VENDOR_COLUMNS,
    apply_product_routing,
    display_sort_key,
    first_present,
    header_index,
    is_blank,
    parse_amount,
    row_product_name,
    stamp_delivery_message,
)
from .security_service import log_access_denied
from .staging_service import get_owned_staged_file

_WS_RE = re.compile(r"\s+")


@dataclass
class ConfirmedUpload:
    upload_id: int
    file_name: str
    row_count: int
    row_ids: list[int]
    mall_id: Optional[int]
    vendor_name: Optional[str]

    def to_dict(self) -> dict:
        return {
            "uploadId": self.upload_id,
            "fileName": self.file_name,
            "rowCount": self.row_count,
            "rowIds": self.row_ids,
            "mallId": self.mall_id,
            "vendorName": self.vendor_name,
        }


@dataclass
class ConfirmResult:
    uploads: list[ConfirmedUpload] = field(default_factory=list)

    @property
    def saved_count(self) -> int:
        return len(self.uploads)

    @property
    def total_rows(self) -> int:
        return sum(u.row_count for u in self.uploads)

    def to_dict(self) -> dict:
        return {
            "savedCount": self.saved_count,
            "totalRows": self.total_rows,
            "uploads": [u.to_dict() for u in self.uploads],
        }


@dataclass
class _PendingRow:
    row_order: int
    data: dict
    vendor_name: Optional[str]
    mall_id: Optional[int]
    product_id: Optional[int]
    supply_price: Optional[int]
    sabang_code: Optional[str]
    message_key: Optional[str] = None
    internal_code: Optional[str] = None

    def assign_code(self, code: str) -> None:
        self.internal_code = code
        self.data[INTERNAL_CODE] = code
        if self.message_key is not None:
            self.data[self.message_key] = stamp_delivery_message(self.data.get(self.message_key), code)


def _compact(value: str) -> str:
    return _WS_RE.sub("", value)


def match_product_refs(name: str, code_map: dict, id_map: dict) -> tuple[Optional[str], Optional[int]]:
    """
    Look a product name up in the staged name maps.

    Exact name, then whitespace-insensitive, then substring in either
    direction (longest key wins).
    """
    if not name:
        return None, None

    def refs(key: str):
        product_id = id_map.get(key)
        try:
            product_id = int(product_id) if product_id is not None else None
        except (TypeError, ValueError):
            product_id = None
        code = code_map.get(key)
        return (str(code).strip() if not is_blank(code) else None), product_id

    keys = [k for k in set(code_map) | set(id_map) if k]
    if name in keys:
        return refs(name)

    compact = _compact(name)
    for key in sorted(keys):
        if _compact(key) == compact:
            return refs(key)

    partial = [k for k in keys if k in name or name in k]
    if partial:
        partial.sort(key=lambda k: (-len(k), k))
        return refs(partial[0])

    return None, None


def _row_dict(header: list[str], cells: list) -> dict:
    row: dict = {}
    for idx, key in enumerate(header):
        if not key or key in row:
            continue
        value = cells[idx] if idx < len(cells) else None
        row[key] = "" if value is None else value
    return row


def _check_context(company_id, user) -> None:
    if company_id is None or user is None:
        raise ValidationError("Company and user context are required")
    if user.company_id != company_id:
        log_access_denied(
            "CROSS_TENANT_ACCESS_DENIED",
            f"User {user.id} of company {user.company_id} tried to confirm for company {company_id}",
            company_id=company_id,
            user_id=user.id,
        )
        raise ForbiddenError("User does not belong to this company")


def _load_staged(company_id: int, user: User, file_ids: list[str]) -> list[StagedFile]:
    already = (
        db.session.query(Upload)
        .filter(Upload.company_id == company_id, Upload.source_file_id.in_(file_ids))
        .all()
    )
    if already:
        raise DuplicateFilenamesError(sorted({u.file_name for u in already}))

    return [get_owned_staged_file(company_id, user.id, fid) for fid in file_ids]


def _check_file_names(company_id: int, staged_files: list[StagedFile]) -> None:
    names = [s.file_name for s in staged_files]
    repeated = {n for n in names if names.count(n) > 1}
    stored = (
        db.session.query(Upload.file_name)
        .filter(Upload.company_id == company_id, Upload.file_name.in_(names))
        .all()
    )
    offending = sorted(repeated | {r[0] for r in stored})
    if offending:
        raise DuplicateFilenamesError(offending)


def _build_rows(
    staged: StagedFile,
    user: User,
    malls: MallLookup,
) -> list[_PendingRow]:
    table = staged.table_data or []
    if len(table) < 2:
        return []
    header = ["" if h is None else str(h).strip() for h in table[0]]
    message_idx = header_index(header, DELIVERY_MESSAGE_COLUMNS)
    message_key = header[message_idx] if message_idx is not None else None

    code_map = dict(staged.product_code_map or {})
    id_map = dict(staged.product_id_map or {})
    company_id = staged.company_id
    online = user.is_online

    pending: list[_PendingRow] = []
    for position, cells in enumerate(table[1:], start=1):
        if not isinstance(cells, list) or all(is_blank(c) for c in cells):
            continue
        data = _row_dict(header, cells)

        if online:
            vendor = first_present(data, VENDOR_COLUMNS + SHOP_COLUMNS) or staged.vendor_name
        else:
            vendor = staged.vendor_name
        vendor = str(vendor).strip() if not is_blank(vendor) else None
        if vendor and is_blank(data.get(VENDOR)):
            data[VENDOR] = vendor

        name = row_product_name(data)
        code, product_id = match_product_refs(name, code_map, id_map)
        product = product_resolver.find_by_id(company_id, product_id) if product_id else None
        if code is None and product_id is None and name:
            match = product_resolver.resolve_product(company_id, name, vendor)
            if match is not None:
                code, product_id = match.code, match.product_id
                product = product_resolver.find_by_id(company_id, product_id)
            else:
                current_app.logger.warning(
                    "No catalog match for %r in %s row %s", name, staged.file_name, position
                )
        if code is None and product is not None:
            code = product.code
        elif product is None and code:
            product = product_resolver.find_by_code(company_id, code)

        if code:
            data[MAPPING_CODE] = code
        if product_id:
            data[PRODUCT_ID] = product_id
        if product is not None:
            apply_product_routing(data, product)

        if is_blank(data.get(STATUS)):
            data[STATUS] = order_status.DEFAULT_STATUS

        supply_price = parse_amount(data.get(SUPPLY_PRICE))
        if supply_price is None and product is not None:
            supply_price = product.price

        sabang_code = None
        if online:
            number = first_present(data, ORDER_NUMBER_COLUMNS)
            sabang_code = str(number).strip() if number is not None else None

        pending.append(
            _PendingRow(
                row_order=position,
                data=data,
                vendor_name=vendor,
                mall_id=malls.mall_id(vendor),
                product_id=product_id,
                supply_price=supply_price,
                sabang_code=sabang_code,
                # Online uploads keep the marketplace message untouched
                message_key=None if online else message_key,
            )
        )

    # Insertion follows the display order; row_order keeps the file order
    pending.sort(key=lambda p: display_sort_key(p.data))
    return pending


def _common(values: list):
    distinct = {v for v in values if v is not None}
    return distinct.pop() if len(distinct) == 1 else None


def confirm_staged_files(company_id: int, user: User, file_ids) -> ConfirmResult:
    """
    Confirm staged files into permanent storage exactly once.

    Returns the created uploads with their row ids. Raises ValidationError,
    ForbiddenError, NotFoundError or DuplicateFilenamesError before any
    write; storage errors roll the whole batch back.
    """
    _check_context(company_id, user)
    requested = list(dict.fromkeys(require_str_list(file_ids, "fileIds")))

    def _op() -> ConfirmResult:
        staged_files = _load_staged(company_id, user, requested)
        _check_file_names(company_id, staged_files)

        malls = MallLookup(company_id)
        batches = [(staged, _build_rows(staged, user, malls)) for staged in staged_files]

        all_rows = [row for _, rows in batches for row in rows]
        codes = allocate_codes(company_id, [row.mall_id for row in all_rows])
        for row, code in zip(all_rows, codes):
            row.assign_code(code)

        result = ConfirmResult()
        for staged, rows in batches:
            upload = Upload(
                company_id=company_id,
                user_id=user.id,
                file_name=staged.file_name,
                source_file_id=staged.file_id,
                row_count=len(rows),
                original_header=list(staged.original_header or (staged.table_data or [[]])[0]),
                header=list((staged.table_data or [[]])[0]),
                vendor_name=staged.vendor_name or _common([r.vendor_name for r in rows]),
                mall_id=_common([r.mall_id for r in rows]),
            )
            db.session.add(upload)
            db.session.flush()

            records = [
                OrderRow(
                    upload_id=upload.id,
                    company_id=company_id,
                    mall_id=row.mall_id,
                    vendor_name=row.vendor_name,
                    row_data=row.data,
                    row_order=row.row_order,
                    order_status=row.data.get(STATUS),
                    internal_code=row.internal_code,
                    sabang_code=row.sabang_code,
                    supply_price=row.supply_price,
                )
                for row in rows
            ]
            db.session.add_all(records)
            db.session.flush()

            result.uploads.append(
                ConfirmedUpload(
                    upload_id=upload.id,
                    file_name=upload.file_name,
                    row_count=len(records),
                    row_ids=[r.id for r in records],
                    mall_id=upload.mall_id,
                    vendor_name=upload.vendor_name,
                )
            )

        for staged in staged_files:
            db.session.delete(staged)

        db.session.commit()
        return result

    try:
        result = run_with_retry(
            _op,
            attempts=4,
            backoff_base=0.05,
            retry_on=ALLOCATION_RETRYABLE_ERRORS + (CodeCollisionError,),
        )
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Confirmed %s file(s), %s row(s) for company %s by user %s",
        result.saved_count,
        result.total_rows,
        company_id,
        user.id,
    )
    return result
