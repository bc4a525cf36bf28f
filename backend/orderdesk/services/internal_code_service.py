# Overview: Internal tracking code allocation, batched per mall.

"""
Internal codes

Format: YYMMDD (business date) + 4-digit mall id ("0000" without a mall)
+ 4-digit daily sequence. Mall 12, third row of 2024-10-17 -> "24101700120003".

The next sequence for a (company, mall, date) scope starts after the larger
of the persisted counter and the highest code already stored, so deleting
rows never lets a code be reissued. Counters are updated inside the
caller's transaction; the unique constraint on upload_rows is the final
guard against a concurrent request issuing the same code.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterable, Optional, Sequence

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import InternalCodeCounter, OrderRow
from ..validation import ConflictError
from orderdesk.time_utils import business_today
from .concurrency import lock_for_update

SEQUENCE_WIDTH = 4
MALL_WIDTH = 4
MAX_SEQUENCE = 10 ** SEQUENCE_WIDTH - 1

_IN_CLAUSE_CHUNK = 500


class CodeCollisionError(ConflictError):
    """An issued code already exists; the whole allocation is retried."""


def code_date(now=None) -> str:
    tz_name = current_app.config.get("ORDERDESK_TIMEZONE", "Asia/Seoul")
    return business_today(tz_name, now).strftime("%y%m%d")


def counter_key(mall_id: Optional[int]) -> str:
    return f"mall_{mall_id}" if mall_id is not None else "mall_null"


def code_prefix(date_str: str, mall_id: Optional[int]) -> str:
    return f"{date_str}{(mall_id or 0):0{MALL_WIDTH}d}"


def format_code(date_str: str, mall_id: Optional[int], sequence: int) -> str:
    return f"{code_prefix(date_str, mall_id)}{sequence:0{SEQUENCE_WIDTH}d}"


def _highest_stored_sequence(company_id: int, prefix: str) -> int:
    width = len(prefix) + SEQUENCE_WIDTH
    highest = (
        db.session.query(func.max(OrderRow.internal_code))
        .filter(
            OrderRow.company_id == company_id,
            OrderRow.internal_code.like(f"{prefix}%"),
            func.length(OrderRow.internal_code) == width,
        )
        .scalar()
    )
    if not highest:
        return 0
    suffix = highest[len(prefix):]
    return int(suffix) if suffix.isdigit() else 0


def _claim_range(company_id: int, date_str: str, mall_id: Optional[int], count: int) -> int:
    """Reserve `count` sequences for one scope; returns the first one."""
    key = counter_key(mall_id)
    counter = lock_for_update(
        db.session.query(InternalCodeCounter).filter_by(
            company_id=company_id,
            counter_key=key,
            date_str=date_str,
        )
    ).first()
    if counter is None:
        counter = InternalCodeCounter(
            company_id=company_id,
            counter_key=key,
            date_str=date_str,
            last_increment=0,
        )
        db.session.add(counter)
        # A concurrent insert of the same scope surfaces here as IntegrityError
        db.session.flush()

    start = max(counter.last_increment or 0, _highest_stored_sequence(company_id, code_prefix(date_str, mall_id))) + 1
    last = start + count - 1
    if last > MAX_SEQUENCE:
        raise ConflictError(
            f"Daily internal code capacity exhausted for {key} on {date_str}"
        )
    counter.last_increment = last
    return start


def _existing_codes(company_id: int, codes: Sequence[str]) -> set[str]:
    found: set[str] = set()
    for i in range(0, len(codes), _IN_CLAUSE_CHUNK):
        chunk = codes[i:i + _IN_CLAUSE_CHUNK]
        rows = (
            db.session.query(OrderRow.internal_code)
            .filter(OrderRow.company_id == company_id, OrderRow.internal_code.in_(chunk))
            .all()
        )
        found.update(r[0] for r in rows)
    return found


def allocate_codes(
    company_id: int,
    mall_ids: Iterable[Optional[int]],
    *,
    date_str: str | None = None,
) -> list[str]:
    """
    Issue one code per entry of `mall_ids`, in the same order.

    All scopes are reserved in one pass; each scope's counter is touched
    once no matter how many rows it covers. Raises CodeCollisionError if a
    generated code is already stored (another request won the race).
    """
    mall_ids = list(mall_ids)
    if not mall_ids:
        return []
    date_str = date_str or code_date()

    counts: "OrderedDict[Optional[int], int]" = OrderedDict()
    for mall_id in mall_ids:
        counts[mall_id] = counts.get(mall_id, 0) + 1

    next_seq = {
        mall_id: _claim_range(company_id, date_str, mall_id, count)
        for mall_id, count in counts.items()
    }

    codes: list[str] = []
    for mall_id in mall_ids:
        codes.append(format_code(date_str, mall_id, next_seq[mall_id]))
        next_seq[mall_id] += 1

    if len(set(codes)) != len(codes):
        raise CodeCollisionError("Duplicate internal code generated within batch")

    clashes = _existing_codes(company_id, codes)
    if clashes:
        raise CodeCollisionError(
            "Internal code already issued: " + ", ".join(sorted(clashes)[:5])
        )

    return codes
