# Overview: Mall (vendor / sales channel) lookup and creation.

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Mall
from ..validation import ConflictError, ValidationError


def find_mall_by_name(company_id: int, name) -> Optional[Mall]:
    """Exact name first, then a case-insensitive match."""
    trimmed = str(name).strip() if name is not None else ""
    if not trimmed:
        return None

    mall = db.session.query(Mall).filter_by(company_id=company_id, name=trimmed).first()
    if mall:
        return mall

    return (
        db.session.query(Mall)
        .filter(Mall.company_id == company_id, func.lower(Mall.name) == trimmed.lower())
        .order_by(Mall.id)
        .first()
    )


class MallLookup:
    """
    Vendor name -> Mall cache for the lifetime of one confirm/export call.

    Misses and lookup failures are cached as None and logged once; a row
    without a mall is still saved.
    """

    def __init__(self, company_id: int):
        self.company_id = company_id
        self._cache: dict[str, Optional[Mall]] = {}

    def get(self, vendor_name) -> Optional[Mall]:
        key = str(vendor_name).strip() if vendor_name is not None else ""
        if not key:
            return None
        if key in self._cache:
            return self._cache[key]

        try:
            # Savepoint so a failed lookup leaves the caller's transaction usable
            with db.session.begin_nested():
                mall = find_mall_by_name(self.company_id, key)
        except SQLAlchemyError:
            current_app.logger.warning("Mall lookup failed for %r", key, exc_info=True)
            mall = None

        if mall is None:
            current_app.logger.warning(
                "No mall matches vendor %r for company %s; rows keep no mall",
                key,
                self.company_id,
            )
        self._cache[key] = mall
        return mall

    def mall_id(self, vendor_name) -> Optional[int]:
        mall = self.get(vendor_name)
        return mall.id if mall else None


def create_mall(company_id: int, name: str, code: str | None = None) -> Mall:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if db.session.query(Mall).filter_by(company_id=company_id, name=name).first():
        raise ConflictError(f"Mall already exists: {name}")
    mall = Mall(company_id=company_id, name=name, code=(code or None))
    db.session.add(mall)
    db.session.commit()
    return mall


def list_malls(company_id: int) -> list[Mall]:
    return db.session.query(Mall).filter_by(company_id=company_id).order_by(Mall.name).all()
