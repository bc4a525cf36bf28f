# Overview: Error taxonomy shared by services and routes, plus small payload coercion helpers.

from __future__ import annotations

from typing import Any

from flask import jsonify


class OrderDeskError(ValueError):
    """Base for errors that map onto an HTTP status."""

    http_status = 400

    def payload(self) -> dict:
        return {"success": False, "error": str(self)}


class ValidationError(OrderDeskError):
    """400-level input problem (missing context, malformed selector)."""


class ForbiddenError(OrderDeskError):
    """403: resource belongs to another user or company."""

    http_status = 403


class NotFoundError(OrderDeskError):
    """404: template, staged file or row absent."""

    http_status = 404


class ConflictError(OrderDeskError):
    """409-level business rule conflict (e.g., duplicate file name)."""

    http_status = 409


class DuplicateFilenamesError(ConflictError):
    """Raised before any write when file names collide with stored uploads."""

    def __init__(self, file_names: list[str]):
        self.file_names = list(file_names)
        super().__init__(
            "이미 업로드된 파일명이 있습니다: " + ", ".join(self.file_names)
        )

    def payload(self) -> dict:
        return {
            "success": False,
            "error": "DUPLICATE_FILENAMES",
            "message": str(self),
            "duplicate_files": self.file_names,
        }


class CorruptInputError(OrderDeskError):
    """422: an uploaded or stored spreadsheet could not be decoded."""

    http_status = 422


def error_response(exc: OrderDeskError):
    return jsonify(exc.payload()), exc.http_status


def require_id_list(value: Any, field: str) -> list[int]:
    """Coerce a JSON list of ids into ints, rejecting blanks and non-numerics."""
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field} must be a non-empty list")
    ids: list[int] = []
    for raw in value:
        if isinstance(raw, bool):
            raise ValidationError(f"{field} must contain integer ids")
        try:
            ids.append(int(raw))
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must contain integer ids")
    return ids


def require_str_list(value: Any, field: str) -> list[str]:
    if not isinstance(value, list) or not value:
        raise ValidationError(f"{field} must be a non-empty list")
    items = [str(v).strip() for v in value if v is not None and str(v).strip()]
    if len(items) != len(value):
        raise ValidationError(f"{field} must not contain blank values")
    return items
