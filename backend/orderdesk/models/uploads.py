from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z


class UploadTemplate(db.Model):
    """
    Export template.

    template_data keys:
    - headers: headers captured from the sample file
    - column_order: output columns in order; each entry is both the header
      written to row 1 and the row field read ("" for a blank column).
      Falls back to headers.
    - columns: optional [{column_key, column_label, display_name}] triples,
      used instead of column_order when present
    - column_widths: optional {header: width}
    - worksheet_name: optional sheet to reuse in original_file
    - original_file: optional base64 xlsx whose styles are cloned
    """
    __tablename__ = "upload_templates"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_upload_templates_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    template_data = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self, include_file: bool = False) -> dict:
        data = dict(self.template_data or {})
        if not include_file:
            data.pop("original_file", None)
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "template_data": data,
            "created_at": to_utc_z(self.created_at),
        }


class StagedFile(db.Model):
    """
    Uploaded spreadsheet pending confirmation.

    Owned by one user. Mutated as codes are assigned, deleted once confirmed
    or discarded. `file_id` is the client-facing identifier.
    """
    __tablename__ = "staged_files"
    __table_args__ = (
        db.UniqueConstraint("company_id", "file_id", name="uq_staged_files_company_file"),
        db.Index("ix_staged_files_company_user", "company_id", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    file_id = db.Column(db.String(128), nullable=False)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    file_name = db.Column(db.String(255), nullable=False)
    vendor_name = db.Column(db.String(255), nullable=True)  # file-level vendor/mall hint

    # Header row followed by data rows
    table_data = db.Column(db.JSON, nullable=False, default=list)
    original_header = db.Column(db.JSON, nullable=True)  # header row exactly as uploaded

    product_code_map = db.Column(db.JSON, nullable=False, default=dict)
    product_id_map = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def row_count(self) -> int:
        return max(len(self.table_data or []) - 1, 0)

    def to_dict(self, include_rows: bool = False) -> dict:
        out = {
            "file_id": self.file_id,
            "file_name": self.file_name,
            "vendor_name": self.vendor_name,
            "row_count": self.row_count,
            "header": (self.table_data or [[]])[0] if self.table_data else [],
            "product_code_map": dict(self.product_code_map or {}),
            "product_id_map": dict(self.product_id_map or {}),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_rows:
            out["table_data"] = self.table_data
        return out


class Upload(db.Model):
    """
    Permanent upload batch produced by confirmation.

    file_name and source_file_id are unique per company; these constraints
    are what make two concurrent confirms of the same file fail.
    """
    __tablename__ = "uploads"
    __table_args__ = (
        db.UniqueConstraint("company_id", "file_name", name="uq_uploads_company_file_name"),
        db.UniqueConstraint("company_id", "source_file_id", name="uq_uploads_company_source_file"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    file_name = db.Column(db.String(255), nullable=False)
    source_file_id = db.Column(db.String(128), nullable=True)
    row_count = db.Column(db.Integer, nullable=False, default=0)

    # Pristine header as uploaded, and the working header rows were built from
    original_header = db.Column(db.JSON, nullable=True)
    header = db.Column(db.JSON, nullable=True)

    vendor_name = db.Column(db.String(255), nullable=True)
    mall_id = db.Column(db.Integer, db.ForeignKey("malls.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    rows = db.relationship("OrderRow", backref="upload", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "user_id": self.user_id,
            "file_name": self.file_name,
            "source_file_id": self.source_file_id,
            "row_count": self.row_count,
            "original_header": self.original_header,
            "header": self.header,
            "vendor_name": self.vendor_name,
            "mall_id": self.mall_id,
            "created_at": to_utc_z(self.created_at),
        }


class OrderRow(db.Model):
    """
    One fulfillment line.

    row_data keys are the localized spreadsheet headers. row_order is the
    1-based position in the uploaded file and is independent of any display
    sort. order_status is the live pipeline state; row_data["주문상태"] is
    what the row had when it was confirmed.
    """
    __tablename__ = "upload_rows"
    __table_args__ = (
        db.UniqueConstraint("company_id", "internal_code", name="uq_upload_rows_company_code"),
        db.Index("ix_upload_rows_upload_order", "upload_id", "row_order"),
        db.Index("ix_upload_rows_company_status", "company_id", "order_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    upload_id = db.Column(db.Integer, db.ForeignKey("uploads.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    mall_id = db.Column(db.Integer, db.ForeignKey("malls.id"), nullable=True, index=True)
    vendor_name = db.Column(db.String(255), nullable=True)

    row_data = db.Column(db.JSON, nullable=False, default=dict)
    row_order = db.Column(db.Integer, nullable=False)

    order_status = db.Column(db.String(32), nullable=True, index=True)
    internal_code = db.Column(db.String(32), nullable=False)
    sabang_code = db.Column(db.String(128), nullable=True)
    supply_price = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def current_data(self) -> dict:
        """row_data with the live status (status changes only touch the column)."""
        data = dict(self.row_data or {})
        if self.order_status is not None:
            data["주문상태"] = self.order_status
        return data

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "upload_id": self.upload_id,
            "mall_id": self.mall_id,
            "vendor_name": self.vendor_name,
            "row_data": self.current_data(),
            "row_order": self.row_order,
            "order_status": self.order_status,
            "internal_code": self.internal_code,
            "sabang_code": self.sabang_code,
            "supply_price": self.supply_price,
            "created_at": to_utc_z(self.created_at),
        }


class InternalCodeCounter(db.Model):
    """
    Highest sequence issued per (company, mall scope, business date).

    Keeps sequences monotonic after rows are deleted.
    """
    __tablename__ = "internal_code_counters"
    __table_args__ = (
        db.UniqueConstraint("company_id", "counter_key", "date_str", name="uq_internal_code_counters_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    counter_key = db.Column(db.String(64), nullable=False)  # "mall_<id>" or "mall_null"
    date_str = db.Column(db.String(6), nullable=False)      # YYMMDD
    last_increment = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
