from __future__ import annotations

from ..extensions import db
from orderdesk.time_utils import to_utc_z

# Product.type values
PRODUCT_TYPE_INHOUSE = "내주"
PRODUCT_TYPE_OUTSOURCED = "외주"


class Product(db.Model):
    """
    Catalog entry.

    `code` is unique within a company and is what spreadsheets call the
    mapping code. `id` is the durable identity: historical rows keep the id
    they were confirmed against even when names or codes are edited later.
    Prices are whole won.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("company_id", "code", name="uq_products_company_code"),
        db.Index("ix_products_company_name", "company_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    sabang_name = db.Column(db.String(255), nullable=True)  # vendor-facing name

    price = db.Column(db.Integer, nullable=True)        # cost / supply price
    sale_price = db.Column(db.Integer, nullable=True)
    purchase = db.Column(db.String(255), nullable=True)  # purchase source (mall/vendor name)

    type = db.Column(db.String(16), nullable=True)       # 내주 / 외주
    post_type = db.Column(db.String(64), nullable=True)  # carrier
    pkg = db.Column(db.Integer, nullable=True)
    post_fee = db.Column(db.Integer, nullable=True)
    bill_type = db.Column(db.String(32), nullable=True)  # tax category
    category = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "code": self.code,
            "name": self.name,
            "sabang_name": self.sabang_name,
            "price": self.price,
            "sale_price": self.sale_price,
            "purchase": self.purchase,
            "type": self.type,
            "post_type": self.post_type,
            "pkg": self.pkg,
            "post_fee": self.post_fee,
            "bill_type": self.bill_type,
            "category": self.category,
            "created_at": to_utc_z(self.created_at),
        }


class Mall(db.Model):
    """Sales channel / vendor. Name is unique within a company."""
    __tablename__ = "malls"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_malls_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "code": self.code,
            "created_at": to_utc_z(self.created_at),
        }


class HeaderAlias(db.Model):
    """
    Canonical field aliases.

    `column_key` is the durable join key referenced by templates and must not
    change once templates use it. Rows with company_id NULL are global
    defaults; a company row with the same key overrides the global one.
    """
    __tablename__ = "header_aliases"
    __table_args__ = (
        db.UniqueConstraint("company_id", "column_key", name="uq_header_aliases_company_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    column_key = db.Column(db.String(64), nullable=False)
    column_label = db.Column(db.String(120), nullable=False)
    aliases = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "column_key": self.column_key,
            "column_label": self.column_label,
            "aliases": list(self.aliases or []),
        }
