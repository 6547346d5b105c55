from __future__ import annotations

from ..extensions import db
from voucherpos.time_utils import to_utc_z


DEFAULT_CATEGORY = "General"


class Product(db.Model):
    """
    Product master data with its on-hand quantity.

    Prices are integer minor units of the configured currency.

    STOCK: quantity is only changed through catalog_service.debit/credit
    (conditional UPDATE statements) or a direct catalog edit. It never goes
    negative; the CHECK constraint backs that up at the database level.

    BARCODE: optional, unique when present. Blank barcodes are stored as NULL
    so any number of products may have none.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_products_quantity_nonnegative"),
        db.CheckConstraint("cost_price >= 0", name="ck_products_cost_nonnegative"),
        db.CheckConstraint("sale_price >= 0", name="ck_products_sale_nonnegative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    cost_price = db.Column(db.Integer, nullable=False, default=0)
    sale_price = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    category = db.Column(db.String(128), nullable=False, default=DEFAULT_CATEGORY)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "cost_price": self.cost_price,
            "sale_price": self.sale_price,
            "quantity": self.quantity,
            "category": self.category,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Category(db.Model):
    """Named product grouping. Products carry the name, not a foreign key."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
