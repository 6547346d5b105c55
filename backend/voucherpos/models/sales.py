from __future__ import annotations

from ..extensions import db
from voucherpos.time_utils import to_utc_z


SALE_STATUS_COMMITTED = "COMMITTED"
SALE_STATUS_EDITED = "EDITED"


class Sale(db.Model):
    """
    Sales voucher.

    Invariants after every mutation:
    - total_cost / total_sale / total_profit are sums over items
    - change_amount = received_amount - total_sale

    Lifecycle: COMMITTED on creation, EDITED after any update. Deletion
    removes the row and its items together (there is no DELETED status).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("voucher_number", name="uq_sales_voucher_number"),
        db.UniqueConstraint("client_reference", name="uq_sales_client_reference"),
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable voucher number (e.g., "V20250114001")
    voucher_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_COMMITTED, index=True)

    # All amounts in minor units
    total_cost = db.Column(db.Integer, nullable=False, default=0)
    total_sale = db.Column(db.Integer, nullable=False, default=0)
    total_profit = db.Column(db.Integer, nullable=False, default=0)
    received_amount = db.Column(db.Integer, nullable=False, default=0)
    change_amount = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(64), nullable=True)

    # Terminal-supplied key used to detect a resubmitted commit
    client_reference = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        order_by="SaleItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} voucher={self.voucher_number!r} total={self.total_sale}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "voucher_number": self.voucher_number,
            "status": self.status,
            "total_cost": self.total_cost,
            "total_sale": self.total_sale,
            "total_profit": self.total_profit,
            "received_amount": self.received_amount,
            "change_amount": self.change_amount,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "created_by": self.created_by,
            "client_reference": self.client_reference,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line on a sale voucher.

    product_name, cost_price and sale_price are value copies taken when the
    line was created; product_id is a weak reference that becomes NULL if
    the product is deleted.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    # Display order within the voucher
    position = db.Column(db.Integer, nullable=False, default=0)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    cost_price = db.Column(db.Integer, nullable=False)
    sale_price = db.Column(db.Integer, nullable=False)
    total_cost = db.Column(db.Integer, nullable=False)
    total_sale = db.Column(db.Integer, nullable=False)
    profit = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "position": self.position,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "cost_price": self.cost_price,
            "sale_price": self.sale_price,
            "total_cost": self.total_cost,
            "total_sale": self.total_sale,
            "profit": self.profit,
        }


class VoucherSequence(db.Model):
    """
    Atomic per-day voucher counters.

    WHY: Counting today's sales and adding one races under concurrent
    commits. The counter row is incremented with a single UPDATE inside the
    sale transaction, and the unique business_date makes the first insert
    of a day conflict instead of duplicating.
    """
    __tablename__ = "voucher_sequences"
    __table_args__ = (
        db.UniqueConstraint("business_date", name="uq_voucher_sequences_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_date = db.Column(db.String(8), nullable=False)  # YYYYMMDD
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_date": self.business_date,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
