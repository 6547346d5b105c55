# Overview: JSON backup export and all-or-nothing restore of catalog, sales and users.

"""
Backup Service

Document shape:
    {"timestamp": "...Z", "version": "1.0",
     "data": {"products": [...], "categories": [...], "sales": [...], "users": [...]}}

Sales carry their items. Restore writes records back exactly as exported:
ids, quantities, totals and voucher numbers are kept, nothing is
recomputed. Voucher counters are rebuilt from the restored voucher numbers
so the next commit continues after them.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, Product, Sale, SaleItem, SessionToken, User
from ..validation import ValidationError
from voucherpos.time_utils import parse_iso_datetime, to_utc_z, utcnow
from .concurrency import TRANSIENT_ERRORS, run_atomic
from .voucher_service import reseed_sequences

logger = logging.getLogger(__name__)


def _user_record(user: User) -> dict:
    data = user.to_dict()
    # Restored accounts must still be able to sign in
    data["password_hash"] = user.password_hash
    return data


def export_backup() -> dict:
    """Snapshot every table the restore understands."""
    products = db.session.query(Product).order_by(Product.id).all()
    categories = db.session.query(Category).order_by(Category.id).all()
    sales = db.session.query(Sale).order_by(Sale.id).all()
    users = db.session.query(User).order_by(User.id).all()

    return {
        "timestamp": to_utc_z(utcnow()),
        "version": current_app.config.get("BACKUP_FORMAT_VERSION", "1.0"),
        "data": {
            "products": [p.to_dict() for p in products],
            "categories": [c.to_dict() for c in categories],
            "sales": [s.to_dict(include_items=True) for s in sales],
            "users": [_user_record(u) for u in users],
        },
    }


def _dt(value: Any, key: str):
    if value is None:
        return None
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _require(record: dict, keys: tuple[str, ...], kind: str, index: int) -> None:
    if not isinstance(record, dict):
        raise ValidationError(f"{kind}[{index}] must be an object")
    missing = [k for k in keys if k not in record]
    if missing:
        raise ValidationError(f"{kind}[{index}] missing fields: {', '.join(missing)}")


def _check_document(doc: Any) -> dict:
    if not isinstance(doc, dict):
        raise ValidationError("Backup must be a JSON object")
    if not doc.get("timestamp"):
        raise ValidationError("Backup is missing timestamp")

    version = str(doc.get("version") or "")
    expected = str(current_app.config.get("BACKUP_FORMAT_VERSION", "1.0"))
    if version.split(".")[0] != expected.split(".")[0]:
        raise ValidationError(f"Unsupported backup version: {version or 'missing'}")

    data = doc.get("data")
    if not isinstance(data, dict):
        raise ValidationError("Backup is missing data")
    for key in ("products", "categories", "sales"):
        if not isinstance(data.get(key, []), list):
            raise ValidationError(f"data.{key} must be a list")
    return data


def _product(index: int, r: dict) -> Product:
    _require(r, ("id", "name", "cost_price", "sale_price", "quantity"), "products", index)
    return Product(
        id=r["id"],
        name=r["name"],
        barcode=r.get("barcode") or None,
        cost_price=r["cost_price"],
        sale_price=r["sale_price"],
        quantity=r["quantity"],
        category=r.get("category") or "General",
        created_at=_dt(r.get("created_at"), "created_at") or utcnow(),
        updated_at=_dt(r.get("updated_at"), "updated_at") or utcnow(),
    )


def _sale(index: int, r: dict) -> Sale:
    _require(
        r,
        ("id", "voucher_number", "total_cost", "total_sale", "total_profit", "received_amount", "change_amount"),
        "sales",
        index,
    )
    sale = Sale(
        id=r["id"],
        voucher_number=r["voucher_number"],
        status=r.get("status") or "COMMITTED",
        total_cost=r["total_cost"],
        total_sale=r["total_sale"],
        total_profit=r["total_profit"],
        received_amount=r["received_amount"],
        change_amount=r["change_amount"],
        created_at=_dt(r.get("created_at"), "created_at") or utcnow(),
        updated_at=_dt(r.get("updated_at"), "updated_at"),
        created_by=r.get("created_by"),
        client_reference=r.get("client_reference"),
    )
    for pos, item in enumerate(r.get("items") or [], start=1):
        _require(item, ("product_name", "quantity", "cost_price", "sale_price"), f"sales[{index}].items", pos - 1)
        sale.items.append(
            SaleItem(
                id=item.get("id"),
                product_id=item.get("product_id"),
                position=item.get("position", pos),
                product_name=item["product_name"],
                quantity=item["quantity"],
                cost_price=item["cost_price"],
                sale_price=item["sale_price"],
                total_cost=item.get("total_cost", item["cost_price"] * item["quantity"]),
                total_sale=item.get("total_sale", item["sale_price"] * item["quantity"]),
                profit=item.get(
                    "profit", (item["sale_price"] - item["cost_price"]) * item["quantity"]
                ),
            )
        )
    return sale


def _insert_records(data: dict, users: list) -> None:
    for i, r in enumerate(data.get("categories") or []):
        _require(r, ("name",), "categories", i)
        db.session.add(
            Category(
                id=r.get("id"),
                name=r["name"],
                created_at=_dt(r.get("created_at"), "created_at") or utcnow(),
                updated_at=_dt(r.get("updated_at"), "updated_at") or utcnow(),
            )
        )
    for i, r in enumerate(data.get("products") or []):
        db.session.add(_product(i, r))
    db.session.flush()

    for i, r in enumerate(data.get("sales") or []):
        db.session.add(_sale(i, r))

    for i, r in enumerate(users):
        _require(r, ("username", "password_hash"), "users", i)
        db.session.add(
            User(
                id=r.get("id"),
                username=r["username"],
                password_hash=r["password_hash"],
                role=r.get("role") or "staff",
                is_active=bool(r.get("is_active", True)),
                created_at=_dt(r.get("created_at"), "created_at") or utcnow(),
                last_login_at=_dt(r.get("last_login_at"), "last_login_at"),
            )
        )
    db.session.flush()


def restore_backup(doc: dict) -> dict:
    """
    Replace catalog and sales (and users, when the backup has any) with the
    backup's contents in one transaction. A malformed document changes
    nothing; records that collide with each other (same barcode, id or
    voucher number) are reported as a ValidationError, not retried.

    Returns counts of restored records.
    """
    data = _check_document(doc)
    users = data.get("users") or []
    if not isinstance(users, list):
        raise ValidationError("data.users must be a list")

    def _op() -> dict:
        # Children first so foreign keys never dangle mid-restore
        db.session.query(SaleItem).delete(synchronize_session=False)
        db.session.query(Sale).delete(synchronize_session=False)
        db.session.query(Product).delete(synchronize_session=False)
        db.session.query(Category).delete(synchronize_session=False)
        if users:
            db.session.query(SessionToken).delete(synchronize_session=False)
            db.session.query(User).delete(synchronize_session=False)
        db.session.flush()
        db.session.expunge_all()

        try:
            _insert_records(data, users)
        except IntegrityError as exc:
            raise ValidationError(f"Backup has conflicting records: {exc.orig}") from exc

        days = reseed_sequences()
        return {
            "products": len(data.get("products") or []),
            "categories": len(data.get("categories") or []),
            "sales": len(data.get("sales") or []),
            "users": len(users),
            "voucher_days": days,
        }

    # A conflicting document fails the same way every time; only lock waits are retried
    counts = run_atomic(_op, retry_on=TRANSIENT_ERRORS)
    logger.info("Backup from %s restored: %s", doc.get("timestamp"), counts)
    return counts
