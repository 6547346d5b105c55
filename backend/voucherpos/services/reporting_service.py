# Overview: Service-layer operations for reporting; dashboard sales and inventory figures.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import Product, Sale
from voucherpos.time_utils import day_bounds, month_bounds, to_utc_z, utcnow


def _sales_totals(start: datetime, end: datetime) -> dict:
    row = (
        db.session.query(
            func.coalesce(func.sum(Sale.total_sale), 0),
            func.coalesce(func.sum(Sale.total_cost), 0),
            func.coalesce(func.sum(Sale.total_profit), 0),
            func.count(Sale.id),
        )
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .one()
    )
    return {
        "total_sale": int(row[0]),
        "total_cost": int(row[1]),
        "total_profit": int(row[2]),
        "voucher_count": int(row[3]),
        "start": to_utc_z(start),
        "end": to_utc_z(end),
    }


def inventory_summary(threshold: int | None = None) -> dict:
    """Product counts by stock level; low stock is 0 < quantity < threshold."""
    if threshold is None:
        threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 5))

    row = db.session.query(
        func.count(Product.id),
        func.coalesce(func.sum(case((Product.quantity > 0, 1), else_=0)), 0),
        func.coalesce(
            func.sum(case(((Product.quantity > 0) & (Product.quantity < threshold), 1), else_=0)), 0
        ),
        func.coalesce(func.sum(case((Product.quantity <= 0, 1), else_=0)), 0),
    ).one()

    return {
        "total": int(row[0]),
        "in_stock": int(row[1]),
        "low_stock": int(row[2]),
        "out_of_stock": int(row[3]),
        "low_stock_threshold": threshold,
    }


def dashboard_stats(now: datetime | None = None) -> dict:
    """Today's and this month's sales plus inventory levels, as of `now` (UTC)."""
    now = now or utcnow()
    today_start, today_end = day_bounds(now.date())
    month_start, month_end = month_bounds(now.date())

    return {
        "as_of": to_utc_z(now),
        "today": _sales_totals(today_start, today_end),
        "month": _sales_totals(month_start, month_end),
        "inventory": inventory_summary(),
    }
