# backend/voucherpos/routes/system.py
"""
System health endpoint.

Checks the database and the auth tables so a terminal can tell whether the
backend is usable before ringing up a sale.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, Sale, User, VoucherSequence
from ..models.auth import ROLE_ADMIN
from voucherpos.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "products": db.session.query(Product).count(),
            "sales": db.session.query(Sale).count(),
            "voucher_days": db.session.query(VoucherSequence).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except SQLAlchemyError:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_auth_health() -> dict:
    """Degraded when no active admin exists (nobody can manage the system)."""
    start_time = time.time()
    try:
        admins = db.session.query(User).filter_by(role=ROLE_ADMIN, is_active=True).count()
        result = {
            "status": "healthy" if admins else "degraded",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": {"active_admins": admins},
        }
        if not admins:
            result["warning"] = "No active admin user; run `flask system init`"
        return result
    except SQLAlchemyError:
        current_app.logger.exception("Auth health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Auth tables unavailable",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still operational)
    - 503: a dependency is unhealthy
    """
    start_time = time.time()
    checks = {
        "database": check_database_health(),
        "auth": check_auth_health(),
    }
    statuses = {check["status"] for check in checks.values()}

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
