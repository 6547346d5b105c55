from flask import Blueprint, jsonify, request

from voucherpos.decorators import require_auth
from voucherpos.services import reporting_service
from voucherpos.time_utils import parse_iso_datetime


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
def dashboard():
    try:
        as_of = parse_iso_datetime(request.args.get("as_of"))
    except ValueError:
        return jsonify({"error": "as_of must be an ISO-8601 datetime"}), 400

    return jsonify(reporting_service.dashboard_stats(now=as_of)), 200
