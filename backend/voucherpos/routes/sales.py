# Overview: Flask API routes for sales vouchers; parses input and returns JSON responses.

"""
Sales API routes.

Staff and admins may preview, commit and view vouchers. Editing and
deleting a committed voucher is admin-only.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..errors import PosError, http_status
from ..validation import ValidationError
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_STAFF
from voucherpos.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/preview")
@require_auth
def preview_sale_route():
    """Cart totals (and change, if received_amount is given) against live stock."""
    data = request.get_json(silent=True) or {}
    try:
        cart = sales_service.preview(data.get("items"), data.get("received_amount"))
        return jsonify({"cart": cart}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to preview sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_STAFF)
def commit_sale_route():
    """
    Commit a voucher.

    Body: {"items": [{"product_id", "quantity"}], "received_amount",
           "client_reference"?}
    A repeated client_reference returns the original voucher with 200.
    """
    data = request.get_json(silent=True) or {}
    client_reference = data.get("client_reference")
    try:
        sale, created = sales_service.submit(
            data.get("items"),
            data.get("received_amount"),
            created_by=g.current_user.username,
            client_reference=client_reference,
        )
        if not created:
            return jsonify({"sale": sale.to_dict(), "replayed": True}), 200
        current_app.logger.info(
            "Sale %s committed by %s: total=%s", sale.voucher_number, g.current_user.username, sale.total_sale
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to commit sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params:
    - search: voucher number or product name
    - start, end: ISO-8601 bounds on created_at (end exclusive)
    - page, per_page: optional pagination
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400

    try:
        result = sales_service.list_sales(
            search=request.args.get("search"),
            start=start,
            end=end,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.patch("/<int:sale_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_sale_route(sale_id: int):
    """Body: {"items"?: [...], "received_amount"?: int}"""
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.update(
            sale_id,
            new_items=data.get("items"),
            new_received_amount=data.get("received_amount"),
        )
        current_app.logger.info(
            "Sale %s edited by %s: total=%s", sale.voucher_number, g.current_user.username, sale.total_sale
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_sale_route(sale_id: int):
    try:
        sales_service.delete(sale_id)
        current_app.logger.info("Sale %s deleted by %s", sale_id, g.current_user.username)
        return jsonify({"ok": True}), 200

    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
