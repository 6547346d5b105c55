# Overview: Flask API routes for JSON backup export and restore (admin only).

from flask import Blueprint, request, jsonify, current_app, g

from ..services import backup_service
from ..models.auth import ROLE_ADMIN
from ..errors import PosError, http_status
from ..validation import ValidationError
from ..decorators import require_auth, require_role
from voucherpos.time_utils import utcnow


backup_bp = Blueprint("backup", __name__, url_prefix="/api/backup")


@backup_bp.get("/export")
@require_auth
@require_role(ROLE_ADMIN)
def export_route():
    doc = backup_service.export_backup()
    response = jsonify(doc)
    filename = f"pos-backup-{utcnow().strftime('%Y-%m-%d')}.json"
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response, 200


@backup_bp.post("/restore")
@require_auth
@require_role(ROLE_ADMIN)
def restore_route():
    """Replace all data with the posted backup document; nothing changes on error."""
    doc = request.get_json(silent=True)
    if doc is None:
        return jsonify({"error": "Backup JSON body required"}), 400

    username = g.current_user.username
    try:
        counts = backup_service.restore_backup(doc)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to restore backup")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Backup restored by %s", username)
    return jsonify({"ok": True, "restored": counts}), 200
