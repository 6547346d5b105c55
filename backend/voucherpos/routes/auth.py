# Overview: Flask API routes for auth and user administration; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/login   -> session token
- POST /api/auth/logout  -> revoke the caller's token
- GET  /api/auth/me      -> current user

User administration lives under /api/users and is admin-only. There is no
self-registration.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..models.auth import ROLE_ADMIN, ROLE_STAFF
from ..errors import PosError, http_status
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_role


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    Token must be sent as `Authorization: Bearer <token>` on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.warning("Failed login for %s from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": session.to_dict()["expires_at"],
        }), 200

    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


# =============================================================================
# User administration
# =============================================================================

@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    users = auth_service.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            data.get("username"),
            data.get("password"),
            role=data.get("role") or ROLE_STAFF,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    current_app.logger.info("User %s (%s) created by %s", user.username, user.role, g.current_user.username)
    return jsonify({"user": user.to_dict()}), 201


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    unknown = set(data) - {"password", "role", "is_active"}
    if unknown:
        return jsonify({"error": f"Field not allowed: {sorted(unknown)[0]}"}), 400
    try:
        user = auth_service.update_user(
            user_id,
            password=data.get("password"),
            role=data.get("role"),
            is_active=data.get("is_active"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"user": user.to_dict()}), 200


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id: int):
    if user_id == g.current_user.id:
        return jsonify({"error": "Cannot delete your own account"}), 409
    try:
        auth_service.delete_user(user_id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    current_app.logger.info("User %s deleted by %s", user_id, g.current_user.username)
    return jsonify({"ok": True}), 200
