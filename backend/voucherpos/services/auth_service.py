# Overview: Service-layer operations for auth; operator accounts, roles and password hashing.

"""
Authentication Service

WHY: Every voucher records who rang it up, and only admins may edit or
delete vouchers, manage the catalog, users and backups.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_STAFF, ROLES
from ..errors import NotFound
from ..validation import ConflictError, ValidationError
from voucherpos.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Raises PasswordValidationError unless the password has at least 8
    characters including an uppercase letter, a lowercase letter, a digit
    and one of !@#$%^&*(),.'":{}|<>
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash. Returns the hash as text."""
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _normalize_username(username) -> str:
    username = (username or "").strip() if isinstance(username, str) else ""
    if not username:
        raise ValidationError("username is required")
    if len(username) > 64:
        raise ValidationError("username exceeds max length 64")
    return username


def _check_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    return role


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("user", user_id)
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.username).all()


def create_user(username: str, password: str, role: str = ROLE_STAFF) -> User:
    """
    Create an operator account.

    Raises:
        ValidationError / PasswordValidationError: bad username, role or password
        ConflictError: username already taken
    """
    username = _normalize_username(username)
    _check_role(role)

    if db.session.query(User).filter_by(username=username).first():
        raise ConflictError("Username already exists")

    user = User(username=username, password_hash=hash_password(password), role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    return user


def update_user(user_id: int, *, password=None, role=None, is_active=None) -> User:
    """
    Change password, role or active flag.

    The last active admin can be neither demoted nor deactivated, so the
    system always keeps someone able to manage it.
    """
    user = get_user(user_id)

    losing_admin = user.is_admin and user.is_active and (
        (role is not None and role != ROLE_ADMIN) or is_active is False
    )
    if losing_admin and _active_admin_count() <= 1:
        raise ConflictError("Cannot remove the last active admin")

    if role is not None:
        user.role = _check_role(role)
    if is_active is not None:
        user.is_active = bool(is_active)
    if password is not None:
        user.password_hash = hash_password(password)

    db.session.commit()

    if is_active is False or password is not None:
        from .session_service import revoke_all_user_sessions
        revoke_all_user_sessions(user.id, reason="Account updated")
    return user


def delete_user(user_id: int) -> bool:
    user = get_user(user_id)
    if user.is_admin and user.is_active and _active_admin_count() <= 1:
        raise ConflictError("Cannot delete the last active admin")
    db.session.delete(user)
    db.session.commit()
    return True


def _active_admin_count() -> int:
    return db.session.query(User).filter_by(role=ROLE_ADMIN, is_active=True).count()


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, else None.

    Updates last_login_at on success. All login flows go through here.
    """
    if not username or not password:
        return None

    user = db.session.query(User).filter(
        User.username == username.strip(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
