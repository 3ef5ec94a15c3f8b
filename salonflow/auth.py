"""Bearer tokens, current-user resolution and permission guards."""
from __future__ import annotations

import secrets
import string
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .extensions import db
from .models import Salon, Staff, User
from .permissions import get_module_name, has_permission, is_admin

TOKEN_SALT = "auth-token"
SPECIAL_CHARACTERS = "!@#$%^&*"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def build_token(user: User) -> str:
    return _serializer().dumps({"user_id": user.user_id, "role": user.role})


def get_jwt_identity() -> int | None:
    """Extract and validate user_id from the Authorization header token.

    Returns the user_id if the token is valid, None if missing, expired or
    tampered with.
    """
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]
    max_age = current_app.config.get("TOKEN_MAX_AGE_SECONDS", 86400)

    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("Rejected expired auth token")
        return None
    except BadSignature:
        return None

    user_id = payload.get("user_id") if isinstance(payload, dict) else None
    return user_id if isinstance(user_id, int) else None


def get_current_user() -> User | None:
    if "current_user" in g:
        return g.current_user
    user_id = get_jwt_identity()
    user = db.session.get(User, user_id) if user_id is not None else None
    g.current_user = user
    return user


def staff_record_for(user: User | None, salon_id: int | None = None) -> Staff | None:
    """The staff record of ``user`` in ``salon_id``.

    A staff login may belong to several salons; without ``salon_id`` the
    earliest record is returned.
    """
    if user is None or user.role != "staff":
        return None
    query = Staff.query.filter_by(user_id=user.user_id)
    if salon_id is not None:
        query = query.filter_by(salon_id=salon_id)
    return query.order_by(Staff.staff_id.asc()).first()


def effective_permissions(user: User | None, salon_id: int | None = None) -> dict[str, dict[str, bool]]:
    """Permissions granted through the staff member's assigned role in that salon."""
    staff = staff_record_for(user, salon_id)
    if staff is None or staff.role is None:
        return {}
    return staff.role.permissions or {}


def _unauthorized():
    return jsonify({"error": "unauthorized", "message": "Invalid or missing token"}), 401


def _check_tenant(user: User, salon_id: int):
    """Return an error response when ``user`` may not act for ``salon_id``."""
    if user.role == "super_admin":
        return None

    salon = db.session.get(Salon, salon_id)
    if salon is None:
        return jsonify({"error": "not_found", "message": "Salon not found"}), 404

    if user.role == "salon_admin" and salon.owner_id == user.user_id:
        return None
    if user.role == "staff" and staff_record_for(user, salon_id) is not None:
        return None

    return jsonify({"error": "forbidden", "message": "You do not have access to this salon"}), 403


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if get_current_user() is None:
            return _unauthorized()
        return fn(*args, **kwargs)

    return wrapped


def require_salon_access(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Any member of the salon in the ``salon_id`` path argument."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user = get_current_user()
        if user is None:
            return _unauthorized()
        denied = _check_tenant(user, kwargs["salon_id"])
        if denied is not None:
            return denied
        return fn(*args, **kwargs)

    return wrapped


def require_super_admin(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user = get_current_user()
        if user is None:
            return _unauthorized()
        if user.role != "super_admin":
            return jsonify({"error": "forbidden", "message": "Super admin access required"}), 403
        return fn(*args, **kwargs)

    return wrapped


def require_service_role(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Admin account endpoints: caller must present the configured service role key."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        expected = current_app.config.get("SERVICE_ROLE_KEY")
        if not expected:
            return jsonify({"error": "service_unavailable", "message": "Service role key not configured"}), 500
        provided = request.headers.get("X-Service-Role-Key", "")
        if not secrets.compare_digest(provided, expected):
            return jsonify({"error": "unauthorized", "message": "Invalid service role key"}), 401
        return fn(*args, **kwargs)

    return wrapped


def require_permission(module_key: str, action: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Guard a route behind a module permission.

    Routes with a ``salon_id`` path argument are also limited to members of
    that salon.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = get_current_user()
            if user is None:
                return _unauthorized()

            salon_id = kwargs.get("salon_id")
            if salon_id is not None:
                denied = _check_tenant(user, salon_id)
                if denied is not None:
                    return denied

            permissions = {} if is_admin(user.role) else effective_permissions(user, salon_id)
            if not has_permission(module_key, action, user.role, permissions):
                current_app.logger.info(
                    "Denied %s on %s for user %s", action, module_key, user.user_id
                )
                return (
                    jsonify({
                        "error": "forbidden",
                        "message": f"You do not have {action} access to {get_module_name(module_key)}",
                    }),
                    403,
                )
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def generate_temporary_password(length: int = 12) -> str:
    """Random password with at least one upper, lower, digit and special char."""
    if length < 4:
        raise ValueError("length must be at least 4")

    charset = string.ascii_letters + string.digits + SPECIAL_CHARACTERS
    chars = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(SPECIAL_CHARACTERS),
    ]
    chars.extend(secrets.choice(charset) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
