"""
PDCA Action Tracker
Identity & role gating.

Login and session handling live outside this service; an upstream gateway
forwards the authenticated identity as request headers:

    X-User-Id     auth uid (required on every /api/v1 endpoint but /health)
    X-User-Role   "admin" | "user" (defaults to "user")

Provides:
    - current_user(): {"uid", "role"} for the request, or None
    - require_user decorator: 401 without an identity, sets g.current_user
    - require_admin decorator: 403 for non-admins
"""

import functools
import logging

from flask import g, request

from pdca.models.settings import USER_ROLES
from pdca.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_user() -> dict | None:
    """Identity forwarded with the request; None when X-User-Id is missing."""
    uid = request.headers.get("X-User-Id", "").strip()
    if not uid:
        return None
    role = request.headers.get("X-User-Role", "user").strip().lower()
    if role not in USER_ROLES:
        logger.warning("Unknown role '%s' for user %s, defaulting to 'user'", role, uid)
        role = "user"
    return {"uid": uid, "role": role}


def is_admin() -> bool:
    user = getattr(g, "current_user", None)
    return bool(user) and user["role"] == "admin"


def require_user(f):
    """Decorator: require a forwarded identity. Sets g.current_user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = current_user()
        if user is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required. Provide X-User-Id header.")
        g.current_user = user
        return f(*args, **kwargs)

    return decorated


def require_admin(f):
    """Decorator: admin role only. Use below ``require_user``.

    Usage:
        @require_user
        @require_admin
        def save_statuses(): ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not is_admin():
            user = getattr(g, "current_user", None) or {}
            logger.warning("Access denied: user '%s' tried admin endpoint %s",
                           user.get("uid"), request.path)
            return api_error(E.FORBIDDEN, "Insufficient permissions")
        return f(*args, **kwargs)

    return decorated
