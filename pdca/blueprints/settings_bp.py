"""
PDCA Action Tracker
Settings blueprint: statuses, departments, user profiles and preferences.

Endpoints summary:
    STATUS       /api/v1/statuses                 GET, PUT (admin, full replace)
    DEPARTMENT   /api/v1/departments              GET, PUT (admin, full replace)
    USER         /api/v1/users                    GET
                 /api/v1/users/<uid>              PUT (admin, or self without role)
    PREFERENCE   /api/v1/preferences/<view_id>    GET, PUT, DELETE (caller's own)
"""

import logging
import re
import time

from flask import Blueprint, g, jsonify, request

from pdca.auth import is_admin, require_admin, require_user
from pdca.blueprints import register_error_handlers
from pdca.core.exceptions import PermissionDenied
from pdca.models.settings import STATUS_TYPES, USER_ROLES
from pdca.services import preference_service
from pdca.services.entity_store import store
from pdca.utils.errors import E, api_error

logger = logging.getLogger(__name__)

settings_bp = Blueprint("settings", __name__, url_prefix="/api/v1")
register_error_handlers(settings_bp)

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


def _generated_id(prefix, index):
    return f"{prefix}_{int(time.time() * 1000)}{index}"


def _list_payload(key):
    """Accept either a bare JSON list or ``{key: [...]}``."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        data = data.get(key)
    if not isinstance(data, list):
        return None
    return data


# ═════════════════════════════════════════════════════════════════════════
#  STATUSES
# ═════════════════════════════════════════════════════════════════════════


@settings_bp.route("/statuses", methods=["GET"])
@require_user
def list_statuses():
    return jsonify(store.fetch_entities("statuses"))


@settings_bp.route("/statuses", methods=["PUT"])
@require_user
@require_admin
def save_statuses():
    """Replace the whole status list. At least one status must remain."""
    items = _list_payload("statuses")
    if items is None:
        return api_error(E.VALIDATION_REQUIRED, "statuses list is required")
    if not items:
        return api_error(E.VALIDATION_RULE, "At least one status is required")

    cleaned = []
    errors = {}
    seen = set()
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            errors[str(idx)] = "must be an object"
            continue
        status_id = str(item.get("id") or _generated_id("estado", idx))
        label = (item.get("label") or "").strip()
        color = item.get("color") or "#9CA3AF"
        status_type = item.get("type") or "none"
        if not label:
            errors[status_id] = "label is required"
        elif status_type not in STATUS_TYPES:
            errors[status_id] = f"type must be one of {sorted(STATUS_TYPES)}"
        elif not _HEX_COLOR.match(color):
            errors[status_id] = "color must be #RRGGBB"
        elif status_id in seen:
            errors[status_id] = "duplicate id"
        seen.add(status_id)
        cleaned.append({"id": status_id, "label": label, "color": color, "type": status_type})

    if errors:
        return api_error(E.VALIDATION_INVALID, "Invalid statuses", details=errors)

    store.save_statuses(cleaned)
    logger.info("Statuses replaced (%d)", len(cleaned), extra={"user_id": g.current_user["uid"]})
    return jsonify(store.fetch_entities("statuses"))


# ═════════════════════════════════════════════════════════════════════════
#  DEPARTMENTS
# ═════════════════════════════════════════════════════════════════════════


@settings_bp.route("/departments", methods=["GET"])
@require_user
def list_departments():
    return jsonify(store.fetch_entities("departments"))


@settings_bp.route("/departments", methods=["PUT"])
@require_user
@require_admin
def save_departments():
    items = _list_payload("departments")
    if items is None:
        return api_error(E.VALIDATION_REQUIRED, "departments list is required")

    cleaned = []
    errors = {}
    seen = set()
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            errors[str(idx)] = "must be an object"
            continue
        dept_id = str(item.get("id") or _generated_id("dept", idx))
        name = (item.get("name") or "").strip()
        if not name:
            errors[dept_id] = "name is required"
        elif dept_id in seen:
            errors[dept_id] = "duplicate id"
        seen.add(dept_id)
        cleaned.append({"id": dept_id, "name": name})

    if errors:
        return api_error(E.VALIDATION_INVALID, "Invalid departments", details=errors)

    store.save_departments(cleaned)
    return jsonify(store.fetch_entities("departments"))


# ═════════════════════════════════════════════════════════════════════════
#  USERS
# ═════════════════════════════════════════════════════════════════════════


@settings_bp.route("/users", methods=["GET"])
@require_user
def list_users():
    users = store.fetch_entities("users")
    kind = request.args.get("kind")
    if kind == "login":
        users = [u for u in users if u.get("email")]
    elif kind == "entity":
        users = [u for u in users if not u.get("email")]
    return jsonify(users)


@settings_bp.route("/users/<uid>", methods=["PUT"])
@require_user
def save_user(uid):
    """Upsert a profile. Users may edit their own profile but not its role."""
    caller = g.current_user
    data = request.get_json(silent=True) or {}

    if not is_admin():
        if uid != caller["uid"]:
            raise PermissionDenied(caller["uid"], f"edit user {uid}")
        if "role" in data:
            raise PermissionDenied(caller["uid"], "change roles")

    if "role" in data and data["role"] not in USER_ROLES:
        return api_error(E.VALIDATION_INVALID, f"role must be one of {sorted(USER_ROLES)}")

    profile = {"id": uid}
    for field in ("email", "display_name"):
        if field in data:
            profile[field] = data[field] or None
    if "role" in data:
        profile["role"] = data["role"]
    return jsonify(store.save_user(profile))


# ═════════════════════════════════════════════════════════════════════════
#  PREFERENCES
# ═════════════════════════════════════════════════════════════════════════


@settings_bp.route("/preferences/<path:view_id>", methods=["GET"])
@require_user
def get_preference(view_id):
    value = preference_service.get_preference(g.current_user["uid"], view_id)
    return jsonify({"view_id": view_id, "value": value})


@settings_bp.route("/preferences/<path:view_id>", methods=["PUT"])
@require_user
def set_preference(view_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "value" not in data:
        return api_error(E.VALIDATION_REQUIRED, "value is required")
    value = preference_service.set_preference(g.current_user["uid"], view_id, data["value"])
    return jsonify({"view_id": view_id, "value": value})


@settings_bp.route("/preferences/<path:view_id>", methods=["DELETE"])
@require_user
def delete_preference(view_id):
    deleted = preference_service.delete_preference(g.current_user["uid"], view_id)
    return jsonify({"view_id": view_id, "deleted": deleted})
