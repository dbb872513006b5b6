"""Action service: validation and the create/update/delete contract for actions.

Validation happens before any store call; an invalid payload never reaches
the database. Status changes, on actions and on sub-actions, always go
through ``lifecycle.apply_status_change`` so the date rule fires exactly once
per change.

Sub-action edits are read-modify-write: read the action, apply a pure list
transformation from ``lifecycle``, write the whole list back as one update.
Two clients editing different sub-actions of the same action can overwrite
each other; the last write wins.
"""
import logging

from pdca.core.exceptions import ValidationError
from pdca.services import lifecycle
from pdca.services.entity_store import store
from pdca.services.status_registry import StatusRegistry
from pdca.utils.helpers import date_str, parse_date_input, unique_ids

logger = logging.getLogger(__name__)

DATE_FIELDS = ("proposed_start_date", "proposed_end_date", "start_date", "actual_end_date")


def current_registry() -> StatusRegistry:
    return StatusRegistry(store.fetch_entities("statuses"))


def _check_status(status, registry):
    if status not in registry:
        raise ValidationError(f"Unknown status: {status!r}", details={"status": "unknown"})


def clean_action_fields(data: dict, registry, *, partial: bool) -> dict:
    """Validate an action payload and return store-ready fields.

    ``partial`` (updates) only validates the keys present.
    """
    fields = {}
    errors = {}

    if not partial or "action" in data:
        text = (data.get("action") or "").strip()
        if not text:
            errors["action"] = "empty"
        fields["action"] = text

    if "assigned_users" in data:
        users = data.get("assigned_users") or []
        if not isinstance(users, list):
            errors["assigned_users"] = "must be a list"
        else:
            fields["assigned_users"] = unique_ids(str(u) for u in users)

    for name in DATE_FIELDS:
        if name not in data:
            continue
        try:
            fields[name] = date_str(parse_date_input(data.get(name)))
        except ValueError:
            errors[name] = "invalid date"

    if "observations" in data:
        fields["observations"] = str(data.get("observations") or "")
    if "priority" in data:
        fields["priority"] = bool(data.get("priority"))

    if errors:
        raise ValidationError("Invalid action payload", details=errors)

    if "status" in data:
        _check_status(data.get("status"), registry)
        fields["status"] = data["status"]

    return fields


# ── Actions ──────────────────────────────────────────────────────────────


def list_actions(project_id) -> list[dict]:
    store.get_project(project_id)
    return store.fetch_entities("actions", project_id)


def get_action(project_id, action_id) -> dict:
    return store.get_action(project_id, action_id)


def create_action(project_id, data: dict, default_status: str = "pendiente") -> dict:
    """Validate and insert an action. Returns the stored action dict.

    Creation stores the status as given; the date rule only fires on later
    status changes.
    """
    registry = current_registry()
    payload = dict(data)
    payload.setdefault("status", default_status)
    fields = clean_action_fields(payload, registry, partial=False)
    fields.setdefault("assigned_users", [])
    fields["subactions"] = []

    result = store.create_action(project_id, fields)
    return store.get_action(project_id, result["id"])


def update_action(project_id, action_id, data: dict, today=None) -> dict:
    """Partial update, last writer wins. A ``status`` that differs from the
    stored one triggers the date rule; repeating the current status does not.

    An explicit date in the same payload is kept over the automatic one.
    """
    registry = current_registry()
    fields = clean_action_fields(data, registry, partial=True)
    if not fields:
        raise ValidationError("No updatable fields supplied")

    if "status" in fields:
        current = store.get_action(project_id, action_id)
        if fields["status"] != current.get("status"):
            automatic = lifecycle.apply_status_change(current, fields["status"], registry, today=today)
            for key, value in automatic.items():
                fields.setdefault(key, value)

    return store.update_action(project_id, action_id, fields)


def change_status(project_id, action_id, new_status, today=None) -> dict:
    registry = current_registry()
    _check_status(new_status, registry)
    current = store.get_action(project_id, action_id)
    updates = lifecycle.apply_status_change(current, new_status, registry, today=today)
    logger.info("Action status %s → %s", current.get("status"), new_status,
                extra={"project_id": project_id, "action_id": action_id})
    return store.update_action(project_id, action_id, updates)


def delete_action(project_id, action_id):
    store.delete_action(project_id, action_id)


# ── Sub-actions ──────────────────────────────────────────────────────────


def _write_subactions(project_id, action_id, subactions) -> dict:
    return store.update_action(project_id, action_id, {"subactions": subactions})


def add_subaction(project_id, action_id, data: dict, default_status: str = "pendiente") -> dict:
    registry = current_registry()
    sub = lifecycle.normalize_subaction(data, default_status)
    _check_status(sub["status"], registry)
    current = store.get_action(project_id, action_id)
    subactions = lifecycle.add_subaction(current["subactions"], sub)
    return _write_subactions(project_id, action_id, subactions)


def update_subaction(project_id, action_id, subaction_id, data: dict) -> dict:
    current = store.get_action(project_id, action_id)
    subactions = lifecycle.update_subaction(current["subactions"], subaction_id, data)
    return _write_subactions(project_id, action_id, subactions)


def remove_subaction(project_id, action_id, subaction_id) -> dict:
    current = store.get_action(project_id, action_id)
    subactions = lifecycle.remove_subaction(current["subactions"], subaction_id)
    return _write_subactions(project_id, action_id, subactions)


def change_subaction_status(project_id, action_id, subaction_id, new_status, today=None) -> dict:
    registry = current_registry()
    _check_status(new_status, registry)
    current = store.get_action(project_id, action_id)
    subactions = lifecycle.change_subaction_status(
        current["subactions"], subaction_id, new_status, registry, today=today,
    )
    return _write_subactions(project_id, action_id, subactions)
