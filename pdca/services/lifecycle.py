"""
Action lifecycle rules: status → date automation and sub-action list edits.

Everything here is pure: functions take plain dicts, return new dicts/lists,
and never touch the database. ``action_service`` reads the current record,
applies one of these transformations and writes the result back.

Status rule (applies to actions and sub-actions alike):
    start  → start_date = today               (always overwritten)
    end    → actual_end_date = today          (only when still empty)
    none   → no date field touched            (``inprogress`` behaves as none)

The rule fires once per explicit status change. Loading a record or editing
a status definition's type never re-runs it.

Usage:
    from pdca.services.lifecycle import apply_status_change

    updates = apply_status_change(action, "finalizado", registry)
    # {"status": "finalizado", "actual_end_date": "2024-05-02"}
"""

import uuid
from datetime import date

from pdca.core.exceptions import NotFoundError, ValidationError
from pdca.utils.helpers import unique_ids

SUBACTION_FIELDS = ("title", "status", "assigned_users")


def _today_str(today=None) -> str:
    return (today or date.today()).isoformat()


def apply_status_change(record: dict, new_status: str, registry, today=None) -> dict:
    """Return the field updates produced by moving ``record`` to ``new_status``.

    ``record`` is left untouched. The returned dict always contains
    ``status`` and at most one date field.
    """
    cfg = registry.lookup(new_status)
    updates = {"status": new_status}

    if cfg.is_start:
        updates["start_date"] = _today_str(today)
    elif cfg.is_end and not record.get("actual_end_date"):
        updates["actual_end_date"] = _today_str(today)

    return updates


def with_status(record: dict, new_status: str, registry, today=None) -> dict:
    """Copy of ``record`` with the status change applied."""
    changed = dict(record)
    changed.update(apply_status_change(record, new_status, registry, today=today))
    return changed


# ── Sub-action list transformations ─────────────────────────────────────


def new_subaction_id() -> str:
    return uuid.uuid4().hex[:12]


def _find_index(subactions, subaction_id) -> int:
    for idx, sub in enumerate(subactions):
        if sub.get("id") == subaction_id:
            return idx
    raise NotFoundError(resource="Subaction", resource_id=subaction_id)


def normalize_subaction(data: dict, default_status: str) -> dict:
    """Validate and shape a sub-action payload; generates an id when absent."""
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Subaction title is required", details={"title": "empty"})
    return {
        "id": data.get("id") or new_subaction_id(),
        "title": title,
        "status": data.get("status") or default_status,
        "assigned_users": unique_ids(data.get("assigned_users")),
    }


def add_subaction(subactions, subaction: dict) -> list:
    """Append ``subaction``; ids must stay unique within the list."""
    current = [dict(s) for s in (subactions or [])]
    if not subaction.get("id"):
        subaction = {**subaction, "id": new_subaction_id()}
    if any(s.get("id") == subaction["id"] for s in current):
        raise ValidationError(
            f"Subaction id {subaction['id']!r} already exists",
            details={"id": "duplicate"},
        )
    current.append(dict(subaction))
    return current


def update_subaction(subactions, subaction_id, changes: dict) -> list:
    """Map-by-id: merge ``changes`` into the matching sub-action.

    Only title and assigned_users are editable here; status changes go
    through ``change_subaction_status`` so the date rule fires.
    """
    current = [dict(s) for s in (subactions or [])]
    idx = _find_index(current, subaction_id)
    sub = current[idx]
    if "title" in changes:
        title = (changes.get("title") or "").strip()
        if not title:
            raise ValidationError("Subaction title is required", details={"title": "empty"})
        sub["title"] = title
    if "assigned_users" in changes:
        sub["assigned_users"] = unique_ids(changes.get("assigned_users"))
    return current


def remove_subaction(subactions, subaction_id) -> list:
    """Filter-by-id. Removing an unknown id is an error, not a silent no-op."""
    current = [dict(s) for s in (subactions or [])]
    _find_index(current, subaction_id)
    return [s for s in current if s.get("id") != subaction_id]


def change_subaction_status(subactions, subaction_id, new_status, registry, today=None) -> list:
    current = [dict(s) for s in (subactions or [])]
    idx = _find_index(current, subaction_id)
    current[idx] = with_status(current[idx], new_status, registry, today=today)
    return current
