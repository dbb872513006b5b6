"""Project service: validation, archive toggle and creator-only deletion.

Rules:
  - title is required; at least one department is required at creation
  - the creator is always part of ``assigned_users``
  - id lists are de-duplicated at write time, first occurrence wins
  - only ``created_by`` may delete; deletion cascades through the store
"""
import logging

from pdca.core.exceptions import PermissionDenied, ValidationError
from pdca.services.entity_store import store
from pdca.utils.helpers import unique_ids

logger = logging.getLogger(__name__)


def _id_list(data, name, errors):
    value = data.get(name) or []
    if not isinstance(value, list):
        errors[name] = "must be a list"
        return []
    return unique_ids(str(v) for v in value)


def list_user_projects(user_id, archived=None) -> list[dict]:
    """Projects the user is assigned to or created, newest first."""
    projects = store.fetch_entities("projects", user_id)
    if archived is None:
        return projects
    return [p for p in projects if p["archived"] == bool(archived)]


def get_project(project_id) -> dict:
    return store.get_project(project_id)


def create_project(user_id, data: dict) -> dict:
    errors = {}
    title = (data.get("title") or "").strip()
    if not title:
        errors["title"] = "required"
    departments = _id_list(data, "assigned_departments", errors)
    if not departments and "assigned_departments" not in errors:
        errors["assigned_departments"] = "at least one department is required"
    users = unique_ids([user_id] + _id_list(data, "assigned_users", errors))
    if errors:
        raise ValidationError("Invalid project payload", details=errors)

    return store.create_project({
        "title": title,
        "description": str(data.get("description") or ""),
        "assigned_users": users,
        "assigned_departments": departments,
        "created_by": user_id,
        "archived": False,
    })


def update_project(project_id, data: dict) -> dict:
    errors = {}
    fields = {}
    if "title" in data:
        fields["title"] = (data.get("title") or "").strip()
        if not fields["title"]:
            errors["title"] = "required"
    if "description" in data:
        fields["description"] = str(data.get("description") or "")
    if "assigned_users" in data:
        fields["assigned_users"] = _id_list(data, "assigned_users", errors)
        if not fields["assigned_users"] and "assigned_users" not in errors:
            errors["assigned_users"] = "at least one user is required"
    if "assigned_departments" in data:
        fields["assigned_departments"] = _id_list(data, "assigned_departments", errors)
    if errors:
        raise ValidationError("Invalid project payload", details=errors)
    if not fields:
        raise ValidationError("No updatable fields supplied")

    return store.update_project(project_id, fields)


def set_archived(project_id, archived: bool) -> dict:
    project = store.update_project(project_id, {"archived": bool(archived)})
    logger.info("Project %s archived=%s", project_id, project["archived"],
                extra={"project_id": project_id})
    return project


def delete_project(project_id, user_id) -> int:
    """Creator-only cascade delete. Returns how many actions were removed."""
    project = store.get_project(project_id)
    if project["created_by"] != user_id:
        raise PermissionDenied(user_id, "delete this project")
    return store.delete_project(project_id)
