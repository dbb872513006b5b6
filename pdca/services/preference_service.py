"""Per-user view preferences (saved filters, visible columns).

Keyed by ``(user_id, view_id)``. View ids in use:
    calendar                  calendar filter set
    project:<project_id>      project-detail filter set
    project_columns:<id>      visible table columns

A missing row means "use the view's default"; ``get_preference`` returns
None in that case rather than an empty value.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from pdca.core.exceptions import StoreError, ValidationError
from pdca.models import db
from pdca.models.settings import Preference
from pdca.services.filters import ActionFilter

logger = logging.getLogger(__name__)

VIEW_PREFIXES = ("calendar", "project:", "project_columns:")


def project_view(project_id) -> str:
    return f"project:{project_id}"


def project_columns_view(project_id) -> str:
    return f"project_columns:{project_id}"


def _check_view_id(view_id):
    if view_id == "calendar":
        return
    for prefix in VIEW_PREFIXES[1:]:
        if view_id.startswith(prefix) and len(view_id) > len(prefix):
            return
    raise ValidationError(f"Unknown view id: {view_id!r}", details={"view_id": "unknown"})


def _check_value(view_id, value):
    if view_id.startswith("project_columns:"):
        return
    errors = ActionFilter.preference_errors(value)
    if errors:
        raise ValidationError("Invalid saved filter", details=errors)


def get_preference(user_id, view_id):
    _check_view_id(view_id)
    pref = Preference.query.filter_by(user_id=user_id, view_id=view_id).first()
    return pref.value if pref else None


def set_preference(user_id, view_id, value):
    _check_view_id(view_id)
    _check_value(view_id, value)
    pref = Preference.query.filter_by(user_id=user_id, view_id=view_id).first()
    if pref is None:
        pref = Preference(user_id=user_id, view_id=view_id)
        db.session.add(pref)
    pref.value = value
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Preference write failed view=%s", view_id, extra={"user_id": user_id})
        raise StoreError("set_preference", str(exc)) from exc
    return pref.value


def delete_preference(user_id, view_id) -> bool:
    _check_view_id(view_id)
    deleted = Preference.query.filter_by(user_id=user_id, view_id=view_id).delete()
    db.session.commit()
    return bool(deleted)
