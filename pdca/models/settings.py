"""
PDCA Action Tracker
Global settings and identity models.

Models:
    - StatusDefinition: ordered, configurable action statuses
    - Department: organisational unit referenced by projects
    - UserProfile: display/role data for an authenticated uid (or a non-login entity)
    - Preference: per-(user, view) saved filter and column selections
"""

from datetime import datetime, timezone

from pdca.models import db

STATUS_TYPES = {"none", "start", "end", "inprogress"}
USER_ROLES = {"user", "admin"}


class StatusDefinition(db.Model):
    __tablename__ = "status_definitions"

    id = db.Column(db.String(64), primary_key=True)
    label = db.Column(db.String(120), nullable=False)
    color = db.Column(db.String(16), nullable=False, default="#9CA3AF")
    type = db.Column(
        db.String(16), nullable=False, default="none",
        comment="none | start | end | inprogress",
    )
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "color": self.color,
            "type": self.type,
        }


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class UserProfile(db.Model):
    """Profile keyed by the auth uid. Profiles without email are assignable entities."""

    __tablename__ = "user_profiles"

    id = db.Column(db.String(128), primary_key=True)
    email = db.Column(db.String(200), nullable=True)
    display_name = db.Column(db.String(200), nullable=True)
    role = db.Column(db.String(16), nullable=False, default="user")
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "role": self.role,
        }


class Preference(db.Model):
    __tablename__ = "preferences"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False)
    view_id = db.Column(db.String(200), nullable=False)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "view_id", name="uq_preferences_user_view"),
    )
