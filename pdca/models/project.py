"""
PDCA Action Tracker
Project and Action models.

Models:
    - Project: improvement project owned by its creator
    - Action: trackable work item inside a project, with embedded sub-actions

Architecture chain: Project → Action → (embedded) Subaction
Date fields are stored as ``YYYY-MM-DD`` strings ("" when unset).
"""

import uuid
from datetime import datetime, timezone

from pdca.models import db


def _uuid():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class Project(db.Model):
    """A PDCA project; readable/editable by assigned users, deletable by its creator."""

    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    assigned_users = db.Column(db.JSON, nullable=False, default=list)
    assigned_departments = db.Column(db.JSON, nullable=False, default=list)
    created_by = db.Column(db.String(128), nullable=False, index=True)
    archived = db.Column(db.Boolean, nullable=False, default=False)
    last_action_id = db.Column(
        db.Integer, nullable=True,
        comment="Highest seq_id ever assigned to an action of this project",
    )

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    actions = db.relationship(
        "Action", backref="project", lazy="dynamic",
        order_by="Action.created_at", passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description or "",
            "assigned_users": list(self.assigned_users or []),
            "assigned_departments": list(self.assigned_departments or []),
            "created_by": self.created_by,
            "archived": bool(self.archived),
            "last_action_id": self.last_action_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.title}>"


class Action(db.Model):
    """
    A PDCA action item.

    ``seq_id`` is assigned once at creation from the parent project's counter
    and never renumbered. ``subactions`` is a JSON list replaced as a whole on
    every edit.
    """

    __tablename__ = "actions"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    seq_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.Text, nullable=False)
    assigned_users = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(64), nullable=False, index=True)
    proposed_start_date = db.Column(db.String(10), nullable=False, default="")
    proposed_end_date = db.Column(db.String(10), nullable=False, default="")
    start_date = db.Column(db.String(10), nullable=False, default="")
    actual_end_date = db.Column(db.String(10), nullable=False, default="")
    observations = db.Column(db.Text, nullable=False, default="")
    priority = db.Column(db.Boolean, nullable=False, default=False)
    subactions = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "seq_id", name="uq_actions_project_seq"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "seq_id": self.seq_id,
            "action": self.action,
            "assigned_users": list(self.assigned_users or []),
            "status": self.status,
            "proposed_start_date": self.proposed_start_date or "",
            "proposed_end_date": self.proposed_end_date or "",
            "start_date": self.start_date or "",
            "actual_end_date": self.actual_end_date or "",
            "observations": self.observations or "",
            "priority": bool(self.priority),
            "subactions": [dict(s) for s in (self.subactions or [])],
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Action {self.project_id}#{self.seq_id}>"
