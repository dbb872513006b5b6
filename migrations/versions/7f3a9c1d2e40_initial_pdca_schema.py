"""initial_pdca_schema

Creates the PDCA tracker tables:
  - projects            improvement projects (per-project seq counter)
  - actions             action items with embedded sub-actions (JSON)
  - status_definitions  ordered, configurable statuses
  - departments         ordered department list
  - user_profiles       display name / role per auth uid
  - preferences         saved filters and column choices per (user, view)

Tables are created conditionally so the revision can run against a database
that already received them via db.create_all().

Revision ID: 7f3a9c1d2e40
Revises:
Create Date: 2026-10-18 09:12:44.103512
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '7f3a9c1d2e40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Projects ──────────────────────────────────────────────────────────
    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("assigned_users", sa.JSON(), nullable=False),
            sa.Column("assigned_departments", sa.JSON(), nullable=False),
            sa.Column("created_by", sa.String(length=128), nullable=False),
            sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("last_action_id", sa.Integer(), nullable=True,
                      comment="Highest seq_id ever assigned to an action of this project"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_created_by", "projects", ["created_by"])

    # ── Actions ───────────────────────────────────────────────────────────
    if "actions" not in existing:
        op.create_table(
            "actions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=False),
            sa.Column("seq_id", sa.Integer(), nullable=False),
            sa.Column("action", sa.Text(), nullable=False),
            sa.Column("assigned_users", sa.JSON(), nullable=False),
            sa.Column("status", sa.String(length=64), nullable=False),
            sa.Column("proposed_start_date", sa.String(length=10), nullable=False, server_default=""),
            sa.Column("proposed_end_date", sa.String(length=10), nullable=False, server_default=""),
            sa.Column("start_date", sa.String(length=10), nullable=False, server_default=""),
            sa.Column("actual_end_date", sa.String(length=10), nullable=False, server_default=""),
            sa.Column("observations", sa.Text(), nullable=False, server_default=""),
            sa.Column("priority", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("subactions", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "seq_id", name="uq_actions_project_seq"),
        )
        op.create_index("ix_actions_project_id", "actions", ["project_id"])
        op.create_index("ix_actions_status", "actions", ["status"])

    # ── Settings ──────────────────────────────────────────────────────────
    if "status_definitions" not in existing:
        op.create_table(
            "status_definitions",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("label", sa.String(length=120), nullable=False),
            sa.Column("color", sa.String(length=16), nullable=False, server_default="#9CA3AF"),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="none",
                      comment="none | start | end | inprogress"),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("id"),
        )

    if "departments" not in existing:
        op.create_table(
            "departments",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("id"),
        )

    if "user_profiles" not in existing:
        op.create_table(
            "user_profiles",
            sa.Column("id", sa.String(length=128), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("display_name", sa.String(length=200), nullable=True),
            sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "preferences" not in existing:
        op.create_table(
            "preferences",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=128), nullable=False),
            sa.Column("view_id", sa.String(length=200), nullable=False),
            sa.Column("value", sa.JSON(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "view_id", name="uq_preferences_user_view"),
        )


def downgrade():
    op.drop_table("preferences")
    op.drop_table("user_profiles")
    op.drop_table("departments")
    op.drop_table("status_definitions")
    op.drop_index("ix_actions_status", table_name="actions")
    op.drop_index("ix_actions_project_id", table_name="actions")
    op.drop_table("actions")
    op.drop_index("ix_projects_created_by", table_name="projects")
    op.drop_table("projects")
