"""
Entity store adapter: one-shot fetches, live subscriptions and writes.

Collections (``kind``) and their scope argument:
    projects     user id (assigned or creator, newest first); None = all
    project      project id; list of zero or one document
    actions      project id (creation order); None = every project
    statuses     global, ordered; defaults when nothing is stored
    departments  global, ordered
    users        global

Subscriptions are served by an in-process ``SnapshotHub``. ``subscribe``
delivers the current snapshot immediately, then a fresh full snapshot after
every committed write that touches the collection. Snapshots are plain lists
of dicts; subscribers never see ORM instances.

Transaction policy: unlike the service layer, every write method here is one
external operation and commits itself. ``SQLAlchemyError`` is rolled back,
logged and re-raised as ``StoreError``; nothing is retried.

Usage:
    from pdca.services.entity_store import store

    unsubscribe = store.subscribe("actions", project_id, on_snapshot)
    result = store.create_action(project_id, {"action": "Fix leak", ...})
    unsubscribe()
"""

import logging
import itertools
import threading

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from pdca.core.exceptions import NotFoundError, StoreError, ValidationError
from pdca.models import db
from pdca.models.project import Action, Project
from pdca.models.settings import Department, StatusDefinition, UserProfile
from pdca.services.status_registry import DEFAULT_STATUSES

logger = logging.getLogger(__name__)

KINDS = ("projects", "project", "actions", "statuses", "departments", "users")

ACTION_WRITABLE_FIELDS = (
    "action", "assigned_users", "status",
    "proposed_start_date", "proposed_end_date", "start_date", "actual_end_date",
    "observations", "priority", "subactions",
)
PROJECT_WRITABLE_FIELDS = (
    "title", "description", "assigned_users", "assigned_departments", "archived",
)


class SnapshotHub:
    """Registry of live subscriptions keyed by ``(kind, scope_id)``."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._subs: dict[tuple, dict[int, tuple]] = {}

    def add(self, kind, scope_id, on_snapshot, on_error=None) -> int:
        token = next(self._tokens)
        with self._lock:
            self._subs.setdefault((kind, scope_id), {})[token] = (on_snapshot, on_error)
        return token

    def remove(self, kind, scope_id, token) -> bool:
        with self._lock:
            bucket = self._subs.get((kind, scope_id))
            if not bucket or token not in bucket:
                return False
            del bucket[token]
            if not bucket:
                del self._subs[(kind, scope_id)]
            return True

    def keys_for(self, kind, scope_ids=None) -> list[tuple]:
        """Subscribed keys of ``kind``; ``scope_ids`` limits to those scopes."""
        with self._lock:
            return [
                key for key in self._subs
                if key[0] == kind and (scope_ids is None or key[1] in scope_ids)
            ]

    def callbacks(self, key) -> list[tuple]:
        with self._lock:
            return list(self._subs.get(key, {}).values())

    def count(self, kind=None) -> int:
        with self._lock:
            return sum(
                len(bucket) for key, bucket in self._subs.items()
                if kind is None or key[0] == kind
            )

    def clear(self):
        with self._lock:
            self._subs.clear()


class EntityStore:
    """SQLAlchemy-backed entity store with snapshot publication."""

    def __init__(self, hub: SnapshotHub | None = None):
        self.hub = hub or SnapshotHub()

    # ── Reads ────────────────────────────────────────────────────────────

    def fetch_entities(self, kind: str, scope_id=None) -> list[dict]:
        loader = getattr(self, f"_load_{kind}", None)
        if kind not in KINDS or loader is None:
            raise ValidationError(f"Unknown collection kind: {kind}", details={"kind": kind})
        try:
            return loader(scope_id)
        except SQLAlchemyError as exc:
            logger.exception("Store fetch failed kind=%s scope=%s", kind, scope_id)
            raise StoreError(f"fetch_{kind}", str(exc)) from exc

    def _load_projects(self, user_id):
        projects = Project.query.order_by(Project.created_at.desc()).all()
        if user_id is None:
            return [p.to_dict() for p in projects]
        return [
            p.to_dict() for p in projects
            if p.created_by == user_id or user_id in (p.assigned_users or [])
        ]

    def _load_project(self, project_id):
        if project_id is None:
            return []
        project = db.session.get(Project, project_id)
        return [project.to_dict()] if project else []

    def _load_actions(self, project_id):
        q = Action.query
        if project_id is not None:
            q = q.filter_by(project_id=project_id)
        return [a.to_dict() for a in q.order_by(Action.created_at, Action.seq_id).all()]

    def _load_statuses(self, _scope=None):
        rows = StatusDefinition.query.order_by(StatusDefinition.position).all()
        if not rows:
            return [dict(s) for s in DEFAULT_STATUSES]
        return [r.to_dict() for r in rows]

    def _load_departments(self, _scope=None):
        return [d.to_dict() for d in Department.query.order_by(Department.position).all()]

    def _load_users(self, _scope=None):
        return [u.to_dict() for u in UserProfile.query.order_by(UserProfile.created_at).all()]

    # ── Subscriptions ────────────────────────────────────────────────────

    def subscribe(self, kind: str, scope_id, on_snapshot, on_error=None):
        """Register ``on_snapshot`` and push the current snapshot right away.

        Returns an idempotent ``unsubscribe()`` callable. If the initial
        fetch fails, ``on_error`` receives the ``StoreError`` and the
        subscription stays registered for later snapshots.
        """
        token = self.hub.add(kind, scope_id, on_snapshot, on_error)
        self._deliver((kind, scope_id), [(on_snapshot, on_error)])

        def unsubscribe():
            return self.hub.remove(kind, scope_id, token)

        return unsubscribe

    def _deliver(self, key, callbacks):
        if not callbacks:
            return
        kind, scope_id = key
        try:
            snapshot = self.fetch_entities(kind, scope_id)
        except StoreError as exc:
            for _on_snapshot, on_error in callbacks:
                if on_error is not None:
                    self._call_subscriber(on_error, exc, key)
            return
        for on_snapshot, _on_error in callbacks:
            self._call_subscriber(on_snapshot, [dict(item) for item in snapshot], key)

    @staticmethod
    def _call_subscriber(callback, payload, key):
        # A failing subscriber must not fail the writer's request.
        try:
            callback(payload)
        except Exception:
            logger.exception("Snapshot subscriber failed kind=%s scope=%s", *key)

    def publish(self, kind: str, scope_ids=None):
        """Push fresh snapshots to subscribers of ``kind`` (optionally scoped)."""
        for key in self.hub.keys_for(kind, scope_ids):
            self._deliver(key, self.hub.callbacks(key))

    def _publish_actions(self, project_id):
        self.publish("actions", {project_id, None})
        self.publish("project", {project_id})

    # ── Commit helper ────────────────────────────────────────────────────

    def _commit(self, operation: str, **log_extra):
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Store write failed op=%s", operation, extra=log_extra)
            raise StoreError(operation, str(exc)) from exc

    # ── Actions ──────────────────────────────────────────────────────────

    def _lock_project(self, project_id) -> Project:
        stmt = select(Project).where(Project.id == project_id).with_for_update()
        project = db.session.execute(stmt).scalar_one_or_none()
        if project is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        return project

    def _next_seq_id(self, project: Project) -> int:
        last = project.last_action_id
        if last is None:
            last = (
                db.session.query(func.max(Action.seq_id))
                .filter(Action.project_id == project.id)
                .scalar()
            ) or 0
        return last + 1

    def create_action(self, project_id, fields: dict) -> dict:
        """Insert an action and allocate its ``seq_id`` under the project row lock.

        Returns ``{"id", "seq_id"}``; the counter is never decremented, so a
        deleted action's number is not handed out again.
        """
        try:
            project = self._lock_project(project_id)
            seq_id = self._next_seq_id(project)
            action = Action(project_id=project_id, seq_id=seq_id, **{
                k: v for k, v in fields.items() if k in ACTION_WRITABLE_FIELDS
            })
            db.session.add(action)
            project.last_action_id = seq_id
            db.session.flush()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Store write failed op=create_action",
                             extra={"project_id": project_id})
            raise StoreError("create_action", str(exc)) from exc
        except NotFoundError:
            db.session.rollback()
            raise

        self._commit("create_action", project_id=project_id)
        logger.info("Action created project=%s seq_id=%s", project_id, seq_id,
                    extra={"project_id": project_id, "action_id": action.id})
        self._publish_actions(project_id)
        return {"id": action.id, "seq_id": seq_id}

    def _get_action_row(self, project_id, action_id) -> Action:
        action = db.session.get(Action, action_id)
        if action is None or action.project_id != project_id:
            raise NotFoundError(resource="Action", resource_id=action_id)
        return action

    def get_action(self, project_id, action_id) -> dict:
        return self._get_action_row(project_id, action_id).to_dict()

    def update_action(self, project_id, action_id, fields: dict) -> dict:
        action = self._get_action_row(project_id, action_id)
        for field in ACTION_WRITABLE_FIELDS:
            if field in fields:
                setattr(action, field, fields[field])
        self._commit("update_action", project_id=project_id, action_id=action_id)
        self._publish_actions(project_id)
        return action.to_dict()

    def delete_action(self, project_id, action_id):
        action = self._get_action_row(project_id, action_id)
        db.session.delete(action)
        self._commit("delete_action", project_id=project_id, action_id=action_id)
        logger.info("Action deleted project=%s action=%s", project_id, action_id,
                    extra={"project_id": project_id, "action_id": action_id})
        self._publish_actions(project_id)

    # ── Projects ─────────────────────────────────────────────────────────

    def _get_project_row(self, project_id) -> Project:
        project = db.session.get(Project, project_id)
        if project is None:
            raise NotFoundError(resource="Project", resource_id=project_id)
        return project

    def get_project(self, project_id) -> dict:
        return self._get_project_row(project_id).to_dict()

    def create_project(self, fields: dict) -> dict:
        project = Project(
            created_by=fields["created_by"],
            **{k: v for k, v in fields.items() if k in PROJECT_WRITABLE_FIELDS},
        )
        db.session.add(project)
        self._commit("create_project")
        logger.info("Project created id=%s", project.id, extra={"project_id": project.id})
        self.publish("projects")
        return project.to_dict()

    def update_project(self, project_id, fields: dict) -> dict:
        project = self._get_project_row(project_id)
        for field in PROJECT_WRITABLE_FIELDS:
            if field in fields:
                setattr(project, field, fields[field])
        self._commit("update_project", project_id=project_id)
        self.publish("projects")
        self.publish("project", {project_id})
        return project.to_dict()

    def delete_project(self, project_id) -> int:
        """Delete every child action (one commit each), then the project.

        Not a transaction: on failure the actions already removed stay
        removed and ``StoreError.completed`` says how many there were.
        Returns the number of actions deleted.
        """
        self._get_project_row(project_id)
        action_ids = [
            row[0] for row in
            db.session.query(Action.id).filter(Action.project_id == project_id).all()
        ]
        deleted = 0
        try:
            for action_id in action_ids:
                try:
                    self.delete_action(project_id, action_id)
                except NotFoundError:
                    # Removed by another writer since the id list was read.
                    logger.info("Action already gone project=%s action=%s", project_id, action_id,
                                extra={"project_id": project_id, "action_id": action_id})
                    continue
                deleted += 1
            project = self._get_project_row(project_id)
            db.session.delete(project)
            self._commit("delete_project", project_id=project_id)
        except StoreError as exc:
            raise StoreError("delete_project", str(exc), completed=deleted) from exc

        logger.info("Project deleted id=%s actions=%d", project_id, deleted,
                    extra={"project_id": project_id})
        self.publish("projects")
        self.publish("project", {project_id})
        return deleted

    # ── Settings & users ─────────────────────────────────────────────────

    def _replace_all(self, model, items: list[dict], build):
        """Upsert ``items`` in order and drop rows not present in the list."""
        existing = {row.id: row for row in model.query.all()}
        keep = set()
        for position, item in enumerate(items):
            row = existing.get(item["id"])
            if row is None:
                row = model(id=item["id"])
                db.session.add(row)
            build(row, item)
            row.position = position
            keep.add(item["id"])
        for row_id, row in existing.items():
            if row_id not in keep:
                db.session.delete(row)

    def save_statuses(self, statuses: list[dict]):
        """Full-list replace; list order becomes display order."""
        def build(row, status):
            row.label = status["label"]
            row.color = status.get("color") or "#9CA3AF"
            row.type = status.get("type") or "none"

        self._replace_all(StatusDefinition, statuses, build)
        self._commit("save_statuses")
        self.publish("statuses")

    def save_departments(self, departments: list[dict]):
        def build(row, dept):
            row.name = dept["name"]

        self._replace_all(Department, departments, build)
        self._commit("save_departments")
        self.publish("departments")

    def save_user(self, profile: dict) -> dict:
        """Upsert a user profile by id."""
        user = db.session.get(UserProfile, profile["id"])
        if user is None:
            user = UserProfile(id=profile["id"])
            db.session.add(user)
        for field in ("email", "display_name", "role"):
            if field in profile:
                setattr(user, field, profile[field])
        if not user.role:
            user.role = "user"
        self._commit("save_user")
        self.publish("users")
        return user.to_dict()

    def seed_default_statuses(self) -> bool:
        """Store the default statuses when none exist. Returns True if seeded."""
        if StatusDefinition.query.first() is not None:
            return False
        self.save_statuses(DEFAULT_STATUSES)
        logger.info("Seeded %d default statuses", len(DEFAULT_STATUSES))
        return True


store = EntityStore()
