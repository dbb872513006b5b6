"""
View models composing live collections, filters and aggregation.

Each view opens its own subscriptions on construction and releases them on
``close()`` (or when used as a context manager). ``render()`` is a pure read
of the current collection state, so a view kept open across writes always
renders the latest snapshot the store pushed.

    ProjectDetailView   one project, its actions, progress, saved filter
    CalendarView        all actions bucketed into a month grid
"""


from pdca.services import aggregation
from pdca.services.filters import ActionFilter
from pdca.services.reconciliation import LiveCollection
from pdca.services.status_registry import StatusRegistry


class _View:
    def __init__(self):
        self._collections: list[LiveCollection] = []

    def _open(self, *args, **kwargs) -> LiveCollection:
        coll = LiveCollection(*args, **kwargs)
        self._collections.append(coll)
        return coll

    @property
    def loading(self) -> bool:
        return any(c.loading for c in self._collections)

    @property
    def failed(self) -> bool:
        return any(c.error is not None for c in self._collections)

    def close(self):
        for coll in self._collections:
            coll.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class ProjectDetailView(_View):
    """Project header, filtered action table and progress for one project.

    Progress is computed over every action of the project; the filter only
    narrows the listed rows.
    """

    def __init__(self, store, project_id, saved_filter=None):
        super().__init__()
        self.statuses = self._open(store, "statuses", scoped=False)
        self.project = self._open(store, "project", project_id)
        self.actions = self._open(store, "actions", project_id)
        self.filter = ActionFilter.for_project_detail(saved_filter)

    @property
    def registry(self) -> StatusRegistry:
        return StatusRegistry(self.statuses.items)

    def set_project(self, project_id, saved_filter=None):
        """Switch to another project; both scoped collections reload."""
        self.project.set_key(project_id)
        self.actions.set_key(project_id)
        self.filter = ActionFilter.for_project_detail(saved_filter)

    def render(self, today=None) -> dict:
        registry = self.registry
        rows = []
        for a in self.filter.apply(self.actions.items):
            cfg = registry.lookup(a.get("status"))
            rows.append({
                **a,
                "status_label": cfg.label,
                "status_color": cfg.color,
                "status_type": cfg.type,
                "overdue": not cfg.is_end
                and aggregation.is_overdue(a.get("proposed_end_date"), today=today),
            })
        return {
            "loading": self.loading,
            "project": self.project.first,
            "actions": rows,
            "total": len(self.actions.items),
            "progress": aggregation.progress(self.actions.items, registry),
            "filter": self.filter.to_preference(),
            "statuses": registry.to_list(),
        }


class CalendarView(_View):
    """Month calendar over every project's actions."""

    def __init__(self, store, user_id, year, month, saved_filter=None):
        super().__init__()
        self.year = year
        self.month = month
        self.statuses = self._open(store, "statuses", scoped=False)
        self.projects = self._open(store, "projects", None, scoped=False)
        self.actions = self._open(store, "actions", None, scoped=False)
        self.filter = ActionFilter.for_calendar(user_id, saved_filter)

    def move_to(self, year, month):
        self.year, self.month = year, month

    def render(self, today=None) -> dict:
        registry = StatusRegistry(self.statuses.items)
        titles = {p["id"]: p.get("title") or p["id"] for p in self.projects.items}

        def compact(a):
            cfg = registry.lookup(a.get("status"))
            return {
                "id": a.get("id"),
                "seq_id": a.get("seq_id"),
                "action": a.get("action"),
                "status": a.get("status"),
                "status_label": cfg.label,
                "color": cfg.color,
                "priority": bool(a.get("priority")),
                "project_id": a.get("project_id"),
                "project_title": titles.get(a.get("project_id"), a.get("project_id")),
            }

        filtered = self.filter.apply(self.actions.items)
        buckets = aggregation.build_calendar(filtered, self.year, self.month)
        compact_buckets = {day: [compact(a) for a in items] for day, items in buckets.items()}
        available_projects = sorted(
            ({"id": pid, "title": titles.get(pid, pid)}
             for pid in {a.get("project_id") for a in self.actions.items if a.get("project_id")}),
            key=lambda p: str(p["title"]).lower(),
        )
        return {
            "loading": self.loading,
            "year": self.year,
            "month": self.month,
            "filter": self.filter.to_preference(),
            "days": compact_buckets,
            "grid": aggregation.calendar_grid(self.year, self.month, compact_buckets, today=today),
            "projects": available_projects,
        }
