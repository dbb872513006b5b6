"""
Action filter: conjunctive across dimensions, disjunctive within one.

Dimensions:
    users      assigned_users ∩ users ≠ ∅
    statuses   status ∈ statuses
    projects   project_id ∈ projects
    date range start_date within [date_from, date_to], inclusive

An empty dimension imposes no constraint, so ``ActionFilter()`` matches
everything. An action without ``start_date`` never passes a lower bound;
with only an upper bound set it passes.
"""

from dataclasses import dataclass, field
from datetime import date

from pdca.core.exceptions import ValidationError
from pdca.utils.helpers import parse_date, parse_date_input, unique_ids

LIST_DIMENSIONS = ("users", "statuses", "projects")


@dataclass
class ActionFilter:
    users: list = field(default_factory=list)
    statuses: list = field(default_factory=list)
    projects: list = field(default_factory=list)
    date_from: date | None = None
    date_to: date | None = None

    def __post_init__(self):
        self.users = unique_ids(self.users)
        self.statuses = unique_ids(self.statuses)
        self.projects = unique_ids(self.projects)
        self.date_from = parse_date(self.date_from)
        self.date_to = parse_date(self.date_to)

    @property
    def is_empty(self) -> bool:
        return not (self.users or self.statuses or self.projects
                    or self.date_from or self.date_to)

    def _match_date(self, action) -> bool:
        if self.date_from is None and self.date_to is None:
            return True
        start = parse_date(action.get("start_date"))
        if start is None:
            return self.date_from is None
        if self.date_from is not None and start < self.date_from:
            return False
        if self.date_to is not None and start > self.date_to:
            return False
        return True

    def matches(self, action: dict) -> bool:
        if self.users and not set(action.get("assigned_users") or []) & set(self.users):
            return False
        if self.statuses and action.get("status") not in self.statuses:
            return False
        if self.projects and action.get("project_id") not in self.projects:
            return False
        return self._match_date(action)

    def apply(self, actions) -> list:
        """Filtered copy of ``actions``, order preserved."""
        return [a for a in actions if self.matches(a)]

    # ── Defaults & persistence ───────────────────────────────────────────

    @staticmethod
    def preference_errors(value) -> dict:
        """Problems with a saved filter value, keyed by field. Empty when usable."""
        if not isinstance(value, dict):
            return {"value": "must be an object"}
        errors = {}
        for name in LIST_DIMENSIONS:
            items = value.get(name)
            if items is None:
                continue
            if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
                errors[name] = "must be a list of ids"
        for name in ("date_from", "date_to"):
            raw = value.get(name)
            if raw and (not isinstance(raw, str) or parse_date(raw) is None):
                errors[name] = "invalid date"
        return errors

    @classmethod
    def for_project_detail(cls, saved=None) -> "ActionFilter":
        """Project detail view: no filters unless the user saved some."""
        if saved is None or cls.preference_errors(saved):
            return cls()
        return cls.from_preference(saved)

    @classmethod
    def for_calendar(cls, user_id, saved=None) -> "ActionFilter":
        """Calendar view: only the current user's actions unless a saved set exists."""
        if saved is None or cls.preference_errors(saved):
            return cls(users=[user_id] if user_id else [])
        return cls.from_preference(saved)

    @classmethod
    def from_preference(cls, value: dict) -> "ActionFilter":
        """Filter from a saved value; a malformed value yields the empty filter."""
        if not value or cls.preference_errors(value):
            return cls()
        return cls(
            users=value.get("users") or [],
            statuses=value.get("statuses") or [],
            projects=value.get("projects") or [],
            date_from=value.get("date_from"),
            date_to=value.get("date_to"),
        )

    @classmethod
    def from_args(cls, args, base=None) -> "ActionFilter":
        """Build from query-string args; any dimension present overrides ``base``.

        List dimensions accept repeated keys or comma-separated values.
        """
        base = base or cls()

        def _list(name, current):
            if name not in args:
                return current
            values = []
            for raw in args.getlist(name) if hasattr(args, "getlist") else [args[name]]:
                values.extend(v.strip() for v in str(raw).split(",") if v.strip())
            return values

        try:
            date_from = parse_date_input(args["date_from"]) if "date_from" in args else base.date_from
            date_to = parse_date_input(args["date_to"]) if "date_to" in args else base.date_to
        except ValueError as exc:
            raise ValidationError(str(exc), details={"date": "invalid"}) from exc

        return cls(
            users=_list("users", base.users),
            statuses=_list("statuses", base.statuses),
            projects=_list("projects", base.projects),
            date_from=date_from,
            date_to=date_to,
        )

    def to_preference(self) -> dict:
        return {
            "users": list(self.users),
            "statuses": list(self.statuses),
            "projects": list(self.projects),
            "date_from": self.date_from.isoformat() if self.date_from else "",
            "date_to": self.date_to.isoformat() if self.date_to else "",
        }
