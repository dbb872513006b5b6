"""
Aggregation engine: read-only views over (already filtered) action sets.

All functions are pure: they take snapshot dicts plus an explicit
``StatusRegistry`` and never query the database. Unknown status, user,
project or department ids fall back to neutral defaults instead of raising.

Views:
    progress / project_stats / dashboard     completion and pending counts
    pending_by_user / in_progress_by_user    per-user fan-out tables
    build_calendar / calendar_grid           day → actions index for a month
    finalized_in_period                      weekly "done" report
    group_projects_by_department             dashboard grouping
    gantt_timeline                           bar positions for one project
"""

import calendar
from datetime import date, timedelta

from pdca.utils.helpers import parse_date, round_half_up

NO_DEPARTMENT = "none"
GANTT_PAD_BEFORE_DAYS = 2
GANTT_PAD_AFTER_DAYS = 5
GANTT_MIN_WIDTH_PCT = 1.0


# ═════════════════════════════════════════════════════════════════════════════
# COUNTS & PROGRESS
# ═════════════════════════════════════════════════════════════════════════════


def progress(actions, registry) -> int:
    """Percentage of end-typed actions, rounded half-up; 0 for an empty set."""
    actions = list(actions)
    if not actions:
        return 0
    done = sum(1 for a in actions if registry.is_end(a.get("status")))
    return round_half_up(100 * done / len(actions))


def project_stats(actions, registry, user_id=None) -> dict:
    """Per-project card numbers; ``my_*`` count actions assigned to ``user_id``."""
    total = 0
    pending = 0
    my_pending = 0
    my_priority = 0
    for a in actions:
        total += 1
        if registry.is_end(a.get("status")):
            continue
        pending += 1
        if user_id is not None and user_id in (a.get("assigned_users") or []):
            my_pending += 1
            if a.get("priority"):
                my_priority += 1
    done = total - pending
    return {
        "total": total,
        "my_pending": my_pending,
        "my_priority": my_priority,
        "project_pending": pending,
        "progress": round_half_up(100 * done / total) if total else 0,
    }


def dashboard(projects, actions, registry, user_id, departments=None, archived=False) -> dict:
    """Per-project stats, the user's global totals and department groups.

    ``actions`` may span many projects; they are split by ``project_id``.
    """
    by_project: dict[str, list] = {}
    for a in actions:
        by_project.setdefault(a.get("project_id"), []).append(a)

    stats = {}
    total_pending = 0
    total_priority = 0
    for p in projects:
        s = project_stats(by_project.get(p["id"], []), registry, user_id=user_id)
        stats[p["id"]] = s
        total_pending += s["my_pending"]
        total_priority += s["my_priority"]

    visible = [p for p in projects if bool(p.get("archived")) == bool(archived)]
    return {
        "projects": stats,
        "totals": {"pending": total_pending, "priority": total_priority},
        "groups": group_projects_by_department(visible, departments or []),
    }


def pending_by_user(actions, registry, users=None) -> list[dict]:
    """Admin table: open (non-end) actions per assigned user.

    Each assignee is counted independently, so one action with three users
    adds to three rows. Sorted by pending count, highest first.
    """
    counts: dict[str, dict] = {}
    for a in actions:
        if registry.is_end(a.get("status")):
            continue
        for uid in a.get("assigned_users") or []:
            row = counts.setdefault(uid, {"pending": 0, "priority": 0})
            row["pending"] += 1
            if a.get("priority"):
                row["priority"] += 1

    rows = [
        {"user_id": uid, "name": user_display_name(uid, users), **c}
        for uid, c in counts.items()
    ]
    rows.sort(key=lambda r: r["pending"], reverse=True)
    return rows


def in_progress_by_user(actions, registry, projects=None, users=None) -> list[dict]:
    """Actions currently in a start-typed status, listed per assigned user."""
    titles = _project_titles(projects)
    by_user: dict[str, list] = {}
    for a in actions:
        if not registry.lookup(a.get("status")).is_start:
            continue
        for uid in a.get("assigned_users") or []:
            by_user.setdefault(uid, []).append({
                "id": a.get("id"),
                "seq_id": a.get("seq_id"),
                "action": a.get("action"),
                "priority": bool(a.get("priority")),
                "project_id": a.get("project_id"),
                "project_title": titles.get(a.get("project_id"), a.get("project_id")),
            })
    rows = [
        {"user_id": uid, "name": user_display_name(uid, users), "count": len(items), "actions": items}
        for uid, items in by_user.items()
    ]
    rows.sort(key=lambda r: r["count"], reverse=True)
    return rows


# ═════════════════════════════════════════════════════════════════════════════
# CALENDAR
# ═════════════════════════════════════════════════════════════════════════════


def effective_range(action) -> tuple[date, date] | None:
    """Real dates win over proposed ones; a single known end becomes a point."""
    start = parse_date(action.get("start_date")) or parse_date(action.get("proposed_start_date"))
    end = parse_date(action.get("actual_end_date")) or parse_date(action.get("proposed_end_date"))
    if start is None and end is None:
        return None
    return (start or end, end or start)


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1..12, got {month}")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def build_calendar(actions, year: int, month: int) -> dict[str, list]:
    """Map ``YYYY-MM-DD`` → actions touching that day in the given month.

    Ranges are clipped to the month and both endpoints are included. An
    inverted range (end before start) produces no entries.
    """
    first, last = month_bounds(year, month)
    buckets: dict[str, list] = {}
    for a in actions:
        rng = effective_range(a)
        if rng is None:
            continue
        start, end = rng
        if end < first or start > last:
            continue
        day = max(start, first)
        stop = min(end, last)
        while day <= stop:
            buckets.setdefault(day.isoformat(), []).append(a)
            day += timedelta(days=1)
    return buckets


def calendar_grid(year: int, month: int, buckets=None, today=None) -> list[dict]:
    """Monday-first month grid: leading blank cells, then one cell per day."""
    buckets = buckets or {}
    today_key = (today or date.today()).isoformat()
    first, last = month_bounds(year, month)

    cells = [{"day": None, "date": None, "is_today": False, "actions": []}
             for _ in range(first.weekday())]
    for d in range(1, last.day + 1):
        key = date(year, month, d).isoformat()
        cells.append({
            "day": d,
            "date": key,
            "is_today": key == today_key,
            "actions": buckets.get(key, []),
        })
    return cells


# ═════════════════════════════════════════════════════════════════════════════
# REPORTS
# ═════════════════════════════════════════════════════════════════════════════


def previous_week_range(today=None) -> tuple[date, date]:
    """Monday..Sunday of the week before ``today``'s week."""
    today = today or date.today()
    monday_this_week = today - timedelta(days=today.weekday())
    monday_prev = monday_this_week - timedelta(days=7)
    return monday_prev, monday_prev + timedelta(days=6)


def finalized_in_period(actions, registry, start=None, end=None, users=None,
                        projects=None, today=None) -> dict:
    """Actions closed (end-typed, ``actual_end_date`` in range) per user and project.

    Every known user gets a row, including those with zero actions; assignees
    missing from ``users`` still get a row. Rows are sorted by count, highest
    first (ties keep user order).
    """
    default_start, default_end = previous_week_range(today)
    start = parse_date(start) or default_start
    end = parse_date(end) or default_end
    titles = _project_titles(projects)

    finished = []
    for a in actions:
        if not registry.is_end(a.get("status")):
            continue
        closed = parse_date(a.get("actual_end_date"))
        if closed is None or not start <= closed <= end:
            continue
        finished.append(a)

    by_user: dict[str, dict[str, list]] = {}
    for a in finished:
        for uid in a.get("assigned_users") or []:
            by_user.setdefault(uid, {}).setdefault(a.get("project_id") or "unknown", []).append(a)

    order = [u["id"] for u in (users or [])]
    order.extend(uid for uid in by_user if uid not in order)

    rows = []
    for uid in order:
        grouped = by_user.get(uid, {})
        rows.append({
            "user_id": uid,
            "name": user_display_name(uid, users),
            "count": sum(len(v) for v in grouped.values()),
            "projects": [
                {
                    "project_id": pid,
                    "project_title": titles.get(pid, pid),
                    "actions": items,
                }
                for pid, items in grouped.items()
            ],
        })
    rows.sort(key=lambda r: r["count"], reverse=True)

    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "total": len(finished),
        "rows": rows,
    }


# ═════════════════════════════════════════════════════════════════════════════
# DEPARTMENTS / GANTT / MISC
# ═════════════════════════════════════════════════════════════════════════════


def group_projects_by_department(projects, departments) -> list[dict]:
    """Group projects under each department, in department order.

    Projects without departments, or only with unknown ones, land in the
    ``none`` bucket (once). Empty groups are dropped.
    """
    groups = {d["id"]: {"id": d["id"], "name": d["name"], "projects": []} for d in departments}
    unassigned = {"id": NO_DEPARTMENT, "name": None, "projects": []}

    for p in projects:
        dept_ids = p.get("assigned_departments") or []
        placed = False
        for dept_id in dept_ids:
            group = groups.get(dept_id)
            if group is not None and p not in group["projects"]:
                group["projects"].append(p)
                placed = True
        if not placed or any(d not in groups for d in dept_ids):
            if p not in unassigned["projects"]:
                unassigned["projects"].append(p)

    ordered = list(groups.values()) + [unassigned]
    return [g for g in ordered if g["projects"]]


def gantt_timeline(actions, registry=None) -> dict:
    """Bar geometry for actions with both an effective start and end.

    The window spans the earliest start minus 2 days to the latest end plus
    5 days; ``left``/``width`` are percentages of that window.
    """
    bars = []
    for a in actions:
        start = parse_date(a.get("start_date")) or parse_date(a.get("proposed_start_date"))
        end = parse_date(a.get("actual_end_date")) or parse_date(a.get("proposed_end_date"))
        if start is None or end is None:
            continue
        bars.append((start, end, a))
    bars.sort(key=lambda b: b[0])

    if not bars:
        return {"start": None, "end": None, "total_days": 0, "bars": []}

    window_start = min(b[0] for b in bars) - timedelta(days=GANTT_PAD_BEFORE_DAYS)
    window_end = max(b[1] for b in bars) + timedelta(days=GANTT_PAD_AFTER_DAYS)
    total_days = max((window_end - window_start).days, 1)

    result = []
    for start, end, a in bars:
        duration = (end - start).days + 1
        cfg = registry.lookup(a.get("status")) if registry is not None else None
        result.append({
            "id": a.get("id"),
            "seq_id": a.get("seq_id"),
            "action": a.get("action"),
            "status": a.get("status"),
            "color": cfg.color if cfg else None,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "left": round(100 * (start - window_start).days / total_days, 2),
            "width": round(max(100 * duration / total_days, GANTT_MIN_WIDTH_PCT), 2),
        })
    return {
        "start": window_start.isoformat(),
        "end": window_end.isoformat(),
        "total_days": total_days,
        "bars": result,
    }


def is_overdue(value, today=None) -> bool:
    """True when ``value`` is a date strictly before today."""
    parsed = parse_date(value)
    return parsed is not None and parsed < (today or date.today())


def user_display_name(user_id, users=None) -> str:
    """display_name → local part of email → raw id."""
    for u in users or []:
        if u.get("id") == user_id:
            if u.get("display_name"):
                return u["display_name"]
            if u.get("email"):
                return u["email"].split("@")[0]
            break
    return "" if user_id is None else str(user_id)


def _project_titles(projects) -> dict:
    return {p["id"]: p.get("title") or p["id"] for p in projects or []}
