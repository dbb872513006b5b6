"""
PDCA Action Tracker
Tests for the aggregation engine: progress, calendar, reports, grouping, gantt.
"""

from datetime import date

import pytest

from pdca.services import aggregation
from pdca.services.status_registry import DEFAULT_STATUSES, StatusRegistry


@pytest.fixture()
def registry():
    return StatusRegistry(DEFAULT_STATUSES + [
        {"id": "revisando", "label": "Revisando", "color": "#8B5CF6", "type": "inprogress"},
    ])


def _action(aid, status="pendiente", users=(), project="p1", priority=False, **dates):
    data = {
        "id": aid,
        "seq_id": int(aid.lstrip("a") or 0),
        "action": f"Action {aid}",
        "status": status,
        "assigned_users": list(users),
        "project_id": project,
        "priority": priority,
        "start_date": "",
        "actual_end_date": "",
        "proposed_start_date": "",
        "proposed_end_date": "",
    }
    data.update(dates)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# PROGRESS & COUNTS
# ═════════════════════════════════════════════════════════════════════════════

class TestProgress:
    def test_empty_is_zero(self, registry):
        assert aggregation.progress([], registry) == 0

    def test_all_done_is_hundred(self, registry):
        actions = [_action("a1", "finalizado"), _action("a2", "descartado")]
        assert aggregation.progress(actions, registry) == 100

    def test_one_of_three_then_two_of_three(self, registry):
        actions = [_action("a1", "finalizado"), _action("a2"), _action("a3", "en_curso")]
        assert aggregation.progress(actions, registry) == 33
        actions[1]["status"] = "descartado"
        assert aggregation.progress(actions, registry) == 67

    def test_half_rounds_up(self, registry):
        actions = [_action(f"a{i}", "finalizado" if i < 1 else "pendiente") for i in range(8)]
        assert aggregation.progress(actions, registry) == 13

    def test_unknown_status_counts_as_open(self, registry):
        actions = [_action("a1", "gone"), _action("a2", "finalizado")]
        assert aggregation.progress(actions, registry) == 50

    def test_inprogress_is_not_done(self, registry):
        assert aggregation.progress([_action("a1", "revisando")], registry) == 0


class TestProjectStats:
    def test_counts(self, registry):
        actions = [
            _action("a1", "pendiente", ["A"], priority=True),
            _action("a2", "en_curso", ["A", "B"]),
            _action("a3", "finalizado", ["A"], priority=True),
            _action("a4", "pendiente", ["B"], priority=True),
        ]
        stats = aggregation.project_stats(actions, registry, user_id="A")
        assert stats == {
            "total": 4,
            "my_pending": 2,
            "my_priority": 1,
            "project_pending": 3,
            "progress": 25,
        }

    def test_dashboard_totals_and_groups(self, registry):
        projects = [
            {"id": "p1", "title": "One", "archived": False, "assigned_departments": ["d1"]},
            {"id": "p2", "title": "Two", "archived": True, "assigned_departments": ["d1"]},
        ]
        actions = [
            _action("a1", "pendiente", ["A"], "p1", priority=True),
            _action("a2", "pendiente", ["A"], "p2"),
        ]
        result = aggregation.dashboard(projects, actions, registry, "A",
                                       departments=[{"id": "d1", "name": "Quality"}])
        assert result["totals"] == {"pending": 2, "priority": 1}
        assert result["projects"]["p2"]["my_pending"] == 1
        assert [p["id"] for p in result["groups"][0]["projects"]] == ["p1"]


class TestPerUserTables:
    def test_pending_fans_out_per_assignee(self, registry):
        actions = [
            _action("a1", "pendiente", ["A", "B", "C"], priority=True),
            _action("a2", "en_curso", ["A"]),
            _action("a3", "finalizado", ["A", "B"]),
        ]
        rows = aggregation.pending_by_user(actions, registry,
                                           users=[{"id": "A", "display_name": "Ana"}])
        assert rows[0] == {"user_id": "A", "name": "Ana", "pending": 2, "priority": 1}
        assert {r["user_id"]: r["pending"] for r in rows} == {"A": 2, "B": 1, "C": 1}

    def test_in_progress_only_start_typed(self, registry):
        actions = [
            _action("a1", "en_curso", ["A"]),
            _action("a2", "revisando", ["A"]),
            _action("a3", "en_curso", ["A", "B"], project="p2"),
        ]
        rows = aggregation.in_progress_by_user(
            actions, registry, projects=[{"id": "p2", "title": "Paint shop"}],
        )
        assert rows[0]["user_id"] == "A"
        assert rows[0]["count"] == 2
        assert rows[1]["actions"][0]["project_title"] == "Paint shop"
        assert rows[0]["actions"][0]["project_title"] == "p1"


# ═════════════════════════════════════════════════════════════════════════════
# CALENDAR
# ═════════════════════════════════════════════════════════════════════════════

class TestCalendar:
    def test_range_covers_each_day(self):
        a = _action("a1", start_date="2024-03-10", actual_end_date="2024-03-12")
        buckets = aggregation.build_calendar([a], 2024, 3)
        assert sorted(buckets) == ["2024-03-10", "2024-03-11", "2024-03-12"]

    def test_real_dates_win_over_proposed(self):
        a = _action("a1", start_date="2024-03-10", proposed_start_date="2024-03-01",
                    proposed_end_date="2024-03-10")
        assert sorted(aggregation.build_calendar([a], 2024, 3)) == ["2024-03-10"]

    def test_single_end_date_is_point(self):
        a = _action("a1", proposed_end_date="2024-03-15")
        assert list(aggregation.build_calendar([a], 2024, 3)) == ["2024-03-15"]

    def test_no_dates_skipped(self):
        assert aggregation.build_calendar([_action("a1")], 2024, 3) == {}

    def test_clipped_to_month(self):
        a = _action("a1", start_date="2024-02-27", proposed_end_date="2024-04-02")
        buckets = aggregation.build_calendar([a], 2024, 3)
        assert len(buckets) == 31
        assert min(buckets) == "2024-03-01"
        assert max(buckets) == "2024-03-31"

    def test_inverted_range_skipped(self):
        a = _action("a1", start_date="2024-03-12", actual_end_date="2024-03-10")
        assert aggregation.build_calendar([a], 2024, 3) == {}

    def test_leap_february(self):
        a = _action("a1", start_date="2024-02-28", actual_end_date="2024-03-01")
        assert sorted(aggregation.build_calendar([a], 2024, 2)) == ["2024-02-28", "2024-02-29"]

    def test_grid_monday_first(self):
        grid = aggregation.calendar_grid(2024, 3, today=date(2024, 3, 11))
        # 2024-03-01 is a Friday
        assert [c["day"] for c in grid[:5]] == [None, None, None, None, 1]
        assert len(grid) == 4 + 31
        assert [c["date"] for c in grid if c["is_today"]] == ["2024-03-11"]

    def test_bad_month(self):
        with pytest.raises(ValueError):
            aggregation.month_bounds(2024, 13)


# ═════════════════════════════════════════════════════════════════════════════
# REPORTS
# ═════════════════════════════════════════════════════════════════════════════

class TestFinalizedReport:
    def test_previous_week_range(self):
        assert aggregation.previous_week_range(date(2024, 5, 2)) == (date(2024, 4, 22), date(2024, 4, 28))
        assert aggregation.previous_week_range(date(2024, 4, 29)) == (date(2024, 4, 22), date(2024, 4, 28))

    def test_rows_per_user_and_project(self, registry):
        actions = [
            _action("a1", "finalizado", ["A", "B"], "p1", actual_end_date="2024-04-23"),
            _action("a2", "descartado", ["A"], "p2", actual_end_date="2024-04-28"),
            _action("a3", "finalizado", ["A"], "p1", actual_end_date="2024-04-29"),
            _action("a4", "en_curso", ["A"], "p1", actual_end_date="2024-04-24"),
        ]
        users = [{"id": "C", "display_name": "Carla"}, {"id": "A", "email": "ana@plant.io"}]
        report = aggregation.finalized_in_period(
            actions, registry, users=users,
            projects=[{"id": "p1", "title": "Scrap"}],
            today=date(2024, 5, 2),
        )
        assert report["start"] == "2024-04-22"
        assert report["end"] == "2024-04-28"
        assert report["total"] == 2

        by_user = {r["user_id"]: r for r in report["rows"]}
        assert by_user["A"]["count"] == 2
        assert by_user["A"]["name"] == "ana"
        assert by_user["B"]["count"] == 1
        assert by_user["C"]["count"] == 0
        assert report["rows"][0]["user_id"] == "A"
        titles = [p["project_title"] for p in by_user["A"]["projects"]]
        assert titles == ["Scrap", "p2"]

    def test_explicit_period(self, registry):
        actions = [_action("a1", "finalizado", ["A"], actual_end_date="2024-01-15")]
        report = aggregation.finalized_in_period(actions, registry, start="2024-01-01", end="2024-01-31")
        assert report["total"] == 1


# ═════════════════════════════════════════════════════════════════════════════
# GROUPING / GANTT / MISC
# ═════════════════════════════════════════════════════════════════════════════

class TestDepartmentGrouping:
    def test_groups_in_department_order(self):
        depts = [{"id": "d1", "name": "Quality"}, {"id": "d2", "name": "Maintenance"}]
        projects = [
            {"id": "p1", "assigned_departments": ["d2"]},
            {"id": "p2", "assigned_departments": ["d1", "d2"]},
            {"id": "p3", "assigned_departments": []},
        ]
        groups = aggregation.group_projects_by_department(projects, depts)
        assert [g["id"] for g in groups] == ["d1", "d2", aggregation.NO_DEPARTMENT]
        assert [p["id"] for p in groups[1]["projects"]] == ["p1", "p2"]
        assert [p["id"] for p in groups[2]["projects"]] == ["p3"]

    def test_unknown_department_goes_to_none(self):
        groups = aggregation.group_projects_by_department(
            [{"id": "p1", "assigned_departments": ["gone"]}], [{"id": "d1", "name": "Quality"}],
        )
        assert [g["id"] for g in groups] == [aggregation.NO_DEPARTMENT]


class TestGantt:
    def test_bar_geometry(self, registry):
        a = _action("a1", "en_curso", start_date="2024-03-10", actual_end_date="2024-03-12")
        result = aggregation.gantt_timeline([a], registry)
        assert result["start"] == "2024-03-08"
        assert result["end"] == "2024-03-17"
        assert result["total_days"] == 9
        bar = result["bars"][0]
        assert bar["left"] == 22.22
        assert bar["width"] == 33.33
        assert bar["color"] == "#3B82F6"

    def test_needs_both_ends(self, registry):
        result = aggregation.gantt_timeline([_action("a1", proposed_end_date="2024-03-12")], registry)
        assert result["bars"] == []
        assert result["total_days"] == 0


class TestMisc:
    def test_is_overdue(self):
        assert aggregation.is_overdue("2024-03-01", today=date(2024, 3, 2))
        assert not aggregation.is_overdue("2024-03-02", today=date(2024, 3, 2))
        assert not aggregation.is_overdue("", today=date(2024, 3, 2))

    def test_display_name_fallbacks(self):
        users = [{"id": "A", "display_name": "Ana"}, {"id": "B", "email": "bo@x.io"}]
        assert aggregation.user_display_name("A", users) == "Ana"
        assert aggregation.user_display_name("B", users) == "bo"
        assert aggregation.user_display_name("Z", users) == "Z"
