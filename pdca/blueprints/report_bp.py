"""
PDCA Action Tracker
Report blueprint: calendar, dashboard and cross-project reports.

Endpoints summary:
    CALENDAR   /api/v1/calendar?year=&month=              GET
    DASHBOARD  /api/v1/dashboard?archived=                GET
    REPORTS    /api/v1/reports/finalized?start=&end=      GET
               /api/v1/reports/finalized/export           GET   (xlsx)
               /api/v1/reports/pending-by-user            GET   (admin)
               /api/v1/reports/in-progress                GET
"""

import logging
from datetime import date

from flask import Blueprint, g, jsonify, request, send_file

from pdca.auth import require_admin, require_user
from pdca.blueprints import register_error_handlers
from pdca.core.exceptions import ValidationError
from pdca.services import aggregation, preference_service, project_service
from pdca.services.entity_store import store
from pdca.services.export_service import export_finalized_xlsx
from pdca.services.filters import ActionFilter
from pdca.services.status_registry import StatusRegistry
from pdca.services.views import CalendarView
from pdca.utils.errors import E, api_error
from pdca.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

report_bp = Blueprint("reports", __name__, url_prefix="/api/v1")
register_error_handlers(report_bp)


def _registry():
    return StatusRegistry(store.fetch_entities("statuses"))


def _period_args():
    """``start``/``end`` query args; missing ones fall back to last week."""
    try:
        start = parse_date_input(request.args.get("start"))
        end = parse_date_input(request.args.get("end"))
    except ValueError as exc:
        raise ValidationError(str(exc), details={"period": "invalid"}) from exc
    default_start, default_end = aggregation.previous_week_range()
    start = start or default_start
    end = end or default_end
    if start > end:
        raise ValidationError("start must not be after end",
                              details={"start": start.isoformat(), "end": end.isoformat()})
    return start, end


def _finalized_report():
    start, end = _period_args()
    return aggregation.finalized_in_period(
        store.fetch_entities("actions"),
        _registry(),
        start=start,
        end=end,
        users=store.fetch_entities("users"),
        projects=store.fetch_entities("projects"),
    )


# ═════════════════════════════════════════════════════════════════════════
#  CALENDAR & DASHBOARD
# ═════════════════════════════════════════════════════════════════════════


@report_bp.route("/calendar", methods=["GET"])
@require_user
def calendar_view():
    """Month grid of the caller's (or the saved/explicit filter's) actions.

    Filter precedence: query args > saved ``calendar`` preference >
    current user only. ``?save=1`` stores the resulting filter.
    """
    today = date.today()
    year = request.args.get("year", today.year, type=int)
    month = request.args.get("month", today.month, type=int)
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        return api_error(E.VALIDATION_INVALID, "year/month out of range")

    uid = g.current_user["uid"]
    saved = preference_service.get_preference(uid, "calendar")

    with CalendarView(store, uid, year, month, saved_filter=saved) as view:
        view.filter = ActionFilter.from_args(request.args, base=view.filter)
        result = view.render(today=today)

    if request.args.get("save") in ("1", "true"):
        preference_service.set_preference(uid, "calendar", result["filter"])
    return jsonify(result)


@report_bp.route("/dashboard", methods=["GET"])
@require_user
def dashboard():
    """Per-project stats for the caller, global totals and department groups."""
    uid = g.current_user["uid"]
    archived = request.args.get("archived", "false").lower() in ("1", "true", "yes")
    projects = project_service.list_user_projects(uid)
    project_ids = {p["id"] for p in projects}
    actions = [a for a in store.fetch_entities("actions") if a["project_id"] in project_ids]

    result = aggregation.dashboard(
        projects, actions, _registry(), uid,
        departments=store.fetch_entities("departments"),
        archived=archived,
    )
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════
#  REPORTS
# ═════════════════════════════════════════════════════════════════════════


@report_bp.route("/reports/finalized", methods=["GET"])
@require_user
def finalized_report():
    return jsonify(_finalized_report())


@report_bp.route("/reports/finalized/export", methods=["GET"])
@require_user
def export_finalized_report():
    report = _finalized_report()
    buf = export_finalized_xlsx(report, registry=_registry())
    return send_file(
        buf,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=f"finalized_{report['start']}_{report['end']}.xlsx",
    )


@report_bp.route("/reports/pending-by-user", methods=["GET"])
@require_user
@require_admin
def pending_by_user():
    rows = aggregation.pending_by_user(
        store.fetch_entities("actions"), _registry(), users=store.fetch_entities("users"),
    )
    return jsonify({
        "rows": rows,
        "total_pending": sum(r["pending"] for r in rows),
        "total_priority": sum(r["priority"] for r in rows),
    })


@report_bp.route("/reports/in-progress", methods=["GET"])
@require_user
def in_progress_by_user():
    rows = aggregation.in_progress_by_user(
        store.fetch_entities("actions"),
        _registry(),
        projects=store.fetch_entities("projects"),
        users=store.fetch_entities("users"),
    )
    return jsonify({"rows": rows, "total": sum(r["count"] for r in rows)})
