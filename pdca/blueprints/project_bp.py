"""
PDCA Action Tracker
Project blueprint: projects, actions and sub-actions.

Endpoints summary:
    PROJECT    /api/v1/projects                                   GET, POST
               /api/v1/projects/<pid>                             GET, PUT, DELETE
               /api/v1/projects/<pid>/archive                     PATCH
               /api/v1/projects/<pid>/detail                      GET   (filtered view)
               /api/v1/projects/<pid>/timeline                    GET   (gantt bars)

    ACTION     /api/v1/projects/<pid>/actions                     GET, POST
               /api/v1/projects/<pid>/actions/<aid>               GET, PUT, DELETE
               /api/v1/projects/<pid>/actions/<aid>/status        PATCH

    SUBACTION  /api/v1/projects/<pid>/actions/<aid>/subactions             POST
               /api/v1/projects/<pid>/actions/<aid>/subactions/<sid>       PUT, DELETE
               /api/v1/projects/<pid>/actions/<aid>/subactions/<sid>/status PATCH

Every endpoint requires the X-User-Id header. Project deletion is
creator-only.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from pdca.auth import require_user
from pdca.blueprints import paginate_list, register_error_handlers
from pdca.services import action_service, aggregation, preference_service, project_service
from pdca.services.entity_store import store
from pdca.services.filters import ActionFilter
from pdca.services.views import ProjectDetailView
from pdca.utils.errors import E, api_error

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


def _default_status():
    return current_app.config.get("DEFAULT_STATUS_ID", "pendiente")


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


# ═════════════════════════════════════════════════════════════════════════
#  PROJECTS
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
@require_user
def list_projects():
    """Projects the caller created or is assigned to (``?archived=`` filters)."""
    archived = request.args.get("archived")
    projects = project_service.list_user_projects(
        g.current_user["uid"],
        archived=None if archived is None else _parse_bool(archived),
    )
    return jsonify({"items": projects, "total": len(projects)})


@project_bp.route("/projects", methods=["POST"])
@require_user
def create_project():
    data = request.get_json(silent=True) or {}
    project = project_service.create_project(g.current_user["uid"], data)
    return jsonify(project), 201


@project_bp.route("/projects/<pid>", methods=["GET"])
@require_user
def get_project(pid):
    return jsonify(project_service.get_project(pid))


@project_bp.route("/projects/<pid>", methods=["PUT"])
@require_user
def update_project(pid):
    data = request.get_json(silent=True) or {}
    return jsonify(project_service.update_project(pid, data))


@project_bp.route("/projects/<pid>/archive", methods=["PATCH"])
@require_user
def archive_project(pid):
    """Body ``{"archived": bool}``; without it the flag is toggled."""
    data = request.get_json(silent=True) or {}
    if "archived" in data:
        archived = _parse_bool(data["archived"])
    else:
        archived = not project_service.get_project(pid)["archived"]
    return jsonify(project_service.set_archived(pid, archived))


@project_bp.route("/projects/<pid>", methods=["DELETE"])
@require_user
def delete_project(pid):
    deleted = project_service.delete_project(pid, g.current_user["uid"])
    return jsonify({"message": "Project deleted", "actions_deleted": deleted}), 200


@project_bp.route("/projects/<pid>/detail", methods=["GET"])
@require_user
def project_detail(pid):
    """Project header, filtered actions and progress.

    Filter precedence: query args > saved ``project:<pid>`` preference > none.
    Pass ``?save=1`` to store the resulting filter as the new preference.
    """
    uid = g.current_user["uid"]
    view_id = preference_service.project_view(pid)
    saved = preference_service.get_preference(uid, view_id)

    with ProjectDetailView(store, pid, saved_filter=saved) as view:
        if view.project.first is None:
            return api_error(E.NOT_FOUND, f"Project id={pid} not found")
        view.filter = ActionFilter.from_args(request.args, base=view.filter)
        result = view.render()

    if _parse_bool(request.args.get("save", "0")):
        preference_service.set_preference(uid, view_id, result["filter"])
    result["columns"] = preference_service.get_preference(
        uid, preference_service.project_columns_view(pid),
    )
    return jsonify(result)


@project_bp.route("/projects/<pid>/timeline", methods=["GET"])
@require_user
def project_timeline(pid):
    actions = action_service.list_actions(pid)
    registry = action_service.current_registry()
    return jsonify(aggregation.gantt_timeline(actions, registry))


# ═════════════════════════════════════════════════════════════════════════
#  ACTIONS
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<pid>/actions", methods=["GET"])
@require_user
def list_actions(pid):
    actions = action_service.list_actions(pid)
    items, total = paginate_list(actions)
    return jsonify({"items": items, "total": total})


@project_bp.route("/projects/<pid>/actions", methods=["POST"])
@require_user
def create_action(pid):
    data = request.get_json(silent=True) or {}
    action = action_service.create_action(pid, data, default_status=_default_status())
    return jsonify(action), 201


@project_bp.route("/projects/<pid>/actions/<aid>", methods=["GET"])
@require_user
def get_action(pid, aid):
    return jsonify(action_service.get_action(pid, aid))


@project_bp.route("/projects/<pid>/actions/<aid>", methods=["PUT"])
@require_user
def update_action(pid, aid):
    data = request.get_json(silent=True) or {}
    return jsonify(action_service.update_action(pid, aid, data))


@project_bp.route("/projects/<pid>/actions/<aid>/status", methods=["PATCH"])
@require_user
def change_action_status(pid, aid):
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    return jsonify(action_service.change_status(pid, aid, data["status"]))


@project_bp.route("/projects/<pid>/actions/<aid>", methods=["DELETE"])
@require_user
def delete_action(pid, aid):
    action_service.delete_action(pid, aid)
    return jsonify({"message": "Action deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════
#  SUB-ACTIONS
# ═════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<pid>/actions/<aid>/subactions", methods=["POST"])
@require_user
def add_subaction(pid, aid):
    data = request.get_json(silent=True) or {}
    action = action_service.add_subaction(pid, aid, data, default_status=_default_status())
    return jsonify(action), 201


@project_bp.route("/projects/<pid>/actions/<aid>/subactions/<sid>", methods=["PUT"])
@require_user
def update_subaction(pid, aid, sid):
    data = request.get_json(silent=True) or {}
    return jsonify(action_service.update_subaction(pid, aid, sid, data))


@project_bp.route("/projects/<pid>/actions/<aid>/subactions/<sid>/status", methods=["PATCH"])
@require_user
def change_subaction_status(pid, aid, sid):
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    return jsonify(action_service.change_subaction_status(pid, aid, sid, data["status"]))


@project_bp.route("/projects/<pid>/actions/<aid>/subactions/<sid>", methods=["DELETE"])
@require_user
def delete_subaction(pid, aid, sid):
    return jsonify(action_service.remove_subaction(pid, aid, sid))
