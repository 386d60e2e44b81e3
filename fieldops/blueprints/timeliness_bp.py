"""
Timeliness Blueprint — task lifecycle and graded views.

Endpoints (X-Tenant-ID required):
    POST   /api/v1/projects/<project_id>/require-update
    POST   /api/v1/projects/<project_id>/change-requests
    GET    /api/v1/projects/<project_id>/sla-policy
    PUT    /api/v1/projects/<project_id>/sla-policy
    POST   /api/v1/tasks/<task_id>/ack
    DELETE /api/v1/tasks/<task_id>
    GET    /api/v1/timeliness/overview[?project_id=]
    GET    /api/v1/timeliness/sla-scores
"""

from flask import Blueprint, jsonify, request

from fieldops.middleware.tenant_context import require_tenant, tenant_required
from fieldops.services import timeliness_service as svc
from fieldops.utils.errors import E, api_error
from fieldops.utils.helpers import parse_datetime

timeliness_bp = Blueprint("timeliness", __name__, url_prefix="/api/v1")


def _due_at(data):
    """Parse an optional ``due_at``; returns (value, error_response)."""
    try:
        return parse_datetime(data.get("due_at")), None
    except ValueError as exc:
        return None, api_error(E.VALIDATION_INVALID, str(exc), details={"due_at": "invalid"})


# ═══════════════════════════════════════════════════════════════
# Task lifecycle
# ═══════════════════════════════════════════════════════════════

@timeliness_bp.route("/projects/<int:project_id>/require-update", methods=["POST"])
@tenant_required
def require_update(project_id):
    data = request.get_json(silent=True) or {}
    due_at, err = _due_at(data)
    if err:
        return err
    task = svc.require_update(require_tenant(), project_id, title=data.get("title"), due_at=due_at)
    return jsonify(task.to_dict()), 201


@timeliness_bp.route("/projects/<int:project_id>/change-requests", methods=["POST"])
@tenant_required
def create_change_request(project_id):
    data = request.get_json(silent=True) or {}
    if not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    due_at, err = _due_at(data)
    if err:
        return err
    task = svc.create_change_request(
        require_tenant(), project_id,
        title=data["title"], description=data.get("description", ""), due_at=due_at,
    )
    return jsonify(task.to_dict()), 201


@timeliness_bp.route("/tasks/<int:task_id>/ack", methods=["POST"])
@tenant_required
def acknowledge(task_id):
    """Submit a task. Repeating the call returns the original submitted_at."""
    task = svc.acknowledge(require_tenant(), task_id)
    return jsonify(task.to_dict()), 200


@timeliness_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@tenant_required
def delete_task(task_id):
    task = svc.soft_delete_task(require_tenant(), task_id)
    return jsonify({"deleted": True, "id": task.id}), 200


# ═══════════════════════════════════════════════════════════════
# SLA policy
# ═══════════════════════════════════════════════════════════════

@timeliness_bp.route("/projects/<int:project_id>/sla-policy", methods=["GET"])
@tenant_required
def get_sla_policy(project_id):
    return jsonify(svc.get_sla_policy(require_tenant(), project_id))


@timeliness_bp.route("/projects/<int:project_id>/sla-policy", methods=["PUT"])
@tenant_required
def set_sla_policy(project_id):
    data = request.get_json(silent=True) or {}
    return jsonify(svc.set_sla_policy(require_tenant(), project_id, data))


# ═══════════════════════════════════════════════════════════════
# Graded views
# ═══════════════════════════════════════════════════════════════

@timeliness_bp.route("/timeliness/overview", methods=["GET"])
@tenant_required
def overview():
    project_id = request.args.get("project_id", type=int)
    return jsonify(svc.tenant_overview(require_tenant(), project_id=project_id))


@timeliness_bp.route("/timeliness/sla-scores", methods=["GET"])
@tenant_required
def sla_scores():
    scores = svc.project_sla_scores(require_tenant())
    return jsonify({"projects": scores, "total": len(scores)})
