"""
Jobs Blueprint — operator control of periodic jobs.

Endpoints:
    GET   /api/v1/admin/jobs                      list jobs and run history
    GET   /api/v1/admin/jobs/<job_name>           one job's status
    POST  /api/v1/admin/jobs/<job_name>/trigger   run now, return the summary
    PATCH /api/v1/admin/jobs/<job_name>/toggle    {"enabled": true|false}
"""

from flask import Blueprint, jsonify, request

from fieldops.services.scheduler_service import SchedulerService, get_registered_jobs
from fieldops.utils.errors import E, api_error

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/v1/admin/jobs")


@jobs_bp.route("", methods=["GET"])
def list_jobs():
    """List all registered jobs with their status."""
    SchedulerService.ensure_jobs_registered()
    jobs = SchedulerService.list_jobs()
    return jsonify({"jobs": jobs, "total": len(jobs)})


@jobs_bp.route("/<job_name>", methods=["GET"])
def get_job_status(job_name):
    """Get status of a specific scheduled job."""
    if job_name not in get_registered_jobs():
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    SchedulerService.ensure_jobs_registered()
    return jsonify(SchedulerService.get_job_status(job_name))


@jobs_bp.route("/<job_name>/trigger", methods=["POST"])
def trigger_job(job_name):
    """Manually trigger a scheduled job."""
    if job_name not in get_registered_jobs():
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    SchedulerService.ensure_jobs_registered()
    result = SchedulerService.run_job(job_name)
    status = 200 if result.get("status") == "success" else 500
    return jsonify(result), status


@jobs_bp.route("/<job_name>/toggle", methods=["PATCH"])
def toggle_job(job_name):
    """Enable or disable a scheduled job."""
    data = request.get_json(silent=True) or {}
    enabled = data.get("enabled")
    if not isinstance(enabled, bool):
        return api_error(E.VALIDATION_REQUIRED, "'enabled' field is required (true/false)")

    SchedulerService.ensure_jobs_registered()
    result = SchedulerService.toggle_job(job_name, enabled)
    if not result:
        return api_error(E.NOT_FOUND, f"Job '{job_name}' not found")
    return jsonify(result)
