"""
Timeliness service — task lifecycle and graded views.

Task writes:
    require_update          supervisor update request (default due: now + 1h)
    create_change_request   change request (default due: now + 24h)
    acknowledge             one-way submit; a second call never moves submitted_at
    soft_delete_task        sets deleted_at; rows are never removed

Reads:
    tenant_overview         each live task with both grades
    project_sla_scores      worst tri-state grade per project
    resolve_sla_rules       project policy or the default thresholds

All lookups are tenant-scoped; another tenant's rows raise NotFoundError.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select, update

from fieldops.core.exceptions import NotFoundError, ValidationError
from fieldops.models import db
from fieldops.models.project import Project, SLAPolicy
from fieldops.models.timeliness import TrackableTask
from fieldops.services.email_templates import plain_label
from fieldops.services.timeliness import (
    DEFAULT_SLA_RULES,
    SLA_SCORES,
    SLARules,
    compute_status,
    score_by_sla,
    worst_score,
)
from fieldops.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)

UPDATE_DEFAULT_DUE = timedelta(hours=1)
CHANGE_REQUEST_DEFAULT_DUE = timedelta(hours=24)


# ── Lookups ─────────────────────────────────────────────────────────────────

def get_project(tenant_id, project_id):
    project = Project.query_for_tenant(tenant_id).filter_by(id=project_id).first()
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id, tenant_id=tenant_id)
    return project


def get_task(tenant_id, task_id, include_deleted=False):
    stmt = (
        select(TrackableTask)
        .join(Project, TrackableTask.project_id == Project.id)
        .where(TrackableTask.id == task_id, Project.tenant_id == tenant_id)
    )
    if not include_deleted:
        stmt = stmt.where(TrackableTask.deleted_at.is_(None))
    task = db.session.execute(stmt).scalar_one_or_none()
    if task is None:
        raise NotFoundError(resource="Task", resource_id=task_id, tenant_id=tenant_id)
    return task


# ── SLA policy ──────────────────────────────────────────────────────────────

def rules_for_project(project) -> SLARules:
    policy = project.sla_policy if project is not None else None
    if policy is None:
        return DEFAULT_SLA_RULES
    return SLARules(at_risk_minutes=policy.at_risk_minutes, red_minutes=policy.red_minutes)


def resolve_sla_rules(project_id) -> SLARules:
    """Return the project's SLA thresholds, or the default pair."""
    policy = SLAPolicy.query.filter_by(project_id=project_id).first()
    if policy is None:
        return DEFAULT_SLA_RULES
    return SLARules(at_risk_minutes=policy.at_risk_minutes, red_minutes=policy.red_minutes)


def get_sla_policy(tenant_id, project_id):
    project = get_project(tenant_id, project_id)
    rules = rules_for_project(project)
    return {"project_id": project.id, "is_default": project.sla_policy is None, **rules.to_dict()}


def set_sla_policy(tenant_id, project_id, data):
    project = get_project(tenant_id, project_id)
    errors = {}
    values = {}
    for field in ("at_risk_minutes", "red_minutes"):
        if field not in data:
            continue
        value = data[field]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            errors[field] = "must be a positive integer"
        else:
            values[field] = value
    if errors:
        raise ValidationError("Invalid SLA policy", details=errors)
    if not values:
        raise ValidationError("Provide at_risk_minutes and/or red_minutes")

    policy = project.sla_policy
    if policy is None:
        policy = SLAPolicy(project_id=project.id,
                           at_risk_minutes=DEFAULT_SLA_RULES.at_risk_minutes,
                           red_minutes=DEFAULT_SLA_RULES.red_minutes)
        db.session.add(policy)
    for field, value in values.items():
        setattr(policy, field, value)
    db.session.commit()
    logger.info("SLA policy set for project %d: %s", project.id, values,
                extra={"tenant_id": tenant_id, "project_id": project.id})
    return get_sla_policy(tenant_id, project_id)


# ── Task lifecycle ──────────────────────────────────────────────────────────

def _create_task(project, kind, title, description, due_at):
    task = TrackableTask(
        project_id=project.id,
        kind=kind,
        title=title,
        description=description or "",
        due_at=due_at,
    )
    db.session.add(task)
    db.session.commit()
    logger.info("Created %s task %d for project %d", kind, task.id, project.id,
                extra={"tenant_id": project.tenant_id, "project_id": project.id, "task_id": task.id})
    return task


def require_update(tenant_id, project_id, title=None, due_at=None, now=None):
    """Ask the project's supervisor for an update."""
    project = get_project(tenant_id, project_id)
    now = as_utc(now) if now is not None else utcnow()
    due_at = as_utc(due_at) if due_at is not None else now + UPDATE_DEFAULT_DUE
    return _create_task(project, "UPDATE", (title or "Supervisor update requested").strip(), "", due_at)


def create_change_request(tenant_id, project_id, title, description="", due_at=None, now=None):
    """Open a change request against a project."""
    if not title or not str(title).strip():
        raise ValidationError("title is required", details={"title": "required"})
    project = get_project(tenant_id, project_id)
    now = as_utc(now) if now is not None else utcnow()
    due_at = as_utc(due_at) if due_at is not None else now + CHANGE_REQUEST_DEFAULT_DUE
    return _create_task(project, "CHANGE_REQUEST", str(title).strip(), description, due_at)


def acknowledge(tenant_id, task_id, now=None):
    """Mark a task submitted. Already-submitted tasks keep their submitted_at."""
    task = get_task(tenant_id, task_id)
    now = as_utc(now) if now is not None else utcnow()
    result = db.session.execute(
        update(TrackableTask)
        .where(TrackableTask.id == task.id, TrackableTask.submitted_at.is_(None))
        .values(submitted_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount:
        logger.info("Task %d acknowledged", task.id,
                    extra={"tenant_id": tenant_id, "task_id": task.id})
    db.session.refresh(task)
    return task


def soft_delete_task(tenant_id, task_id, now=None):
    task = get_task(tenant_id, task_id)
    task.soft_delete(now=as_utc(now) if now is not None else None)
    db.session.commit()
    logger.info("Task %d soft-deleted", task.id,
                extra={"tenant_id": tenant_id, "task_id": task.id})
    return task


# ── Graded views ────────────────────────────────────────────────────────────

def _live_tasks(tenant_id, project_id=None):
    stmt = (
        select(TrackableTask)
        .join(Project, TrackableTask.project_id == Project.id)
        .where(Project.tenant_id == tenant_id, TrackableTask.deleted_at.is_(None))
        .order_by(TrackableTask.due_at, TrackableTask.id)
    )
    if project_id is not None:
        stmt = stmt.where(TrackableTask.project_id == project_id)
    return list(db.session.execute(stmt).scalars())


def grade_task(task, rules: SLARules, now):
    """Serialize a task with its binary status, SLA score and plain label."""
    status = compute_status(task.due_at, task.submitted_at, rules.at_risk_minutes, now=now)
    score = score_by_sla(task.due_at, task.submitted_at, rules, now=now)
    return {
        **task.to_dict(),
        "project_name": task.project.name,
        "status": status,
        "sla_score": score,
        "label": plain_label(status),
    }


def tenant_overview(tenant_id, now=None, project_id=None):
    """Every live task of the tenant, graded, ordered by due time."""
    now = as_utc(now) if now is not None else utcnow()
    rows = []
    rules_cache = {}
    for task in _live_tasks(tenant_id, project_id):
        if task.project_id not in rules_cache:
            rules_cache[task.project_id] = rules_for_project(task.project)
        rows.append(grade_task(task, rules_cache[task.project_id], now))
    counts = {}
    for row in rows:
        counts[row["status"]] = counts.get(row["status"], 0) + 1
    return {"generated_at": now.isoformat(), "items": rows, "counts": counts}


def project_sla_scores(tenant_id, now=None):
    """Worst tri-state grade per project, with per-grade counts."""
    now = as_utc(now) if now is not None else utcnow()
    projects = Project.query_for_tenant(tenant_id).order_by(Project.name, Project.id).all()
    result = []
    for project in projects:
        rules = rules_for_project(project)
        counts = {score: 0 for score in SLA_SCORES}
        for task in project.tasks.filter(TrackableTask.deleted_at.is_(None)):
            counts[score_by_sla(task.due_at, task.submitted_at, rules, now=now)] += 1
        score = worst_score(s for s, n in counts.items() if n)
        result.append({
            "project_id": project.id,
            "project_name": project.name,
            "score": score,
            "label": plain_label(score),
            "counts": counts,
            "rules": rules.to_dict(),
        })
    return result
