"""
Weekly digest — tenant rollup of tasks around "now".

Selects the tenant's live tasks due within ±DIGEST_WINDOW_DAYS, grades each
with the tri-state SLA grader (project policy or default), groups them by
project (project name, then due time) and emails one summary to every
distinct manager/supervisor address on the tenant's projects.

Read-only: there is no cooldown marker, so two concurrent runs for the
same tenant would both send.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import select

from fieldops.models import db
from fieldops.models.project import Project
from fieldops.models.timeliness import TrackableTask
from fieldops.services.email_templates import render_digest
from fieldops.services.notification import NotificationDispatcher
from fieldops.services.notification_prefs_service import get_notification_prefs, tenant_timezone
from fieldops.services.timeliness import score_by_sla
from fieldops.services.timeliness_service import rules_for_project
from fieldops.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)


def digest_window(now, days=None):
    days = days if days is not None else current_app.config.get("DIGEST_WINDOW_DAYS", 7)
    return now - timedelta(days=days), now + timedelta(days=days)


def collect_digest(tenant_id, now=None, days=None):
    """Return the graded, project-grouped digest content for a tenant."""
    now = as_utc(now) if now is not None else utcnow()
    start, end = digest_window(now, days)
    stmt = (
        select(TrackableTask, Project)
        .join(Project, TrackableTask.project_id == Project.id)
        .where(
            Project.tenant_id == tenant_id,
            TrackableTask.deleted_at.is_(None),
            TrackableTask.due_at >= start,
            TrackableTask.due_at <= end,
        )
        .order_by(Project.name, TrackableTask.due_at, TrackableTask.id)
    )

    groups = []
    by_project = {}
    rules_cache = {}
    for task, project in db.session.execute(stmt):
        if project.id not in by_project:
            by_project[project.id] = {"project_id": project.id, "project_name": project.name, "items": []}
            groups.append(by_project[project.id])
            rules_cache[project.id] = rules_for_project(project)
        by_project[project.id]["items"].append({
            "task_id": task.id,
            "title": task.title,
            "kind": task.kind,
            "due_at": as_utc(task.due_at),
            "submitted_at": as_utc(task.submitted_at),
            "score": score_by_sla(task.due_at, task.submitted_at, rules_cache[project.id], now=now),
        })
    return {"window_start": start, "window_end": end, "groups": groups}


def digest_recipients(tenant_id):
    """Distinct manager and supervisor emails across the tenant's projects."""
    rows = db.session.execute(
        select(Project.manager_email, Project.supervisor_email)
        .where(Project.tenant_id == tenant_id)
        .order_by(Project.id)
    ).all()
    seen = set()
    recipients = []
    for manager_email, supervisor_email in rows:
        for email in (manager_email, supervisor_email):
            if email and email.strip().lower() not in seen:
                seen.add(email.strip().lower())
                recipients.append(email.strip())
    return recipients


def run_weekly_digest_for_tenant(tenant_id, now=None, prefs=None):
    """Build and email one tenant's digest."""
    now = as_utc(now) if now is not None else utcnow()
    prefs = prefs if prefs is not None else get_notification_prefs(tenant_id)
    digest = collect_digest(tenant_id, now)
    recipients = digest_recipients(tenant_id)
    item_count = sum(len(g["items"]) for g in digest["groups"])

    subject, html = render_digest(
        digest["groups"],
        window_start=digest["window_start"],
        window_end=digest["window_end"],
        tz=tenant_timezone(prefs),
    )
    dispatcher = NotificationDispatcher(tenant_id=tenant_id, category="digest")
    dispatcher.send_email(recipients, subject, html)

    logger.info("Weekly digest for tenant %d: %d items, %d recipients",
                tenant_id, item_count, len(recipients), extra={"tenant_id": tenant_id})
    return {
        "tenant_id": tenant_id,
        "projects": len(digest["groups"]),
        "items": item_count,
        "recipients": len(recipients),
        "sent": dispatcher.report.counts["sent"],
        "notifications": dispatcher.report.to_dict(),
    }
