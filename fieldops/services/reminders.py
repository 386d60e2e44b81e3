"""
Due-soon reminders.

Open tasks graded AT_RISK or OVERDUE with the REMINDER_MINUTES_BEFORE warn
window get one reminder to the project supervisor. ``reminded_at`` is
claimed with a conditional UPDATE (``reminded_at IS NULL``) before sending,
so each task is reminded at most once however often the job runs. A task
whose supervisor has no address on an enabled channel is left unclaimed
and counted under ``no_recipients``; it is picked up once one is set.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import select, update

from fieldops.models import db
from fieldops.models.project import Project
from fieldops.models.timeliness import TrackableTask
from fieldops.services.email_templates import render_reminder
from fieldops.services.notification import NotificationDispatcher
from fieldops.services.notification_prefs_service import get_notification_prefs, tenant_timezone
from fieldops.services.timeliness import AT_RISK, OVERDUE, compute_status
from fieldops.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)


def claim_reminder(task_id, now) -> bool:
    result = db.session.execute(
        update(TrackableTask)
        .where(
            TrackableTask.id == task_id,
            TrackableTask.reminded_at.is_(None),
            TrackableTask.submitted_at.is_(None),
            TrackableTask.deleted_at.is_(None),
        )
        .values(reminded_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def run_reminders_for_tenant(tenant_id, now=None, prefs=None):
    now = as_utc(now) if now is not None else utcnow()
    prefs = prefs if prefs is not None else get_notification_prefs(tenant_id)
    warn_minutes = current_app.config.get("REMINDER_MINUTES_BEFORE", 60)
    tz = tenant_timezone(prefs)
    dispatcher = NotificationDispatcher(tenant_id=tenant_id, category="reminder")

    stmt = (
        select(TrackableTask)
        .join(Project, TrackableTask.project_id == Project.id)
        .where(
            Project.tenant_id == tenant_id,
            TrackableTask.submitted_at.is_(None),
            TrackableTask.deleted_at.is_(None),
            TrackableTask.reminded_at.is_(None),
            TrackableTask.due_at <= now + timedelta(minutes=warn_minutes),
        )
        .order_by(TrackableTask.due_at, TrackableTask.id)
    )

    summary = {"tenant_id": tenant_id, "scanned": 0, "reminded": 0, "no_recipients": 0, "failed": 0}
    for task in db.session.execute(stmt).scalars().all():
        summary["scanned"] += 1
        task_id = task.id
        try:
            grade = compute_status(task.due_at, None, warn_minutes, now=now)
            if grade not in (AT_RISK, OVERDUE):
                continue
            project = task.project
            emails = [project.supervisor_email] if prefs.get("email_enabled") and project.supervisor_email else []
            phones = [project.supervisor_phone] if prefs.get("sms_enabled") and project.supervisor_phone else []
            if not emails and not phones:
                summary["no_recipients"] += 1
                continue
            subject, html, sms = render_reminder(
                project_name=project.name, task_title=task.title,
                due_at=task.due_at, grade=grade, tz=tz,
            )
            if not claim_reminder(task_id, now):
                continue
            dispatcher.send_email(emails, subject, html, task_id=task_id)
            dispatcher.send_sms(phones, sms, task_id=task_id)
            summary["reminded"] += 1
        except Exception:
            db.session.rollback()
            summary["failed"] += 1
            logger.exception("Reminder failed for task %s", task_id,
                             extra={"tenant_id": tenant_id, "task_id": task_id})

    summary["notifications"] = dispatcher.report.to_dict()
    if summary["reminded"]:
        logger.info("Reminded %d task(s), %d delivery attempt(s)", summary["reminded"],
                    dispatcher.report.attempted, extra={"tenant_id": tenant_id})
    return summary
