"""
Escalation engine — overdue task escalation along category ladders.

For each unsubmitted, undeleted, overdue task of a tenant:

    h               = hours since due
    should_escalate = h >= ladder.default_hours
    level           = highest ladder step with hour_threshold <= h
    eligible        = should_escalate and (never escalated, or
                      now - escalated_at >= ladder.default_hours)

An eligible task is first *claimed* with a single conditional UPDATE of
``escalated_at`` and committed; only the run whose UPDATE matched the row
dispatches. Overlapping runs therefore escalate a task at most once per
cooldown window. A claimed escalation counts as fired even when every
delivery fails.

Recipients:
    email  manager_email, owner_email, and contacts whose role matches the
           selected step (only when the tenant has email enabled)
    sms    supervisor_phone and matched contacts' phones (only when the
           tenant has SMS enabled)

Usage:
    from fieldops.services.escalation import run_escalations_for_tenant
    summary = run_escalations_for_tenant(tenant_id=1)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import or_, select, update

from fieldops.models import db
from fieldops.models.project import Project
from fieldops.models.timeliness import TrackableTask
from fieldops.services.escalation_ladder import (
    EscalationLadder,
    EscalationStep,
    get_ladder,
    is_default_ladder,
)
from fieldops.services.email_templates import render_escalation
from fieldops.services.notification import NotificationDispatcher
from fieldops.services.notification_prefs_service import (
    get_notification_prefs,
    has_preference_row,
    tenant_timezone,
)
from fieldops.services.timeliness import compute_status, lateness
from fieldops.utils.helpers import as_utc, utcnow

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Pure decision
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EscalationDecision:
    hours_overdue: float
    should_escalate: bool
    cooled_down: bool
    level: EscalationStep | None

    @property
    def eligible(self) -> bool:
        return self.should_escalate and self.cooled_down


def evaluate_escalation(
    due_at: datetime,
    escalated_at: datetime | None,
    ladder: EscalationLadder,
    now: datetime,
) -> EscalationDecision:
    """Decide whether a task escalates now, and to which ladder step."""
    hours = lateness(due_at, now).total_seconds() / 3600
    cooldown = timedelta(hours=ladder.default_hours)
    cooled = escalated_at is None or as_utc(now) - as_utc(escalated_at) >= cooldown
    return EscalationDecision(
        hours_overdue=hours,
        should_escalate=hours >= ladder.default_hours,
        cooled_down=cooled,
        level=ladder.select_level(hours) if hours >= 0 else None,
    )


def ladder_for_project(project, pacing_hours: float | None = None) -> EscalationLadder:
    """Category ladder; tenant pacing replaces default_hours on the default ladder only."""
    ladder = get_ladder(project.category)
    if pacing_hours and is_default_ladder(ladder):
        ladder = ladder.with_default_hours(pacing_hours)
    return ladder


def resolve_recipients(project, level: EscalationStep | None, prefs: dict) -> tuple[list, list]:
    """Return (emails, phones) for an escalation of ``project`` at ``level``."""
    matched = []
    if level is not None:
        role = level.role.strip().lower()
        matched = [c for c in project.contacts if (c.role or "").strip().lower() == role]

    emails, phones = [], []
    if prefs.get("email_enabled"):
        emails = [project.manager_email, project.owner_email] + [c.email for c in matched]
    if prefs.get("sms_enabled"):
        phones = [project.supervisor_phone] + [c.phone for c in matched]
    return [e for e in emails if e], [p for p in phones if p]


# ═════════════════════════════════════════════════════════════════════════════
# Atomic claim
# ═════════════════════════════════════════════════════════════════════════════

def claim_escalation(task_id: int, now: datetime, cooldown_hours: float) -> bool:
    """Set escalated_at=now iff the task is still open and out of cooldown.

    Commits immediately. Returns True when this caller won the claim.
    """
    cutoff = now - timedelta(hours=cooldown_hours)
    result = db.session.execute(
        update(TrackableTask)
        .where(
            TrackableTask.id == task_id,
            TrackableTask.submitted_at.is_(None),
            TrackableTask.deleted_at.is_(None),
            or_(TrackableTask.escalated_at.is_(None), TrackableTask.escalated_at <= cutoff),
        )
        .values(escalated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


# ═════════════════════════════════════════════════════════════════════════════
# Tenant run
# ═════════════════════════════════════════════════════════════════════════════

def overdue_tasks(tenant_id: int, now: datetime) -> list[TrackableTask]:
    stmt = (
        select(TrackableTask)
        .join(Project, TrackableTask.project_id == Project.id)
        .where(
            Project.tenant_id == tenant_id,
            TrackableTask.submitted_at.is_(None),
            TrackableTask.deleted_at.is_(None),
            TrackableTask.due_at < now,
        )
        .order_by(TrackableTask.due_at, TrackableTask.id)
    )
    return list(db.session.execute(stmt).scalars())


def _pacing_hours(tenant_id, prefs):
    if has_preference_row(tenant_id):
        return float(prefs["escalation_after_hours"])
    return float(current_app.config.get("ESCALATE_AFTER_HOURS", 4))


def run_escalations_for_tenant(tenant_id: int, now: datetime | None = None, prefs: dict | None = None) -> dict:
    """Escalate every eligible overdue task of one tenant.

    A failure on one task is logged and counted; the rest still run.
    """
    now = as_utc(now) if now is not None else utcnow()
    prefs = prefs if prefs is not None else get_notification_prefs(tenant_id)
    pacing = _pacing_hours(tenant_id, prefs)
    tz = tenant_timezone(prefs)
    dispatcher = NotificationDispatcher(tenant_id=tenant_id, category="escalation")

    summary = {
        "tenant_id": tenant_id,
        "scanned": 0,
        "escalated": 0,
        "not_eligible": 0,
        "claimed_elsewhere": 0,
        "failed": 0,
    }

    for task in overdue_tasks(tenant_id, now):
        summary["scanned"] += 1
        task_id = task.id
        try:
            project = task.project
            ladder = ladder_for_project(project, pacing)
            decision = evaluate_escalation(task.due_at, task.escalated_at, ladder, now)
            if not decision.eligible:
                summary["not_eligible"] += 1
                continue

            # Snapshot before the claim commit expires the instances
            title, due_at = task.title, task.due_at
            emails, phones = resolve_recipients(project, decision.level, prefs)
            project_name = project.name

            if not claim_escalation(task_id, now, ladder.default_hours):
                summary["claimed_elsewhere"] += 1
                continue

            grade = compute_status(due_at, None, now=now)
            role = decision.level.role if decision.level else None
            subject, html, sms = render_escalation(
                project_name=project_name, task_title=title, due_at=due_at,
                grade=grade, hours_overdue=decision.hours_overdue, role=role, tz=tz,
            )
            dispatcher.send_email(emails, subject, html, task_id=task_id)
            dispatcher.send_sms(phones, sms, task_id=task_id)
            summary["escalated"] += 1
            logger.info("Escalated task %d to %s (%.1fh overdue)", task_id, role or "contacts",
                        decision.hours_overdue, extra={"tenant_id": tenant_id, "task_id": task_id})
        except Exception:
            db.session.rollback()
            summary["failed"] += 1
            logger.exception("Escalation failed for task %s", task_id,
                             extra={"tenant_id": tenant_id, "task_id": task_id})

    summary["notifications"] = dispatcher.report.to_dict()
    return summary
