"""
Field Operations Console — Timeliness Engine
Scheduling & Notification Preference models.

Models:
    - NotificationPreference: Per-tenant channel, digest and pacing preferences
    - ScheduledJob: Persisted schedule registry (run history + config)
    - NotificationLog: Outbound email/SMS delivery audit trail
"""

from datetime import datetime, timezone

from fieldops.models import db


# ── Constants ────────────────────────────────────────────────────────────────

CHANNELS = {"email", "sms"}
DELIVERY_OUTCOMES = {"sent", "skipped", "error"}
JOB_STATUSES = {"active", "paused"}

# Applied when a tenant has no preference row
DEFAULT_NOTIFICATION_PREFS = {
    "email_enabled": True,
    "sms_enabled": False,
    "daily_digest": False,
    "weekly_digest": True,
    "timezone": "America/Chicago",
    "escalation_after_hours": 4,
}


class NotificationPreference(db.Model):
    """
    Per-tenant notification preferences.

    Exactly one row per tenant; a missing row implies DEFAULT_NOTIFICATION_PREFS.
    """

    __tablename__ = "notification_prefs"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    email_enabled = db.Column(db.Boolean, nullable=False, default=True)
    sms_enabled = db.Column(db.Boolean, nullable=False, default=False)
    daily_digest = db.Column(db.Boolean, nullable=False, default=False)
    weekly_digest = db.Column(db.Boolean, nullable=False, default=True)
    timezone = db.Column(db.String(64), nullable=True, default="America/Chicago")
    escalation_after_hours = db.Column(db.Float, nullable=False, default=4,
                                       comment="Pacing of the default escalation ladder")

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "email_enabled": self.email_enabled,
            "sms_enabled": self.sms_enabled,
            "daily_digest": self.daily_digest,
            "weekly_digest": self.weekly_digest,
            "timezone": self.timezone,
            "escalation_after_hours": self.escalation_after_hours,
        }

    def __repr__(self):
        return f"<NotificationPreference tenant={self.tenant_id}>"


class ScheduledJob(db.Model):
    """
    Registry of scheduled background jobs.

    Tracks job configuration, last run time, and run history.
    ``schedule_config`` holds APScheduler cron fields (minute, hour, day_of_week).
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="Unique job identifier: escalation_check, weekly_digest, etc.")
    description = db.Column(db.String(500), default="")
    schedule_type = db.Column(db.String(30), default="cron")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment="Cron fields for the trigger")
    status = db.Column(db.String(20), default="active",
                       comment="active, paused")
    is_enabled = db.Column(db.Boolean, default=True)

    # Execution tracking
    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True,
                                comment="success, failed")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True,
                                comment="Summary of last execution")
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        """Record a job execution."""
        self.last_run_at = datetime.now(timezone.utc)
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "schedule_type": self.schedule_type,
            "schedule_config": self.schedule_config,
            "status": self.status,
            "is_enabled": self.is_enabled,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} [{self.status}]>"


class NotificationLog(db.Model):
    """
    Outbound delivery audit log.

    One row per delivery attempt (email or SMS) with its outcome.
    """

    __tablename__ = "notification_logs"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="SET NULL"),
                          nullable=True, index=True)
    task_id = db.Column(db.Integer, nullable=True, index=True,
                        comment="Related timeliness item, if any")
    channel = db.Column(db.String(10), nullable=False, comment="email | sms")
    recipient = db.Column(db.String(255), nullable=False, index=True)
    subject = db.Column(db.String(500), nullable=True)
    category = db.Column(db.String(30), default="system",
                         comment="escalation | digest | reminder | system")
    outcome = db.Column(db.String(10), nullable=False, comment="sent | skipped | error")
    error_message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "task_id": self.task_id,
            "channel": self.channel,
            "recipient": self.recipient,
            "subject": self.subject,
            "category": self.category,
            "outcome": self.outcome,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<NotificationLog {self.id}: {self.channel} → {self.recipient} [{self.outcome}]>"
