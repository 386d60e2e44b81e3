"""
Field Operations Console — Timeliness Engine
Trackable task model.

A task is one obligation with a deadline: a supervisor update or a change
request. It is mutated only by acknowledgment (``submitted_at``), by the
escalation engine (``escalated_at``) and by the reminder job
(``reminded_at``); it is soft-deleted, never hard-deleted.
"""

from datetime import datetime, timezone

from fieldops.models import db
from fieldops.models.soft_delete import SoftDeleteMixin


TASK_KINDS = {"UPDATE", "CHANGE_REQUEST"}


class TrackableTask(SoftDeleteMixin, db.Model):
    """One obligation with a due time, owned by a project."""

    __tablename__ = "timeliness_items"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    kind = db.Column(db.String(20), nullable=False, default="UPDATE",
                     comment="UPDATE | CHANGE_REQUEST")
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")

    due_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True,
                             comment="Set once on acknowledgment; never rewritten")
    escalated_at = db.Column(db.DateTime(timezone=True), nullable=True,
                             comment="Last time an escalation fired (cooldown anchor)")
    reminded_at = db.Column(db.DateTime(timezone=True), nullable=True,
                            comment="When the due-soon reminder was sent")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project", back_populates="tasks")

    __table_args__ = (
        db.Index("ix_timeliness_items_open", "project_id", "submitted_at", "deleted_at"),
    )

    @property
    def tenant_id(self):
        return self.project.tenant_id if self.project else None

    @property
    def is_submitted(self):
        return self.submitted_at is not None

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "kind": self.kind,
            "title": self.title,
            "description": self.description,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "escalated_at": self.escalated_at.isoformat() if self.escalated_at else None,
            "reminded_at": self.reminded_at.isoformat() if self.reminded_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TrackableTask {self.id}: {self.title[:40]}>"
