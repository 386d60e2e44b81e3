"""
Soft Delete Mixin.

Adds `deleted_at` timestamp column and query helpers for soft delete.
Tasks are never hard-deleted so the audit trail of what was due, and
when it was acknowledged or escalated, survives.

Usage:
    class MyModel(SoftDeleteMixin, db.Model):
        ...

    obj.soft_delete()
    db.session.commit()
"""

from datetime import datetime, timezone

from fieldops.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self, now=None):
        """Mark this record as deleted (first deletion time wins)."""
        if self.deleted_at is None:
            self.deleted_at = now or datetime.now(timezone.utc)

    @property
    def is_deleted(self):
        return self.deleted_at is not None
