"""
Feature override models.

Three layers resolve to one effective flag per feature key:
    1. environment defaults (config.FEATURE_DEFAULTS)
    2. GlobalFeatureOverride rows — one per key, absent = unset
    3. TenantFeatureOverride — one row per tenant, a nullable boolean
       column per feature (NULL = inherit)
"""

from datetime import datetime, timezone

from fieldops.models import db


class GlobalFeatureOverride(db.Model):
    """Platform-wide override for a single feature key."""
    __tablename__ = "global_features"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(50), unique=True, nullable=False)  # e.g. "ESCALATIONS"
    value = db.Column(db.Boolean, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class TenantFeatureOverride(db.Model):
    """Per-tenant tri-state overrides; at most one row per tenant."""
    __tablename__ = "feature_overrides"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(
        db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    supervisor = db.Column(db.Boolean, nullable=True)
    manager = db.Column(db.Boolean, nullable=True)
    sla = db.Column(db.Boolean, nullable=True)
    reminders = db.Column(db.Boolean, nullable=True)
    escalations = db.Column(db.Boolean, nullable=True)
    weekly_digest = db.Column(db.Boolean, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Feature key -> column attribute
    COLUMNS = {
        "SUPERVISOR": "supervisor",
        "MANAGER": "manager",
        "SLA": "sla",
        "REMINDERS": "reminders",
        "ESCALATIONS": "escalations",
        "WEEKLY_DIGEST": "weekly_digest",
    }

    def get_override(self, key):
        """Return True / False / None (inherit) for a feature key."""
        return getattr(self, self.COLUMNS[key])

    def set_override(self, key, value):
        setattr(self, self.COLUMNS[key], value)

    def to_dict(self):
        return {
            "tenant_id": self.tenant_id,
            **{key: self.get_override(key) for key in self.COLUMNS},
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
