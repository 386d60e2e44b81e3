"""
Tenant-scoped base model.

Projects (and through them every task, contact and SLA policy) belong to
exactly one tenant. Lookups go through ``query_for_tenant`` so a row of
another tenant is indistinguishable from a missing one.
"""

from fieldops.models import db


class TenantModel(db.Model):
    """Abstract base adding an indexed ``tenant_id`` foreign key."""
    __abstract__ = True

    tenant_id = db.Column(
        db.Integer,
        db.ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    @classmethod
    def query_for_tenant(cls, tenant_id):
        return cls.query.filter_by(tenant_id=tenant_id)
