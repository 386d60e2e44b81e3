"""
Project domain model.

Models:
    - Project: owns trackable tasks; its category selects the escalation ladder
    - ProjectContact: structured contact with a role, matched against ladder steps
    - SLAPolicy: optional per-project tri-state grading thresholds
"""

from datetime import datetime, timezone

from fieldops.models import db
from fieldops.models.base import TenantModel


class Project(TenantModel):
    """Field project with its notification contact set."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    category = db.Column(
        db.String(50), nullable=True, default="general",
        comment="Drives ladder selection: demolition | construction | maintenance | ...",
    )
    status = db.Column(db.String(30), nullable=False, default="active")

    # ── Notification contacts ──
    manager_email = db.Column(db.String(255), nullable=True)
    owner_email = db.Column(db.String(255), nullable=True)
    supervisor_email = db.Column(db.String(255), nullable=True)
    supervisor_phone = db.Column(db.String(40), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    tenant = db.relationship("Tenant", back_populates="projects")
    contacts = db.relationship(
        "ProjectContact", back_populates="project",
        cascade="all, delete-orphan", order_by="ProjectContact.id",
    )
    sla_policy = db.relationship(
        "SLAPolicy", back_populates="project", uselist=False,
        cascade="all, delete-orphan",
    )
    tasks = db.relationship("TrackableTask", back_populates="project", lazy="dynamic")

    __table_args__ = (
        db.Index("ix_projects_tenant_name", "tenant_id", "name"),
    )

    def to_dict(self) -> dict:
        """Serialize core project fields for API responses."""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "category": self.category,
            "status": self.status,
            "manager_email": self.manager_email,
            "owner_email": self.owner_email,
            "supervisor_email": self.supervisor_email,
            "supervisor_phone": self.supervisor_phone,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class ProjectContact(db.Model):
    """Role-tagged contact for a project (e.g. safety_supervisor, site_manager)."""

    __tablename__ = "project_contacts"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=True)
    role = db.Column(db.String(100), nullable=False, comment="Matched case-insensitively against ladder step roles")
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(40), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project", back_populates="contacts")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "role": self.role,
            "email": self.email,
            "phone": self.phone,
        }

    def __repr__(self):
        return f"<ProjectContact {self.role}: {self.email or self.phone}>"


class SLAPolicy(db.Model):
    """Per-project SLA thresholds for tri-state grading."""

    __tablename__ = "sla_policies"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    at_risk_minutes = db.Column(db.Integer, nullable=False, default=60)
    red_minutes = db.Column(db.Integer, nullable=False, default=120)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="sla_policy")

    def to_dict(self):
        return {
            "project_id": self.project_id,
            "at_risk_minutes": self.at_risk_minutes,
            "red_minutes": self.red_minutes,
        }
