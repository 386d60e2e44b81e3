"""timeliness_engine_tables

Create tenants, projects, contacts, SLA policies, timeliness items,
feature overrides, notification preferences, scheduled jobs and the
notification log.

Revision ID: 6f1a2b3c4d50
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "6f1a2b3c4d50"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "tenants" not in existing_tables:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("category", sa.String(length=50), nullable=True, server_default="general"),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="active"),
            sa.Column("manager_email", sa.String(length=255), nullable=True),
            sa.Column("owner_email", sa.String(length=255), nullable=True),
            sa.Column("supervisor_email", sa.String(length=255), nullable=True),
            sa.Column("supervisor_phone", sa.String(length=40), nullable=True),
            _ts("created_at", nullable=False),
            _ts("updated_at", nullable=False),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_tenant_id", "projects", ["tenant_id"])
        op.create_index("ix_projects_tenant_name", "projects", ["tenant_id", "name"])

    if "project_contacts" not in existing_tables:
        op.create_table(
            "project_contacts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=True),
            sa.Column("role", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=40), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_project_contacts_project_id", "project_contacts", ["project_id"])

    if "sla_policies" not in existing_tables:
        op.create_table(
            "sla_policies",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("at_risk_minutes", sa.Integer(), nullable=False, server_default="60"),
            sa.Column("red_minutes", sa.Integer(), nullable=False, server_default="120"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id"),
        )

    if "timeliness_items" not in existing_tables:
        op.create_table(
            "timeliness_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("kind", sa.String(length=20), nullable=False, server_default="UPDATE"),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            _ts("due_at", nullable=False),
            _ts("submitted_at"),
            _ts("escalated_at"),
            _ts("reminded_at"),
            _ts("deleted_at"),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_timeliness_items_project_id", "timeliness_items", ["project_id"])
        op.create_index("ix_timeliness_items_due_at", "timeliness_items", ["due_at"])
        op.create_index("ix_timeliness_items_deleted_at", "timeliness_items", ["deleted_at"])
        op.create_index(
            "ix_timeliness_items_open", "timeliness_items",
            ["project_id", "submitted_at", "deleted_at"],
        )

    if "global_features" not in existing_tables:
        op.create_table(
            "global_features",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("key", sa.String(length=50), nullable=False),
            sa.Column("value", sa.Boolean(), nullable=False),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("key"),
        )

    if "feature_overrides" not in existing_tables:
        op.create_table(
            "feature_overrides",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("supervisor", sa.Boolean(), nullable=True),
            sa.Column("manager", sa.Boolean(), nullable=True),
            sa.Column("sla", sa.Boolean(), nullable=True),
            sa.Column("reminders", sa.Boolean(), nullable=True),
            sa.Column("escalations", sa.Boolean(), nullable=True),
            sa.Column("weekly_digest", sa.Boolean(), nullable=True),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id"),
        )

    if "notification_prefs" not in existing_tables:
        op.create_table(
            "notification_prefs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=False),
            sa.Column("email_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("sms_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("daily_digest", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("weekly_digest", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("timezone", sa.String(length=64), nullable=True, server_default="America/Chicago"),
            sa.Column("escalation_after_hours", sa.Float(), nullable=False, server_default="4"),
            _ts("created_at"),
            _ts("updated_at"),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id"),
        )

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_type", sa.String(length=30), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            _ts("last_run_at"),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )

    if "notification_logs" not in existing_tables:
        op.create_table(
            "notification_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("tenant_id", sa.Integer(), nullable=True),
            sa.Column("task_id", sa.Integer(), nullable=True),
            sa.Column("channel", sa.String(length=10), nullable=False),
            sa.Column("recipient", sa.String(length=255), nullable=False),
            sa.Column("subject", sa.String(length=500), nullable=True),
            sa.Column("category", sa.String(length=30), nullable=True),
            sa.Column("outcome", sa.String(length=10), nullable=False),
            sa.Column("error_message", sa.Text(), nullable=True),
            _ts("created_at"),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notification_logs_tenant_id", "notification_logs", ["tenant_id"])
        op.create_index("ix_notification_logs_task_id", "notification_logs", ["task_id"])
        op.create_index("ix_notification_logs_recipient", "notification_logs", ["recipient"])


def downgrade():
    for table in (
        "notification_logs",
        "scheduled_jobs",
        "notification_prefs",
        "feature_overrides",
        "global_features",
        "timeliness_items",
        "sla_policies",
        "project_contacts",
        "projects",
        "tenants",
    ):
        op.drop_table(table)
