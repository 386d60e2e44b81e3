"""
Scheduled Jobs — periodic timeliness work.

Jobs:
    - escalation_check:     escalate overdue tasks along ladders (every 30 min)
    - weekly_digest:        weekly rollup email (Mondays 09:00)
    - timeliness_reminders: due-soon reminders to supervisors (every 15 min)

Each job walks every active tenant independently. Before any work the
tenant is gated on its resolved features and notification preferences;
a gated-off tenant is skipped entirely. One tenant's failure is logged and
counted without stopping the rest. A failure to list tenants at all
propagates and is recorded as a failed run.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from fieldops.models import db
from fieldops.models.tenant import Tenant
from fieldops.services.digest import run_weekly_digest_for_tenant
from fieldops.services.escalation import run_escalations_for_tenant
from fieldops.services.feature_flag_service import resolve_tenant_features
from fieldops.services.notification_prefs_service import get_notification_prefs
from fieldops.services.reminders import run_reminders_for_tenant
from fieldops.services.scheduler_service import register_job
from fieldops.utils.helpers import utcnow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Tenant gate
# ═══════════════════════════════════════════════════════════════════════════

def should_run_for_tenant(tenant_id, feature, features=None, prefs=None) -> bool:
    """Decide whether ``feature`` work runs for a tenant.

    REMINDERS / ESCALATIONS: feature on and at least one channel enabled.
    WEEKLY_DIGEST: feature on, weekly_digest preference on, email enabled.
    """
    features = features if features is not None else resolve_tenant_features(tenant_id)
    prefs = prefs if prefs is not None else get_notification_prefs(tenant_id)
    if not features.get(feature):
        return False
    if feature == "WEEKLY_DIGEST":
        return bool(prefs.get("weekly_digest") and prefs.get("email_enabled"))
    if feature in ("REMINDERS", "ESCALATIONS"):
        return bool(prefs.get("email_enabled") or prefs.get("sms_enabled"))
    return True


def _accumulate(totals: dict, result: dict) -> None:
    for key, value in result.items():
        if key == "tenant_id" or isinstance(value, bool):
            continue
        if isinstance(value, int):
            totals[key] = totals.get(key, 0) + value
        elif isinstance(value, dict):
            bucket = totals.setdefault(key, {})
            for sub_key, n in value.items():
                bucket[sub_key] = bucket.get(sub_key, 0) + n


def run_for_all_tenants(job_name: str, feature: str, tenant_fn: Callable, now=None) -> dict[str, Any]:
    """Run ``tenant_fn(tenant_id, now=, prefs=)`` for every gated-in active tenant."""
    now = now or utcnow()
    tenants = Tenant.query.filter_by(is_active=True).order_by(Tenant.created_at, Tenant.id).all()
    tenant_ids = [t.id for t in tenants]

    summary: dict[str, Any] = {
        "tenants_scanned": 0,
        "tenants_skipped": 0,
        "tenants_failed": 0,
    }
    for tenant_id in tenant_ids:
        summary["tenants_scanned"] += 1
        try:
            features = resolve_tenant_features(tenant_id)
            prefs = get_notification_prefs(tenant_id)
            if not should_run_for_tenant(tenant_id, feature, features, prefs):
                summary["tenants_skipped"] += 1
                logger.debug("%s skipped for tenant %d (gated off)", job_name, tenant_id,
                             extra={"job_name": job_name, "tenant_id": tenant_id})
                continue
            result = tenant_fn(tenant_id, now=now, prefs=prefs)
            _accumulate(summary, result)
        except Exception:
            db.session.rollback()
            summary["tenants_failed"] += 1
            logger.exception("%s failed for tenant %d", job_name, tenant_id,
                             extra={"job_name": job_name, "tenant_id": tenant_id})

    logger.info("%s: %d tenants, %d skipped, %d failed", job_name,
                summary["tenants_scanned"], summary["tenants_skipped"], summary["tenants_failed"],
                extra={"job_name": job_name})
    return summary


# ═══════════════════════════════════════════════════════════════════════════
#  Jobs
# ═══════════════════════════════════════════════════════════════════════════

@register_job("escalation_check", schedule={"minute": "*/30", "description": "Every 30 minutes"})
def escalation_check(app) -> dict[str, Any]:
    """Escalate overdue tasks along their project's ladder."""
    return run_for_all_tenants("escalation_check", "ESCALATIONS", run_escalations_for_tenant)


@register_job("weekly_digest", schedule={"day_of_week": "mon", "hour": "9", "minute": "0",
                                         "description": "Mondays at 09:00"})
def weekly_digest(app) -> dict[str, Any]:
    """Email each tenant's weekly task summary."""
    return run_for_all_tenants("weekly_digest", "WEEKLY_DIGEST", run_weekly_digest_for_tenant)


@register_job("timeliness_reminders", schedule={"minute": "*/15", "description": "Every 15 minutes"})
def timeliness_reminders(app) -> dict[str, Any]:
    """Remind supervisors about tasks due soon or late."""
    return run_for_all_tenants("timeliness_reminders", "REMINDERS", run_reminders_for_tenant)
