"""
Notification preference service.

One preference row per tenant; a missing row, or a failed read, yields
DEFAULT_NOTIFICATION_PREFS so periodic jobs always have something to gate on.
"""

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import SQLAlchemyError

from fieldops.models import db
from fieldops.models.scheduling import DEFAULT_NOTIFICATION_PREFS, NotificationPreference

logger = logging.getLogger(__name__)

_BOOL_FIELDS = ("email_enabled", "sms_enabled", "daily_digest", "weekly_digest")


def get_notification_prefs(tenant_id):
    """Return the tenant's preferences as a dict (defaults when absent)."""
    try:
        row = NotificationPreference.query.filter_by(tenant_id=tenant_id).first()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Notification prefs read failed, using defaults: %s", exc,
                       extra={"tenant_id": tenant_id})
        row = None
    if row is None:
        return dict(DEFAULT_NOTIFICATION_PREFS)
    return row.to_dict()


def validate_notification_prefs(data):
    """Return a {field: message} dict of problems with an update payload."""
    errors = {}
    allowed = set(_BOOL_FIELDS) | {"timezone", "escalation_after_hours"}
    for key in data:
        if key not in allowed:
            errors[key] = "unknown preference"

    for field in _BOOL_FIELDS:
        if field in data and not isinstance(data[field], bool):
            errors[field] = "must be a boolean"

    if "timezone" in data:
        tz = data["timezone"]
        if not isinstance(tz, str) or not tz:
            errors["timezone"] = "must be an IANA timezone name"
        else:
            try:
                ZoneInfo(tz)
            except (ZoneInfoNotFoundError, ValueError):
                errors["timezone"] = f"unknown timezone: {tz}"

    if "escalation_after_hours" in data:
        hours = data["escalation_after_hours"]
        if isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours <= 0:
            errors["escalation_after_hours"] = "must be a positive number"
    return errors


def update_notification_prefs(tenant_id, data):
    """Partially upsert the tenant's preferences. Returns (prefs, errors)."""
    if not isinstance(data, dict) or not data:
        return None, {"_body": "Provide at least one preference"}
    errors = validate_notification_prefs(data)
    if errors:
        return None, errors

    row = NotificationPreference.query.filter_by(tenant_id=tenant_id).first()
    if row is None:
        row = NotificationPreference(tenant_id=tenant_id, **DEFAULT_NOTIFICATION_PREFS)
        db.session.add(row)
    for key, value in data.items():
        setattr(row, key, value)
    db.session.commit()
    logger.info("Notification prefs updated for tenant %d", tenant_id,
                extra={"tenant_id": tenant_id})
    return row.to_dict(), None


def tenant_timezone(prefs):
    """ZoneInfo for a prefs dict; UTC when the stored name is unusable."""
    try:
        return ZoneInfo(prefs.get("timezone") or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def has_preference_row(tenant_id):
    try:
        return NotificationPreference.query.filter_by(tenant_id=tenant_id).first() is not None
    except SQLAlchemyError:
        db.session.rollback()
        return False
