"""
Notification Blueprint — tenant preferences and delivery log.

Endpoints (X-Tenant-ID required):
    GET /api/v1/org/notifications      preferences (defaults when unset)
    PUT /api/v1/org/notifications      partial upsert
    GET /api/v1/notification-logs      delivery attempts, newest first
"""

from flask import Blueprint, jsonify, request

from fieldops.middleware.tenant_context import require_tenant, tenant_required
from fieldops.models.scheduling import CHANNELS, DELIVERY_OUTCOMES, NotificationLog
from fieldops.services.notification_prefs_service import (
    get_notification_prefs,
    update_notification_prefs,
)
from fieldops.utils.errors import E, api_error

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  PREFERENCES
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/org/notifications", methods=["GET"])
@tenant_required
def get_prefs():
    return jsonify(get_notification_prefs(require_tenant()))


@notification_bp.route("/org/notifications", methods=["PUT"])
@tenant_required
def update_prefs():
    data = request.get_json(silent=True)
    prefs, errors = update_notification_prefs(require_tenant(), data)
    if errors:
        return api_error(E.VALIDATION_RULE, "Invalid notification preferences", details=errors)
    return jsonify(prefs)


# ═══════════════════════════════════════════════════════════════════════════
#  DELIVERY LOG
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notification-logs", methods=["GET"])
@tenant_required
def list_notification_logs():
    """List delivery attempts with pagination."""
    limit = max(0, min(request.args.get("limit", 50, type=int), 500))
    offset = max(0, request.args.get("offset", 0, type=int))
    channel = request.args.get("channel")
    outcome = request.args.get("outcome")
    category = request.args.get("category")

    if channel and channel not in CHANNELS:
        return api_error(E.VALIDATION_INVALID, f"channel must be one of {sorted(CHANNELS)}")
    if outcome and outcome not in DELIVERY_OUTCOMES:
        return api_error(E.VALIDATION_INVALID, f"outcome must be one of {sorted(DELIVERY_OUTCOMES)}")

    q = NotificationLog.query.filter_by(tenant_id=require_tenant())
    if channel:
        q = q.filter_by(channel=channel)
    if outcome:
        q = q.filter_by(outcome=outcome)
    if category:
        q = q.filter_by(category=category)

    total = q.count()
    items = q.order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc()) \
        .offset(offset).limit(limit).all()

    return jsonify({
        "items": [e.to_dict() for e in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    })
