"""
Feature Flag Blueprint — global and tenant feature overrides.

Global layer (platform admin):
    GET /api/v1/admin/features     env defaults, raw overrides, resolved set
    PUT /api/v1/admin/features     {"ESCALATIONS": true, "SLA": null, ...}

Tenant layer (X-Tenant-ID):
    GET /api/v1/org/features       raw tri-state overrides + resolved set
    PUT /api/v1/org/features       partial; true/false set, null inherits
"""

from flask import Blueprint, jsonify, request

from fieldops.middleware.tenant_context import require_tenant, tenant_required
from fieldops.services import feature_flag_service as svc
from fieldops.utils.errors import E, api_error

feature_flag_bp = Blueprint("feature_flag", __name__)


# ═══════════════════════════════════════════════════════════════
# Global overrides
# ═══════════════════════════════════════════════════════════════

@feature_flag_bp.route("/api/v1/admin/features", methods=["GET"])
def get_global_features():
    return jsonify(svc.get_global_features()), 200


@feature_flag_bp.route("/api/v1/admin/features", methods=["PUT"])
def update_global_features():
    """Set or clear global overrides, one key at a time."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return api_error(E.VALIDATION_REQUIRED, "Provide at least one feature key")

    errors = {}
    for key, value in data.items():
        _, err = svc.set_global_feature(key, value)
        if err:
            errors[key] = err
    if errors:
        return api_error(E.VALIDATION_RULE, "Some feature keys were rejected", details=errors)
    return jsonify(svc.get_global_features()), 200


# ═══════════════════════════════════════════════════════════════
# Tenant overrides
# ═══════════════════════════════════════════════════════════════

@feature_flag_bp.route("/api/v1/org/features", methods=["GET"])
@tenant_required
def get_tenant_features():
    return jsonify(svc.get_tenant_overrides(require_tenant())), 200


@feature_flag_bp.route("/api/v1/org/features", methods=["PUT"])
@tenant_required
def update_tenant_features():
    data = request.get_json(silent=True)
    result, errors = svc.update_tenant_overrides(require_tenant(), data)
    if errors:
        return api_error(E.VALIDATION_RULE, "Invalid feature overrides", details=errors)
    return jsonify(result), 200
