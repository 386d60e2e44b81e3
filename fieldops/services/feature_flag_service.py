"""
Feature Flag Service — layered feature resolution.

Resolves one effective boolean per feature key by layering, low to high
precedence:

    1. environment defaults   (config FEATURE_DEFAULTS, from FEATURE_* vars)
    2. global overrides       (GlobalFeatureOverride rows; absent = unset)
    3. tenant overrides       (TenantFeatureOverride columns; NULL = unset)

Resolution is a per-key coalesce, so a tenant can override one feature and
inherit the rest. Nothing is cached between calls: every job invocation
re-resolves against live configuration.

A read failure on either override layer degrades to the layer below
(fail open to defaults) and is logged at WARNING.
"""

import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from fieldops.config import FEATURE_KEYS
from fieldops.models import db
from fieldops.models.feature_flag import GlobalFeatureOverride, TenantFeatureOverride

logger = logging.getLogger(__name__)


# ── Layers ───────────────────────────────────────────────────────────────


def env_defaults():
    """Return the environment layer as {key: bool} for every feature key."""
    configured = current_app.config.get("FEATURE_DEFAULTS") or {}
    return {key: bool(configured.get(key, False)) for key in FEATURE_KEYS}


def _global_layer():
    """Return {key: bool} for keys with a global override row."""
    rows = GlobalFeatureOverride.query.filter(
        GlobalFeatureOverride.key.in_(FEATURE_KEYS)
    ).all()
    return {row.key: row.value for row in rows}


def _tenant_layer(tenant_id):
    """Return {key: bool|None} for the tenant's override row (all None if absent)."""
    row = TenantFeatureOverride.query.filter_by(tenant_id=tenant_id).first()
    if row is None:
        return {key: None for key in FEATURE_KEYS}
    return {key: row.get_override(key) for key in FEATURE_KEYS}


def _coalesce(*layers):
    """Per-key coalesce, highest-precedence layer last."""
    resolved = {}
    for key in FEATURE_KEYS:
        value = None
        for layer in layers:
            if layer.get(key) is not None:
                value = layer[key]
        resolved[key] = bool(value)
    return resolved


# ── Resolution ───────────────────────────────────────────────────────────


def resolve_global_features():
    """Return env defaults overlaid with the global override layer."""
    defaults = env_defaults()
    try:
        global_layer = _global_layer()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Global feature read failed, using env defaults: %s", exc)
        global_layer = {}
    return _coalesce(defaults, global_layer)


def resolve_tenant_features(tenant_id):
    """Return the effective {key: bool} feature set for a tenant."""
    defaults = env_defaults()
    try:
        global_layer = _global_layer()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Global feature read failed, using env defaults: %s", exc,
                       extra={"tenant_id": tenant_id})
        global_layer = {}
    try:
        tenant_layer = _tenant_layer(tenant_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("Tenant feature read failed, inheriting lower layers: %s", exc,
                       extra={"tenant_id": tenant_id})
        tenant_layer = {}
    return _coalesce(defaults, global_layer, tenant_layer)


def is_enabled(feature_key, tenant_id):
    """Check if a feature is enabled for a specific tenant."""
    return resolve_tenant_features(tenant_id).get(feature_key, False)


# ── Global override CRUD ─────────────────────────────────────────────────


def get_global_features():
    """Return env defaults, raw global overrides and the resolved global set."""
    overrides = {key: None for key in FEATURE_KEYS}
    overrides.update(_global_layer())
    return {
        "env_defaults": env_defaults(),
        "overrides": overrides,
        "resolved": resolve_global_features(),
    }


def set_global_feature(key, value):
    """Set (True/False) or clear (None) the global override for a key."""
    if key not in FEATURE_KEYS:
        return None, f"Unknown feature key: {key}"
    if value is not None and not isinstance(value, bool):
        return None, f"{key} must be true, false or null"

    row = GlobalFeatureOverride.query.filter_by(key=key).first()
    if value is None:
        if row is not None:
            db.session.delete(row)
    elif row is None:
        row = GlobalFeatureOverride(key=key, value=value)
        db.session.add(row)
    else:
        row.value = value
    db.session.commit()
    logger.info("Global feature %s → %s", key, value)
    return get_global_features(), None


# ── Tenant override CRUD ────────────────────────────────────────────────


def get_tenant_overrides(tenant_id):
    """Return the raw tri-state overrides and the resolved features for a tenant."""
    return {
        "tenant_id": tenant_id,
        "overrides": _tenant_layer(tenant_id),
        "resolved": resolve_tenant_features(tenant_id),
    }


def update_tenant_overrides(tenant_id, data):
    """Partially update a tenant's tri-state overrides.

    ``data`` maps feature keys to True, False or None (None = inherit).
    Keys absent from ``data`` are left untouched. Returns (result, errors).
    """
    if not isinstance(data, dict) or not data:
        return None, {"_body": "Provide at least one feature key"}

    errors = {}
    for key, value in data.items():
        if key not in FEATURE_KEYS:
            errors[key] = "unknown feature key"
        elif value is not None and not isinstance(value, bool):
            errors[key] = "must be true, false or null"
    if errors:
        return None, errors

    row = TenantFeatureOverride.query.filter_by(tenant_id=tenant_id).first()
    if row is None:
        row = TenantFeatureOverride(tenant_id=tenant_id)
        db.session.add(row)
    for key, value in data.items():
        row.set_override(key, value)
    db.session.commit()
    logger.info("Tenant %d feature overrides updated: %s", tenant_id, data,
                extra={"tenant_id": tenant_id})
    return get_tenant_overrides(tenant_id), None
