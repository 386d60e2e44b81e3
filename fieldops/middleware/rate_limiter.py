"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in fieldops/__init__.py with no default limits; this
module applies granular limits per route category.

Usage:
    from fieldops.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)


def tenant_rate_limit_key():
    """Dynamic rate limit key: tenant_id if available, else remote IP."""
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id:
        return f"tenant:{tenant_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Manual job triggers:  10/minute  (each run sends real notifications)
        - Admin / org writes:   60/minute  (keyed by tenant when present)
        - Reporting reads:      200/minute
        - Health check:         exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("jobs")
    if bp:
        limiter.limit("10/minute")(bp)

    for bp_name in ("feature_flag", "notification"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("60/minute", key_func=tenant_rate_limit_key)(bp)

    bp = app.blueprints.get("timeliness")
    if bp:
        limiter.limit("200/minute", key_func=tenant_rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: jobs 10/min, admin 60/min, timeliness 200/min")
