"""
Tenant context middleware.

Tenant-scoped routes (``/api/v1/org/...``, ``/api/v1/projects/...``,
``/api/v1/tasks/...``, ``/api/v1/timeliness/...``) act on behalf of one
tenant, identified by the ``X-Tenant-ID`` header. This middleware resolves
the header into ``g.tenant_id`` / ``g.tenant``; views that need a tenant
call ``require_tenant()``.

Identity and role checks are out of scope here: the caller is assumed to
be authorized for the tenant it names.
"""

import logging
from functools import wraps

from flask import g, jsonify, request

from fieldops.models import db
from fieldops.models.tenant import Tenant
from fieldops.utils.errors import E, api_error

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-ID"

# Paths that never carry tenant context
TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/admin/",
    "/static/",
)


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.tenant_id = None

        if not request.path.startswith("/api/v1/"):
            return None

        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        raw = request.headers.get(TENANT_HEADER)
        if not raw:
            return None  # views decide whether a tenant is mandatory

        try:
            tenant_id = int(raw)
        except ValueError:
            return jsonify({"error": f"{TENANT_HEADER} must be an integer",
                            "code": "ERR_TENANT_REQUIRED"}), 400

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None:
            logger.warning("Unknown tenant in header: %s", tenant_id)
            return jsonify({"error": "Tenant not found", "code": "ERR_NOT_FOUND"}), 404

        if not tenant.is_active:
            logger.warning("Inactive tenant %d blocked", tenant_id,
                           extra={"tenant_id": tenant_id})
            return jsonify({"error": "Tenant account is inactive"}), 403

        g.tenant = tenant
        g.tenant_id = tenant.id
        return None


def require_tenant():
    """Return the current tenant id, or None when the request carries none."""
    return getattr(g, "tenant_id", None)


def tenant_required(fn):
    """View decorator: answer 400 unless the request names a tenant."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if require_tenant() is None:
            return api_error(E.TENANT_REQUIRED, f"{TENANT_HEADER} header is required")
        return fn(*args, **kwargs)
    return wrapper
