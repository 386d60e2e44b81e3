"""
Field Operations Console — Timeliness Engine
Flask Application Factory.

Usage:
    from fieldops import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import importlib
import json
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from fieldops.config import config
from fieldops.middleware.logging_config import configure_logging
from fieldops.middleware.rate_limiter import init_rate_limits
from fieldops.middleware.tenant_context import init_tenant_context
from fieldops.middleware.timing import init_request_timing
from fieldops.models import db
from fieldops.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    config_cls = config[config_name]
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request middleware ───────────────────────────────────────────────
    init_request_timing(app)
    init_tenant_context(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from fieldops.models import tenant as _tenant_models             # noqa: F401
    from fieldops.models import project as _project_models           # noqa: F401
    from fieldops.models import timeliness as _timeliness_models     # noqa: F401
    from fieldops.models import feature_flag as _feature_flag_models  # noqa: F401
    from fieldops.models import scheduling as _scheduling_models     # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name == "development":
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from fieldops.blueprints.feature_flag_bp import feature_flag_bp
    from fieldops.blueprints.health_bp import health_bp
    from fieldops.blueprints.jobs_bp import jobs_bp
    from fieldops.blueprints.notification_bp import notification_bp
    from fieldops.blueprints.timeliness_bp import timeliness_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(jobs_bp)
    app.register_blueprint(feature_flag_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(timeliness_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    register_error_handlers(app)

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    importlib.import_module("fieldops.services.scheduled_jobs")  # registers @register_job handlers
    from fieldops.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run one scheduled job now and print its summary."""
        SchedulerService.ensure_jobs_registered()
        result = SchedulerService.run_job(job_name)
        click.echo(json.dumps(result, indent=2, default=str))
        if result.get("status") != "success":
            raise SystemExit(1)

    return app
