"""
Scheduler Service — periodic job registry and runner.

Jobs register themselves with ``@register_job(name, schedule=...)``; each
gets a persisted ScheduledJob row holding its cron fields, enabled flag and
run history. When SCHEDULER_ENABLED is set, an APScheduler
BackgroundScheduler fires every enabled job on its cron schedule
(``max_instances=1``, ``coalesce=True``). Jobs can always be triggered
manually through ``run_job`` (admin API), which is also how tests drive them.

Architecture:
    - register_job: decorator filling the in-process registry
    - SchedulerService.run_job: executes inside app context, records the run
    - SchedulerService.start / shutdown: APScheduler lifecycle
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask

from fieldops.models import db
from fieldops.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)

# Cron fields accepted from schedule_config
CRON_FIELDS = ("year", "month", "day", "week", "day_of_week", "hour", "minute", "second")


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}
_default_schedules: dict[str, dict] = {}


def register_job(name: str, schedule: dict | None = None):
    """Decorator to register a job function.

    Usage:
        @register_job("escalation_check", schedule={"minute": "*/30"})
        def escalation_check(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        _default_schedules[name] = dict(schedule or {"hour": "0", "minute": "0"})
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


def cron_kwargs(schedule_config: dict | None) -> dict:
    """Keep only APScheduler cron trigger fields from a schedule_config."""
    return {k: v for k, v in (schedule_config or {}).items() if k in CRON_FIELDS}


class SchedulerService:
    """
    Scheduler service.

    Manages job registration, persistence, and execution.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _scheduler: BackgroundScheduler | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Bind to the app; start the background scheduler when enabled."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))
        if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
            cls.ensure_jobs_registered()
            cls.start()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with their default schedule.
        """
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip(),
                        schedule_type="cron",
                        schedule_config=dict(_default_schedules.get(name, {})),
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    # ── Execution ────────────────────────────────────────────────────────

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            with cls._app.app_context():
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if job_record:
                    job_record.record_run(
                        status=status,
                        duration_ms=duration_ms,
                        result=result if isinstance(result, dict) else {"output": str(result)},
                        error=error,
                    )
                    db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name,
                             extra={"job_name": job_name})

        logger.info("Job %s finished: %s in %dms", job_name, status, duration_ms,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def _scheduled_run(cls, job_name: str) -> None:
        """APScheduler entry point: skip jobs paused since the trigger was added."""
        with cls._app.app_context():
            record = ScheduledJob.query.filter_by(job_name=job_name).first()
            enabled = record is None or record.is_enabled
            db.session.remove()
        if enabled:
            cls.run_job(job_name)

    # ── Background scheduler lifecycle ───────────────────────────────────

    @classmethod
    def start(cls) -> None:
        """Start APScheduler with one cron trigger per enabled job."""
        if cls._scheduler is not None:
            logger.info("APScheduler already running, skipping start")
            return
        if not cls._app:
            raise RuntimeError("SchedulerService.init_app must be called first")

        scheduler = BackgroundScheduler(timezone=cls._app.config.get("SCHEDULER_TIMEZONE", "UTC"))
        with cls._app.app_context():
            for name in _job_registry:
                record = ScheduledJob.query.filter_by(job_name=name).first()
                config = record.schedule_config if record else _default_schedules.get(name)
                scheduler.add_job(
                    cls._scheduled_run,
                    trigger="cron",
                    args=[name],
                    id=name,
                    replace_existing=True,
                    max_instances=1,
                    coalesce=True,
                    **cron_kwargs(config),
                )
                if record is not None and not record.is_enabled:
                    scheduler.pause_job(name)
        scheduler.start()
        cls._scheduler = scheduler
        logger.info("APScheduler started with jobs: %s", ", ".join(_job_registry))

    @classmethod
    def shutdown(cls) -> None:
        if cls._scheduler is not None:
            cls._scheduler.shutdown(wait=False)
            cls._scheduler = None
            logger.info("APScheduler stopped")

    @classmethod
    def is_running(cls) -> bool:
        return cls._scheduler is not None

    @classmethod
    def _next_run(cls, job_name: str) -> str | None:
        if cls._scheduler is None:
            return None
        job = cls._scheduler.get_job(job_name)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()

    # ── Registry views ───────────────────────────────────────────────────

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "default_schedule": _default_schedules.get(name),
                "next_run_at": cls._next_run(name),
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        """Get status of a specific job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record:
            return {**job_record.to_dict(), "next_run_at": cls._next_run(job_name)}
        return None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if not job_record:
            return None
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        if cls._scheduler is not None and cls._scheduler.get_job(job_name) is not None:
            if enabled:
                cls._scheduler.resume_job(job_name)
            else:
                cls._scheduler.pause_job(job_name)
        logger.info("Job %s %s", job_name, "enabled" if enabled else "paused",
                    extra={"job_name": job_name})
        return job_record.to_dict()
