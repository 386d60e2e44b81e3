"""
Logging setup for the timeliness engine.

One stream handler on the root logger, chosen by environment:
    production            JSONFormatter, one object per line
    development/testing   ReadableFormatter with ANSI level colours

Job and delivery code passes context through ``extra=``; both formatters
surface it. The level comes from LOG_LEVEL (INFO in production, DEBUG
elsewhere).
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Request fields, stamped by the timing middleware
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")

# Engine fields, stamped by jobs, escalation and the dispatcher
ENGINE_FIELDS = ("tenant_id", "project_id", "task_id", "job_name", "channel", "outcome")

# Short tags used by the readable formatter
_TAGS = (("tenant_id", "t"), ("task_id", "task"), ("job_name", "job"),
         ("channel", "ch"), ("outcome", "out"))

QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "apscheduler")


def record_context(record: logging.LogRecord) -> dict:
    """Return the non-empty request/engine fields attached to a record."""
    context = {}
    for key in REQUEST_FIELDS + ENGINE_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = value
    return context


class JSONFormatter(logging.Formatter):
    """Single-line JSON entries for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
            **record_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured console lines: time, level, logger, engine tags, message."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = " ".join(
            f"{short}={getattr(record, key)}"
            for key, short in _TAGS
            if getattr(record, key, None) is not None
        )
        line = (f"{self.COLORS.get(record.levelname, '')}{stamp} {record.levelname:<8}{self.RESET} "
                f"{record.name}{f' [{tags}]' if tags else ''}: {record.getMessage()}")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _level_for(is_prod):
    name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    return name, getattr(logging, name, logging.INFO)


def configure_logging(app):
    """Install the root handler for ``app``; safe to call once per create_app()."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing
    level_name, level = _level_for(is_prod)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
