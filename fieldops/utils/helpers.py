"""Shared utility functions for blueprints and services.

as_utc:              normalise naive (SQLite) datetimes to UTC-aware
parse_datetime:      ISO-8601 instant parsing for request payloads
"""
from datetime import datetime, timezone


def as_utc(dt):
    """Normalise a datetime to UTC-aware regardless of input tz-awareness.

    SQLite returns naive datetimes; every stored instant is UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow():
    return datetime.now(timezone.utc)


def parse_datetime(value):
    """Parse an ISO-8601 instant to a UTC-aware datetime.

    Returns None for empty input; raises ValueError on malformed input so the
    blueprint can answer 400. A trailing ``Z`` is accepted; naive values are
    taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"Invalid datetime: {value!r}. Use ISO-8601.") from exc

