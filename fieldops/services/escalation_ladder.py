"""
Escalation ladders — per project category.

A ladder is an ordered list of (role, hour_threshold) steps, ascending in
hour_threshold, plus ``default_hours``: the overdue age at which the first
escalation fires and the minimum interval between repeats.

Built-in ladders can be replaced or extended with the ESCALATION_LADDERS
config value (JSON):

    {"construction": {"default_hours": 3,
                      "steps": [{"role": "foreman", "hours": 1},
                                {"role": "site_manager", "hours": 6}]}}

Category lookup is case-insensitive; unknown categories get the default
ladder.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from functools import lru_cache

from flask import current_app, has_app_context

DEFAULT_LADDER_KEY = "default"


@dataclass(frozen=True)
class EscalationStep:
    role: str
    hour_threshold: float

    def to_dict(self):
        return {"role": self.role, "hours": self.hour_threshold}


@dataclass(frozen=True)
class EscalationLadder:
    category: str
    steps: tuple
    default_hours: float

    def __post_init__(self):
        thresholds = [s.hour_threshold for s in self.steps]
        if thresholds != sorted(thresholds):
            raise ValueError(f"Ladder '{self.category}' steps must ascend by hour threshold")
        if self.default_hours <= 0:
            raise ValueError(f"Ladder '{self.category}' default_hours must be positive")

    def select_level(self, hours_overdue: float) -> EscalationStep | None:
        """Highest step whose threshold has been reached, or None."""
        level = None
        for step in self.steps:
            if step.hour_threshold <= hours_overdue:
                level = step
            else:
                break
        return level

    def with_default_hours(self, hours: float) -> "EscalationLadder":
        return replace(self, default_hours=float(hours))

    def to_dict(self):
        return {
            "category": self.category,
            "default_hours": self.default_hours,
            "steps": [s.to_dict() for s in self.steps],
        }


def _ladder(category, default_hours, *steps):
    return EscalationLadder(
        category=category,
        steps=tuple(EscalationStep(role, float(hours)) for role, hours in steps),
        default_hours=float(default_hours),
    )


BUILTIN_LADDERS = {
    "demolition": _ladder(
        "demolition", 2,
        ("safety_supervisor", 1),
        ("demolition_manager", 2),
        ("site_manager", 4),
        ("project_owner", 12),
    ),
    DEFAULT_LADDER_KEY: _ladder(
        DEFAULT_LADDER_KEY, 4,
        ("supervisor", 1),
        ("project_manager", 4),
        ("project_owner", 24),
    ),
}


def parse_ladders(raw: str | None) -> dict:
    """Parse an ESCALATION_LADDERS JSON document over the built-ins.

    Raises ValueError on malformed input.
    """
    ladders = dict(BUILTIN_LADDERS)
    if not raw:
        return ladders
    try:
        doc = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"ESCALATION_LADDERS is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise ValueError("ESCALATION_LADDERS must be a JSON object keyed by category")

    for category, entry in doc.items():
        key = str(category).strip().lower()
        try:
            steps = sorted(
                (EscalationStep(str(s["role"]), float(s["hours"])) for s in entry.get("steps", [])),
                key=lambda s: s.hour_threshold,
            )
            ladders[key] = EscalationLadder(
                category=key, steps=tuple(steps), default_hours=float(entry["default_hours"]),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ValueError(f"ESCALATION_LADDERS entry '{category}' is malformed: {exc}") from exc
    return ladders


@lru_cache(maxsize=8)
def _configured_ladders(raw: str | None) -> dict:
    return parse_ladders(raw)


def get_ladders() -> dict:
    raw = current_app.config.get("ESCALATION_LADDERS") if has_app_context() else None
    return _configured_ladders(raw)


def get_ladder(category: str | None, ladders: dict | None = None) -> EscalationLadder:
    """Ladder for a project category (case-insensitive; default if unknown)."""
    ladders = ladders if ladders is not None else get_ladders()
    key = (category or "").strip().lower()
    return ladders.get(key) or ladders[DEFAULT_LADDER_KEY]


def is_default_ladder(ladder: EscalationLadder) -> bool:
    return ladder.category == DEFAULT_LADDER_KEY
