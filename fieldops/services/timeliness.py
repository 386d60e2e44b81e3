"""
Timeliness grading.

Two independent graders over the same inputs (due time, optional submission
time, window parameters, "now"):

    compute_status   → ON_TIME | AT_RISK | OVERDUE   (binary warn window)
    score_by_sla     → GREEN | AMBER | RED           (SLA thresholds)

Both are pure: pass ``now`` explicitly for deterministic results; it
defaults to the current UTC instant. They share the lateness primitive
below and are deliberately not merged behind a mode flag, because call
sites depend on their distinct vocabularies.

Usage:
    from fieldops.services.timeliness import compute_status, score_by_sla
    compute_status(task.due_at, task.submitted_at, warn_minutes=60, now=now)
    score_by_sla(task.due_at, task.submitted_at, SLARules(60, 120), now=now)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from fieldops.utils.helpers import as_utc, utcnow


# ── Grade vocabularies ──────────────────────────────────────────────────────

ON_TIME = "ON_TIME"
AT_RISK = "AT_RISK"
OVERDUE = "OVERDUE"
TIMELINESS_STATUSES = (ON_TIME, AT_RISK, OVERDUE)

GREEN = "GREEN"
AMBER = "AMBER"
RED = "RED"
SLA_SCORES = (GREEN, AMBER, RED)

# Worst-first ordering used when rolling grades up per project
SLA_SEVERITY = {GREEN: 0, AMBER: 1, RED: 2}


@dataclass(frozen=True)
class SLARules:
    """Tri-state thresholds.

    at_risk_minutes: warn window before due (used as the binary grader's
        window on SLA-aware views).
    red_minutes: overdue/late minutes at which AMBER turns RED.
    """
    at_risk_minutes: int = 60
    red_minutes: int = 120

    def to_dict(self):
        return {"at_risk_minutes": self.at_risk_minutes, "red_minutes": self.red_minutes}


DEFAULT_SLA_RULES = SLARules(at_risk_minutes=60, red_minutes=120)


# ── Shared primitive ────────────────────────────────────────────────────────

def lateness(due_at: datetime, instant: datetime) -> timedelta:
    """How far ``instant`` lies past ``due_at`` (negative when before)."""
    return as_utc(instant) - as_utc(due_at)


def minutes_late(due_at: datetime, instant: datetime) -> int:
    """Whole minutes ``instant`` lies past ``due_at`` (floored)."""
    return math.floor(lateness(due_at, instant).total_seconds() / 60)


# ── Graders ─────────────────────────────────────────────────────────────────

def compute_status(
    due_at: datetime,
    submitted_at: datetime | None = None,
    warn_minutes: int = 60,
    now: datetime | None = None,
) -> str:
    """Binary-window grade.

    Submitted on/before due → ON_TIME; submitted after due → OVERDUE (a late
    submission never grades AT_RISK). Unsubmitted: past due → OVERDUE,
    inside the warn window → AT_RISK, otherwise ON_TIME.
    """
    if submitted_at is not None:
        return ON_TIME if lateness(due_at, submitted_at) <= timedelta(0) else OVERDUE

    now = as_utc(now) if now is not None else utcnow()
    due = as_utc(due_at)
    if now > due:
        return OVERDUE
    if now > due - timedelta(minutes=warn_minutes):
        return AT_RISK
    return ON_TIME


def score_by_sla(
    due_at: datetime,
    submitted_at: datetime | None = None,
    rules: SLARules = DEFAULT_SLA_RULES,
    now: datetime | None = None,
) -> str:
    """Tri-state SLA grade.

    Submitted on/before due → GREEN. Unsubmitted and not yet due → GREEN.
    Otherwise the minutes overdue (or minutes late at submission) decide:
    below ``red_minutes`` → AMBER, at or above → RED.
    """
    if submitted_at is not None:
        if lateness(due_at, submitted_at) <= timedelta(0):
            return GREEN
        return RED if minutes_late(due_at, submitted_at) >= rules.red_minutes else AMBER

    now = as_utc(now) if now is not None else utcnow()
    if now <= as_utc(due_at):
        return GREEN
    return RED if minutes_late(due_at, now) >= rules.red_minutes else AMBER


def worst_score(scores) -> str:
    """Return the most severe tri-state grade in ``scores`` (GREEN if empty)."""
    worst = GREEN
    for score in scores:
        if SLA_SEVERITY[score] > SLA_SEVERITY[worst]:
            worst = score
    return worst
