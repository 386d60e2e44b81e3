"""
Delivery outcome shared by the email and SMS transports.

Every send call resolves to exactly one outcome:
    sent     the transport accepted the message
    skipped  the transport is not configured
    error    the transport call failed (never raised to the caller)
"""

from __future__ import annotations

from dataclasses import dataclass

SENT = "sent"
SKIPPED = "skipped"
ERROR = "error"


@dataclass(frozen=True)
class DeliveryResult:
    outcome: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == SENT


def sent() -> DeliveryResult:
    return DeliveryResult(SENT)


def skipped(reason: str) -> DeliveryResult:
    return DeliveryResult(SKIPPED, reason)


def failed(error) -> DeliveryResult:
    return DeliveryResult(ERROR, str(error)[:1000])
