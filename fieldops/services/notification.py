"""
Notification dispatcher — best-effort email/SMS fan-out.

Each recipient is attempted independently and its outcome (sent, skipped,
error) is counted, logged and written to NotificationLog. Nothing raised by
a transport or by the audit write escapes ``NotificationDispatcher``; callers
read the ``DispatchReport`` and carry on. There is no retry and no queue.

Usage:
    dispatcher = NotificationDispatcher(tenant_id=1, category="escalation")
    dispatcher.send_email(["pm@example.com"], subject, html, task_id=42)
    dispatcher.send_sms(["+15550100"], "Late task ...", task_id=42)
    dispatcher.report.to_dict()   # {"sent": 2, "skipped": 0, "error": 0}
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from fieldops.integrations.twilio_gateway import SMSService
from fieldops.models import db
from fieldops.models.scheduling import NotificationLog
from fieldops.services.delivery import ERROR, SENT, SKIPPED, DeliveryResult, failed
from fieldops.services.email_service import EmailService

logger = logging.getLogger(__name__)


class DispatchReport:
    """Per-outcome delivery counters, mergeable across dispatchers."""

    def __init__(self):
        self.counts = {SENT: 0, SKIPPED: 0, ERROR: 0}

    def add(self, outcome: str) -> None:
        self.counts[outcome] = self.counts.get(outcome, 0) + 1

    def merge(self, other: "DispatchReport") -> "DispatchReport":
        for outcome, n in other.counts.items():
            self.counts[outcome] = self.counts.get(outcome, 0) + n
        return self

    @property
    def attempted(self) -> int:
        return sum(self.counts.values())

    def to_dict(self) -> dict:
        return dict(self.counts)


def unique_recipients(values) -> list[str]:
    """Drop blanks and case-insensitive duplicates, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if not value:
            continue
        value = value.strip()
        key = value.lower()
        if value and key not in seen:
            seen.add(key)
            result.append(value)
    return result


class NotificationDispatcher:
    """Fan a message out to recipients over one channel at a time."""

    def __init__(self, tenant_id=None, category="system",
                 email_transport=EmailService, sms_transport=SMSService):
        self.tenant_id = tenant_id
        self.category = category
        self.email_transport = email_transport
        self.sms_transport = sms_transport
        self.report = DispatchReport()

    def send_email(self, recipients, subject, html_body, task_id=None) -> DispatchReport:
        batch = DispatchReport()
        for to in unique_recipients(recipients):
            try:
                result = self.email_transport.send(to_email=to, subject=subject, html_body=html_body)
            except Exception as exc:  # transport contract breach; still an outcome
                logger.exception("Email transport raised for %s", to,
                                 extra={"tenant_id": self.tenant_id, "task_id": task_id,
                                        "channel": "email"})
                result = failed(exc)
            self._record("email", to, subject, result, task_id)
            batch.add(result.outcome)
        self.report.merge(batch)
        return batch

    def send_sms(self, recipients, message, task_id=None) -> DispatchReport:
        batch = DispatchReport()
        for to in unique_recipients(recipients):
            try:
                result = self.sms_transport.send(to=to, message=message)
            except Exception as exc:  # transport contract breach; still an outcome
                logger.exception("SMS transport raised for %s", to,
                                 extra={"tenant_id": self.tenant_id, "task_id": task_id,
                                        "channel": "sms"})
                result = failed(exc)
            self._record("sms", to, message[:500], result, task_id)
            batch.add(result.outcome)
        self.report.merge(batch)
        return batch

    def _record(self, channel, recipient, subject, result: DeliveryResult, task_id):
        extra = {"tenant_id": self.tenant_id, "task_id": task_id,
                 "channel": channel, "outcome": result.outcome}
        if result.ok:
            logger.debug("Delivered %s → %s", channel, recipient, extra=extra)
        elif result.outcome == ERROR:
            logger.warning("Delivery error: %s → %s (%s)", channel, recipient, result.error, extra=extra)
        else:
            logger.info("Delivery skipped: %s → %s (%s)", channel, recipient, result.error, extra=extra)
        try:
            db.session.add(NotificationLog(
                tenant_id=self.tenant_id,
                task_id=task_id,
                channel=channel,
                recipient=recipient,
                subject=subject,
                category=self.category,
                outcome=result.outcome,
                error_message=result.error,
            ))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Could not write notification log", extra=extra)
