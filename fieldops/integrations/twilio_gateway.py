"""
SMS transport over the Twilio REST API.

One POST per message to ``/2010-04-01/Accounts/{sid}/Messages.json`` with
HTTP basic auth. There is no retry: a timeout or non-2xx response becomes
an ``error`` outcome, and a missing TWILIO_* setting a ``skipped`` one.

Configuration (env vars):
    TWILIO_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM
    SMS_TIMEOUT_SECONDS  per-call timeout (default: 12)
"""

from __future__ import annotations

import logging

import requests
from flask import current_app

from fieldops.services.delivery import DeliveryResult, failed, sent, skipped

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class SMSService:
    """Twilio SMS transport: ``send(to, message) -> DeliveryResult``."""

    session: requests.Session | None = None

    @staticmethod
    def is_configured() -> bool:
        cfg = current_app.config
        return bool(cfg.get("TWILIO_SID") and cfg.get("TWILIO_AUTH_TOKEN") and cfg.get("TWILIO_FROM"))

    @classmethod
    def _session(cls) -> requests.Session:
        if cls.session is None:
            cls.session = requests.Session()
        return cls.session

    @classmethod
    def send(cls, *, to: str, message: str) -> DeliveryResult:
        if not cls.is_configured():
            logger.info("SMS skipped (Twilio not configured): to=%s", to,
                        extra={"channel": "sms", "outcome": "skipped"})
            return skipped("Twilio not configured")

        cfg = current_app.config
        sid = cfg["TWILIO_SID"]
        url = f"{TWILIO_API_BASE}/Accounts/{sid}/Messages.json"
        timeout = cfg.get("SMS_TIMEOUT_SECONDS", 12)

        try:
            resp = cls._session().post(
                url,
                data={"From": cfg["TWILIO_FROM"], "To": to, "Body": message},
                auth=(sid, cfg["TWILIO_AUTH_TOKEN"]),
                timeout=timeout,
            )
            resp.raise_for_status()
        except requests.Timeout:
            logger.error("SMS timed out after %ss: to=%s", timeout, to,
                         extra={"channel": "sms", "outcome": "error"})
            return failed(f"Request timed out after {timeout}s")
        except requests.RequestException as exc:
            logger.error("SMS failed: to=%s error=%s", to, exc,
                         extra={"channel": "sms", "outcome": "error"})
            return failed(exc)

        logger.info("SMS sent: to=%s", to, extra={"channel": "sms", "outcome": "sent"})
        return sent()
