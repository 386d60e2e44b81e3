"""
Email transport over SMTP.

When MAIL_SERVER is not configured the send is reported as ``skipped``
rather than raised; SMTP failures become an ``error`` outcome.

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → skipped)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
    MAIL_TIMEOUT_SECONDS Per-send socket timeout (default: 12)
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app

from fieldops.services.delivery import DeliveryResult, failed, sent, skipped

logger = logging.getLogger(__name__)


class EmailService:
    """SMTP email transport: ``send(to, subject, html) -> DeliveryResult``."""

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def send(cls, *, to_email: str, subject: str, html_body: str) -> DeliveryResult:
        if not cls.is_configured():
            logger.info("Email skipped (no MAIL_SERVER): to=%s subject='%s'",
                        to_email, subject, extra={"channel": "email", "outcome": "skipped"})
            return skipped("MAIL_SERVER not configured")

        try:
            cls._send_smtp(to_email=to_email, subject=subject, html_body=html_body)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to_email, exc,
                         extra={"channel": "email", "outcome": "error"})
            return failed(exc)

        logger.info("Email sent: to=%s subject='%s'", to_email, subject,
                    extra={"channel": "email", "outcome": "sent"})
        return sent()

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str, html_body: str) -> None:
        """Actually send via SMTP."""
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")
        timeout = cfg.get("MAIL_TIMEOUT_SECONDS", 12)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=timeout) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)
