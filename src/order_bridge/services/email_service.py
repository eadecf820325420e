"""Email service — sends report digests via async SMTP."""

from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib

from order_bridge.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Sends plain-text copies of the admin digests to ``REPORT_EMAIL_TO``."""

    @property
    def configured(self) -> bool:
        return bool(settings.smtp_host and settings.report_email_to)

    async def send_digest(self, subject: str, body: str) -> bool:
        """Send one digest; returns ``False`` when SMTP is not configured or fails.

        Parameters
        ----------
        subject:
            Mail subject, usually the digest title.
        body:
            The digest text as sent to the admins.
        """
        if not self.configured:
            logger.debug("SMTP not configured — digest %r not mailed", subject)
            return False

        msg = EmailMessage()
        msg["Subject"] = f"{subject} — {settings.app_name}"
        msg["From"] = settings.email_from
        msg["To"] = settings.report_email_to
        msg.set_content(body)

        logger.info("Sending digest %r to %s", subject, settings.report_email_to)
        try:
            await aiosmtplib.send(
                msg,
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username or None,
                password=settings.smtp_password or None,
                start_tls=True,
            )
        except aiosmtplib.SMTPException:
            logger.exception("Digest %r could not be mailed", subject)
            return False
        logger.info("Digest %r mailed", subject)
        return True
