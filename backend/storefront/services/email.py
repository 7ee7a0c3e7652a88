"""Transactional email over SMTP.

smtplib is blocking, so delivery runs in a worker thread. Without an SMTP host
configured (development) messages are logged instead of sent.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from storefront.config import Settings, settings as default_settings
from storefront.core.errors import AppError

logger = logging.getLogger(__name__)


def redact_email(email: str) -> str:
    """Redact an email address for logging."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailDeliveryError(AppError):
    operational = False


class EmailSender:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.smtp_host and (self.settings.mail_from or self.settings.smtp_user))

    @property
    def from_address(self) -> str:
        return self.settings.mail_from or self.settings.smtp_user

    def _build_message(self, to_email: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.settings.mail_from_name} <{self.from_address}>"
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))
        return msg

    def _deliver(self, to_email: str, subject: str, html_body: str) -> None:
        s = self.settings
        msg = self._build_message(to_email, subject, html_body)
        context = ssl.create_default_context()
        if s.smtp_use_tls:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30) as server:
                server.starttls(context=context)
                if s.smtp_user and s.smtp_password:
                    server.login(s.smtp_user, s.smtp_password)
                server.sendmail(self.from_address, to_email, msg.as_string())
        else:
            with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, context=context, timeout=30) as server:
                if s.smtp_user and s.smtp_password:
                    server.login(s.smtp_user, s.smtp_password)
                server.sendmail(self.from_address, to_email, msg.as_string())

    async def send(self, to_email: str, subject: str, html_body: str) -> None:
        if not self.is_configured:
            logger.info("Email (dev mode) to=%s subject=%s", redact_email(to_email), subject)
            logger.debug("Email body: %s", html_body)
            return
        try:
            await asyncio.to_thread(self._deliver, to_email, subject, html_body)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email to %s failed: %s", redact_email(to_email), e)
            raise EmailDeliveryError("Could not send email") from e
        logger.info("Email sent to=%s subject=%s", redact_email(to_email), subject)

    async def send_verification(self, to_email: str, link: str) -> None:
        await self.send(
            to_email,
            "Verify Your Email",
            f"""
            <h2>Verify Email</h2>
            <p>Please click this link to verify your email:</p>
            <a href="{link}">{link}</a>
            """,
        )

    async def send_password_reset(self, to_email: str, code: str) -> None:
        await self.send(
            to_email,
            "Password Reset Request",
            f"""
            <h2>Password Reset</h2>
            <p>You requested to reset your password.</p>
            <p>Please return to the app and enter this code:</p>
            <h3>{code}</h3>
            <p>This code will expire in 1 hour.</p>
            <p>If you didn't request this, please ignore this email.</p>
            """,
        )

    async def send_second_factor_code(self, to_email: str, code: str) -> None:
        await self.send(
            to_email,
            "Two-Factor Authentication Code",
            f"""
            <h2>Two-Factor Authentication</h2>
            <p>You requested to verify your identity.</p>
            <p>Please return to the app and enter this code:</p>
            <h3>{code}</h3>
            <p>This code will expire in 10 minutes.</p>
            <p>If you didn't request this, please ignore this email.</p>
            """,
        )


def get_email_sender() -> EmailSender:
    return EmailSender()
