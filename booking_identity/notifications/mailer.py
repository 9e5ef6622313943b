"""
Email adapter for account lifecycle messages.

Sending is best effort: a missing SMTP configuration or any transport failure
is logged and reported as ``False``; nothing is raised into the caller.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Callable

from ..config import Settings

logger = logging.getLogger(__name__)

VERIFY_EMAIL = "verify_email"
PASSWORD_RESET = "password_reset"


@dataclass(frozen=True, slots=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def _verify_email(base_url: str, token: Any) -> RenderedEmail:
    link = f"{base_url}/verify-email/{token}"
    return RenderedEmail(
        subject="Verify Your Email",
        html=(
            "<h1>Welcome!</h1>"
            "<p>Please click the link below to verify your email address:</p>"
            f'<a href="{link}">Verify Email</a>'
            "<p>This link will expire in 24 hours.</p>"
        ),
        text=f"Verify your email address: {link}\nThis link will expire in 24 hours.",
    )


def _password_reset(base_url: str, token: Any) -> RenderedEmail:
    link = f"{base_url}/reset-password/{token}"
    return RenderedEmail(
        subject="Password Reset Request",
        html=(
            "<h1>Password Reset Request</h1>"
            "<p>Click the link below to reset your password:</p>"
            f'<a href="{link}">Reset Password</a>'
            "<p>This link will expire in 1 hour.</p>"
            "<p>If you didn't request this, please ignore this email.</p>"
        ),
        text=f"Reset your password: {link}\nThis link will expire in 1 hour.",
    )


TEMPLATES: dict[str, Callable[[str, Any], RenderedEmail]] = {
    VERIFY_EMAIL: _verify_email,
    PASSWORD_RESET: _password_reset,
}


class EmailSender:
    """SMTP transport configured from ``Settings``."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def configured(self) -> bool:
        s = self._settings
        return bool(s.smtp_host and s.smtp_user and s.smtp_password and s.smtp_from and s.smtp_port)

    def render(self, template_name: str, payload: Any) -> RenderedEmail:
        try:
            template = TEMPLATES[template_name]
        except KeyError:
            raise ValueError(f"unknown email template {template_name!r}") from None
        return template(self._settings.public_base_url.rstrip("/"), payload)

    def send(self, to: str, template_name: str, payload: Any) -> bool:
        """Render ``template_name`` with ``payload`` and deliver it to ``to``."""
        try:
            rendered = self.render(template_name, payload)
        except ValueError:
            logger.exception("email template %s could not be rendered", template_name)
            return False
        if not self.configured:
            logger.info("SMTP not configured; skipping %s email to %s", template_name, to)
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = rendered.subject
        msg["From"] = self._settings.smtp_from
        msg["To"] = to
        msg.attach(MIMEText(rendered.text, "plain", "utf-8"))
        msg.attach(MIMEText(rendered.html, "html", "utf-8"))
        try:
            self._deliver(to, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("failed to send %s email to %s: %s", template_name, to, exc)
            return False
        logger.info("sent %s email to %s", template_name, to)
        return True

    def _deliver(self, to: str, msg: MIMEMultipart) -> None:
        s = self._settings
        context = ssl.create_default_context()
        if s.smtp_port == 465:
            with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, context=context, timeout=10) as server:
                server.login(s.smtp_user, s.smtp_password)
                server.sendmail(s.smtp_from, [to], msg.as_string())
        else:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=10) as server:
                server.ehlo()
                server.starttls(context=context)
                server.login(s.smtp_user, s.smtp_password)
                server.sendmail(s.smtp_from, [to], msg.as_string())
