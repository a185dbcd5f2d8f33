"""Password-reset email delivery through Resend, SMTP or the log."""

from __future__ import annotations

import asyncio
import logging
from email.message import EmailMessage

import aiosmtplib
import requests

from filemytax.core.config import EmailConfig
from filemytax.core.logging import mask_email

from .base import Notifier, ResetEmail

LOGGER = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

# Well-known SMTP_SERVICE names and their submission endpoints.
SMTP_SERVICES: dict[str, tuple[str, int]] = {
    "gmail": ("smtp.gmail.com", 465),
    "outlook": ("smtp-mail.outlook.com", 587),
    "hotmail": ("smtp-mail.outlook.com", 587),
    "office365": ("smtp.office365.com", 587),
    "yahoo": ("smtp.mail.yahoo.com", 465),
    "icloud": ("smtp.mail.me.com", 587),
    "zoho": ("smtp.zoho.com", 465),
    "sendgrid": ("smtp.sendgrid.net", 587),
    "mailgun": ("smtp.mailgun.org", 587),
    "postmark": ("smtp.postmarkapp.com", 587),
}


class NotificationError(RuntimeError):
    """Delivery failed at the provider."""


class ResendNotifier:
    name = "resend"

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        session: requests.Session | None = None,
        timeout_sec: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._session = session or requests.Session()
        self._timeout_sec = timeout_sec

    async def send_reset_email(self, message: ResetEmail) -> None:
        try:
            response = await asyncio.to_thread(
                self._session.post,
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={
                    "from": self._sender,
                    "to": [message.to],
                    "subject": message.subject,
                    "html": message.html,
                },
                timeout=self._timeout_sec,
            )
        except requests.RequestException as exc:
            raise NotificationError(f"Resend request failed: {exc}") from exc
        if response.status_code >= 400:
            raise NotificationError(
                f"Resend rejected message: HTTP {response.status_code} {response.text[:200]}"
            )


class SmtpNotifier:
    name = "smtp"

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        timeout_sec: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender
        self._timeout_sec = timeout_sec

    def _build(self, message: ResetEmail) -> EmailMessage:
        email = EmailMessage()
        email["From"] = f'"FileMyTax" <{self._sender}>'
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(f"Reset your password: {message.reset_url}")
        email.add_alternative(message.html, subtype="html")
        return email

    async def send_reset_email(self, message: ResetEmail) -> None:
        # Port 465 is implicit TLS, everything else upgrades with STARTTLS.
        implicit_tls = self._port == 465
        try:
            await aiosmtplib.send(
                self._build(message),
                hostname=self._host,
                port=self._port,
                username=self._username,
                password=self._password,
                use_tls=implicit_tls,
                start_tls=not implicit_tls,
                timeout=self._timeout_sec,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"SMTP delivery failed: {exc}") from exc


class LogNotifier:
    """Development fallback that prints the reset link to the log."""

    name = "log"

    async def send_reset_email(self, message: ResetEmail) -> None:
        LOGGER.warning(
            "email_provider_not_configured: reset link for %s: %s",
            mask_email(message.to),
            message.reset_url,
            extra={"provider": self.name},
        )


def resolve_smtp_server(config: EmailConfig) -> tuple[str, int] | None:
    """Return ``(host, port)`` from ``SMTP_SERVICE`` or ``SMTP_HOST``.

    An explicit host wins over the service name.
    """
    if config.smtp_host:
        return config.smtp_host, config.smtp_port
    service = config.smtp_service.strip().lower()
    if not service:
        return None
    if service not in SMTP_SERVICES:
        LOGGER.warning("smtp_service_unknown: %s", service, extra={"provider": "smtp"})
        return None
    return SMTP_SERVICES[service]


def build_notifier(config: EmailConfig) -> Notifier:
    """Prefer Resend, then SMTP, then the log fallback."""
    if config.resend_api_key:
        return ResendNotifier(api_key=config.resend_api_key, sender=config.resend_from)
    server = resolve_smtp_server(config)
    if server is not None and config.smtp_user and config.smtp_password:
        host, port = server
        return SmtpNotifier(
            host=host,
            port=port,
            username=config.smtp_user,
            password=config.smtp_password,
            sender=config.smtp_from or config.smtp_user,
        )
    LOGGER.info("email_notifier_fallback", extra={"provider": "log"})
    return LogNotifier()
