"""Outbound transactional email over SMTP, with a log-only mode for development."""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from app.core.config import EmailConfig
from app.email.templates import render_template

LOGGER = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    """Raised when the SMTP transport fails to accept a message."""


def redact_email(email: str) -> str:
    """Redact an address for logs."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class EmailService:
    """Renders templates and delivers them through the configured SMTP server."""

    def __init__(self, config: EmailConfig, *, product_name: str = "") -> None:
        self._config = config
        self._product_name = product_name or config.from_name

    @property
    def is_configured(self) -> bool:
        return bool(self._config.smtp_host and self._config.from_email)

    def send(self, recipient: str, template_name: str, template_args: dict[str, Any]) -> None:
        """Render ``template_name`` and send it to ``recipient``.

        Unknown templates raise ``ValueError``; transport failures raise
        ``EmailDeliveryError``. Without SMTP configuration the message is only logged.
        """
        rendered = render_template(
            template_name, {"product": self._product_name, **template_args}
        )
        if not self.is_configured:
            LOGGER.info(
                "email_dev_mode: to=%s subject=%s preview=%s",
                redact_email(recipient),
                rendered.subject,
                rendered.text[:200],
            )
            return

        message = MIMEMultipart("alternative")
        message["Subject"] = rendered.subject
        message["From"] = f"{self._config.from_name} <{self._config.from_email}>"
        message["To"] = recipient
        message.attach(MIMEText(rendered.text, "plain"))
        message.attach(MIMEText(rendered.html, "html"))

        config = self._config
        context = ssl.create_default_context()
        try:
            if config.smtp_use_tls:
                with smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=30) as server:
                    server.starttls(context=context)
                    if config.smtp_user and config.smtp_password:
                        server.login(config.smtp_user, config.smtp_password)
                    server.sendmail(config.from_email, recipient, message.as_string())
            else:
                with smtplib.SMTP_SSL(
                    config.smtp_host, config.smtp_port, context=context, timeout=30
                ) as server:
                    if config.smtp_user and config.smtp_password:
                        server.login(config.smtp_user, config.smtp_password)
                    server.sendmail(config.from_email, recipient, message.as_string())
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            LOGGER.error(
                "email_send_failed: to=%s template=%s error=%s",
                redact_email(recipient),
                template_name,
                type(exc).__name__,
            )
            raise EmailDeliveryError(str(exc)) from exc

        LOGGER.info(
            "email_sent: to=%s template=%s", redact_email(recipient), template_name
        )
