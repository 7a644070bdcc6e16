"""
mail/sender.py -- SMTP delivery of plain-text transactional mail.

MailSender.send() either delivers the message or raises DeliveryError. It
never reports success for a message that was not handed to an SMTP server,
except in dev mode (no SMTP host configured and DEBUG=true), where the message
is written to the log instead so the reset link can be copied by hand.

Recipients are redacted in log lines.

Layer rule: stdlib only. No imports from api/, auth/, or core/. The app
builds a MailSender from Settings in api/main.py.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage

logger = logging.getLogger("authgate.mail")


class DeliveryError(Exception):
    """The message could not be handed to the mail server."""


@dataclass(frozen=True)
class MailMessage:
    recipient: str
    subject: str
    body: str


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class MailSender:
    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = True,
        from_email: str = "",
        dev_mode: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.dev_mode = dev_mode
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def _build(self, message: MailMessage) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = self.from_email
        msg["To"] = message.recipient
        msg.set_content(message.body)
        return msg

    def send(self, message: MailMessage) -> None:
        """Deliver message or raise DeliveryError."""
        if not self.is_configured:
            if self.dev_mode:
                logger.info(
                    "Mail not configured (dev mode); message to %s logged instead:\n%s\n%s",
                    redact_email(message.recipient),
                    message.subject,
                    message.body,
                )
                return
            raise DeliveryError("Mail transport is not configured.")

        msg = self._build(message)
        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=self.timeout) as server:
                    if self.smtp_user and self.smtp_password:
                        server.login(self.smtp_user, self.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "Mail to %s failed: %s: %s",
                redact_email(message.recipient),
                type(exc).__name__,
                exc,
            )
            raise DeliveryError(str(exc)) from exc

        logger.info("Mail sent to %s (%s)", redact_email(message.recipient), message.subject)
