"""
mailer.py — Email delivery collaborator.

Interface used by the services:

    send(to, subject, html) -> None, raises EmailDeliveryError on failure

SmtpEmailSender is the default implementation and reads its settings from
the MAIL_* config keys. Templates are not rendered here; callers pass the
finished HTML body.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when a message could not be handed to the mail server."""


class SmtpEmailSender:

    def __init__(
            self,
            host: str,
            port: int,
            username: str = "",
            password: str = "",
            use_tls: bool = True,
            default_sender: str = "no-reply@eventledger.local",
            timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.default_sender = default_sender
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "SmtpEmailSender":
        return cls(
            host=config["MAIL_SERVER"],
            port=config["MAIL_PORT"],
            username=config.get("MAIL_USERNAME", ""),
            password=config.get("MAIL_PASSWORD", ""),
            use_tls=config.get("MAIL_USE_TLS", True),
            default_sender=config["MAIL_DEFAULT_SENDER"],
        )

    def send(self, to: str, subject: str, html: str) -> None:
        message = EmailMessage()
        message["From"] = self.default_sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"Could not deliver mail to {to}: {exc}") from exc

        logger.info("Sent %r to %s", subject, to)
