"""SMTP transport for the email channel using aiosmtplib."""

from __future__ import annotations

import logging
import ssl
from email.message import EmailMessage
from email.utils import make_msgid

import aiosmtplib

from notification_dispatch.core.config import EmailConfig
from notification_dispatch.utils.logging import get_logger

__all__ = ["SmtpEmailTransport"]


class SmtpEmailTransport:
    """Send single messages over SMTP.

    A new connection is opened for every message. STARTTLS (port 587) and
    implicit TLS (port 465) are selected by ``EmailConfig``; authentication
    happens only when both a username and a password are configured.
    """

    def __init__(self, config: EmailConfig, *, logger_obj: logging.Logger | None = None) -> None:
        self._config: EmailConfig = config
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @property
    def config(self) -> EmailConfig:
        return self._config

    def build_message(self, to: str, subject: str, body: str, *, is_html: bool = False) -> EmailMessage:
        """Build the MIME message handed to the SMTP client."""
        message = EmailMessage()
        message["From"] = self._config.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        if is_html:
            message.set_content(body, subtype="html")
        else:
            message.set_content(body)
        return message

    def _tls_context(self) -> ssl.SSLContext | None:
        if not (self._config.start_tls or self._config.use_tls):
            return None
        return ssl.create_default_context()

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        *,
        is_html: bool = False,
    ) -> None:
        """Send one message; any SMTP or network error propagates."""
        message = self.build_message(to, subject, body, is_html=is_html)
        password = self._config.password.get_secret_value() if self._config.password else None

        smtp = aiosmtplib.SMTP(
            hostname=self._config.host,
            port=self._config.port,
            use_tls=self._config.use_tls,
            start_tls=self._config.start_tls,
            tls_context=self._tls_context(),
            timeout=self._config.timeout_seconds,
        )
        async with smtp:
            if self._config.username and password:
                _ = await smtp.login(self._config.username, password)
            errors, _response = await smtp.send_message(message)

        if errors:
            rejected = ", ".join(sorted(errors))
            msg = f"SMTP server rejected recipients: {rejected}"
            raise aiosmtplib.SMTPException(msg)

        self._logger.debug(
            "SMTP message accepted",
            extra={"host": self._config.host, "port": self._config.port, "message_id": message["Message-ID"]},
        )
