"""Email channel sender wrapping an ``EmailTransport``."""

from __future__ import annotations

import asyncio
import logging
from typing import Final

from notification_dispatch.core.exceptions import EmailServiceError
from notification_dispatch.types import EmailTransport, Notification
from notification_dispatch.utils.logging import get_logger
from notification_dispatch.utils.sanitization import sanitize_exception

__all__ = ["EmailSender", "is_html_body"]

_HTML_FLAG_KEY: Final[str] = "is_html"
_TRUTHY: Final[frozenset[str]] = frozenset({"true", "1", "yes"})


def is_html_body(notification: Notification) -> bool:
    """Return True if the notification's metadata marks the body as HTML.

    Examples:
        >>> from notification_dispatch.types import Channel
        >>> note = Notification(id="n1", recipient="a@example.com", message="<b>hi</b>",
        ...                     channel=Channel.EMAIL, metadata={"is_html": "Yes"})
        >>> is_html_body(note)
        True
    """
    flag = notification.metadata.get(_HTML_FLAG_KEY)
    return flag is not None and flag.strip().lower() in _TRUTHY


class EmailSender:
    """Deliver notifications through an email transport.

    The transport only accepts mail for delivery, so ``deliver`` never
    reports confirmed delivery. Every transport failure surfaces as
    ``EmailServiceError`` with credentials stripped from the detail.
    """

    def __init__(self, transport: EmailTransport, *, logger_obj: logging.Logger | None = None) -> None:
        self._transport: EmailTransport = transport
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    async def deliver(self, notification: Notification) -> bool:
        try:
            await self._transport.send_email(
                notification.recipient,
                notification.subject,
                notification.message,
                is_html=is_html_body(notification),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            detail = sanitize_exception(exc)
            self._logger.error(
                "Email transport failed for notification %s: %s",
                notification.id,
                detail,
            )
            msg = f"Email service error: {detail}"
            raise EmailServiceError(msg) from exc

        self._logger.info("Email handed to transport for notification %s", notification.id)
        return False
