"""Protocol definitions for dispatch collaborators.

These structural protocols describe the capabilities the engine consumes
without requiring inheritance from a shared base class.
"""

from typing import Protocol, runtime_checkable

from notification_dispatch.types.models import Notification


@runtime_checkable
class ChannelSender(Protocol):
    """Protocol for a single delivery channel.

    A sender either completes normally, meaning the notification was handed
    off, or raises, meaning delivery failed.
    """

    async def deliver(self, notification: Notification) -> bool:
        """Attempt delivery of a notification.

        Args:
            notification: Snapshot of the record being delivered

        Returns:
            True if the channel confirmed delivery to the recipient, False if
            it only accepted the notification for delivery
        """
        ...


@runtime_checkable
class EmailTransport(Protocol):
    """Protocol for an SMTP-capable mail transport."""

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        *,
        is_html: bool = False,
    ) -> None:
        """Send one email message.

        Args:
            to: Recipient address
            subject: Subject line
            body: Message body
            is_html: Whether the body is HTML

        Raises:
            Exception: Any network or protocol failure of the transport
        """
        ...
