"""Type definitions for the notification dispatch engine."""

from notification_dispatch.types.enums import (
    Channel,
    ErrorKind,
    NotificationStatus,
    Priority,
)
from notification_dispatch.types.models import (
    Notification,
    NotificationRequest,
    NotificationResult,
    utc_now,
)
from notification_dispatch.types.protocols import ChannelSender, EmailTransport

__all__ = [
    "Channel",
    "ChannelSender",
    "EmailTransport",
    "ErrorKind",
    "Notification",
    "NotificationRequest",
    "NotificationResult",
    "NotificationStatus",
    "Priority",
    "utc_now",
]
