"""Notification dispatch engine.

Validates notification requests, routes them to per-channel senders (email,
SMS, push, in-app), tracks every notification through its lifecycle and
retries failed deliveries up to a configured ceiling.
"""

from notification_dispatch.channels import EmailSender, SimulatedSender, SmtpEmailTransport, build_router
from notification_dispatch.core import (
    ChannelRouter,
    DispatchEngine,
    EmailServiceError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundError,
    NotificationError,
    NotificationStore,
    UnsupportedChannelError,
    ValidationError,
)
from notification_dispatch.types import (
    Channel,
    ErrorKind,
    Notification,
    NotificationRequest,
    NotificationResult,
    NotificationStatus,
    Priority,
)

__all__ = [
    "Channel",
    "ChannelRouter",
    "DispatchEngine",
    "EmailSender",
    "EmailServiceError",
    "ErrorKind",
    "ExternalServiceError",
    "InvalidStateError",
    "NotFoundError",
    "Notification",
    "NotificationError",
    "NotificationRequest",
    "NotificationResult",
    "NotificationStatus",
    "NotificationStore",
    "Priority",
    "SimulatedSender",
    "SmtpEmailTransport",
    "UnsupportedChannelError",
    "ValidationError",
    "build_router",
]
