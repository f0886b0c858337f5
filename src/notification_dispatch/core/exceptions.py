"""Error taxonomy of the dispatch engine.

Every error carries the ``ErrorKind`` used on failure results, so callers
can tell validation problems apart from infrastructure failures.
"""

from __future__ import annotations

from typing import ClassVar

from notification_dispatch.types import ErrorKind, NotificationStatus

__all__ = [
    "EmailServiceError",
    "ExternalServiceError",
    "InvalidStateError",
    "NotFoundError",
    "NotificationError",
    "UnsupportedChannelError",
    "ValidationError",
]


class NotificationError(Exception):
    """Base exception for all dispatch errors."""

    kind: ClassVar[ErrorKind] = ErrorKind.INTERNAL


class ValidationError(NotificationError, ValueError):
    """Raised when caller input is invalid. Nothing is stored."""

    kind: ClassVar[ErrorKind] = ErrorKind.VALIDATION


class NotFoundError(NotificationError, LookupError):
    """Raised when no record exists for a notification id."""

    kind: ClassVar[ErrorKind] = ErrorKind.NOT_FOUND

    notification_id: str

    def __init__(self, notification_id: str) -> None:
        super().__init__(f"Notification {notification_id} not found")
        self.notification_id = notification_id


class InvalidStateError(NotificationError):
    """Raised when an operation is not allowed in the record's current status."""

    kind: ClassVar[ErrorKind] = ErrorKind.INVALID_STATE

    current_status: NotificationStatus | None

    def __init__(self, message: str, *, current_status: NotificationStatus | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class ExternalServiceError(NotificationError):
    """Raised when a channel's external collaborator fails."""

    kind: ClassVar[ErrorKind] = ErrorKind.EXTERNAL_SERVICE


class EmailServiceError(ExternalServiceError):
    """Raised when the email transport fails."""


class UnsupportedChannelError(NotificationError):
    """Raised when the router has no sender for a channel."""

    kind: ClassVar[ErrorKind] = ErrorKind.UNSUPPORTED_CHANNEL
