"""Data models for the notification dispatch engine.

Notification records are mutable and owned by the engine; callers only ever
see snapshots. Requests and results are plain value objects.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from notification_dispatch.types.enums import (
    Channel,
    ErrorKind,
    NotificationStatus,
    Priority,
)


def utc_now() -> datetime:
    """Return timezone-aware current datetime."""
    return datetime.now(tz=UTC)


@dataclass(slots=True)
class Notification:
    """A unit of work and its audit record.

    The engine is the only writer. ``channel`` is fixed at creation and
    ``sent_at``/``delivered_at`` survive retries.
    """

    id: str
    recipient: str
    message: str
    channel: Channel
    subject: str = ""
    priority: Priority = Priority.NORMAL
    status: NotificationStatus = NotificationStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    error_message: str | None = None
    retry_count: int = 0

    def snapshot(self) -> "Notification":
        """Return a detached copy safe to hand to callers."""
        return replace(self, metadata=dict(self.metadata))


@dataclass(slots=True, frozen=True)
class NotificationRequest:
    """Caller input for a single notification."""

    recipient: str
    message: str
    channel: Channel
    subject: str = ""
    priority: Priority = Priority.NORMAL
    metadata: Mapping[str, str] | None = None


@dataclass(slots=True, frozen=True)
class NotificationResult:
    """Outcome of a send or retry operation.

    ``notification_id`` is set on success and on delivery failures, where a
    record was stored before the error. ``error_kind`` tells failures apart.
    """

    success: bool
    notification_id: str | None = None
    error_message: str | None = None
    error_kind: ErrorKind | None = None
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def success_result(cls, notification_id: str) -> "NotificationResult":
        return cls(success=True, notification_id=notification_id)

    @classmethod
    def failure_result(
        cls,
        error_message: str,
        error_kind: ErrorKind,
        *,
        notification_id: str | None = None,
    ) -> "NotificationResult":
        return cls(
            success=False,
            notification_id=notification_id,
            error_message=error_message,
            error_kind=error_kind,
        )
