"""Lifecycle events and the observational sinks that receive them.

Sinks are purely observational: the engine never depends on a sink
succeeding, and exceptions raised by a sink are logged and discarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol, runtime_checkable

from notification_dispatch.types import Channel, NotificationStatus, utc_now
from notification_dispatch.utils.logging import get_logger, log_with_context

__all__ = [
    "EventSink",
    "LifecycleEvent",
    "LifecycleEventType",
    "LoggingEventSink",
    "RecordingEventSink",
]


class LifecycleEventType(Enum):
    """Transitions reported to event sinks."""

    CREATED = "created"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    RETRIED = "retried"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class LifecycleEvent:
    """A single lifecycle transition of a notification."""

    event_type: LifecycleEventType
    notification_id: str
    recipient: str
    channel: Channel
    status: NotificationStatus
    retry_count: int = 0
    error_message: str | None = None
    correlation_id: str | None = None
    occurred_at: datetime = field(default_factory=utc_now)


@runtime_checkable
class EventSink(Protocol):
    """Protocol for consumers of lifecycle events."""

    def emit(self, event: LifecycleEvent) -> None:
        """Receive one lifecycle event."""
        ...


_LEVELS: dict[LifecycleEventType, int] = {
    LifecycleEventType.CREATED: logging.DEBUG,
    LifecycleEventType.SENT: logging.INFO,
    LifecycleEventType.DELIVERED: logging.INFO,
    LifecycleEventType.FAILED: logging.WARNING,
    LifecycleEventType.RETRIED: logging.INFO,
    LifecycleEventType.CANCELLED: logging.INFO,
}


class LoggingEventSink:
    """Write lifecycle events as structured log records."""

    def __init__(self, logger_obj: logging.Logger | None = None) -> None:
        self._logger: logging.Logger = logger_obj or get_logger("notification_dispatch.events")

    def emit(self, event: LifecycleEvent) -> None:
        log_with_context(
            self._logger,
            _LEVELS[event.event_type],
            f"Notification {event.event_type.value}",
            correlation_id=event.correlation_id,
            extra={
                "event_type": event.event_type.value,
                "notification_id": event.notification_id,
                "channel": event.channel.value,
                "status": event.status.value,
                "retry_count": event.retry_count,
                "error_message": event.error_message,
            },
        )


class RecordingEventSink:
    """Keep every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[LifecycleEvent] = []

    def emit(self, event: LifecycleEvent) -> None:
        self.events.append(event)

    def types_for(self, notification_id: str) -> list[LifecycleEventType]:
        """Return the event types recorded for one notification."""
        return [event.event_type for event in self.events if event.notification_id == notification_id]
