"""Core dispatch engine: lifecycle rules, storage, routing and configuration."""

from notification_dispatch.core.engine import DispatchEngine
from notification_dispatch.core.events import (
    EventSink,
    LifecycleEvent,
    LifecycleEventType,
    LoggingEventSink,
    RecordingEventSink,
)
from notification_dispatch.core.exceptions import (
    EmailServiceError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundError,
    NotificationError,
    UnsupportedChannelError,
    ValidationError,
)
from notification_dispatch.core.router import ChannelRouter
from notification_dispatch.core.store import NotificationStore

__all__ = [
    "ChannelRouter",
    "DispatchEngine",
    "EmailServiceError",
    "EventSink",
    "ExternalServiceError",
    "InvalidStateError",
    "LifecycleEvent",
    "LifecycleEventType",
    "LoggingEventSink",
    "NotFoundError",
    "NotificationError",
    "NotificationStore",
    "RecordingEventSink",
    "UnsupportedChannelError",
    "ValidationError",
]
