"""Enumerations shared across the dispatch engine."""

from enum import Enum


class Channel(Enum):
    """Delivery medium for a notification."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    IN_APP = "in_app"


class Priority(Enum):
    """Informational priority of a notification."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationStatus(Enum):
    """Lifecycle state of a notification record."""

    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ErrorKind(Enum):
    """Category of a failed operation, carried on failure results."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    EXTERNAL_SERVICE = "external_service"
    UNSUPPORTED_CHANNEL = "unsupported_channel"
    CANCELLED = "cancelled"
    INTERNAL = "internal"
