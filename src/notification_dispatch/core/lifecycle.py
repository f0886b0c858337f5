"""Lifecycle state machine for notification records.

The allowed edges are::

    PENDING -> SENT -> DELIVERED
    PENDING -> FAILED -> PENDING (retry)
    PENDING -> CANCELLED

Functions here mutate a record in place and must be called while the store
lock is held (see ``NotificationStore.update``).
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Final

from notification_dispatch.core.exceptions import InvalidStateError
from notification_dispatch.types import Notification, NotificationStatus

__all__ = [
    "ALLOWED_TRANSITIONS",
    "begin_retry",
    "can_transition",
    "mark_cancelled",
    "mark_delivered",
    "mark_failed",
    "mark_sent",
]

ALLOWED_TRANSITIONS: Final[Mapping[NotificationStatus, frozenset[NotificationStatus]]] = {
    NotificationStatus.PENDING: frozenset(
        {
            NotificationStatus.SENT,
            NotificationStatus.FAILED,
            NotificationStatus.CANCELLED,
        }
    ),
    NotificationStatus.SENT: frozenset({NotificationStatus.DELIVERED}),
    NotificationStatus.DELIVERED: frozenset(),
    NotificationStatus.FAILED: frozenset({NotificationStatus.PENDING}),
    NotificationStatus.CANCELLED: frozenset(),
}


def can_transition(from_status: NotificationStatus, to_status: NotificationStatus) -> bool:
    """Return True if the edge exists in the lifecycle graph."""
    return to_status in ALLOWED_TRANSITIONS[from_status]


def _transition(record: Notification, to_status: NotificationStatus) -> None:
    if not can_transition(record.status, to_status):
        msg = f"Invalid transition from {record.status.value} to {to_status.value}"
        raise InvalidStateError(msg, current_status=record.status)
    record.status = to_status


def mark_sent(record: Notification, now: datetime) -> None:
    """Record a delivery call that returned without error."""
    _transition(record, NotificationStatus.SENT)
    record.sent_at = now


def mark_delivered(record: Notification, now: datetime) -> None:
    """Record a confirmed delivery."""
    _transition(record, NotificationStatus.DELIVERED)
    record.delivered_at = now


def mark_failed(record: Notification, error_message: str) -> None:
    """Record a delivery call that raised."""
    _transition(record, NotificationStatus.FAILED)
    record.error_message = error_message


def mark_cancelled(record: Notification) -> None:
    """Cancel a record that has not been dispatched yet."""
    _transition(record, NotificationStatus.CANCELLED)


def begin_retry(record: Notification, max_retries: int) -> None:
    """Move a failed record back to pending and consume one retry.

    Timestamps from earlier attempts are left untouched.

    Raises:
        InvalidStateError: If the record is not FAILED or the retry ceiling
            has been reached
    """
    if record.status is not NotificationStatus.FAILED:
        msg = f"Cannot retry notification in status {record.status.value}"
        raise InvalidStateError(msg, current_status=record.status)
    if record.retry_count >= max_retries:
        msg = f"Maximum retries exceeded ({record.retry_count}/{max_retries})"
        raise InvalidStateError(msg, current_status=record.status)

    _transition(record, NotificationStatus.PENDING)
    record.retry_count += 1
    record.error_message = None
