"""In-memory notification store with a per-recipient history index.

The store keeps records keyed by notification id and an insertion-ordered
list of ids per recipient. A single lock serializes every access; it is
never held while a channel delivery is in progress because callers only
enter the store for short reads and writes.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from notification_dispatch.core.exceptions import NotFoundError
from notification_dispatch.types import Notification

__all__ = ["NotificationStore"]


class NotificationStore:
    """Volatile, thread-safe store for notification records."""

    def __init__(self) -> None:
        self._lock: threading.Lock = threading.Lock()
        self._records: dict[str, Notification] = {}
        self._history: dict[str, list[str]] = {}

    def insert(self, record: Notification) -> None:
        """Store a new record and append it to the recipient's history.

        Raises:
            ValueError: If a record with the same id already exists
        """
        with self._lock:
            if record.id in self._records:
                msg = f"Notification {record.id!r} already stored"
                raise ValueError(msg)
            self._records[record.id] = record
            self._history.setdefault(record.recipient, []).append(record.id)

    def get(self, notification_id: str) -> Notification | None:
        """Return a snapshot of the record, or None if unknown."""
        with self._lock:
            record = self._records.get(notification_id)
            return record.snapshot() if record is not None else None

    def update[R](self, notification_id: str, mutator: Callable[[Notification], R]) -> R:
        """Run ``mutator`` on the live record while holding the lock.

        The mutator must not block or await. Exceptions it raises propagate
        to the caller; a mutator that raises before changing anything leaves
        the record untouched.

        Raises:
            NotFoundError: If no record exists for the id
        """
        with self._lock:
            record = self._records.get(notification_id)
            if record is None:
                raise NotFoundError(notification_id)
            return mutator(record)

    def history(self, recipient: str, limit: int) -> list[Notification]:
        """Return up to ``limit`` snapshots for a recipient, newest first.

        Records are ordered by ``created_at`` descending; records created at
        the same instant keep reverse insertion order.
        """
        with self._lock:
            ids = self._history.get(recipient)
            if not ids:
                return []
            newest_first = [self._records[notification_id] for notification_id in reversed(ids)]
            ordered = sorted(newest_first, key=lambda record: record.created_at, reverse=True)
            return [record.snapshot() for record in ordered[:limit]]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, notification_id: object) -> bool:
        with self._lock:
            return notification_id in self._records

    def snapshot_all(self) -> list[Notification]:
        """Return snapshots of every record in insertion order."""
        with self._lock:
            return [record.snapshot() for record in self._records.values()]
