"""Dispatch engine: validation, routing, lifecycle tracking and retries.

The engine owns every notification record. A send creates a PENDING record,
stores it, awaits the channel sender without holding the store lock, and
then applies the SENT or FAILED transition in a single locked update. While
a delivery is awaited the record is visible as PENDING, so it can be
cancelled; a cancelled record keeps its CANCELLED status whatever the
delivery outcome.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from datetime import datetime
from uuid import uuid4

from notification_dispatch.core import lifecycle
from notification_dispatch.core.config import EngineConfig
from notification_dispatch.core.events import (
    EventSink,
    LifecycleEvent,
    LifecycleEventType,
    LoggingEventSink,
)
from notification_dispatch.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    NotificationError,
    UnsupportedChannelError,
    ValidationError,
)
from notification_dispatch.core.router import ChannelRouter
from notification_dispatch.core.store import NotificationStore
from notification_dispatch.types import (
    Channel,
    ErrorKind,
    Notification,
    NotificationRequest,
    NotificationResult,
    NotificationStatus,
    Priority,
    utc_now,
)
from notification_dispatch.utils.logging import get_logger, log_with_context
from notification_dispatch.utils.sanitization import sanitize_text

__all__ = ["DispatchEngine"]

type Clock = Callable[[], datetime]
type IDFactory = Callable[[], str]

_CANCELLED_DURING_DISPATCH = "Notification was cancelled during dispatch"
_INTERRUPTED_DURING_DISPATCH = "Dispatch was interrupted before the channel responded"


def _describe_error(exc: BaseException) -> str:
    message = sanitize_text(str(exc))
    return message or type(exc).__name__


class DispatchEngine:
    """Send notifications through channel senders and track their lifecycle."""

    def __init__(
        self,
        router: ChannelRouter,
        *,
        store: NotificationStore | None = None,
        max_retries: int = 3,
        history_limit: int = 50,
        bulk_concurrency: int = 10,
        event_sink: EventSink | None = None,
        clock: Clock | None = None,
        id_factory: IDFactory | None = None,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if max_retries < 0:
            msg = "max_retries must be >= 0"
            raise ValueError(msg)
        if history_limit < 1:
            msg = "history_limit must be >= 1"
            raise ValueError(msg)
        if bulk_concurrency < 1:
            msg = "bulk_concurrency must be >= 1"
            raise ValueError(msg)

        self._router: ChannelRouter = router
        self._store: NotificationStore = store if store is not None else NotificationStore()
        self._max_retries: int = max_retries
        self._history_limit: int = history_limit
        self._bulk_concurrency: int = bulk_concurrency
        self._event_sink: EventSink = event_sink if event_sink is not None else LoggingEventSink()
        self._clock: Clock = clock or utc_now
        self._id_factory: IDFactory = id_factory or (lambda: uuid4().hex)
        self._logger: logging.Logger = logger_obj or get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        router: ChannelRouter,
        *,
        event_sink: EventSink | None = None,
    ) -> DispatchEngine:
        """Build an engine from the ``engine`` configuration section."""
        return cls(
            router,
            max_retries=config.max_retries,
            history_limit=config.history_limit,
            bulk_concurrency=config.bulk_concurrency,
            event_sink=event_sink,
        )

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def store(self) -> NotificationStore:
        return self._store

    async def send_notification(
        self,
        request: NotificationRequest | None,
        *,
        correlation_id: str | None = None,
    ) -> NotificationResult:
        """Validate a request, store a record and dispatch it.

        Returns:
            A success result, or a failure result carrying the id of the
            FAILED (or CANCELLED) record

        Raises:
            ValidationError: If the request is missing, or its recipient or
                message is blank. No record is created in that case.
            UnsupportedChannelError: If the channel is not a known channel
                name. No record is created in that case.
        """
        record = self._create_record(request, correlation_id)
        snapshot = record.snapshot()
        self._store.insert(record)
        self._emit(LifecycleEventType.CREATED, snapshot, correlation_id)
        return await self._dispatch(snapshot, correlation_id)

    async def send_bulk(
        self,
        requests: Iterable[NotificationRequest | None] | None,
        *,
        correlation_id: str | None = None,
    ) -> list[NotificationResult]:
        """Send every request, returning one result per request in input order.

        A failing item never aborts the batch: validation errors and
        unexpected exceptions become failure results for that item.

        Raises:
            ValidationError: If ``requests`` itself is None
        """
        if requests is None:
            msg = "Bulk request list must not be None"
            raise ValidationError(msg)

        items = list(requests)
        semaphore = asyncio.Semaphore(self._bulk_concurrency)

        async def _send_one(request: NotificationRequest | None) -> NotificationResult:
            async with semaphore:
                try:
                    return await self.send_notification(request, correlation_id=correlation_id)
                except asyncio.CancelledError:
                    raise
                except NotificationError as exc:
                    return NotificationResult.failure_result(str(exc), exc.kind)
                except Exception as exc:
                    self._logger.exception("Unexpected error while sending bulk item")
                    return NotificationResult.failure_result(_describe_error(exc), ErrorKind.INTERNAL)

        log_with_context(
            self._logger,
            logging.INFO,
            "Dispatching bulk notifications",
            correlation_id=correlation_id,
            extra={"item_count": len(items), "concurrency": self._bulk_concurrency},
        )
        results = await asyncio.gather(*(_send_one(request) for request in items))
        return list(results)

    def get_status(self, notification_id: str) -> Notification | None:
        """Return a snapshot of the record, or None if it does not exist."""
        return self._store.get(notification_id)

    def get_history(self, recipient: str, limit: int | None = None) -> list[Notification]:
        """Return a recipient's most recent notifications, newest first.

        Args:
            recipient: Recipient identifier; must not be blank
            limit: Maximum number of records (defaults to the configured
                history limit, 50 unless configured otherwise)

        Raises:
            ValidationError: If the recipient is blank or ``limit`` < 1
        """
        if not isinstance(recipient, str) or not recipient.strip():
            msg = "Recipient must not be blank"
            raise ValidationError(msg)
        effective_limit = self._history_limit if limit is None else limit
        if effective_limit < 1:
            msg = f"History limit must be at least 1, got {effective_limit}"
            raise ValidationError(msg)
        return self._store.history(recipient, effective_limit)

    async def retry(
        self,
        notification_id: str,
        *,
        correlation_id: str | None = None,
    ) -> NotificationResult:
        """Re-dispatch a FAILED notification on its original channel.

        Unknown ids, records that are not FAILED, and records that reached
        the retry ceiling produce failure results without any mutation.
        """
        try:
            snapshot = self._store.update(notification_id, self._begin_retry)
        except NotFoundError as exc:
            log_with_context(
                self._logger,
                logging.WARNING,
                "Retry requested for unknown notification",
                correlation_id=correlation_id,
                extra={"notification_id": notification_id},
            )
            return NotificationResult.failure_result(str(exc), exc.kind)
        except InvalidStateError as exc:
            log_with_context(
                self._logger,
                logging.WARNING,
                "Retry rejected",
                correlation_id=correlation_id,
                extra={"notification_id": notification_id, "reason": str(exc)},
            )
            return NotificationResult.failure_result(str(exc), exc.kind, notification_id=notification_id)

        self._emit(LifecycleEventType.RETRIED, snapshot, correlation_id)
        return await self._dispatch(snapshot, correlation_id)

    def cancel(self, notification_id: str, *, correlation_id: str | None = None) -> bool:
        """Cancel a PENDING notification.

        Returns:
            True if the record moved to CANCELLED, False if it does not exist
            or is in any other status
        """

        def _apply(record: Notification) -> Notification | None:
            if record.status is not NotificationStatus.PENDING:
                return None
            lifecycle.mark_cancelled(record)
            return record.snapshot()

        try:
            snapshot = self._store.update(notification_id, _apply)
        except NotFoundError:
            return False
        if snapshot is None:
            return False

        self._emit(LifecycleEventType.CANCELLED, snapshot, correlation_id)
        return True

    def confirm_delivery(self, notification_id: str, *, correlation_id: str | None = None) -> bool:
        """Record a delivery confirmation reported after the send returned.

        Returns:
            True if the record moved from SENT to DELIVERED, False otherwise
        """
        now = self._clock()

        def _apply(record: Notification) -> Notification | None:
            if record.status is not NotificationStatus.SENT:
                return None
            lifecycle.mark_delivered(record, now)
            return record.snapshot()

        try:
            snapshot = self._store.update(notification_id, _apply)
        except NotFoundError:
            return False
        if snapshot is None:
            return False

        self._emit(LifecycleEventType.DELIVERED, snapshot, correlation_id)
        return True

    def _create_record(
        self,
        request: NotificationRequest | None,
        correlation_id: str | None,
    ) -> Notification:
        try:
            if request is None:
                msg = "Notification request must not be None"
                raise ValidationError(msg)
            if not isinstance(request.recipient, str) or not request.recipient.strip():
                msg = "Recipient is required"
                raise ValidationError(msg)
            if not isinstance(request.message, str) or not request.message.strip():
                msg = "Message is required"
                raise ValidationError(msg)
            channel = _coerce_channel(request.channel)
            priority = _coerce_priority(request.priority)
        except (ValidationError, UnsupportedChannelError) as exc:
            log_with_context(
                self._logger,
                logging.WARNING,
                "Notification request rejected",
                correlation_id=correlation_id,
                extra={"reason": str(exc)},
            )
            raise

        return Notification(
            id=self._id_factory(),
            recipient=request.recipient,
            subject=request.subject or "",
            message=request.message,
            channel=channel,
            priority=priority,
            status=NotificationStatus.PENDING,
            created_at=self._clock(),
            metadata={str(key): str(value) for key, value in (request.metadata or {}).items()},
        )

    def _begin_retry(self, record: Notification) -> Notification:
        lifecycle.begin_retry(record, self._max_retries)
        return record.snapshot()

    async def _dispatch(self, snapshot: Notification, correlation_id: str | None) -> NotificationResult:
        start = time.perf_counter()
        try:
            sender = self._router.resolve(snapshot.channel)
            confirmed = bool(await sender.deliver(snapshot))
        except asyncio.CancelledError:
            _ = self._apply_failure(snapshot.id, _INTERRUPTED_DURING_DISPATCH, correlation_id)
            raise
        except Exception as exc:
            kind = exc.kind if isinstance(exc, NotificationError) else ErrorKind.EXTERNAL_SERVICE
            error_message = _describe_error(exc)
            log_with_context(
                self._logger,
                logging.ERROR,
                "Notification delivery failed",
                correlation_id=correlation_id,
                extra={
                    "notification_id": snapshot.id,
                    "channel": snapshot.channel.value,
                    "error_kind": kind.value,
                    "exception_type": type(exc).__name__,
                    "delivery_time_ms": (time.perf_counter() - start) * 1000.0,
                },
            )
            if not self._apply_failure(snapshot.id, error_message, correlation_id):
                return self._cancelled_result(snapshot.id)
            return NotificationResult.failure_result(error_message, kind, notification_id=snapshot.id)

        log_with_context(
            self._logger,
            logging.DEBUG,
            "Channel accepted notification",
            correlation_id=correlation_id,
            extra={
                "notification_id": snapshot.id,
                "channel": snapshot.channel.value,
                "confirmed": confirmed,
                "delivery_time_ms": (time.perf_counter() - start) * 1000.0,
            },
        )
        if not self._apply_success(snapshot.id, confirmed, correlation_id):
            return self._cancelled_result(snapshot.id)
        return NotificationResult.success_result(snapshot.id)

    def _apply_success(self, notification_id: str, confirmed: bool, correlation_id: str | None) -> bool:
        now = self._clock()

        def _apply(record: Notification) -> Notification | None:
            if record.status is NotificationStatus.CANCELLED:
                return None
            lifecycle.mark_sent(record, now)
            if confirmed:
                lifecycle.mark_delivered(record, now)
            return record.snapshot()

        snapshot = self._store.update(notification_id, _apply)
        if snapshot is None:
            return False
        self._emit(LifecycleEventType.SENT, snapshot, correlation_id)
        if confirmed:
            self._emit(LifecycleEventType.DELIVERED, snapshot, correlation_id)
        return True

    def _apply_failure(self, notification_id: str, error_message: str, correlation_id: str | None) -> bool:
        def _apply(record: Notification) -> Notification | None:
            if record.status is NotificationStatus.CANCELLED:
                return None
            lifecycle.mark_failed(record, error_message)
            return record.snapshot()

        snapshot = self._store.update(notification_id, _apply)
        if snapshot is None:
            return False
        self._emit(LifecycleEventType.FAILED, snapshot, correlation_id)
        return True

    def _cancelled_result(self, notification_id: str) -> NotificationResult:
        return NotificationResult.failure_result(
            _CANCELLED_DURING_DISPATCH,
            ErrorKind.CANCELLED,
            notification_id=notification_id,
        )

    def _emit(
        self,
        event_type: LifecycleEventType,
        snapshot: Notification,
        correlation_id: str | None,
    ) -> None:
        event = LifecycleEvent(
            event_type=event_type,
            notification_id=snapshot.id,
            recipient=snapshot.recipient,
            channel=snapshot.channel,
            status=snapshot.status,
            retry_count=snapshot.retry_count,
            error_message=snapshot.error_message,
            correlation_id=correlation_id,
        )
        try:
            self._event_sink.emit(event)
        except Exception:
            self._logger.warning(
                "Event sink failed for %s event of notification %s",
                event_type.value,
                snapshot.id,
                exc_info=True,
            )


def _coerce_channel(value: object) -> Channel:
    if isinstance(value, Channel):
        return value
    try:
        return Channel(value)
    except ValueError as exc:
        msg = f"Channel {value!r} is not supported"
        raise UnsupportedChannelError(msg) from exc


def _coerce_priority(value: object) -> Priority:
    if value is None:
        return Priority.NORMAL
    if isinstance(value, Priority):
        return value
    try:
        return Priority(value)
    except ValueError as exc:
        msg = f"Unknown priority: {value!r}"
        raise ValidationError(msg) from exc
