"""Tests for the DispatchEngine core component."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import pytest
from _pytest.logging import LogCaptureFixture

from notification_dispatch.core.config import EngineConfig
from notification_dispatch.core.engine import DispatchEngine
from notification_dispatch.core.events import LifecycleEvent, LifecycleEventType, RecordingEventSink
from notification_dispatch.core.exceptions import EmailServiceError, UnsupportedChannelError, ValidationError
from notification_dispatch.core.router import ChannelRouter
from notification_dispatch.types import (
    Channel,
    ErrorKind,
    NotificationRequest,
    NotificationStatus,
    Priority,
)


def _request(
    *,
    recipient: str = "a@example.com",
    message: str = "Test",
    channel: Channel = Channel.EMAIL,
    subject: str = "Hi",
    priority: Priority = Priority.NORMAL,
    metadata: dict[str, str] | None = None,
) -> NotificationRequest:
    """Create a NotificationRequest with sensible defaults for tests."""
    return NotificationRequest(
        recipient=recipient,
        message=message,
        channel=channel,
        subject=subject,
        priority=priority,
        metadata=metadata,
    )


class ExplodingSink:
    """Event sink that always raises."""

    def emit(self, event: LifecycleEvent) -> None:
        raise RuntimeError(f"sink down for {event.notification_id}")


@pytest.mark.asyncio
async def test_send_success_stores_sent_record(engine: DispatchEngine) -> None:
    """A successful email send leaves a SENT record matching the request."""
    result = await engine.send_notification(_request(metadata={"campaign": "spring"}))

    assert result.success is True
    assert result.error_kind is None
    assert result.notification_id is not None

    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.status is NotificationStatus.SENT
    assert record.recipient == "a@example.com"
    assert record.subject == "Hi"
    assert record.message == "Test"
    assert record.channel is Channel.EMAIL
    assert record.metadata == {"campaign": "spring"}
    assert record.sent_at is not None
    assert record.delivered_at is None
    assert record.error_message is None
    assert record.retry_count == 0


@pytest.mark.asyncio
async def test_send_with_confirming_sender_marks_delivered(
    make_engine: Callable[..., DispatchEngine],
    sender_factory: type,
    events: RecordingEventSink,
) -> None:
    """A sender confirming delivery moves the record through SENT to DELIVERED."""
    engine = make_engine(router=ChannelRouter({Channel.PUSH: sender_factory(confirm=True)}))

    result = await engine.send_notification(_request(channel=Channel.PUSH, recipient="device-1"))

    assert result.notification_id is not None
    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.status is NotificationStatus.DELIVERED
    assert record.sent_at is not None
    assert record.delivered_at is not None
    assert events.types_for(result.notification_id) == [
        LifecycleEventType.CREATED,
        LifecycleEventType.SENT,
        LifecycleEventType.DELIVERED,
    ]


@pytest.mark.asyncio
async def test_send_failure_stores_failed_record(engine: DispatchEngine, senders: dict) -> None:
    """A sender that raises leaves an auditable FAILED record."""
    senders[Channel.EMAIL].fail_with = EmailServiceError("Email service error: connection refused")

    result = await engine.send_notification(_request())

    assert result.success is False
    assert result.error_kind is ErrorKind.EXTERNAL_SERVICE
    assert result.notification_id is not None
    assert result.error_message is not None
    assert "Email service error" in result.error_message

    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.status is NotificationStatus.FAILED
    assert record.error_message
    assert record.sent_at is None


@pytest.mark.asyncio
async def test_unexpected_sender_exception_counts_as_external_failure(
    engine: DispatchEngine, senders: dict
) -> None:
    senders[Channel.SMS].fail_with = RuntimeError("gateway timeout")

    result = await engine.send_notification(_request(channel=Channel.SMS, recipient="+15550100"))

    assert result.success is False
    assert result.error_kind is ErrorKind.EXTERNAL_SERVICE
    assert result.error_message == "gateway timeout"


@pytest.mark.asyncio
async def test_failure_message_is_sanitized(engine: DispatchEngine, senders: dict) -> None:
    senders[Channel.SMS].fail_with = RuntimeError("login failed password=hunter2")

    result = await engine.send_notification(_request(channel=Channel.SMS))

    assert result.error_message is not None
    assert "hunter2" not in result.error_message
    assert result.notification_id is not None
    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.error_message is not None
    assert "hunter2" not in record.error_message


@pytest.mark.asyncio
async def test_unregistered_channel_fails_as_unsupported(
    make_engine: Callable[..., DispatchEngine],
    sender_factory: type,
) -> None:
    """The router never silently succeeds for a channel without a sender."""
    engine = make_engine(router=ChannelRouter({Channel.EMAIL: sender_factory()}))

    result = await engine.send_notification(_request(channel=Channel.IN_APP, recipient="user-7"))

    assert result.success is False
    assert result.error_kind is ErrorKind.UNSUPPORTED_CHANNEL
    assert result.notification_id is not None
    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.status is NotificationStatus.FAILED
    assert record.error_message == "Channel in_app is not supported"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("recipient", "message"),
    [
        ("", "Test"),
        ("   ", "Test"),
        ("a@example.com", ""),
        ("a@example.com", "\t\n"),
    ],
)
async def test_blank_fields_raise_without_storing(
    engine: DispatchEngine,
    senders: dict,
    recipient: str,
    message: str,
) -> None:
    with pytest.raises(ValidationError):
        _ = await engine.send_notification(_request(recipient=recipient, message=message))

    assert len(engine.store) == 0
    assert senders[Channel.EMAIL].delivered == []


@pytest.mark.asyncio
async def test_none_request_raises_validation_error(engine: DispatchEngine) -> None:
    with pytest.raises(ValidationError, match="must not be None"):
        _ = await engine.send_notification(None)

    assert len(engine.store) == 0


@pytest.mark.asyncio
async def test_channel_and_priority_names_are_coerced(engine: DispatchEngine) -> None:
    request = NotificationRequest(
        recipient="user-1",
        message="hello",
        channel="in_app",  # pyright: ignore[reportArgumentType]
        priority="high",  # pyright: ignore[reportArgumentType]
    )

    result = await engine.send_notification(request)

    assert result.notification_id is not None
    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.channel is Channel.IN_APP
    assert record.priority is Priority.HIGH


@pytest.mark.asyncio
async def test_unknown_channel_name_raises_unsupported_channel(engine: DispatchEngine) -> None:
    request = NotificationRequest(
        recipient="user-1",
        message="hello",
        channel="carrier-pigeon",  # pyright: ignore[reportArgumentType]
    )

    with pytest.raises(UnsupportedChannelError, match="Channel 'carrier-pigeon' is not supported") as exc_info:
        _ = await engine.send_notification(request)

    assert exc_info.value.kind is ErrorKind.UNSUPPORTED_CHANNEL
    assert len(engine.store) == 0


def test_get_status_unknown_id_returns_none(engine: DispatchEngine) -> None:
    assert engine.get_status("missing") is None


@pytest.mark.asyncio
async def test_get_status_returns_detached_snapshot(engine: DispatchEngine) -> None:
    result = await engine.send_notification(_request(metadata={"k": "v"}))
    assert result.notification_id is not None

    snapshot = engine.get_status(result.notification_id)
    assert snapshot is not None
    snapshot.metadata["k"] = "changed"
    snapshot.status = NotificationStatus.CANCELLED

    fresh = engine.get_status(result.notification_id)
    assert fresh is not None
    assert fresh.metadata == {"k": "v"}
    assert fresh.status is NotificationStatus.SENT


@pytest.mark.asyncio
async def test_history_returns_most_recent_records(engine: DispatchEngine) -> None:
    """Three sends to one recipient; a limit of two returns the newest two."""
    ids: list[str] = []
    for index in range(3):
        result = await engine.send_notification(_request(recipient="u1", message=f"message {index}"))
        assert result.notification_id is not None
        ids.append(result.notification_id)
    _ = await engine.send_notification(_request(recipient="someone-else"))

    history = engine.get_history("u1", 2)

    assert [record.id for record in history] == [ids[2], ids[1]]
    assert history[0].created_at > history[1].created_at


@pytest.mark.asyncio
async def test_history_defaults_to_configured_limit(make_engine: Callable[..., DispatchEngine]) -> None:
    engine = make_engine(history_limit=2)
    for _ in range(4):
        _ = await engine.send_notification(_request(recipient="u1"))

    assert len(engine.get_history("u1")) == 2


def test_history_for_unknown_recipient_is_empty(engine: DispatchEngine) -> None:
    assert engine.get_history("nobody") == []


@pytest.mark.parametrize("recipient", ["", "  "])
def test_history_blank_recipient_raises(engine: DispatchEngine, recipient: str) -> None:
    with pytest.raises(ValidationError, match="Recipient"):
        _ = engine.get_history(recipient)


@pytest.mark.parametrize("limit", [0, -5])
def test_history_limit_below_one_raises(engine: DispatchEngine, limit: int) -> None:
    with pytest.raises(ValidationError, match="History limit"):
        _ = engine.get_history("u1", limit)


@pytest.mark.asyncio
async def test_retry_unknown_id_returns_not_found(engine: DispatchEngine) -> None:
    result = await engine.retry("does-not-exist")

    assert result.success is False
    assert result.error_kind is ErrorKind.NOT_FOUND
    assert result.error_message is not None
    assert "not found" in result.error_message


@pytest.mark.asyncio
async def test_retry_of_sent_record_is_rejected(engine: DispatchEngine, senders: dict) -> None:
    result = await engine.send_notification(_request())
    assert result.notification_id is not None

    retry_result = await engine.retry(result.notification_id)

    assert retry_result.success is False
    assert retry_result.error_kind is ErrorKind.INVALID_STATE
    assert retry_result.error_message == "Cannot retry notification in status sent"
    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.retry_count == 0
    assert record.status is NotificationStatus.SENT
    assert len(senders[Channel.EMAIL].delivered) == 1


@pytest.mark.asyncio
async def test_retry_redispatches_failed_record(engine: DispatchEngine, senders: dict, events: RecordingEventSink) -> None:
    sender = senders[Channel.EMAIL]
    sender.fail_with = RuntimeError("temporarily unavailable")
    result = await engine.send_notification(_request())
    assert result.notification_id is not None

    sender.fail_with = None
    retry_result = await engine.retry(result.notification_id)

    assert retry_result.success is True
    assert retry_result.notification_id == result.notification_id
    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.status is NotificationStatus.SENT
    assert record.retry_count == 1
    assert record.error_message is None
    assert record.channel is Channel.EMAIL
    assert [n.id for n in sender.delivered] == [result.notification_id, result.notification_id]
    assert events.types_for(result.notification_id) == [
        LifecycleEventType.CREATED,
        LifecycleEventType.FAILED,
        LifecycleEventType.RETRIED,
        LifecycleEventType.SENT,
    ]


@pytest.mark.asyncio
async def test_retry_ceiling_blocks_further_attempts(engine: DispatchEngine, senders: dict) -> None:
    """Once retry_count reaches max_retries, retry fails even if the channel would succeed."""
    senders[Channel.EMAIL].fail_with = RuntimeError("down")
    result = await engine.send_notification(_request())
    assert result.notification_id is not None

    for attempt in range(1, 4):
        retry_result = await engine.retry(result.notification_id)
        assert retry_result.success is False
        assert retry_result.error_kind is ErrorKind.EXTERNAL_SERVICE
        record = engine.get_status(result.notification_id)
        assert record is not None
        assert record.retry_count == attempt

    senders[Channel.EMAIL].fail_with = None
    blocked = await engine.retry(result.notification_id)

    assert blocked.success is False
    assert blocked.error_kind is ErrorKind.INVALID_STATE
    assert blocked.error_message is not None
    assert "Maximum retries exceeded" in blocked.error_message
    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.retry_count == 3
    assert record.status is NotificationStatus.FAILED
    assert len(senders[Channel.EMAIL].delivered) == 4


@pytest.mark.asyncio
async def test_zero_max_retries_disables_retry(make_engine: Callable[..., DispatchEngine], senders: dict) -> None:
    engine = make_engine(max_retries=0)
    senders[Channel.EMAIL].fail_with = RuntimeError("down")
    result = await engine.send_notification(_request())
    assert result.notification_id is not None

    retry_result = await engine.retry(result.notification_id)

    assert retry_result.error_kind is ErrorKind.INVALID_STATE


@pytest.mark.asyncio
async def test_cancel_during_inflight_delivery_keeps_record_cancelled(
    make_engine: Callable[..., DispatchEngine],
    sender_factory: type,
    events: RecordingEventSink,
) -> None:
    """A record cancelled while its delivery is awaited stays CANCELLED."""
    gate = asyncio.Event()
    sender = sender_factory(gate=gate)
    engine = make_engine(router=ChannelRouter({Channel.SMS: sender}))

    task = asyncio.create_task(engine.send_notification(_request(channel=Channel.SMS, recipient="+15550100")))
    _ = await sender.started.wait()

    pending = engine.get_status("n1")
    assert pending is not None
    assert pending.status is NotificationStatus.PENDING
    assert engine.cancel("n1") is True

    gate.set()
    result = await task

    assert result.success is False
    assert result.error_kind is ErrorKind.CANCELLED
    assert result.notification_id == "n1"
    record = engine.get_status("n1")
    assert record is not None
    assert record.status is NotificationStatus.CANCELLED
    assert record.sent_at is None
    assert events.types_for("n1") == [LifecycleEventType.CREATED, LifecycleEventType.CANCELLED]


@pytest.mark.asyncio
async def test_cancel_during_failing_delivery_keeps_record_cancelled(
    make_engine: Callable[..., DispatchEngine],
    sender_factory: type,
) -> None:
    gate = asyncio.Event()
    sender = sender_factory(gate=gate, fail_with=RuntimeError("late failure"))
    engine = make_engine(router=ChannelRouter({Channel.SMS: sender}))

    task = asyncio.create_task(engine.send_notification(_request(channel=Channel.SMS)))
    _ = await sender.started.wait()
    assert engine.cancel("n1") is True
    gate.set()
    result = await task

    assert result.error_kind is ErrorKind.CANCELLED
    record = engine.get_status("n1")
    assert record is not None
    assert record.status is NotificationStatus.CANCELLED
    assert record.error_message is None


@pytest.mark.asyncio
async def test_cancel_returns_true_exactly_once(
    make_engine: Callable[..., DispatchEngine],
    sender_factory: type,
) -> None:
    gate = asyncio.Event()
    sender = sender_factory(gate=gate)
    engine = make_engine(router=ChannelRouter({Channel.PUSH: sender}))

    task = asyncio.create_task(engine.send_notification(_request(channel=Channel.PUSH)))
    _ = await sender.started.wait()

    assert engine.cancel("n1") is True
    assert engine.cancel("n1") is False

    gate.set()
    _ = await task


@pytest.mark.asyncio
async def test_cancel_rejects_non_pending_records(engine: DispatchEngine, senders: dict) -> None:
    sent = await engine.send_notification(_request())
    senders[Channel.SMS].fail_with = RuntimeError("down")
    failed = await engine.send_notification(_request(channel=Channel.SMS))
    assert sent.notification_id is not None
    assert failed.notification_id is not None

    assert engine.cancel(sent.notification_id) is False
    assert engine.cancel(failed.notification_id) is False
    assert engine.cancel("missing") is False

    sent_record = engine.get_status(sent.notification_id)
    failed_record = engine.get_status(failed.notification_id)
    assert sent_record is not None
    assert failed_record is not None
    assert sent_record.status is NotificationStatus.SENT
    assert failed_record.status is NotificationStatus.FAILED


@pytest.mark.asyncio
async def test_confirm_delivery_moves_sent_to_delivered(engine: DispatchEngine, events: RecordingEventSink) -> None:
    result = await engine.send_notification(_request())
    assert result.notification_id is not None

    assert engine.confirm_delivery(result.notification_id) is True
    assert engine.confirm_delivery(result.notification_id) is False

    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.status is NotificationStatus.DELIVERED
    assert record.delivered_at is not None
    assert record.sent_at is not None
    assert record.delivered_at >= record.sent_at
    assert events.types_for(result.notification_id)[-1] is LifecycleEventType.DELIVERED


@pytest.mark.asyncio
async def test_confirm_delivery_ignores_other_statuses(engine: DispatchEngine, senders: dict) -> None:
    senders[Channel.EMAIL].fail_with = RuntimeError("down")
    result = await engine.send_notification(_request())
    assert result.notification_id is not None

    assert engine.confirm_delivery(result.notification_id) is False
    assert engine.confirm_delivery("missing") is False
    record = engine.get_status(result.notification_id)
    assert record is not None
    assert record.status is NotificationStatus.FAILED


@pytest.mark.asyncio
async def test_bulk_embeds_per_item_failures(engine: DispatchEngine, senders: dict) -> None:
    """First item succeeds, second item's sender throws; both are stored."""
    senders[Channel.SMS].fail_with = RuntimeError("sms gateway down")

    results = await engine.send_bulk(
        [
            _request(recipient="a@example.com"),
            _request(recipient="+15550100", channel=Channel.SMS),
        ]
    )

    assert len(results) == 2
    assert results[0].success is True
    assert results[1].success is False
    assert results[1].error_kind is ErrorKind.EXTERNAL_SERVICE
    for result in results:
        assert result.notification_id is not None
        assert engine.get_status(result.notification_id) is not None
    assert len(engine.store) == 2


@pytest.mark.asyncio
async def test_bulk_converts_validation_errors_to_results(engine: DispatchEngine) -> None:
    results = await engine.send_bulk([_request(), None, _request(message=""), _request(channel=Channel.PUSH)])

    assert [result.success for result in results] == [True, False, False, True]
    assert results[1].error_kind is ErrorKind.VALIDATION
    assert results[2].error_kind is ErrorKind.VALIDATION
    assert results[1].notification_id is None
    assert len(engine.store) == 2


@pytest.mark.asyncio
async def test_bulk_reports_unknown_channel_as_unsupported(engine: DispatchEngine) -> None:
    unknown = NotificationRequest(
        recipient="u1",
        message="m",
        channel="fax",  # pyright: ignore[reportArgumentType]
    )

    results = await engine.send_bulk([unknown, _request(channel=Channel.SMS)])

    assert results[0].success is False
    assert results[0].error_kind is ErrorKind.UNSUPPORTED_CHANNEL
    assert results[0].notification_id is None
    assert results[0].error_message == "Channel 'fax' is not supported"
    assert results[1].success is True
    assert len(engine.store) == 1


@pytest.mark.asyncio
async def test_bulk_none_raises_validation_error(engine: DispatchEngine) -> None:
    with pytest.raises(ValidationError):
        _ = await engine.send_bulk(None)


@pytest.mark.asyncio
async def test_bulk_empty_list_returns_empty(engine: DispatchEngine) -> None:
    assert await engine.send_bulk([]) == []


@pytest.mark.asyncio
async def test_bulk_preserves_input_order_with_bounded_concurrency(
    make_engine: Callable[..., DispatchEngine],
    sender_factory: type,
) -> None:
    engine = make_engine(bulk_concurrency=2, router=ChannelRouter({Channel.EMAIL: sender_factory()}))
    requests = [_request(recipient=f"user{index}@example.com") for index in range(7)]

    results = await engine.send_bulk(requests)

    assert all(result.success for result in results)
    recipients = []
    for result in results:
        assert result.notification_id is not None
        record = engine.get_status(result.notification_id)
        assert record is not None
        recipients.append(record.recipient)
    assert recipients == [request.recipient for request in requests]


@pytest.mark.asyncio
async def test_event_sink_failures_do_not_affect_dispatch(
    make_engine: Callable[..., DispatchEngine],
    caplog: LogCaptureFixture,
) -> None:
    engine = make_engine(event_sink=ExplodingSink())
    caplog.set_level(logging.WARNING)

    result = await engine.send_notification(_request())

    assert result.success is True
    assert "Event sink failed" in caplog.text


@pytest.mark.asyncio
async def test_correlation_id_is_attached_to_events(engine: DispatchEngine, events: RecordingEventSink) -> None:
    _ = await engine.send_notification(_request(), correlation_id="req-42")

    assert events.events
    assert {event.correlation_id for event in events.events} == {"req-42"}


def test_from_config_applies_engine_settings(router: ChannelRouter) -> None:
    engine = DispatchEngine.from_config(EngineConfig(max_retries=5, history_limit=10), router)

    assert engine.max_retries == 5


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_retries": -1},
        {"history_limit": 0},
        {"bulk_concurrency": 0},
    ],
)
def test_constructor_rejects_invalid_limits(router: ChannelRouter, overrides: dict[str, int]) -> None:
    with pytest.raises(ValueError):
        _ = DispatchEngine(router, **overrides)
