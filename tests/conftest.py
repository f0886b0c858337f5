"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from itertools import count

import pytest

from notification_dispatch.core.engine import DispatchEngine
from notification_dispatch.core.events import RecordingEventSink
from notification_dispatch.core.router import ChannelRouter
from notification_dispatch.types import Channel, Notification


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current: datetime = start or datetime(2024, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        now = self.current
        self.current = now + timedelta(seconds=1)
        return now


class StubSender:
    """Test double implementing the ChannelSender Protocol."""

    def __init__(
        self,
        *,
        confirm: bool = False,
        fail_with: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.confirm: bool = confirm
        self.fail_with: Exception | None = fail_with
        self.gate: asyncio.Event | None = gate
        self.started: asyncio.Event = asyncio.Event()
        self.delivered: list[Notification] = []

    async def deliver(self, notification: Notification) -> bool:
        self.delivered.append(notification)
        self.started.set()
        if self.gate is not None:
            _ = await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return self.confirm


class StubEmailTransport:
    """Test double implementing the EmailTransport Protocol."""

    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self.fail_with: Exception | None = fail_with
        self.calls: list[tuple[str, str, str, bool]] = []

    async def send_email(self, to: str, subject: str, body: str, *, is_html: bool = False) -> None:
        self.calls.append((to, subject, body, is_html))
        if self.fail_with is not None:
            raise self.fail_with


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def senders() -> dict[Channel, StubSender]:
    return {channel: StubSender() for channel in Channel}


@pytest.fixture
def router(senders: dict[Channel, StubSender]) -> ChannelRouter:
    return ChannelRouter(dict(senders))


@pytest.fixture
def make_engine(
    router: ChannelRouter,
    clock: FakeClock,
    events: RecordingEventSink,
) -> Callable[..., DispatchEngine]:
    """Factory building engines with deterministic ids and timestamps."""
    ids = count(1)

    def _make(**overrides: object) -> DispatchEngine:
        options: dict[str, object] = {
            "clock": clock,
            "event_sink": events,
            "id_factory": lambda: f"n{next(ids)}",
        }
        options.update(overrides)
        selected_router = options.pop("router", router)
        return DispatchEngine(selected_router, **options)  # pyright: ignore[reportArgumentType]

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., DispatchEngine]) -> DispatchEngine:
    return make_engine()


@pytest.fixture
def sender_factory() -> type[StubSender]:
    return StubSender


@pytest.fixture
def transport_factory() -> type[StubEmailTransport]:
    return StubEmailTransport
