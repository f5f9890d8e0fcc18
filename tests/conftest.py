"""Global pytest configuration and fixtures.

Provides an in-memory Redis stand-in with working Pub/Sub fan-out, a
manual clock for TTL tests, and an ``eventually`` helper for asserting
on background delivery.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest


class FakePubSub:
    """Dedicated subscriber connection backed by an asyncio.Queue."""

    def __init__(self, broker: FakeRedis) -> None:
        self.broker = broker
        self.channels: set[str] = set()
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.closed = False

    async def subscribe(self, *channels: str) -> None:
        if self.broker.subscribe_delay:
            await asyncio.sleep(self.broker.subscribe_delay)
        if self.broker.fail_next_subscribe is not None:
            error, self.broker.fail_next_subscribe = self.broker.fail_next_subscribe, None
            raise error
        self.channels.update(channels)

    async def unsubscribe(self, *channels: str) -> None:
        self.channels.difference_update(channels)

    async def get_message(
        self, ignore_subscribe_messages: bool = False, timeout: float = 0.0
    ) -> dict[str, Any] | None:
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    async def aclose(self) -> None:
        self.closed = True
        self.channels.clear()


class FakeRedis:
    """Enough of redis.asyncio.Redis for publish/subscribe."""

    def __init__(self) -> None:
        self.pubsubs: list[FakePubSub] = []
        self.published: list[tuple[str, bytes]] = []
        self.fail_next_subscribe: Exception | None = None
        self.subscribe_delay = 0.0

    def pubsub(self) -> FakePubSub:
        pubsub = FakePubSub(self)
        self.pubsubs.append(pubsub)
        return pubsub

    async def publish(self, channel: str, data: bytes) -> int:
        self.published.append((channel, data))
        receivers = 0
        for pubsub in self.pubsubs:
            if channel in pubsub.channels and not pubsub.closed:
                pubsub.queue.put_nowait(
                    {"type": "message", "channel": channel.encode(), "data": data}
                )
                receivers += 1
        return receivers


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_redis() -> FakeRedis:
    """In-memory Redis with Pub/Sub."""
    return FakeRedis()


@pytest.fixture
def clock() -> ManualClock:
    """Manual clock for TTL tests."""
    return ManualClock()


@pytest.fixture
def eventually() -> Callable[[Callable[[], bool]], Awaitable[None]]:
    """Wait until a condition holds, failing after one second."""

    async def wait(condition: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.01)

    return wait
