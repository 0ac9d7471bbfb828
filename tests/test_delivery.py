"""
Tests for the single-drain delivery queue.

Tests verify:
- Broadcasts leave in enqueue order, one at a time
- The inter-message delay only applies while a backlog exists
- A failing broadcast does not stop the worker
"""

import asyncio
import time

import pytest

from chat_gateway.components.events.types import OutboundMessage
from chat_gateway.core.router.delivery import DeliveryQueue


class RecordingRegistry:
    """Stands in for the registry; records broadcasts and their overlap."""

    def __init__(self, duration: float = 0.0, fail_on: set[str] | None = None) -> None:
        self.broadcasts: list[tuple[str, float]] = []
        self.duration = duration
        self.fail_on = fail_on or set()
        self.in_flight = 0
        self.max_in_flight = 0

    async def broadcast(self, event, exclude_id=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.duration:
                await asyncio.sleep(self.duration)
            if event.content in self.fail_on:
                raise RuntimeError("fan-out failed")
            self.broadcasts.append((event.content, time.monotonic()))
        finally:
            self.in_flight -= 1

    @property
    def contents(self) -> list[str]:
        return [content for content, _ in self.broadcasts]


def message(content: str, client_id: str = "client_1_abcdefghi") -> OutboundMessage:
    return OutboundMessage(client_id=client_id, username="Ana", content=content, timestamp=0)


class TestOrdering:

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        registry = RecordingRegistry()
        queue = DeliveryQueue(registry, message_delay=0)

        for i in range(20):
            queue.enqueue(message(f"m{i}", client_id=f"client_{i % 3}"))
        await queue.join()

        assert registry.contents == [f"m{i}" for i in range(20)]
        await queue.stop()

    @pytest.mark.asyncio
    async def test_one_broadcast_at_a_time(self):
        registry = RecordingRegistry(duration=0.01)
        queue = DeliveryQueue(registry, message_delay=0)

        for i in range(5):
            queue.enqueue(message(f"m{i}"))
        await queue.join()

        assert registry.max_in_flight == 1
        await queue.stop()

    @pytest.mark.asyncio
    async def test_concurrent_producers_keep_enqueue_order(self):
        registry = RecordingRegistry(duration=0.001)
        queue = DeliveryQueue(registry, message_delay=0)
        order: list[str] = []

        async def produce(prefix: str) -> None:
            for i in range(5):
                content = f"{prefix}{i}"
                order.append(content)
                queue.enqueue(message(content))
                await asyncio.sleep(0)

        await asyncio.gather(produce("a"), produce("b"), produce("c"))
        await queue.join()

        assert registry.contents == order
        await queue.stop()


class TestPacing:

    @pytest.mark.asyncio
    async def test_no_delay_without_backlog(self):
        registry = RecordingRegistry()
        queue = DeliveryQueue(registry, message_delay=0.5)

        started = time.monotonic()
        queue.enqueue(message("solo"))
        await queue.join()

        assert time.monotonic() - started < 0.4
        await queue.stop()

    @pytest.mark.asyncio
    async def test_delay_between_backlogged_messages(self):
        registry = RecordingRegistry()
        queue = DeliveryQueue(registry, message_delay=0.05)

        for i in range(3):
            queue.enqueue(message(f"m{i}"))
        await queue.join()

        times = [at for _, at in registry.broadcasts]
        assert times[1] - times[0] >= 0.04
        assert times[2] - times[1] >= 0.04
        await queue.stop()


class TestResilience:

    @pytest.mark.asyncio
    async def test_failed_broadcast_does_not_stop_worker(self):
        registry = RecordingRegistry(fail_on={"bad"})
        queue = DeliveryQueue(registry, message_delay=0)

        queue.enqueue(message("first"))
        queue.enqueue(message("bad"))
        queue.enqueue(message("last"))
        await queue.join()

        assert registry.contents == ["first", "last"]
        assert queue.is_running
        assert queue.get_stats()["delivered"] == 2
        await queue.stop()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_worker_starts_lazily(self):
        queue = DeliveryQueue(RecordingRegistry(), message_delay=0)

        assert queue.is_running is False
        queue.enqueue(message("hola"))

        assert queue.is_running is True
        await queue.stop()

    @pytest.mark.asyncio
    async def test_stop_drains_pending(self):
        registry = RecordingRegistry(duration=0.01)
        queue = DeliveryQueue(registry, message_delay=0)
        for i in range(3):
            queue.enqueue(message(f"m{i}"))

        await queue.stop(timeout=1.0)

        assert registry.contents == ["m0", "m1", "m2"]
        assert queue.is_running is False

    @pytest.mark.asyncio
    async def test_enqueue_after_stop_dropped(self):
        registry = RecordingRegistry()
        queue = DeliveryQueue(registry, message_delay=0)
        queue.start()
        await queue.stop()

        assert queue.enqueue(message("late")) is False
        assert queue.pending == 0

    @pytest.mark.asyncio
    async def test_start_reopens_queue(self):
        registry = RecordingRegistry()
        queue = DeliveryQueue(registry, message_delay=0)
        await queue.stop()

        queue.start()
        assert queue.enqueue(message("again")) is True
        await queue.join()

        assert registry.contents == ["again"]
        await queue.stop()
