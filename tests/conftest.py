"""
Pytest configuration and fixtures for chat gateway tests.

Core components are exercised with in-memory fake transports; end-to-end
tests build an isolated app per test with create_app().
"""

import asyncio
import json
from typing import Any, Callable

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from chat_gateway.components.connection.rate_limiter import SlidingWindowRateLimiter
from chat_gateway.components.metrics.collector import MetricsCollector
from chat_gateway.core.connection.registry import ConnectionRegistry
from chat_gateway.core.router.message_router import MessageRouter
from shared.config.settings import Settings


class FakeTransport:
    """
    In-memory transport recording every frame.

    Args:
        fail_sends: Raise on send_text, as a broken socket would.
        fail_pings: Raise on ping.
        answers_pings: Report every ping as answered, like a transport that
            sees the pong itself. Otherwise only inbound frames count.
        send_delay: Seconds each send takes.
        on_close: Called with the transport when it gets closed.
    """

    def __init__(
        self,
        fail_sends: bool = False,
        fail_pings: bool = False,
        answers_pings: bool = False,
        send_delay: float = 0.0,
        on_close: Callable[["FakeTransport"], Any] | None = None,
    ) -> None:
        self.sent: list[str] = []
        self.pings = 0
        self.closed_with: tuple[int, str] | None = None
        self.fail_sends = fail_sends
        self.fail_pings = fail_pings
        self.answers_pings = answers_pings
        self.send_delay = send_delay
        self.on_close = on_close
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    async def send_text(self, data: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_sends:
            raise ConnectionResetError("peer gone")
        self.sent.append(data)

    async def ping(self) -> bool:
        if self.fail_pings:
            raise ConnectionResetError("peer gone")
        self.pings += 1
        return self.answers_pings and self._open

    async def close(self, code: int, reason: str = "") -> None:
        if not self._open:
            return
        self._open = False
        self.closed_with = (code, reason)
        if self.on_close is not None:
            self.on_close(self)

    def drop(self) -> None:
        """Simulate the peer vanishing without a close handshake."""
        self._open = False

    @property
    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(data) for data in self.sent]

    def frames_of(self, frame_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.frames if frame["type"] == frame_type]


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def registry(metrics):
    return ConnectionRegistry(metrics=metrics)


@pytest.fixture
def rate_limiter():
    return SlidingWindowRateLimiter(max_messages=10, window_seconds=60.0)


@pytest_asyncio.fixture
async def router(registry, rate_limiter, metrics):
    router = MessageRouter(registry, rate_limiter, metrics=metrics, message_delay=0)
    router.start()
    yield router
    await router.stop(timeout=1.0)


@pytest.fixture
def connect(registry):
    """Register a fake connection; returns (client_id, transport)."""

    async def _connect(address: str = "10.0.0.1", **transport_kwargs: Any):
        transport = FakeTransport(**transport_kwargs)
        client_id = await registry.add(transport, address)
        return client_id, transport

    return _connect


@pytest.fixture
def join(router):
    """Join a connection with a name and wait for the frames to be sent."""

    async def _join(client_id: str, username: str) -> None:
        await router.handle_inbound(client_id, json.dumps({"type": "join", "username": username}))

    return _join


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        environment="test",
        debug=False,
        log_to_files=False,
        log_directory=str(tmp_path),
        message_delay_seconds=0,
        shutdown_grace_seconds=0.2,
    )


@pytest.fixture
def client(test_settings):
    from chat_gateway.main import create_app

    app = create_app(test_settings)
    with TestClient(app) as test_client:
        yield test_client
