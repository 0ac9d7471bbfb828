"""
Delivery Queue.

Strict FIFO of accepted chat messages drained by exactly one worker task.
Message N+1 is never broadcast before the broadcast of message N completed,
which gives every connection the same order regardless of sender.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from chat_gateway.components.core.constants import ChatConstants
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from chat_gateway.components.events.types import OutboundMessage
    from chat_gateway.core.connection.registry import ConnectionRegistry

logger = get_logger(__name__)


class DeliveryQueue:
    """
    Single-drain broadcast queue.

    enqueue() is safe from any connection's flow; the worker is started
    lazily on the first enqueue and replaced if it ever died. Between two
    broadcasts the worker pauses `message_delay` seconds, but only while a
    backlog exists.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        message_delay: float = ChatConstants.MESSAGE_DELAY,
    ) -> None:
        self._registry = registry
        self._message_delay = message_delay
        self._queue: asyncio.Queue["OutboundMessage"] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._closed = False
        self._delivered = 0

    @property
    def pending(self) -> int:
        """Messages waiting to be broadcast."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker if it is not running and accept new messages."""
        self._closed = False
        self._ensure_worker()

    def _ensure_worker(self) -> None:
        if self.is_running:
            return
        if self._worker is not None and self._worker.done() and not self._worker.cancelled():
            error = self._worker.exception()
            if error is not None:
                logger.error("Delivery worker died, restarting", error=str(error))
        self._worker = asyncio.create_task(self._drain(), name="delivery_worker")

    def enqueue(self, message: "OutboundMessage") -> bool:
        """
        Append a message to the queue.

        Returns:
            False if the queue was stopped and the message was dropped.
        """
        if self._closed:
            logger.warning("Delivery queue stopped, dropping message", client_id=message.client_id)
            return False
        self._queue.put_nowait(message)
        self._ensure_worker()
        return True

    async def _drain(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self._registry.broadcast(message.to_event())
                self._delivered += 1
            except Exception as e:
                logger.error(
                    "Failed to deliver message",
                    client_id=message.client_id,
                    error=str(e),
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

            if not self._queue.empty():
                await asyncio.sleep(self._message_delay)

    async def join(self) -> None:
        """Wait until every enqueued message has been broadcast."""
        await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop accepting messages, drain for up to `timeout` seconds, then cancel the worker.

        In-flight broadcasts during shutdown are best-effort.
        """
        self._closed = True

        if self.is_running and not self._queue.empty():
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Delivery queue drain timeout", remaining=self._queue.qsize())

        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)
            logger.info("Delivery worker stopped", delivered=self._delivered)

    def get_stats(self) -> dict[str, int | bool]:
        return {
            "pending": self._queue.qsize(),
            "delivered": self._delivered,
            "worker_running": self.is_running,
        }
