"""
Liveness Monitor.

Two independent timers over the registry:
- Probe cycle: a connection that did not acknowledge the previous probe is
  closed, every other one is pinged again. A transport that confirms the
  pong itself is marked alive on the spot.
- Sweep cycle: coarse inactivity check plus rate limiter memory cleanup.

Also drives the graceful shutdown of all connections.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Awaitable, Callable

from chat_gateway.components.core.constants import ChatConstants, SystemMessages, WSCloseCode
from shared.config.logging import get_logger, log_connection_event

if TYPE_CHECKING:
    from chat_gateway.components.connection.rate_limiter import SlidingWindowRateLimiter
    from chat_gateway.components.metrics.collector import MetricsCollector
    from chat_gateway.core.connection.registry import Connection, ConnectionRegistry

logger = get_logger(__name__)

# How often shutdown checks whether all close handshakes completed
_SHUTDOWN_POLL_INTERVAL = 0.1


class LivenessMonitor:
    """
    Periodic probe-and-sweep over the connection registry.

    Usage:
        monitor = LivenessMonitor(registry, rate_limiter)
        monitor.start()
        ...
        await monitor.shutdown()
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        rate_limiter: "SlidingWindowRateLimiter | None" = None,
        metrics: "MetricsCollector | None" = None,
        ping_interval: float = ChatConstants.PING_INTERVAL,
        sweep_interval: float = ChatConstants.SWEEP_INTERVAL,
        inactivity_timeout: float = ChatConstants.INACTIVITY_TIMEOUT,
        shutdown_grace: float = ChatConstants.SHUTDOWN_GRACE,
        on_departure: "Callable[[Connection], Awaitable[None]] | None" = None,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            registry: Connections to probe and sweep.
            rate_limiter: Swept on every sweep cycle when given.
            metrics: Optional collector for eviction counters.
            ping_interval: Seconds between probe cycles.
            sweep_interval: Seconds between sweep cycles.
            inactivity_timeout: Seconds without inbound activity before a sweep removes a connection.
            shutdown_grace: Seconds shutdown waits for close handshakes.
            on_departure: Called with each connection the sweep removed, e.g. to
                announce it to the remaining users.
        """
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._metrics = metrics
        self._ping_interval = ping_interval
        self._sweep_interval = sweep_interval
        self._inactivity_timeout = inactivity_timeout
        self._shutdown_grace = shutdown_grace
        self._on_departure = on_departure

        self._tasks: list[asyncio.Task] = []
        self._shutting_down = False

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    @property
    def is_shutting_down(self) -> bool:
        """True once shutdown() started; new connections must be refused."""
        return self._shutting_down

    # =========================================================================
    # Timers
    # =========================================================================

    def start(self) -> None:
        """Start the probe and sweep timers. Calling it twice is a no-op."""
        if self.is_running:
            logger.warning("Liveness monitor already running")
            return

        self._tasks = [
            asyncio.create_task(
                self._run_periodic(self._ping_interval, self.run_probe_cycle, "probe"),
                name="liveness_probe",
            ),
            asyncio.create_task(
                self._run_periodic(self._sweep_interval, self.run_sweep_cycle, "sweep"),
                name="liveness_sweep",
            ),
        ]
        logger.info(
            "Liveness monitor started",
            ping_interval=self._ping_interval,
            sweep_interval=self._sweep_interval,
            inactivity_timeout=self._inactivity_timeout,
        )

    async def stop(self) -> None:
        """Cancel both timers and wait for them, so no further tick fires."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Liveness monitor stopped")

    async def _run_periodic(
        self,
        interval: float,
        cycle: Callable[[], Awaitable[int]],
        label: str,
    ) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
                await cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                # One failed tick must not stop the timer
                logger.error("Error in liveness cycle", cycle=label, error=str(e), exc_info=True)

    # =========================================================================
    # Cycles
    # =========================================================================

    async def run_probe_cycle(self) -> int:
        """
        Run one probe tick.

        Returns:
            Number of connections closed for not acknowledging the last probe.
        """
        connections = [c for c in await self._registry.snapshot() if c.transport.is_open]
        if not connections:
            return 0

        results = await asyncio.gather(
            *[self._probe(connection) for connection in connections],
            return_exceptions=True,
        )
        evicted = sum(1 for r in results if r is True)

        if evicted:
            logger.info("Unresponsive connections closed", count=evicted)
        return evicted

    async def _probe(self, connection: "Connection") -> bool:
        was_alive = await self._registry.begin_probe(connection.client_id)
        if was_alive is None:
            return False

        if not was_alive:
            # The endpoint's close path runs handle_disconnect
            try:
                await connection.transport.close(
                    WSCloseCode.GOING_AWAY, SystemMessages.HEARTBEAT_TIMEOUT
                )
            except Exception as e:
                logger.debug("Failed to close unresponsive connection: %s", str(e))
            if self._metrics is not None:
                self._metrics.increment_probe_evictions()
            log_connection_event(
                "EVICTED",
                connection.client_id,
                username=connection.username,
                remote_address=connection.remote_address,
                reason=SystemMessages.HEARTBEAT_TIMEOUT,
            )
            return True

        try:
            acknowledged = await connection.transport.ping()
        except Exception as e:
            # Unacknowledged; closed on the next tick
            logger.debug("Ping failed: %s", str(e), client_id=connection.client_id)
            return False

        if acknowledged:
            await self._registry.mark_alive(connection.client_id)
        return False

    async def run_sweep_cycle(self) -> int:
        """
        Run one sweep tick.

        Returns:
            Number of connections removed for inactivity or closed transports.
        """
        removed = await self._registry.remove_stale(self._inactivity_timeout)

        if self._on_departure is not None:
            for connection in removed:
                try:
                    await self._on_departure(connection)
                except Exception as e:
                    logger.warning("Error announcing swept connection", client_id=connection.client_id, error=str(e))

        if self._rate_limiter is not None:
            try:
                await self._rate_limiter.sweep()
            except Exception as e:
                logger.warning("Error during rate limiter sweep", error=str(e))

        return len(removed)

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self, grace: float | None = None) -> int:
        """
        Close every connection, then force-remove what is left after the grace period.

        Args:
            grace: Seconds to wait for close handshakes. Defaults to shutdown_grace.

        Returns:
            Number of connections force-removed after the grace period.
        """
        grace = self._shutdown_grace if grace is None else grace
        self._shutting_down = True

        await self.stop()

        total = len(self._registry)
        logger.info("Closing all connections", count=total, grace=grace)
        await self._registry.close_all(WSCloseCode.NORMAL, SystemMessages.SERVER_SHUTDOWN)

        deadline = time.monotonic() + grace
        while len(self._registry) and time.monotonic() < deadline:
            await asyncio.sleep(_SHUTDOWN_POLL_INTERVAL)

        remaining = await self._registry.snapshot()
        for connection in remaining:
            await self._registry.remove(
                connection.client_id, WSCloseCode.NORMAL, SystemMessages.SERVER_SHUTDOWN
            )

        if remaining:
            logger.warning("Connections force-removed after grace period", count=len(remaining))
        logger.info("All connections closed", total=total)
        return len(remaining)
