"""
Tests for the liveness monitor.

Tests verify:
- A connection that misses one probe is closed on the next tick
- Any inbound frame acknowledges the probe
- A transport that sees the pong itself is never evicted while idle
- Sweep removes inactive connections and trims the rate limiter
- Swept users are announced to the remaining ones
- Shutdown closes everything and force-removes stragglers
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from chat_gateway.components.connection.rate_limiter import SlidingWindowRateLimiter
from chat_gateway.components.core.constants import WSCloseCode
from chat_gateway.core.connection.liveness import LivenessMonitor


@pytest.fixture
def monitor(registry, metrics):
    return LivenessMonitor(registry, metrics=metrics, ping_interval=30, sweep_interval=300)


class TestProbeCycle:

    @pytest.mark.asyncio
    async def test_first_tick_probes(self, monitor, registry, connect):
        client_id, transport = await connect()

        evicted = await monitor.run_probe_cycle()

        assert evicted == 0
        assert transport.pings == 1
        assert registry.get(client_id).is_alive is False

    @pytest.mark.asyncio
    async def test_unacknowledged_probe_evicts(self, monitor, connect, metrics):
        _, transport = await connect()

        await monitor.run_probe_cycle()
        evicted = await monitor.run_probe_cycle()

        assert evicted == 1
        assert transport.closed_with == (WSCloseCode.GOING_AWAY, "Heartbeat timeout")
        assert transport.pings == 1
        assert metrics.get_snapshot()["liveness_probe_evictions"] == 1

    @pytest.mark.asyncio
    async def test_acknowledged_probe_keeps_connection(self, monitor, registry, connect):
        client_id, transport = await connect()

        for _ in range(3):
            await monitor.run_probe_cycle()
            await registry.mark_alive(client_id)

        assert transport.closed_with is None
        assert transport.pings == 3

    @pytest.mark.asyncio
    async def test_idle_connection_answering_pings_survives(self, monitor, registry, connect, metrics):
        client_id, transport = await connect(answers_pings=True)

        evicted = [await monitor.run_probe_cycle() for _ in range(5)]

        assert evicted == [0] * 5
        assert transport.pings == 5
        assert transport.closed_with is None
        assert registry.get(client_id).is_alive is True
        assert metrics.get_snapshot()["liveness_probe_evictions"] == 0

    @pytest.mark.asyncio
    async def test_inbound_frame_acknowledges_probe(self, monitor, router, connect):
        client_id, transport = await connect()

        await monitor.run_probe_cycle()
        await router.handle_inbound(client_id, '{"type": "ping"}')
        await monitor.run_probe_cycle()

        assert transport.closed_with is None

    @pytest.mark.asyncio
    async def test_closed_transports_skipped(self, monitor, connect):
        _, transport = await connect()
        transport.drop()

        assert await monitor.run_probe_cycle() == 0
        assert transport.pings == 0

    @pytest.mark.asyncio
    async def test_failed_probe_send_tolerated(self, monitor, connect):
        _, failing = await connect(fail_pings=True)
        _, healthy = await connect()

        assert await monitor.run_probe_cycle() == 0
        assert healthy.pings == 1

        # The failed probe was never acknowledged
        assert await monitor.run_probe_cycle() == 2
        assert failing.closed_with[0] == WSCloseCode.GOING_AWAY

    @pytest.mark.asyncio
    async def test_empty_registry(self, monitor):
        assert await monitor.run_probe_cycle() == 0


class TestSweepCycle:

    @pytest.mark.asyncio
    async def test_sweep_removes_inactive_and_trims_limiter(self, registry, metrics, connect):
        limiter = SlidingWindowRateLimiter(max_messages=10, window_seconds=60.0)
        monitor = LivenessMonitor(registry, rate_limiter=limiter, metrics=metrics, inactivity_timeout=300)
        idle_id, idle = await connect()
        active_id, _ = await connect()
        registry.get(idle_id).last_activity_at -= 400_000
        await limiter.check_and_record("ip:gone", now=0.0)

        removed = await monitor.run_sweep_cycle()

        assert removed == 1
        assert idle_id not in registry
        assert active_id in registry
        assert idle.closed_with == (WSCloseCode.GOING_AWAY, "Inactivity timeout")
        assert limiter.tracked_count == 0

    @pytest.mark.asyncio
    async def test_swept_user_announced(self, registry, router, connect, join):
        monitor = LivenessMonitor(registry, inactivity_timeout=300, on_departure=router.announce_departure)
        ana_id, _ = await connect()
        bob_id, bob = await connect()
        await join(ana_id, "Ana")
        await join(bob_id, "Bob")
        registry.get(ana_id).last_activity_at -= 400_000

        assert await monitor.run_sweep_cycle() == 1

        left = bob.frames_of("userLeft")
        assert len(left) == 1
        assert left[0]["username"] == "Ana"
        assert left[0]["message"] == "Ana ha abandonado el chat"
        assert [u["username"] for u in left[0]["users"]] == ["Bob"]

    @pytest.mark.asyncio
    async def test_swept_anonymous_connection_not_announced(self, registry, router, connect, join):
        monitor = LivenessMonitor(registry, inactivity_timeout=300, on_departure=router.announce_departure)
        idle_id, _ = await connect()
        bob_id, bob = await connect()
        await join(bob_id, "Bob")
        registry.get(idle_id).last_activity_at -= 400_000

        assert await monitor.run_sweep_cycle() == 1
        assert bob.frames_of("userLeft") == []

    @pytest.mark.asyncio
    async def test_departure_failure_does_not_stop_sweep(self, registry, connect):
        limiter = SlidingWindowRateLimiter(max_messages=10, window_seconds=60.0)
        on_departure = AsyncMock(side_effect=RuntimeError("boom"))
        monitor = LivenessMonitor(registry, rate_limiter=limiter, inactivity_timeout=300, on_departure=on_departure)
        first_id, _ = await connect()
        second_id, _ = await connect()
        for client_id in (first_id, second_id):
            registry.get(client_id).last_activity_at -= 400_000
        await limiter.check_and_record("ip:gone", now=0.0)

        assert await monitor.run_sweep_cycle() == 2
        assert on_departure.await_count == 2
        assert limiter.tracked_count == 0

    @pytest.mark.asyncio
    async def test_sweep_without_limiter(self, monitor, connect):
        await connect()

        assert await monitor.run_sweep_cycle() == 0


class TestTimers:

    @pytest.mark.asyncio
    async def test_start_and_stop(self, registry, connect):
        monitor = LivenessMonitor(registry, ping_interval=0.02, sweep_interval=10)
        _, transport = await connect()

        monitor.start()
        assert monitor.is_running
        await asyncio.sleep(0.1)
        await monitor.stop()

        assert monitor.is_running is False
        # Probed on the first tick, closed on a later one
        assert transport.pings >= 1
        assert transport.closed_with == (WSCloseCode.GOING_AWAY, "Heartbeat timeout")

    @pytest.mark.asyncio
    async def test_second_start_is_noop(self, monitor):
        monitor.start()
        tasks = list(monitor._tasks)

        monitor.start()

        assert monitor._tasks == tasks
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_no_ticks_after_stop(self, registry, connect):
        monitor = LivenessMonitor(registry, ping_interval=0.02, sweep_interval=10)
        _, transport = await connect()
        monitor.start()
        await monitor.stop()

        await asyncio.sleep(0.06)

        assert transport.pings == 0


class TestShutdown:

    @pytest.mark.asyncio
    async def test_shutdown_closes_and_force_removes(self, monitor, registry, connect):
        _, t1 = await connect()
        _, t2 = await connect()

        forced = await monitor.shutdown(grace=0.05)

        assert monitor.is_shutting_down
        assert forced == 2
        assert len(registry) == 0
        assert t1.closed_with == (1000, "Servidor cerrando")
        assert t2.closed_with == (1000, "Servidor cerrando")

    @pytest.mark.asyncio
    async def test_shutdown_returns_early_when_connections_leave(self, registry, connect):
        monitor = LivenessMonitor(registry, shutdown_grace=5.0)
        ids: dict[int, str] = {}
        pending: list[asyncio.Task] = []

        def leave(transport):
            pending.append(asyncio.ensure_future(registry.remove(ids[id(transport)])))

        for _ in range(3):
            client_id, transport = await connect(on_close=leave)
            ids[id(transport)] = client_id

        loop = asyncio.get_running_loop()
        started = loop.time()
        forced = await monitor.shutdown()

        assert forced == 0
        assert len(registry) == 0
        assert loop.time() - started < 1.0

    @pytest.mark.asyncio
    async def test_shutdown_stops_timers(self, monitor):
        monitor.start()

        await monitor.shutdown(grace=0)

        assert monitor.is_running is False
