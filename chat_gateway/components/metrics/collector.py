"""
Metrics Collector for the Chat Gateway.

Centralizes counters for observability. Exposed through the router's
get_stats() and the /health endpoint.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


@dataclass
class BroadcastMetrics:
    """Metrics for fan-out operations."""
    total: int = 0
    recipients_succeeded: int = 0
    recipients_failed: int = 0


@dataclass
class MessageMetrics:
    """Metrics for inbound chat traffic."""
    accepted: int = 0
    rate_limited: int = 0
    client_errors: int = 0
    internal_errors: int = 0


@dataclass
class LivenessMetrics:
    """Metrics for dead-connection detection."""
    probe_evictions: int = 0
    sweep_removals: int = 0


class MetricsCollector:
    """
    Thread-safe metrics collector.

    Every update happens from a coroutine without awaiting, so a plain
    threading lock is enough and callers never yield to record a counter.

    Usage:
        metrics = MetricsCollector()
        metrics.record_broadcast(succeeded=3, failed=1)
        stats = metrics.get_snapshot()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._broadcast = BroadcastMetrics()
        self._message = MessageMetrics()
        self._liveness = LivenessMetrics()

    # ==========================================================================
    # Broadcast Metrics
    # ==========================================================================

    def record_broadcast(self, succeeded: int, failed: int) -> None:
        """Record the outcome of one fan-out."""
        with self._lock:
            self._broadcast.total += 1
            self._broadcast.recipients_succeeded += succeeded
            self._broadcast.recipients_failed += failed

    # ==========================================================================
    # Message Metrics
    # ==========================================================================

    def increment_messages_accepted(self) -> None:
        with self._lock:
            self._message.accepted += 1

    def increment_rate_limited(self) -> None:
        with self._lock:
            self._message.rate_limited += 1

    def increment_client_errors(self) -> None:
        """Count an error reply caused by the client (parse, validation, ...)."""
        with self._lock:
            self._message.client_errors += 1

    def increment_internal_errors(self) -> None:
        with self._lock:
            self._message.internal_errors += 1

    # ==========================================================================
    # Liveness Metrics
    # ==========================================================================

    def increment_probe_evictions(self) -> None:
        with self._lock:
            self._liveness.probe_evictions += 1

    def add_sweep_removals(self, count: int) -> None:
        with self._lock:
            self._liveness.sweep_removals += count

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def get_snapshot(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Metric names follow the {category}_{metric} pattern.
        """
        with self._lock:
            return {
                "broadcasts_total": self._broadcast.total,
                "broadcasts_recipients_succeeded": self._broadcast.recipients_succeeded,
                "broadcasts_recipients_failed": self._broadcast.recipients_failed,
                "messages_accepted": self._message.accepted,
                "messages_rate_limited": self._message.rate_limited,
                "errors_client": self._message.client_errors,
                "errors_internal": self._message.internal_errors,
                "liveness_probe_evictions": self._liveness.probe_evictions,
                "liveness_sweep_removals": self._liveness.sweep_removals,
            }

    def reset(self) -> dict[str, Any]:
        """Reset all metrics and return the previous values."""
        snapshot = self.get_snapshot()
        with self._lock:
            self._broadcast = BroadcastMetrics()
            self._message = MessageMetrics()
            self._liveness = LivenessMetrics()
        return snapshot
