"""
Tests for the metrics collector.
"""

import threading

from chat_gateway.components.metrics.collector import MetricsCollector


class TestMetricsCollector:

    def test_broadcast_totals(self):
        metrics = MetricsCollector()

        metrics.record_broadcast(succeeded=3, failed=1)
        metrics.record_broadcast(succeeded=2, failed=0)

        snapshot = metrics.get_snapshot()
        assert snapshot["broadcasts_total"] == 2
        assert snapshot["broadcasts_recipients_succeeded"] == 5
        assert snapshot["broadcasts_recipients_failed"] == 1

    def test_counters_thread_safe(self):
        metrics = MetricsCollector()

        def work():
            for _ in range(1000):
                metrics.increment_messages_accepted()

        threads = [threading.Thread(target=work) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert metrics.get_snapshot()["messages_accepted"] == 4000

    def test_reset_returns_previous_values(self):
        metrics = MetricsCollector()
        metrics.increment_rate_limited()
        metrics.add_sweep_removals(3)

        previous = metrics.reset()

        assert previous["messages_rate_limited"] == 1
        assert previous["liveness_sweep_removals"] == 3
        assert all(value == 0 for value in metrics.get_snapshot().values())
