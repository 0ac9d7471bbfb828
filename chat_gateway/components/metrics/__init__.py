"""
Metrics and observability components.
"""

from chat_gateway.components.metrics.collector import (
    MetricsCollector,
    BroadcastMetrics,
    MessageMetrics,
    LivenessMetrics,
)

__all__ = [
    "MetricsCollector",
    "BroadcastMetrics",
    "MessageMetrics",
    "LivenessMetrics",
]
