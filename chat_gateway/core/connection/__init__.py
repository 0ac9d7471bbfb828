"""
Connection Management Module.

- registry.py: Live connections, name uniqueness, unicast and broadcast
- liveness.py: Probe and inactivity sweep timers, graceful shutdown
"""

from chat_gateway.core.connection.registry import (
    BroadcastResult,
    Connection,
    ConnectionRegistry,
    generate_client_id,
)
from chat_gateway.core.connection.liveness import LivenessMonitor

__all__ = [
    "BroadcastResult",
    "Connection",
    "ConnectionRegistry",
    "generate_client_id",
    "LivenessMonitor",
]
