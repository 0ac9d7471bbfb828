"""
Chat Gateway Core Module.

- connection/: Connection registry and liveness monitoring
- router/: Inbound routing and the ordered delivery queue
- endpoint.py: Per-connection transport glue
"""

from chat_gateway.core.connection import (
    BroadcastResult,
    Connection,
    ConnectionRegistry,
    LivenessMonitor,
)
from chat_gateway.core.router import DeliveryQueue, MessageRouter

__all__ = [
    "BroadcastResult",
    "Connection",
    "ConnectionRegistry",
    "LivenessMonitor",
    "DeliveryQueue",
    "MessageRouter",
]
