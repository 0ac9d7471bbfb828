"""
Routing Module.

- message_router.py: Validation, rate limiting and dispatch of inbound frames
- delivery.py: Single-drain FIFO broadcast queue
"""

from chat_gateway.core.router.delivery import DeliveryQueue
from chat_gateway.core.router.message_router import MessageRouter

__all__ = [
    "DeliveryQueue",
    "MessageRouter",
]
