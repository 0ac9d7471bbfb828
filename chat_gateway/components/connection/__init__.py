"""
Connection components.

Transport abstraction over the WebSocket and per-identifier rate limiting.
"""

from chat_gateway.components.connection.rate_limiter import (
    RateLimitResult,
    SlidingWindowRateLimiter,
)
from chat_gateway.components.connection.transport import (
    StarletteTransport,
    Transport,
    is_ws_connected,
)

__all__ = [
    "RateLimitResult",
    "SlidingWindowRateLimiter",
    "StarletteTransport",
    "Transport",
    "is_ws_connected",
]
