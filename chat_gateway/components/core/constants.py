"""
Chat Gateway Constants.

Centralized constants with documentation explaining each value.
Values marked as configurable are defaults; at runtime the components read
them from `shared.config.settings` which can override them via environment
variables.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "ChatConstants",
    "SystemMessages",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455. Clients treat any code other
    than NORMAL as an abnormal closure and may reconnect.
    """

    NORMAL = 1000  # Normal closure (server shutdown, orderly close)
    GOING_AWAY = 1001  # Probe timeout or inactivity eviction
    POLICY_VIOLATION = 1008  # Generic policy violation
    MESSAGE_TOO_BIG = 1009  # Frame larger than max_frame_size
    SERVER_ERROR = 1011  # Unexpected server error
    SERVER_OVERLOADED = 1013  # Server shutting down, try again later


class ChatConstants:
    """
    Chat gateway operational constants.

    Configurable via settings.py:
    - MAX_MESSAGES_PER_WINDOW -> settings.rate_limit_max_messages
    - RATE_LIMIT_WINDOW -> settings.rate_limit_window_seconds
    - MESSAGE_DELAY -> settings.message_delay_seconds
    - PING_INTERVAL -> settings.ping_interval_seconds
    - SWEEP_INTERVAL -> settings.sweep_interval_seconds
    - INACTIVITY_TIMEOUT -> settings.inactivity_timeout_seconds
    - SHUTDOWN_GRACE -> settings.shutdown_grace_seconds
    - BROADCAST_BATCH_SIZE -> settings.broadcast_batch_size
    - MIN/MAX_USERNAME_LENGTH, MIN/MAX_MESSAGE_LENGTH -> settings.min_/max_*_length
    """

    # ==========================================================================
    # Rate Limiter
    # ==========================================================================

    # 10 messages per 60 seconds per identifier
    MAX_MESSAGES_PER_WINDOW: Final[int] = 10
    RATE_LIMIT_WINDOW: Final[float] = 60.0

    # ==========================================================================
    # Input bounds (after trimming)
    # ==========================================================================

    MIN_USERNAME_LENGTH: Final[int] = 2
    MAX_USERNAME_LENGTH: Final[int] = 30
    MIN_MESSAGE_LENGTH: Final[int] = 1
    MAX_MESSAGE_LENGTH: Final[int] = 500

    # ==========================================================================
    # Delivery Queue
    # ==========================================================================

    # MESSAGE_DELAY: 100 ms between consecutive broadcasts while backlog exists.
    # Only applied when the queue is still non-empty after a broadcast.
    MESSAGE_DELAY: Final[float] = 0.1

    # ==========================================================================
    # Liveness
    # ==========================================================================

    # PING_INTERVAL: A probe must be acknowledged within one cycle, otherwise
    # the connection is closed on the next tick (eviction after 30-60s).
    PING_INTERVAL: Final[float] = 30.0

    # SWEEP_INTERVAL / INACTIVITY_TIMEOUT: coarse application-level check,
    # orthogonal to the transport probe.
    SWEEP_INTERVAL: Final[float] = 300.0
    INACTIVITY_TIMEOUT: Final[float] = 300.0

    # SHUTDOWN_GRACE: wait for close handshakes before forcing termination.
    SHUTDOWN_GRACE: Final[float] = 10.0

    # ==========================================================================
    # Broadcast
    # ==========================================================================

    # Connections sent to in parallel per batch.
    BROADCAST_BATCH_SIZE: Final[int] = 50

    # Per-send timeout so one slow client cannot stall a broadcast.
    SEND_TIMEOUT: Final[float] = 5.0

    # Identifier used when the remote address cannot be determined.
    UNKNOWN_ADDRESS: Final[str] = "unknown"


class SystemMessages:
    """User-facing system texts, in the language of the chat frontend."""

    CONNECTION_SUCCESS: Final[str] = "Conectado al servidor"
    JOIN_SUCCESS: Final[str] = "Te has unido al chat exitosamente"
    USER_JOINED: Final[str] = "se ha unido al chat"
    USER_LEFT: Final[str] = "ha abandonado el chat"
    ALREADY_JOINED: Final[str] = "Ya te has unido al chat"
    SERVER_ERROR: Final[str] = "Error del servidor. Intenta nuevamente."
    SERVER_SHUTDOWN: Final[str] = "Servidor cerrando"
    HEARTBEAT_TIMEOUT: Final[str] = "Heartbeat timeout"
    INACTIVITY_TIMEOUT: Final[str] = "Inactivity timeout"
    MESSAGE_TOO_BIG: Final[str] = "Message too large"

