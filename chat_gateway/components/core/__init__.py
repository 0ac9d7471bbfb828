"""
Core components: constants and connection context helpers.
"""

from chat_gateway.components.core.constants import (
    WSCloseCode,
    ChatConstants,
    SystemMessages,
)
from chat_gateway.components.core.context import (
    epoch_ms,
    get_client_address,
    sanitize_log_data,
)

__all__ = [
    "WSCloseCode",
    "ChatConstants",
    "SystemMessages",
    "epoch_ms",
    "get_client_address",
    "sanitize_log_data",
]
