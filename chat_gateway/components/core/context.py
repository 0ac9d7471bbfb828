"""
Connection context helpers.

Extraction of connection metadata from the transport and sanitization of
user-provided data before it reaches the logs.
"""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING

from chat_gateway.components.core.constants import ChatConstants

if TYPE_CHECKING:
    from fastapi import WebSocket


# Control characters and Unicode direction overrides stripped from log data
_CONTROL_CHAR_PATTERN = re.compile(
    r'[\x00-\x1f\x7f-\x9f'  # ASCII control characters
    r'\u200b-\u200f'  # Zero-width and direction marks
    r'\u202a-\u202e'  # Bidirectional text formatting (RTL override, etc.)
    r'\u2066-\u2069'  # Isolate formatting characters
    r'\ufeff]'  # BOM / Zero-width no-break space
)


def epoch_ms() -> int:
    """Current wall-clock time in epoch milliseconds (wire timestamp unit)."""
    return int(time.time() * 1000)


def sanitize_log_data(data: str, max_length: int = 100) -> str:
    """
    Sanitize user-provided data before logging.

    Truncates first so escape sequences are never cut in half, then removes
    control characters and escapes JSON-dangerous characters.

    Args:
        data: Raw user data.
        max_length: Maximum length to include in logs.

    Returns:
        Sanitized, truncated string safe for structured logging.
    """
    truncated = data[:max_length] if len(data) > max_length else data
    was_truncated = len(data) > max_length

    sanitized = _CONTROL_CHAR_PATTERN.sub('', truncated)

    # Replace backslashes first to avoid double-escaping
    sanitized = sanitized.replace('\\', '\\\\')
    sanitized = sanitized.replace('"', '\\"')

    if was_truncated:
        return sanitized + "..."
    return sanitized


def get_client_address(websocket: "WebSocket") -> str:
    """
    Resolve the remote address of a connection, honoring proxy headers.

    Order: first entry of X-Forwarded-For, then X-Real-IP, then the socket
    peer address.

    Args:
        websocket: The accepted WebSocket.

    Returns:
        The client address, or ChatConstants.UNKNOWN_ADDRESS.
    """
    forwarded = websocket.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = websocket.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if websocket.client and websocket.client.host:
        return websocket.client.host

    return ChatConstants.UNKNOWN_ADDRESS
