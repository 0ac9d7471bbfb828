"""
Transport abstraction.

The registry owns one transport handle per connection and only needs four
things from it: whether it is writable, sending text, pinging the peer
and closing. Tests drive the core with fake transports; Starlette specifics
stay in StarletteTransport.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from starlette.websockets import WebSocketState

from shared.config.logging import get_logger

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


class Transport(Protocol):
    """Bidirectional text-frame connection handle."""

    @property
    def is_open(self) -> bool:
        """True while frames can be written."""
        ...

    async def send_text(self, data: str) -> None:
        ...

    async def ping(self) -> bool:
        """
        Ping the peer at the protocol level.

        Returns:
            True when the peer is known to have answered with a pong. False
            leaves the acknowledgment to inbound activity before the next tick.
        """
        ...

    async def close(self, code: int, reason: str = "") -> None:
        ...


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if a Starlette WebSocket is in connected state before sending.

    Transitional states are not exposed, so connections may appear
    connected briefly after disconnect initiated.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class StarletteTransport:
    """
    Transport backed by a FastAPI/Starlette WebSocket.

    ASGI exposes no WebSocket control frames. The server sends the protocol
    ping itself (uvicorn `ws_ping_interval`) and drops a peer whose pong does
    not arrive within `ws_ping_timeout`, so a socket that is still connected
    has answered every ping so far.
    """

    def __init__(self, websocket: "WebSocket") -> None:
        self._websocket = websocket

    @property
    def websocket(self) -> "WebSocket":
        return self._websocket

    @property
    def is_open(self) -> bool:
        return is_ws_connected(self._websocket)

    async def send_text(self, data: str) -> None:
        await self._websocket.send_text(data)

    async def ping(self) -> bool:
        return self.is_open

    async def close(self, code: int, reason: str = "") -> None:
        if not is_ws_connected(self._websocket):
            return
        try:
            await self._websocket.close(code=code, reason=reason)
        except Exception as e:
            # Close raced a client disconnect
            logger.debug("Failed to close WebSocket: %s", str(e))
