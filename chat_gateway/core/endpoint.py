"""
Chat WebSocket Endpoint.

Transport glue for one connection: accept, register, receive loop, and the
close path. Everything protocol-related is delegated to the MessageRouter.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from chat_gateway.components.connection.transport import StarletteTransport
from chat_gateway.components.core.constants import SystemMessages, WSCloseCode
from chat_gateway.components.core.context import get_client_address, sanitize_log_data
from shared.config.correlation import bind_client_id
from shared.config.logging import get_logger, log_connection_event

if TYPE_CHECKING:
    from chat_gateway.core.connection.liveness import LivenessMonitor
    from chat_gateway.core.connection.registry import ConnectionRegistry
    from chat_gateway.core.router.message_router import MessageRouter

logger = get_logger(__name__)


class ChatEndpoint:
    """
    Runs the lifecycle of one chat connection.

    Usage:
        endpoint = ChatEndpoint(websocket, registry, router, monitor)
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        registry: "ConnectionRegistry",
        router: "MessageRouter",
        monitor: "LivenessMonitor | None" = None,
        max_frame_size: int = 64 * 1024,
    ):
        """
        Initialize the endpoint handler.

        Args:
            websocket: The WebSocket connection.
            registry: Where the connection is registered once accepted.
            router: Handles inbound frames and the close path.
            monitor: Consulted to refuse new connections during shutdown.
            max_frame_size: Largest accepted inbound frame, in bytes.
        """
        self.websocket = websocket
        self.registry = registry
        self.router = router
        self.monitor = monitor
        self.max_frame_size = max_frame_size

        self.client_id: str | None = None
        self.remote_address = get_client_address(websocket)

    async def run(self) -> None:
        """
        Main entry point - run the connection.

        1. Refuse if the server is shutting down
        2. Accept and register
        3. Send the `connection` frame
        4. Message loop
        5. Disconnect handling
        """
        if self.monitor is not None and self.monitor.is_shutting_down:
            log_connection_event(
                "REJECTED",
                "-",
                remote_address=self.remote_address,
                reason="shutting_down",
            )
            await self.websocket.close(
                code=WSCloseCode.SERVER_OVERLOADED,
                reason=SystemMessages.SERVER_SHUTDOWN,
            )
            return

        await self.websocket.accept()
        client_id = await self.registry.add(StarletteTransport(self.websocket), self.remote_address)
        self.client_id = client_id

        with bind_client_id(client_id):
            log_connection_event("CONNECT", client_id, remote_address=self.remote_address)

            code: int | None = None
            reason: str | None = None
            try:
                await self.router.send_connection_ack(client_id)
                code, reason = await self._message_loop(client_id)
            except WebSocketDisconnect as e:
                code, reason = e.code, e.reason
            except Exception as e:
                await self.router.handle_transport_error(client_id, e)
                code = WSCloseCode.SERVER_ERROR
            finally:
                await self.router.handle_disconnect(client_id, code=code, reason=reason)

    async def _message_loop(self, client_id: str) -> tuple[int, str]:
        """
        Receive frames until the client goes away.

        Returns:
            Close code and reason when the server ended the loop itself.

        Raises:
            WebSocketDisconnect: When the client closed the connection.
        """
        while True:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(
                    code=message.get("code", WSCloseCode.NORMAL),
                    reason=message.get("reason"),
                )

            data = message.get("text")
            if data is None:
                data = message.get("bytes") or b""

            size = len(data.encode("utf-8")) if isinstance(data, str) else len(data)
            if size > self.max_frame_size:
                logger.warning(
                    "Frame too large, closing connection",
                    size=size,
                    max_size=self.max_frame_size,
                    preview=sanitize_log_data(data[:64] if isinstance(data, str) else repr(data[:64])),
                )
                await self.websocket.close(
                    code=WSCloseCode.MESSAGE_TOO_BIG,
                    reason=SystemMessages.MESSAGE_TOO_BIG,
                )
                return WSCloseCode.MESSAGE_TOO_BIG, SystemMessages.MESSAGE_TOO_BIG

            await self.router.handle_inbound(client_id, data)
