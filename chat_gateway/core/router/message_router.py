"""
Message Router.

Validates inbound frames, applies rate limiting, mutates the registry on
join and leave, and feeds accepted chat messages to the delivery queue.

Per-connection state is implicit in Connection.username:
Anonymous -> (join) -> Named -> (disconnect) -> removed.

Every client-caused failure is answered with an `error` frame to the sender
only. Unexpected faults become InternalError at this boundary and never
reach the transport layer or other connections.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, assert_never

from chat_gateway.components.core.constants import ChatConstants, SystemMessages
from chat_gateway.components.core.context import epoch_ms
from chat_gateway.components.events.types import (
    ChatMessageRequest,
    ConnectionAck,
    ErrorReply,
    InboundEvent,
    Joined,
    JoinRequest,
    OutboundMessage,
    PingRequest,
    Pong,
    UserJoined,
    UserLeft,
    parse_inbound,
)
from chat_gateway.components.metrics.collector import MetricsCollector
from chat_gateway.core.router.delivery import DeliveryQueue
from shared.config.logging import (
    audit_rate_limit_event,
    get_logger,
    log_connection_event,
    log_conversation,
)
from shared.utils.exceptions import (
    ChatError,
    ConnectionNotFound,
    InternalError,
    NameTaken,
    NotJoined,
    RateLimitExceeded,
    UsernameTaken,
    ValidationError,
)
from shared.utils.validators import escape_html, validate_message_content, validate_username

if TYPE_CHECKING:
    from chat_gateway.components.connection.rate_limiter import SlidingWindowRateLimiter
    from chat_gateway.core.connection.registry import Connection, ConnectionRegistry

logger = get_logger(__name__)


class MessageRouter:
    """
    Routes inbound frames for every connection.

    Usage:
        router = MessageRouter(registry, rate_limiter)
        router.start()
        await router.handle_inbound(client_id, raw_frame)
        await router.handle_disconnect(client_id, code=1000)
        await router.stop()
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        rate_limiter: "SlidingWindowRateLimiter",
        metrics: MetricsCollector | None = None,
        message_delay: float = ChatConstants.MESSAGE_DELAY,
        min_username_length: int = ChatConstants.MIN_USERNAME_LENGTH,
        max_username_length: int = ChatConstants.MAX_USERNAME_LENGTH,
        min_message_length: int = ChatConstants.MIN_MESSAGE_LENGTH,
        max_message_length: int = ChatConstants.MAX_MESSAGE_LENGTH,
    ) -> None:
        """
        Initialize the router.

        Args:
            registry: Live connections.
            rate_limiter: Admission control for chat messages.
            metrics: Counter sink; a private collector is created when omitted.
            message_delay: Pause between consecutive broadcasts while a backlog exists.
            min_username_length: Minimum display name length after trimming.
            max_username_length: Maximum display name length after trimming.
            min_message_length: Minimum chat message length after trimming.
            max_message_length: Maximum chat message length after trimming.
        """
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._metrics = metrics or MetricsCollector()
        self._delivery = DeliveryQueue(registry, message_delay=message_delay)
        self._min_username_length = min_username_length
        self._max_username_length = max_username_length
        self._min_message_length = min_message_length
        self._max_message_length = max_message_length

    @property
    def delivery(self) -> DeliveryQueue:
        return self._delivery

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the delivery worker."""
        self._delivery.start()

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain pending broadcasts for up to `timeout` seconds and stop the worker."""
        await self._delivery.stop(timeout=timeout)

    # =========================================================================
    # Outbound helpers
    # =========================================================================

    async def send_connection_ack(self, client_id: str) -> bool:
        """Send the `connection` frame, once, right after accept."""
        return await self._registry.send_to(
            client_id,
            ConnectionAck(
                message=SystemMessages.CONNECTION_SUCCESS,
                client_id=client_id,
                timestamp=epoch_ms(),
            ),
        )

    async def send_error(self, client_id: str, message: str) -> bool:
        return await self._registry.send_to(
            client_id, ErrorReply(message=message, timestamp=epoch_ms())
        )

    # =========================================================================
    # Inbound
    # =========================================================================

    async def handle_inbound(self, client_id: str, raw: str | bytes) -> None:
        """
        Handle one raw frame from a connection.

        Never raises: every failure is turned into an `error` reply.
        """
        # Any frame from the client acknowledges the last liveness probe
        await self._registry.mark_alive(client_id)

        try:
            event = parse_inbound(raw)
            await self._registry.touch(client_id)
            await self._dispatch(client_id, event)
        except ChatError as e:
            self._metrics.increment_client_errors()
            await self.send_error(client_id, e.message)
        except Exception as e:
            self._metrics.increment_internal_errors()
            error = InternalError(
                client_id=client_id,
                cause=str(e),
                exc_info=True,
            )
            await self.send_error(client_id, error.message)

    async def _dispatch(self, client_id: str, event: InboundEvent) -> None:
        if isinstance(event, JoinRequest):
            await self.handle_join(client_id, event.username)
        elif isinstance(event, ChatMessageRequest):
            await self.handle_chat_message(client_id, event.content)
        elif isinstance(event, PingRequest):
            await self.handle_ping(client_id)
        else:
            assert_never(event)

    async def handle_join(self, client_id: str, username: Any) -> None:
        """
        Claim a display name for an anonymous connection.

        On success the sender gets `joined` with the roster and everybody
        else gets `userJoined` with the same roster.

        Raises:
            ValidationError: If the connection already joined.
            UsernameInvalid: If the name fails length or character checks.
            UsernameTaken: If another active connection holds the name.
        """
        connection = self._registry.get(client_id)
        if connection is None:
            logger.warning("Join from unknown connection", client_id=client_id)
            return

        if connection.is_named:
            raise ValidationError(SystemMessages.ALREADY_JOINED, client_id=client_id)

        name = escape_html(
            validate_username(
                username,
                min_length=self._min_username_length,
                max_length=self._max_username_length,
            )
        )

        try:
            users = await self._registry.claim_name(client_id, name)
        except NameTaken:
            raise UsernameTaken(client_id=client_id, username=name) from None
        except ConnectionNotFound:
            logger.warning("Connection closed during join", client_id=client_id)
            return

        await self._registry.send_to(
            client_id,
            Joined(username=name, message=SystemMessages.JOIN_SUCCESS, users=users),
        )
        await self._registry.broadcast(
            UserJoined(
                username=name,
                message=f"{name} {SystemMessages.USER_JOINED}",
                timestamp=epoch_ms(),
                users=users,
            ),
            exclude_id=client_id,
        )

        log_connection_event(
            "JOINED",
            client_id,
            username=name,
            remote_address=connection.remote_address,
        )

    async def handle_chat_message(self, client_id: str, content: Any) -> None:
        """
        Validate, rate limit and enqueue a chat message.

        Raises:
            NotJoined: If the connection has no display name yet.
            ValidationError: If content is missing or not text.
            ContentTooShort: If trimmed content is empty.
            ContentTooLong: If trimmed content exceeds the maximum.
            RateLimitExceeded: If the sender's window is full.
        """
        connection = self._registry.get(client_id)
        if connection is None:
            logger.warning("Message from unknown connection", client_id=client_id)
            return

        if not connection.is_named:
            raise NotJoined(client_id=client_id)

        text = escape_html(
            validate_message_content(
                content,
                min_length=self._min_message_length,
                max_length=self._max_message_length,
            )
        )

        identifier = self._rate_limiter.identifier_for(client_id, connection.remote_address)
        result = await self._rate_limiter.check_and_record(identifier)
        if not result.allowed:
            self._metrics.increment_rate_limited()
            audit_rate_limit_event(
                identifier,
                limit=self._rate_limiter.max_messages,
                window=self._rate_limiter.window_seconds,
                client_id=client_id,
                username=connection.username,
            )
            raise RateLimitExceeded(reset_in=result.reset_in, identifier=identifier)

        self._delivery.enqueue(
            OutboundMessage(
                client_id=client_id,
                username=connection.username,
                content=text,
                timestamp=epoch_ms(),
            )
        )
        self._metrics.increment_messages_accepted()
        log_conversation(connection.username, text)

    async def handle_ping(self, client_id: str) -> None:
        """Reply `pong` immediately; no rate limiting, no queue."""
        await self._registry.send_to(client_id, Pong(timestamp=epoch_ms()))

    # =========================================================================
    # Transport events
    # =========================================================================

    async def handle_disconnect(
        self,
        client_id: str,
        code: int | None = None,
        reason: str | None = None,
    ) -> None:
        """
        Remove a connection and tell the others if it had joined.

        Idempotent: only the call that actually removes the entry announces
        the departure.
        """
        connection = await self._registry.remove(client_id)
        if connection is None:
            return

        await self.announce_departure(connection)

        log_connection_event(
            "DISCONNECT",
            client_id,
            username=connection.username,
            remote_address=connection.remote_address,
            reason=reason or code or "unknown",
        )

    async def announce_departure(self, connection: "Connection") -> None:
        """Broadcast userLeft with the remaining roster for an already removed connection."""
        if not connection.is_named:
            return

        users = await self._registry.list_active_users(exclude_id=connection.client_id)
        await self._registry.broadcast(
            UserLeft(
                username=connection.username,
                message=f"{connection.username} {SystemMessages.USER_LEFT}",
                timestamp=epoch_ms(),
                users=users,
            ),
            exclude_id=connection.client_id,
        )

    async def handle_transport_error(self, client_id: str, error: BaseException) -> None:
        """
        Log a transport fault and notify the sender if it is still registered.

        Does not close the connection; closure follows the transport's own
        close event.
        """
        logger.error(
            "Transport error",
            client_id=client_id,
            error_type=type(error).__name__,
            error=str(error),
        )
        if self._registry.get(client_id) is not None:
            await self.send_error(client_id, SystemMessages.SERVER_ERROR)

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Aggregate statistics for health checks."""
        return {
            "clients": self._registry.get_stats(),
            "rateLimiter": self._rate_limiter.get_stats(),
            "messageQueue": self._delivery.pending,
            "delivery": self._delivery.get_stats(),
            "metrics": self._metrics.get_snapshot(),
        }
