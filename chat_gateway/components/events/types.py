"""
Event Value Objects for the Chat Gateway.

Every frame on the wire is a JSON object with a `type` discriminator.
Inbound frames are parsed into one of a closed set of immutable request
variants; outbound frames are built from immutable server event variants
and serialized once per send or broadcast.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Union

from shared.utils.exceptions import ParseError, UnsupportedType, ValidationError


class InboundType(str, Enum):
    """Client -> server frame types."""

    JOIN = "join"
    MESSAGE = "message"
    PING = "ping"


class OutboundType(str, Enum):
    """Server -> client frame types."""

    CONNECTION = "connection"
    JOINED = "joined"
    USER_JOINED = "userJoined"
    USER_LEFT = "userLeft"
    MESSAGE = "message"
    ERROR = "error"
    PONG = "pong"


# =============================================================================
# Inbound variants
# =============================================================================


@dataclass(frozen=True, slots=True)
class JoinRequest:
    """`join{username}`. The username is validated by the router, not here."""

    username: Any = None


@dataclass(frozen=True, slots=True)
class ChatMessageRequest:
    """`message{content}`."""

    content: Any = None


@dataclass(frozen=True, slots=True)
class PingRequest:
    """`ping{}`."""


InboundEvent = Union[JoinRequest, ChatMessageRequest, PingRequest]


def parse_inbound(raw: str | bytes) -> InboundEvent:
    """
    Parse a raw frame into an inbound variant.

    Args:
        raw: UTF-8 text frame as received from the transport.

    Returns:
        The matching inbound variant.

    Raises:
        ParseError: If the frame is not a JSON object.
        ValidationError: If the `type` discriminator is missing.
        UnsupportedType: If `type` names no known variant.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
        raise ParseError(reason=str(e)) from e

    if not isinstance(data, dict):
        raise ParseError(reason=f"expected object, got {type(data).__name__}")

    message_type = data.get("type")
    if not message_type or not isinstance(message_type, str):
        raise ValidationError()

    try:
        inbound_type = InboundType(message_type)
    except ValueError:
        raise UnsupportedType(message_type=message_type) from None

    if inbound_type is InboundType.JOIN:
        return JoinRequest(username=data.get("username"))
    if inbound_type is InboundType.MESSAGE:
        return ChatMessageRequest(content=data.get("content"))
    return PingRequest()


# =============================================================================
# Outbound variants
# =============================================================================

# Python field name -> wire field name, where they differ
_WIRE_NAMES: dict[str, str] = {
    "client_id": "clientId",
}


@dataclass(frozen=True, slots=True)
class ServerEvent:
    """Base for server -> client frames."""

    type: ClassVar[OutboundType]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type.value}
        for f in fields(self):
            payload[_WIRE_NAMES.get(f.name, f.name)] = getattr(self, f.name)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class ConnectionAck(ServerEvent):
    type: ClassVar[OutboundType] = OutboundType.CONNECTION
    message: str
    client_id: str
    timestamp: int


@dataclass(frozen=True, slots=True)
class Joined(ServerEvent):
    type: ClassVar[OutboundType] = OutboundType.JOINED
    username: str
    message: str
    users: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class UserJoined(ServerEvent):
    type: ClassVar[OutboundType] = OutboundType.USER_JOINED
    username: str
    message: str
    timestamp: int
    users: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class UserLeft(ServerEvent):
    type: ClassVar[OutboundType] = OutboundType.USER_LEFT
    username: str
    message: str
    timestamp: int
    users: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ChatBroadcast(ServerEvent):
    type: ClassVar[OutboundType] = OutboundType.MESSAGE
    username: str
    content: str
    timestamp: int


@dataclass(frozen=True, slots=True)
class ErrorReply(ServerEvent):
    type: ClassVar[OutboundType] = OutboundType.ERROR
    message: str
    timestamp: int


@dataclass(frozen=True, slots=True)
class Pong(ServerEvent):
    type: ClassVar[OutboundType] = OutboundType.PONG
    timestamp: int


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """
    An accepted chat message waiting in the delivery queue.

    Not a wire frame: the queue turns it into a ChatBroadcast when its turn
    comes.
    """

    client_id: str
    username: str
    content: str
    timestamp: int

    def to_event(self) -> ChatBroadcast:
        return ChatBroadcast(
            username=self.username,
            content=self.content,
            timestamp=self.timestamp,
        )


def encode_payload(payload: ServerEvent | dict[str, Any]) -> str:
    """Serialize a server event (or a plain dict frame) to wire text."""
    if isinstance(payload, ServerEvent):
        return payload.to_json()
    return json.dumps(payload, ensure_ascii=False)
