"""
Event handling components.

Tagged variants for every frame on the wire.
"""

from chat_gateway.components.events.types import (
    InboundType,
    OutboundType,
    JoinRequest,
    ChatMessageRequest,
    PingRequest,
    InboundEvent,
    parse_inbound,
    ServerEvent,
    ConnectionAck,
    Joined,
    UserJoined,
    UserLeft,
    ChatBroadcast,
    ErrorReply,
    Pong,
    OutboundMessage,
    encode_payload,
)

__all__ = [
    # Inbound
    "InboundType",
    "JoinRequest",
    "ChatMessageRequest",
    "PingRequest",
    "InboundEvent",
    "parse_inbound",
    # Outbound
    "OutboundType",
    "ServerEvent",
    "ConnectionAck",
    "Joined",
    "UserJoined",
    "UserLeft",
    "ChatBroadcast",
    "ErrorReply",
    "Pong",
    "OutboundMessage",
    "encode_payload",
]
