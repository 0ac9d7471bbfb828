"""
Centralized chat exceptions for consistent error handling.

Client-caused errors carry the user-facing message (Spanish, as shown by the
chat frontend) and are answered with an `error` frame to the originating
connection only. They are never broadcast and never fatal.

Usage:
    from shared.utils.exceptions import NotJoined, UsernameTaken

    raise NotJoined()
    raise UsernameTaken(username="Ana")
"""

from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class ChatError(Exception):
    """
    Base exception with automatic logging.

    All client-facing errors inherit from this class to ensure consistent
    logging and reply format.
    """

    default_message = "Error del servidor. Intenta nuevamente."
    log_level = "warning"

    def __init__(
        self,
        message: str | None = None,
        log_level: str | None = None,
        **log_context: Any,
    ):
        self.message = message or self.default_message
        self.log_context = log_context

        log_fn = getattr(logger, log_level or self.log_level, logger.warning)
        log_fn(self.message, error=type(self).__name__, **log_context)

        super().__init__(self.message)


# =============================================================================
# Inbound frame errors
# =============================================================================


class ParseError(ChatError):
    """Frame is not valid JSON or not a JSON object."""

    default_message = "Formato de mensaje inválido"


class ValidationError(ChatError):
    """Frame is structurally invalid (e.g. missing `type`, missing content)."""

    default_message = "Tipo de mensaje no especificado"


class UnsupportedType(ChatError):
    """The `type` discriminator is not one the server handles."""

    default_message = "Tipo de mensaje no soportado"

    def __init__(self, message_type: Any = None, **log_context: Any):
        super().__init__(message_type=message_type, **log_context)


# =============================================================================
# Join errors
# =============================================================================


class UsernameInvalid(ChatError):
    """Username fails length or character validation."""

    default_message = "Nombre de usuario inválido"


class UsernameTaken(ChatError):
    """Another active connection already holds the requested username."""

    default_message = "Este nombre de usuario ya está en uso"


# =============================================================================
# Chat message errors
# =============================================================================


class NotJoined(ChatError):
    """A chat message arrived before the connection joined."""

    default_message = "Debes unirte al chat primero"


class ContentTooShort(ChatError):
    default_message = "El mensaje es demasiado corto"


class ContentTooLong(ChatError):
    default_message = "El mensaje es demasiado largo"


class RateLimitExceeded(ChatError):
    """
    Sender exceeded the sliding-window message limit.

    Usage:
        raise RateLimitExceeded(reset_in=12, identifier="ip:10.0.0.1")
    """

    def __init__(self, reset_in: int, **log_context: Any):
        self.reset_in = reset_in
        super().__init__(
            f"Límite excedido. Espera {reset_in} segundos.",
            reset_in=reset_in,
            **log_context,
        )


# =============================================================================
# Server errors
# =============================================================================


class InternalError(ChatError):
    """Unexpected fault while handling one connection's event."""

    log_level = "error"


# =============================================================================
# Registry errors
# =============================================================================


class RegistryError(Exception):
    """Base class for connection registry failures."""


class ConnectionNotFound(RegistryError):
    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Connection {client_id} not found")


class NameTaken(RegistryError):
    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username {username!r} is already taken")
