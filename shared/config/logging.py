"""
Centralized structured logging for the chat gateway.
Uses Python's standard logging with JSON formatting for production.

Besides the console, records are written to category files (info, warnings,
errors, conversations) through a QueueHandler/QueueListener pair, so handlers
doing disk I/O never run on the event loop.
"""

import json
import logging
import logging.handlers
import queue
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from shared.config.correlation import CorrelationIdFilter
from shared.config.settings import Settings, settings as default_settings

CONVERSATION_LOGGER_NAME = "chat.conversation"


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs logs in a format easily parseable by log aggregation tools.
    """

    def __init__(self, include_source: bool = False) -> None:
        super().__init__()
        self._include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        client_id = getattr(record, "client_id", None)
        if client_id and client_id != "-":
            log_data["client_id"] = client_id

        if getattr(record, "extra_data", None):
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self._include_source:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Human-readable, colored formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime("%H:%M:%S")

        client_id = getattr(record, "client_id", None)
        if client_id and client_id != "-":
            client_id_str = f"{self.DIM}[{client_id}]{self.RESET} "
        else:
            client_id_str = ""

        message = f"{color}[{timestamp}] {record.levelname:8}{self.RESET} {client_id_str}{record.name}: {record.getMessage()}"

        if getattr(record, "extra_data", None):
            data_str = " | ".join(f"{k}={v}" for k, v in record.extra_data.items())
            message += f" ({data_str})"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class FileFormatter(logging.Formatter):
    """Plain `[YYYY-MM-DD HH:MM:SS] [LEVEL] message` lines for the category files."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        if record.name == CONVERSATION_LOGGER_NAME:
            return f"[{timestamp}] [CONVERSATION] {record.getMessage()}"

        message = f"[{timestamp}] [{record.levelname}] {record.getMessage()}"

        client_id = getattr(record, "client_id", None)
        if client_id and client_id != "-":
            message += f" (client: {client_id})"

        if getattr(record, "extra_data", None):
            data_str = ", ".join(f"{k}={v}" for k, v in record.extra_data.items())
            message += f" [{data_str}]"

        return message


class StructuredLogger(logging.Logger):
    """
    Custom logger that supports structured data.
    """

    def _log_with_data(
        self,
        level: int,
        msg: str,
        args: tuple,
        exc_info: Any = None,
        extra: dict | None = None,
        **kwargs: Any,
    ) -> None:
        """Log with optional structured data."""
        if not self.isEnabledFor(level):
            return
        if extra is None:
            extra = {}
        extra["extra_data"] = kwargs if kwargs else None
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        exc_info = kwargs.pop("exc_info", None)
        self._log_with_data(logging.ERROR, msg, args, exc_info=exc_info, **kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        exc_info = kwargs.pop("exc_info", None)
        self._log_with_data(logging.CRITICAL, msg, args, exc_info=exc_info, **kwargs)


# Set custom logger class
logging.setLoggerClass(StructuredLogger)


class _LevelFilter(logging.Filter):
    """Pass records whose level lies in [min_level, max_level]."""

    def __init__(self, min_level: int, max_level: int = logging.CRITICAL) -> None:
        super().__init__()
        self._min = min_level
        self._max = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return self._min <= record.levelno <= self._max


class _ConversationFilter(logging.Filter):
    """Select (or, with exclude=True, drop) conversation records."""

    def __init__(self, exclude: bool = False) -> None:
        super().__init__()
        self._exclude = exclude

    def filter(self, record: logging.LogRecord) -> bool:
        is_conversation = record.name == CONVERSATION_LOGGER_NAME
        return not is_conversation if self._exclude else is_conversation


_queue_listener: logging.handlers.QueueListener | None = None


def _build_file_handlers(config: Settings) -> list[logging.Handler]:
    """Create one file handler per log category."""
    log_dir = Path(config.log_directory)
    log_dir.mkdir(parents=True, exist_ok=True)

    formatter = FileFormatter()
    categories = [
        (config.log_info_file, [_LevelFilter(logging.INFO, logging.INFO), _ConversationFilter(exclude=True)]),
        (config.log_warnings_file, [_LevelFilter(logging.WARNING, logging.WARNING)]),
        (config.log_errors_file, [_LevelFilter(logging.ERROR)]),
        (config.log_conversations_file, [_ConversationFilter()]),
    ]

    handlers: list[logging.Handler] = []
    for filename, filters in categories:
        handler = logging.FileHandler(log_dir / filename, encoding="utf-8")
        handler.setFormatter(formatter)
        for category_filter in filters:
            handler.addFilter(category_filter)
        handlers.append(handler)
    return handlers


def setup_logging(config: Settings | None = None) -> None:
    """
    Configure logging for the application.
    Call this once at application startup.
    """
    global _queue_listener

    config = config or default_settings
    log_level = logging.DEBUG if config.debug else logging.INFO

    # Console handler
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(log_level)
    console.addFilter(CorrelationIdFilter())
    console.addFilter(_ConversationFilter(exclude=True))
    if config.environment == "production":
        console.setFormatter(StructuredFormatter(include_source=config.debug))
    else:
        console.setFormatter(DevelopmentFormatter())

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(console)

    shutdown_logging()

    if config.log_to_files:
        try:
            file_handlers = _build_file_handlers(config)
        except OSError as e:
            root.warning("Could not open log files, logging to console only: %s", e)
        else:
            log_queue: queue.Queue = queue.Queue(-1)
            queue_handler = logging.handlers.QueueHandler(log_queue)
            # The filter runs in the emitting task so the context variable is visible
            queue_handler.addFilter(CorrelationIdFilter())
            root.addHandler(queue_handler)

            _queue_listener = logging.handlers.QueueListener(
                log_queue, *file_handlers, respect_handler_level=True
            )
            _queue_listener.start()

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)


def shutdown_logging() -> None:
    """Stop the background file listener, flushing queued records."""
    global _queue_listener

    if _queue_listener is not None:
        _queue_listener.stop()
        for handler in _queue_listener.handlers:
            handler.close()
        _queue_listener = None


def get_logger(name: str) -> StructuredLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)

        logger.info("User joined", client_id=client_id, username=username)
        logger.error("Failed to deliver message", exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore


# Pre-configured loggers
chat_gateway_logger = get_logger("chat_gateway")
conversation_logger = get_logger(CONVERSATION_LOGGER_NAME)
security_audit_logger = get_logger("security.audit")


# =============================================================================
# Event logging helpers
# =============================================================================


def log_conversation(username: str, content: str) -> None:
    """Record one accepted chat line in the conversation log."""
    conversation_logger.info(f"{username}: {content}")


def log_connection_event(
    event_type: str,
    client_id: str,
    username: str | None = None,
    remote_address: str | None = None,
    reason: str | int | None = None,
    **extra: Any,
) -> None:
    """
    Log connection lifecycle events (CONNECT, DISCONNECT, EVICTED, ...).

    Args:
        event_type: Type of event.
        client_id: Connection id.
        username: Display name, if the connection had joined.
        remote_address: Client address.
        reason: Close code or reason for the event.
        **extra: Additional context data
    """
    chat_gateway_logger.info(
        f"CONNECTION: {event_type}",
        event_type=event_type,
        client_id=client_id,
        username=username or "Anónimo",
        remote_address=remote_address,
        reason=reason,
        **extra,
    )


def audit_rate_limit_event(
    identifier: str,
    limit: int,
    window: float,
    client_id: str | None = None,
    username: str | None = None,
    **extra: Any,
) -> None:
    """
    Log rate limiting events.

    Args:
        identifier: Rate limit identifier (ip:<address> or client:<id>)
        limit: Rate limit that was exceeded
        window: Time window in seconds
        client_id: Connection id
        username: Display name of the sender
        **extra: Additional context data
    """
    security_audit_logger.warning(
        "RATE_LIMIT_AUDIT: chat",
        identifier=identifier,
        limit=limit,
        window=window,
        client_id=client_id,
        username=username,
        **extra,
    )
