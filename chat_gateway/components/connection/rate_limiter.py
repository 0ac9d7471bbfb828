"""
Sliding Window Rate Limiter.

Per-identifier admission control for chat messages. The identifier is the
sender's remote address when known, so reconnecting does not reset the
budget, and the connection id otherwise.
"""

from __future__ import annotations

import asyncio
import math
import time
from dataclasses import dataclass

from chat_gateway.components.core.constants import ChatConstants
from shared.config.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    reset_in: int  # Seconds until the oldest counted message leaves the window


class SlidingWindowRateLimiter:
    """
    Rate limiter for chat messages.

    Uses a sliding window log:
    - Each identifier has an ordered list of message timestamps
    - Timestamps outside the window are removed on every check
    - If timestamps within window reach the limit, the message is rejected

    Each check-and-record runs under one asyncio lock, so two concurrent
    checks for the same identifier can never both see room and both append.
    Memory is bounded to active talkers by the periodic sweep().
    """

    def __init__(
        self,
        max_messages: int = ChatConstants.MAX_MESSAGES_PER_WINDOW,
        window_seconds: float = ChatConstants.RATE_LIMIT_WINDOW,
    ):
        """
        Initialize the rate limiter.

        Args:
            max_messages: Maximum messages allowed per window.
            window_seconds: Window size in seconds.
        """
        if max_messages <= 0:
            raise ValueError("max_messages must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self._max_messages = max_messages
        self._window_seconds = window_seconds

        self._windows: dict[str, list[float]] = {}
        self._lock = asyncio.Lock()

        # Metrics
        self._total_allowed = 0
        self._total_rejected = 0

    @property
    def max_messages(self) -> int:
        """Maximum messages allowed per window."""
        return self._max_messages

    @property
    def window_seconds(self) -> float:
        """Window size in seconds."""
        return self._window_seconds

    @property
    def tracked_count(self) -> int:
        """Number of identifiers currently being tracked."""
        return len(self._windows)

    @staticmethod
    def identifier_for(client_id: str, remote_address: str | None) -> str:
        """
        Build the rate limit identifier for a connection.

        Prefers the remote address so a client cannot reset its budget by
        reconnecting; falls back to the connection id.
        """
        if remote_address and remote_address != ChatConstants.UNKNOWN_ADDRESS:
            return f"ip:{remote_address}"
        return f"client:{client_id}"

    def _prune(self, timestamps: list[float], now: float) -> list[float]:
        window_start = now - self._window_seconds
        return [t for t in timestamps if t > window_start]

    async def check_and_record(self, identifier: str, now: float | None = None) -> RateLimitResult:
        """
        Check if a message from this identifier is allowed and record it if so.

        Args:
            identifier: Rate limit identifier (see identifier_for).
            now: Current time in seconds. Defaults to time.monotonic().

        Returns:
            RateLimitResult with allowed flag, remaining budget and reset time.
        """
        now = time.monotonic() if now is None else now

        async with self._lock:
            timestamps = self._prune(self._windows.get(identifier, []), now)

            if len(timestamps) >= self._max_messages:
                self._windows[identifier] = timestamps
                self._total_rejected += 1
                reset_in = math.ceil(timestamps[0] + self._window_seconds - now)
                return RateLimitResult(allowed=False, remaining=0, reset_in=max(reset_in, 1))

            timestamps.append(now)
            self._windows[identifier] = timestamps
            self._total_allowed += 1

            return RateLimitResult(
                allowed=True,
                remaining=self._max_messages - len(timestamps),
                reset_in=math.ceil(self._window_seconds),
            )

    async def sweep(self, now: float | None = None) -> int:
        """
        Drop identifiers whose pruned window is empty.

        Returns:
            Number of identifiers removed.
        """
        now = time.monotonic() if now is None else now
        cleaned = 0

        async with self._lock:
            # Phase 1 - identify (no modification while iterating)
            to_remove: list[str] = []
            to_update: dict[str, list[float]] = {}

            for identifier, timestamps in self._windows.items():
                valid = self._prune(timestamps, now)
                if not valid:
                    to_remove.append(identifier)
                elif len(valid) != len(timestamps):
                    to_update[identifier] = valid

            # Phase 2 - apply
            for identifier in to_remove:
                del self._windows[identifier]
                cleaned += 1

            self._windows.update(to_update)

        if cleaned:
            logger.info("Rate limiter sweep completed", removed=cleaned, tracked=len(self._windows))
        return cleaned

    async def reset_identifier(self, identifier: str) -> None:
        """Clear all recorded messages for an identifier (administrative override)."""
        async with self._lock:
            self._windows.pop(identifier, None)
        logger.info("Rate limit reset", identifier=identifier)

    def get_identifier_usage(self, identifier: str, now: float | None = None) -> dict[str, int | float | str]:
        """
        Get rate limit usage for a specific identifier.

        Returns:
            Dict with current message count, remaining budget and window.
        """
        now = time.monotonic() if now is None else now
        current_count = len(self._prune(self._windows.get(identifier, []), now))

        return {
            "identifier": identifier,
            "messages_in_window": current_count,
            "limit": self._max_messages,
            "remaining": max(0, self._max_messages - current_count),
            "window_seconds": self._window_seconds,
        }

    def get_stats(self) -> dict[str, int | float]:
        """Get rate limiter statistics."""
        return {
            "tracked_identifiers": len(self._windows),
            "max_messages_per_window": self._max_messages,
            "window_seconds": self._window_seconds,
            "total_allowed": self._total_allowed,
            "total_rejected": self._total_rejected,
        }
