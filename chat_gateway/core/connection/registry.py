"""
Connection Registry.

Authoritative map of live connections: identity, display names, activity
and liveness state, plus best-effort unicast and broadcast sends.

Every mutation and every snapshot used for a uniqueness decision runs under
one asyncio lock. Sends never run under the lock; broadcasts take a snapshot
first and fan out afterwards, so a slow client cannot block joins or leaves.
"""

from __future__ import annotations

import asyncio
import secrets
import string
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from chat_gateway.components.core.constants import ChatConstants, SystemMessages, WSCloseCode
from chat_gateway.components.core.context import epoch_ms
from chat_gateway.components.events.types import ServerEvent, encode_payload
from shared.config.logging import get_logger, log_connection_event
from shared.utils.exceptions import ConnectionNotFound, NameTaken

if TYPE_CHECKING:
    from chat_gateway.components.connection.transport import Transport
    from chat_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_client_id() -> str:
    """Build a connection id of the form `client_<epoch ms>_<random>`."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"client_{epoch_ms()}_{suffix}"


@dataclass(slots=True)
class Connection:
    """
    One accepted connection.

    The username is None until a successful join and is never changed
    afterwards. `is_alive` is only flipped through begin_probe/mark_alive.
    """

    client_id: str
    transport: "Transport"
    remote_address: str
    connected_at: int
    last_activity_at: int
    username: str | None = None
    is_alive: bool = True

    @property
    def is_named(self) -> bool:
        return self.username is not None

    def to_roster_entry(self) -> dict[str, Any]:
        return {"username": self.username, "connectedAt": self.connected_at}


@dataclass(frozen=True, slots=True)
class BroadcastResult:
    """Aggregate outcome of one fan-out."""

    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


class ConnectionRegistry:
    """
    Registry of live connections.

    Usage:
        registry = ConnectionRegistry()
        client_id = await registry.add(transport, "10.0.0.1")
        await registry.set_name(client_id, "Ana")
        result = await registry.broadcast(event)
    """

    def __init__(
        self,
        metrics: "MetricsCollector | None" = None,
        batch_size: int = ChatConstants.BROADCAST_BATCH_SIZE,
        send_timeout: float = ChatConstants.SEND_TIMEOUT,
    ) -> None:
        """
        Initialize the registry.

        Args:
            metrics: Optional collector for broadcast and sweep counters.
            batch_size: Connections sent to concurrently per batch.
            send_timeout: Per-send timeout in seconds.
        """
        self._connections: dict[str, Connection] = {}
        self._lock = asyncio.Lock()
        self._metrics = metrics
        self._batch_size = max(1, batch_size)
        self._send_timeout = send_timeout

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._connections

    # =========================================================================
    # Membership
    # =========================================================================

    async def add(self, transport: "Transport", remote_address: str) -> str:
        """
        Register an accepted transport.

        Args:
            transport: Handle owned by the new entry from now on.
            remote_address: Client address, or "unknown".

        Returns:
            The new connection id.
        """
        now = epoch_ms()
        async with self._lock:
            client_id = generate_client_id()
            while client_id in self._connections:
                client_id = generate_client_id()

            self._connections[client_id] = Connection(
                client_id=client_id,
                transport=transport,
                remote_address=remote_address or ChatConstants.UNKNOWN_ADDRESS,
                connected_at=now,
                last_activity_at=now,
            )

        logger.debug("Connection registered", client_id=client_id, total=len(self._connections))
        return client_id

    async def remove(
        self,
        client_id: str,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
    ) -> Connection | None:
        """
        Remove a connection and close its transport.

        Idempotent: an unknown id is a no-op and returns None.

        Returns:
            The removed entry, or None if it was not registered.
        """
        async with self._lock:
            connection = self._connections.pop(client_id, None)

        if connection is None:
            return None

        await self._close_transport(connection, code, reason)
        logger.debug("Connection removed", client_id=client_id, total=len(self._connections))
        return connection

    async def set_name(self, client_id: str, username: str) -> None:
        """
        Assign a display name.

        The taken-check and the assignment happen in one critical section.

        Raises:
            ConnectionNotFound: If client_id is not registered.
            NameTaken: If another active connection holds the name.
        """
        async with self._lock:
            self._set_name_locked(client_id, username)

    async def claim_name(self, client_id: str, username: str) -> list[dict[str, Any]]:
        """
        Assign a display name and snapshot the roster in the same critical section.

        Returns:
            The roster (insertion order) including the new name.

        Raises:
            ConnectionNotFound: If client_id is not registered.
            NameTaken: If another active connection holds the name.
        """
        async with self._lock:
            self._set_name_locked(client_id, username)
            return self._roster_locked()

    def _set_name_locked(self, client_id: str, username: str) -> None:
        connection = self._connections.get(client_id)
        if connection is None:
            raise ConnectionNotFound(client_id)

        for other in self._connections.values():
            if other.username == username and other.client_id != client_id:
                raise NameTaken(username)

        connection.username = username

    # =========================================================================
    # Queries
    # =========================================================================

    async def is_name_taken(self, username: str) -> bool:
        async with self._lock:
            return any(c.username == username for c in self._connections.values())

    async def find_by_name(self, username: str) -> str | None:
        async with self._lock:
            for connection in self._connections.values():
                if connection.username == username:
                    return connection.client_id
        return None

    def get(self, client_id: str) -> Connection | None:
        return self._connections.get(client_id)

    async def snapshot(self) -> list[Connection]:
        """Point-in-time list of all entries, in insertion order."""
        async with self._lock:
            return list(self._connections.values())

    async def list_active_users(self, exclude_id: str | None = None) -> list[dict[str, Any]]:
        """
        Roster of named connections as `{username, connectedAt}` entries.

        Insertion order, not sorted.
        """
        async with self._lock:
            return self._roster_locked(exclude_id)

    def _roster_locked(self, exclude_id: str | None = None) -> list[dict[str, Any]]:
        return [
            c.to_roster_entry()
            for c in self._connections.values()
            if c.is_named and c.client_id != exclude_id
        ]

    # =========================================================================
    # Activity and liveness transitions
    # =========================================================================

    async def touch(self, client_id: str) -> None:
        """Update last activity; unknown id is a no-op."""
        async with self._lock:
            connection = self._connections.get(client_id)
            if connection is not None:
                connection.last_activity_at = epoch_ms()

    async def begin_probe(self, client_id: str) -> bool | None:
        """
        Probe-sent transition: clear the alive flag.

        Returns:
            The flag as it was before the probe, or None if the id is unknown.
        """
        async with self._lock:
            connection = self._connections.get(client_id)
            if connection is None:
                return None
            was_alive = connection.is_alive
            connection.is_alive = False
            return was_alive

    async def mark_alive(self, client_id: str) -> None:
        """Probe-ack transition: set the alive flag."""
        async with self._lock:
            connection = self._connections.get(client_id)
            if connection is not None:
                connection.is_alive = True

    # =========================================================================
    # Sending
    # =========================================================================

    async def _send(self, connection: Connection, data: str) -> bool:
        if not connection.transport.is_open:
            return False
        try:
            await asyncio.wait_for(
                connection.transport.send_text(data),
                timeout=self._send_timeout,
            )
            return True
        except asyncio.TimeoutError:
            logger.warning("Send timed out", client_id=connection.client_id)
            return False
        except Exception as e:
            logger.debug("Send failed: %s", str(e), client_id=connection.client_id)
            return False

    async def send_to(self, client_id: str, payload: ServerEvent | dict[str, Any]) -> bool:
        """
        Best-effort unicast.

        Returns:
            False if the id is unknown, the transport is not writable, or the
            send failed. Never raises.
        """
        connection = self._connections.get(client_id)
        if connection is None:
            return False
        return await self._send(connection, encode_payload(payload))

    async def broadcast(
        self,
        payload: ServerEvent | dict[str, Any],
        exclude_id: str | None = None,
    ) -> BroadcastResult:
        """
        Send a payload to every connection except `exclude_id`.

        The payload is serialized once. Sends run concurrently in batches;
        a failed send never aborts the remaining ones.

        Returns:
            BroadcastResult with succeeded and failed counts.
        """
        data = encode_payload(payload)

        async with self._lock:
            targets = [c for c in self._connections.values() if c.client_id != exclude_id]

        succeeded = 0
        failed = 0
        for i in range(0, len(targets), self._batch_size):
            batch = targets[i : i + self._batch_size]
            results = await asyncio.gather(
                *[self._send(connection, data) for connection in batch],
                return_exceptions=True,
            )
            for result in results:
                if result is True:
                    succeeded += 1
                else:
                    failed += 1

        if self._metrics is not None:
            self._metrics.record_broadcast(succeeded, failed)
        if failed:
            logger.debug(
                "Broadcast completed with failures",
                sent=succeeded,
                failed=failed,
                total=len(targets),
            )

        return BroadcastResult(succeeded=succeeded, failed=failed)

    # =========================================================================
    # Cleanup
    # =========================================================================

    async def _close_transport(self, connection: Connection, code: int, reason: str) -> None:
        try:
            await connection.transport.close(code, reason)
        except Exception as e:
            logger.debug("Failed to close transport: %s", str(e), client_id=connection.client_id)

    async def sweep_stale(self, inactivity_timeout: float, now: int | None = None) -> int:
        """Remove stale connections and return how many were removed."""
        return len(await self.remove_stale(inactivity_timeout, now))

    async def remove_stale(self, inactivity_timeout: float, now: int | None = None) -> list[Connection]:
        """
        Remove connections whose transport is closed or that were inactive too long.

        Args:
            inactivity_timeout: Seconds without inbound activity.
            now: Current time in epoch ms. Defaults to the wall clock.

        Returns:
            The removed entries, already closed.
        """
        now = epoch_ms() if now is None else now
        cutoff_ms = inactivity_timeout * 1000

        async with self._lock:
            # Phase 1 - identify
            stale = [
                c for c in self._connections.values()
                if not c.transport.is_open or now - c.last_activity_at > cutoff_ms
            ]
            # Phase 2 - remove
            for connection in stale:
                del self._connections[connection.client_id]

        for connection in stale:
            await self._close_transport(
                connection, WSCloseCode.GOING_AWAY, SystemMessages.INACTIVITY_TIMEOUT
            )
            log_connection_event(
                "SWEPT",
                connection.client_id,
                username=connection.username,
                remote_address=connection.remote_address,
                reason=SystemMessages.INACTIVITY_TIMEOUT,
            )

        if stale:
            if self._metrics is not None:
                self._metrics.add_sweep_removals(len(stale))
            logger.info("Stale connections swept", removed=len(stale), remaining=len(self._connections))

        return stale

    async def close_all(self, code: int, reason: str) -> None:
        """Close every transport without removing the entries."""
        connections = await self.snapshot()
        if not connections:
            return
        await asyncio.gather(
            *[self._close_transport(c, code, reason) for c in connections],
            return_exceptions=True,
        )

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, int]:
        """Get registry statistics."""
        connections = list(self._connections.values())
        named = sum(1 for c in connections if c.is_named)
        return {
            "totalClients": len(connections),
            "activeUsers": named,
            "anonymousClients": len(connections) - named,
        }
