"""
Connection correlation for logging.

Stamps the id of the connection whose event is being handled on every log
record emitted while handling it, so interleaved connections can be told
apart in the logs.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

# Context variable for the current connection id (task-local)
client_id_var: ContextVar[str] = ContextVar("client_id", default="")


def get_client_id() -> str:
    """Get the connection id bound to the current context."""
    return client_id_var.get()


@contextmanager
def bind_client_id(client_id: str) -> Iterator[None]:
    """
    Bind a connection id to the current context for the duration of a block.

    Usage:
        with bind_client_id(client_id):
            await router.handle_inbound(client_id, data)
    """
    token = client_id_var.set(client_id)
    try:
        yield
    finally:
        client_id_var.reset(token)


class CorrelationIdFilter:
    """
    Logging filter that adds client_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
    """

    def filter(self, record) -> bool:
        record.client_id = client_id_var.get() or "-"
        return True
