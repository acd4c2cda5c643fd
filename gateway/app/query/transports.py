"""Backend transport protocol."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from gateway.app.query.events import StreamEvent


class TransportError(Exception):
    """Backend transport failed to open or broke mid-stream."""


@dataclass(frozen=True)
class BackendQuery:
    """Query as sent to the backend answering service."""

    query: str
    conversation_id: str
    top_k: int


class BackendTransport(Protocol):
    """A way of reaching the backend answering service.

    ``stream`` is an async generator. It raises ``TransportError`` for any
    connection, status or read failure and releases its connection when
    closed.
    """

    name: str

    def stream(self, query: BackendQuery) -> AsyncIterator[StreamEvent]:
        ...
