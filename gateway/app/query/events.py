"""Stream event model shared by every backend transport."""

from typing import Literal

from pydantic import BaseModel, ConfigDict

EventType = Literal["start", "chunk", "end", "error", "unknown"]

TERMINAL_EVENT_TYPES = frozenset({"end", "error"})


class StreamEvent(BaseModel):
    """One fragment of a streamed answer.

    ``start`` and ``end`` carry the backend request id in ``id``; ``chunk``
    carries ``content``; ``error`` carries ``code`` and ``message``.
    ``unknown`` stands in for backend messages the gateway cannot interpret.
    """

    model_config = ConfigDict(frozen=True)

    type: EventType
    id: str | None = None
    content: str | None = None
    code: str | None = None
    message: str | None = None

    @classmethod
    def start(cls, request_id: str) -> "StreamEvent":
        return cls(type="start", id=request_id)

    @classmethod
    def chunk(cls, content: str) -> "StreamEvent":
        return cls(type="chunk", content=content)

    @classmethod
    def end(cls, request_id: str) -> "StreamEvent":
        return cls(type="end", id=request_id)

    @classmethod
    def error(cls, code: str, message: str) -> "StreamEvent":
        return cls(type="error", code=code, message=message)

    @classmethod
    def unknown(cls) -> "StreamEvent":
        return cls(type="unknown")

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES

    def to_sse(self) -> str:
        """Render as one server-sent event frame."""
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"
