"""Common types and enums shared across all models."""

from enum import Enum


class DocumentStatus(str, Enum):
    """Document lifecycle status."""

    pending = "pending"
    indexing = "indexing"
    complete = "complete"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.complete, DocumentStatus.failed)


class MessageRole(str, Enum):
    """Author of a conversation message."""

    user = "user"
    assistant = "assistant"


class WorkflowPurpose(str, Enum):
    """Purpose tag of a document workflow instance."""

    upload = "upload"


class WorkflowState(str, Enum):
    """Execution state of a workflow instance as reported by the engine."""

    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"
    terminated = "terminated"
    timed_out = "timed_out"
    not_found = "not_found"
    unknown = "unknown"
