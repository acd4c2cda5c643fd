"""Repository protocol interfaces for data access."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from gateway.app.models.common import DocumentStatus, MessageRole


class RecordStoreError(Exception):
    """Record store could not complete an operation."""


class MessageIdConflictError(RecordStoreError):
    """Message ID is already used by a different conversation."""


@dataclass
class DocumentRecord:
    """Document data record."""

    id: str
    filename: str
    file_size: int
    s3_key: str | None
    status: DocumentStatus
    created_at: datetime
    error_message: str | None = None
    indexed_at: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ConversationRecord:
    """Conversation data record."""

    id: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0


@dataclass
class MessageRecord:
    """Message data record."""

    id: str
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime
    metadata: dict[str, str] = field(default_factory=dict)


class DocumentRepository(Protocol):
    """Repository for document operations.

    Lookups return ``None`` for absent documents instead of raising.
    """

    async def create_document(self, record: DocumentRecord) -> None:
        """Persist a new document row.

        Raises:
            RecordStoreError: If the row cannot be written
        """
        ...

    async def get_document(self, document_id: str) -> DocumentRecord | None:
        """Get document by ID."""
        ...

    async def list_documents(
        self, limit: int, offset: int, status: DocumentStatus | None = None
    ) -> tuple[list[DocumentRecord], int]:
        """List documents newest first.

        Returns:
            (page of documents, total matching documents)
        """
        ...

    async def transition_document(
        self,
        document_id: str,
        to_status: DocumentStatus,
        *,
        allowed_from: frozenset[DocumentStatus],
        error_message: str | None = None,
    ) -> DocumentRecord | None:
        """Conditionally move a document to a new status.

        The update applies only when the stored status is in ``allowed_from``.
        Entering a terminal status stamps ``indexed_at`` if it is still unset.

        Returns:
            Updated record, or None if the document is absent or the
            transition was not allowed
        """
        ...

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document row.

        Returns:
            True if a row was deleted
        """
        ...


class ConversationRepository(Protocol):
    """Repository for conversation and message operations."""

    async def create_conversation(self, record: ConversationRecord) -> None:
        """Persist a new conversation."""
        ...

    async def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        """Get conversation by ID."""
        ...

    async def list_conversations(
        self, limit: int, offset: int
    ) -> tuple[list[ConversationRecord], int]:
        """List conversations newest first."""
        ...

    async def append_message(self, record: MessageRecord) -> MessageRecord | None:
        """Append a message and bump the conversation counter atomically.

        The stored ``created_at`` is strictly greater than that of the
        previous message in the conversation. Appending an ID that already
        exists in the same conversation returns the stored message without
        touching the counter.

        Returns:
            Stored message, or None if the conversation does not exist

        Raises:
            MessageIdConflictError: If the ID belongs to another conversation
        """
        ...

    async def list_messages(
        self, conversation_id: str, limit: int, offset: int
    ) -> tuple[list[MessageRecord], int]:
        """List messages of a conversation in ascending ``created_at`` order."""
        ...


class RecordStore(DocumentRepository, ConversationRepository, Protocol):
    """Combined record store used by the gateway."""
