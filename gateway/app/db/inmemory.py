"""In-memory implementations of repository interfaces."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from gateway.app.db.repositories import (
    ConversationRecord,
    DocumentRecord,
    MessageIdConflictError,
    MessageRecord,
)
from gateway.app.models.common import DocumentStatus

_ORDERING_STEP = timedelta(microseconds=1)


class InMemoryRecordStore:
    """In-memory implementation of RecordStore.

    Methods never await between reading and writing, so each call is atomic
    with respect to other tasks on the same event loop.
    """

    def __init__(self) -> None:
        self._documents: dict[str, DocumentRecord] = {}
        self._conversations: dict[str, ConversationRecord] = {}
        self._messages: dict[str, list[MessageRecord]] = {}
        self._message_ids: dict[str, MessageRecord] = {}

    async def create_document(self, record: DocumentRecord) -> None:
        """Persist a new document row."""
        self._documents[record.id] = replace(record, metadata=dict(record.metadata))

    async def get_document(self, document_id: str) -> DocumentRecord | None:
        """Get document by ID."""
        record = self._documents.get(document_id)
        return replace(record) if record else None

    async def list_documents(
        self, limit: int, offset: int, status: DocumentStatus | None = None
    ) -> tuple[list[DocumentRecord], int]:
        """List documents newest first."""
        results = [
            record
            for record in self._documents.values()
            if status is None or record.status == status
        ]
        results.sort(key=lambda x: x.created_at, reverse=True)
        return [replace(r) for r in results[offset : offset + limit]], len(results)

    async def transition_document(
        self,
        document_id: str,
        to_status: DocumentStatus,
        *,
        allowed_from: frozenset[DocumentStatus],
        error_message: str | None = None,
    ) -> DocumentRecord | None:
        """Conditionally move a document to a new status."""
        record = self._documents.get(document_id)
        if record is None or record.status not in allowed_from:
            return None

        updated = replace(record, status=to_status)
        if error_message is not None:
            updated.error_message = error_message
        if to_status.is_terminal and updated.indexed_at is None:
            updated.indexed_at = datetime.now(timezone.utc)

        self._documents[document_id] = updated
        return replace(updated)

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document row."""
        return self._documents.pop(document_id, None) is not None

    async def create_conversation(self, record: ConversationRecord) -> None:
        """Persist a new conversation."""
        self._conversations[record.id] = replace(record)
        self._messages.setdefault(record.id, [])

    async def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        """Get conversation by ID."""
        record = self._conversations.get(conversation_id)
        return replace(record) if record else None

    async def list_conversations(
        self, limit: int, offset: int
    ) -> tuple[list[ConversationRecord], int]:
        """List conversations newest first."""
        results = sorted(self._conversations.values(), key=lambda x: x.created_at, reverse=True)
        return [replace(r) for r in results[offset : offset + limit]], len(results)

    async def append_message(self, record: MessageRecord) -> MessageRecord | None:
        """Append a message and bump the conversation counter."""
        conversation = self._conversations.get(record.conversation_id)
        if conversation is None:
            return None

        existing = self._message_ids.get(record.id)
        if existing is not None:
            if existing.conversation_id != record.conversation_id:
                raise MessageIdConflictError(
                    f"Message {record.id} belongs to another conversation"
                )
            return replace(existing)

        created_at = max(record.created_at, conversation.updated_at + _ORDERING_STEP)
        stored = replace(record, created_at=created_at, metadata=dict(record.metadata))

        self._messages[record.conversation_id].append(stored)
        self._message_ids[record.id] = stored
        self._conversations[record.conversation_id] = replace(
            conversation,
            message_count=conversation.message_count + 1,
            updated_at=created_at,
        )
        return replace(stored)

    async def list_messages(
        self, conversation_id: str, limit: int, offset: int
    ) -> tuple[list[MessageRecord], int]:
        """List messages of a conversation in ascending created_at order."""
        messages = self._messages.get(conversation_id, [])
        return [replace(m) for m in messages[offset : offset + limit]], len(messages)
