"""Conversation and message coordination over the record store."""

import logging
import uuid
from datetime import datetime, timezone

from gateway.app.db.repositories import (
    ConversationRecord,
    ConversationRepository,
    MessageIdConflictError,
    MessageRecord,
    RecordStoreError,
)
from gateway.app.errors import NotFoundError, PersistenceError, ValidationError
from gateway.app.models.common import MessageRole
from gateway.app.orchestration.paging import check_page

logger = logging.getLogger(__name__)

# Width of the messages.id column
MAX_MESSAGE_ID_LENGTH = 36


class ConversationCoordinator:
    """Creates and lists conversations and their messages.

    Message appends go through ``ConversationRepository.append_message`` so the
    message row and the conversation counter change together.
    """

    def __init__(self, records: ConversationRepository) -> None:
        self._records = records

    async def create_conversation(self) -> ConversationRecord:
        """Create an empty conversation."""
        now = datetime.now(timezone.utc)
        record = ConversationRecord(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            message_count=0,
        )

        try:
            await self._records.create_conversation(record)
        except RecordStoreError as e:
            raise PersistenceError("Failed to create conversation") from e

        logger.info(f"Created conversation {record.id}")
        return record

    async def get_conversation(self, conversation_id: str) -> ConversationRecord:
        """Get a conversation.

        Raises:
            NotFoundError: If the conversation does not exist
        """
        try:
            record = await self._records.get_conversation(conversation_id)
        except RecordStoreError as e:
            raise PersistenceError("Failed to read conversation") from e

        if record is None:
            raise NotFoundError(
                "Conversation not found", details={"conversation_id": conversation_id}
            )
        return record

    async def list_conversations(
        self, limit: int, offset: int
    ) -> tuple[list[ConversationRecord], int]:
        """List conversations newest first."""
        check_page(limit, offset)
        try:
            return await self._records.list_conversations(limit, offset)
        except RecordStoreError as e:
            raise PersistenceError("Failed to list conversations") from e

    async def create_message(
        self,
        conversation_id: str,
        role: MessageRole | str,
        content: str,
        metadata: dict[str, str] | None = None,
        message_id: str | None = None,
    ) -> MessageRecord:
        """Append a message to a conversation.

        Args:
            conversation_id: Owning conversation
            role: "user" or "assistant"
            content: Message text, must not be blank
            metadata: Optional string map stored with the message
            message_id: Client-supplied ID; retries with the same ID in the same
                conversation are no-ops

        Raises:
            ValidationError: On bad role, blank content, an overlong ID or an ID
                already used by another conversation
            NotFoundError: If the conversation does not exist
        """
        try:
            message_role = MessageRole(role)
        except ValueError as e:
            raise ValidationError(
                "role must be 'user' or 'assistant'", details={"role": str(role)}
            ) from e

        if not content or not content.strip():
            raise ValidationError("content must not be empty")

        if message_id is not None and len(message_id) > MAX_MESSAGE_ID_LENGTH:
            raise ValidationError(
                f"message id must be at most {MAX_MESSAGE_ID_LENGTH} characters",
                details={"id": message_id},
            )

        record = MessageRecord(
            id=message_id or str(uuid.uuid4()),
            conversation_id=conversation_id,
            role=message_role,
            content=content,
            created_at=datetime.now(timezone.utc),
            metadata=dict(metadata or {}),
        )

        try:
            stored = await self._records.append_message(record)
        except MessageIdConflictError as e:
            raise ValidationError(
                "message id is already used by another conversation",
                details={"id": record.id, "conversation_id": conversation_id},
            ) from e
        except RecordStoreError as e:
            raise PersistenceError(
                "Failed to save message", details={"conversation_id": conversation_id}
            ) from e

        if stored is None:
            raise NotFoundError(
                "Conversation not found", details={"conversation_id": conversation_id}
            )
        return stored

    async def list_messages(
        self, conversation_id: str, limit: int, offset: int
    ) -> tuple[list[MessageRecord], int]:
        """List messages oldest first.

        Raises:
            NotFoundError: If the conversation does not exist
        """
        check_page(limit, offset)
        await self.get_conversation(conversation_id)

        try:
            return await self._records.list_messages(conversation_id, limit, offset)
        except RecordStoreError as e:
            raise PersistenceError("Failed to list messages") from e
