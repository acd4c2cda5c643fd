"""SQL implementations of repository interfaces."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gateway.app.db.models import Conversation, Document, Message
from gateway.app.db.repositories import (
    ConversationRecord,
    DocumentRecord,
    MessageIdConflictError,
    MessageRecord,
    RecordStoreError,
)
from gateway.app.models.common import DocumentStatus, MessageRole

_ORDERING_STEP = timedelta(microseconds=1)


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _document_record(row: Document) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        filename=row.filename,
        file_size=row.file_size,
        s3_key=row.s3_key,
        status=DocumentStatus(row.status),
        created_at=_aware(row.created_at),
        error_message=row.error_message,
        indexed_at=_aware(row.indexed_at) if row.indexed_at else None,
        metadata=dict(row.metadata_ or {}),
    )


def _conversation_record(row: Conversation) -> ConversationRecord:
    return ConversationRecord(
        id=row.id,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        message_count=row.message_count,
    )


def _message_record(row: Message) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        conversation_id=row.conversation_id,
        role=MessageRole(row.role),
        content=row.content,
        created_at=_aware(row.created_at),
        metadata=dict(row.metadata_ or {}),
    )


class SqlRecordStore:
    """SQL implementation of RecordStore.

    Holds a session factory bound to the shared, pooled engine; every
    operation runs in its own short transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as e:
            raise RecordStoreError(f"{type(e).__name__}: {e}") from e

    # Documents

    async def create_document(self, record: DocumentRecord) -> None:
        """Persist a new document row."""
        async with self._transaction() as session:
            session.add(
                Document(
                    id=record.id,
                    filename=record.filename,
                    file_size=record.file_size,
                    status=record.status.value,
                    s3_key=record.s3_key,
                    error_message=record.error_message,
                    metadata_=record.metadata or None,
                    created_at=record.created_at,
                    indexed_at=record.indexed_at,
                )
            )

    async def get_document(self, document_id: str) -> DocumentRecord | None:
        """Get document by ID."""
        async with self._transaction() as session:
            row = await session.get(Document, document_id)
            return _document_record(row) if row else None

    async def list_documents(
        self, limit: int, offset: int, status: DocumentStatus | None = None
    ) -> tuple[list[DocumentRecord], int]:
        """List documents newest first."""
        query = select(Document)
        count_query = select(func.count()).select_from(Document)

        if status is not None:
            query = query.where(Document.status == status.value)
            count_query = count_query.where(Document.status == status.value)

        query = query.order_by(Document.created_at.desc()).limit(limit).offset(offset)

        async with self._transaction() as session:
            rows = (await session.execute(query)).scalars().all()
            total = (await session.execute(count_query)).scalar_one()

        return [_document_record(row) for row in rows], total

    async def transition_document(
        self,
        document_id: str,
        to_status: DocumentStatus,
        *,
        allowed_from: frozenset[DocumentStatus],
        error_message: str | None = None,
    ) -> DocumentRecord | None:
        """Conditionally move a document to a new status."""
        values: dict[str, object] = {"status": to_status.value}
        if error_message is not None:
            values["error_message"] = error_message
        if to_status.is_terminal:
            values["indexed_at"] = func.coalesce(Document.indexed_at, datetime.now(timezone.utc))

        stmt = (
            update(Document)
            .where(Document.id == document_id)
            .where(Document.status.in_([s.value for s in allowed_from]))
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async with self._transaction() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                return None

            row = (
                await session.execute(
                    select(Document)
                    .where(Document.id == document_id)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()
            return _document_record(row)

    async def delete_document(self, document_id: str) -> bool:
        """Delete a document row."""
        async with self._transaction() as session:
            result = await session.execute(delete(Document).where(Document.id == document_id))
            return result.rowcount > 0

    # Conversations

    async def create_conversation(self, record: ConversationRecord) -> None:
        """Persist a new conversation."""
        async with self._transaction() as session:
            session.add(
                Conversation(
                    id=record.id,
                    created_at=record.created_at,
                    updated_at=record.updated_at,
                    message_count=record.message_count,
                )
            )

    async def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        """Get conversation by ID."""
        async with self._transaction() as session:
            row = await session.get(Conversation, conversation_id)
            return _conversation_record(row) if row else None

    async def list_conversations(
        self, limit: int, offset: int
    ) -> tuple[list[ConversationRecord], int]:
        """List conversations newest first."""
        query = (
            select(Conversation)
            .order_by(Conversation.created_at.desc())
            .limit(limit)
            .offset(offset)
        )

        async with self._transaction() as session:
            rows = (await session.execute(query)).scalars().all()
            total = (
                await session.execute(select(func.count()).select_from(Conversation))
            ).scalar_one()

        return [_conversation_record(row) for row in rows], total

    async def append_message(self, record: MessageRecord) -> MessageRecord | None:
        """Append a message and bump the conversation counter in one transaction."""
        async with self._transaction() as session:
            # Row lock serialises concurrent appends to the same conversation
            conversation = (
                await session.execute(
                    select(Conversation)
                    .where(Conversation.id == record.conversation_id)
                    .with_for_update()
                )
            ).scalar_one_or_none()

            if conversation is None:
                return None

            existing = await session.get(Message, record.id)
            if existing is not None:
                if existing.conversation_id != record.conversation_id:
                    raise MessageIdConflictError(
                        f"Message {record.id} belongs to another conversation"
                    )
                return _message_record(existing)

            created_at = max(
                _aware(record.created_at), _aware(conversation.updated_at) + _ORDERING_STEP
            )

            message = Message(
                id=record.id,
                conversation_id=record.conversation_id,
                role=record.role.value,
                content=record.content,
                metadata_=record.metadata or None,
                created_at=created_at,
            )
            session.add(message)

            conversation.message_count = conversation.message_count + 1
            conversation.updated_at = created_at

        return MessageRecord(
            id=record.id,
            conversation_id=record.conversation_id,
            role=record.role,
            content=record.content,
            created_at=created_at,
            metadata=dict(record.metadata),
        )

    async def list_messages(
        self, conversation_id: str, limit: int, offset: int
    ) -> tuple[list[MessageRecord], int]:
        """List messages of a conversation in ascending created_at order."""
        query = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .limit(limit)
            .offset(offset)
        )
        count_query = (
            select(func.count())
            .select_from(Message)
            .where(Message.conversation_id == conversation_id)
        )

        async with self._transaction() as session:
            rows = (await session.execute(query)).scalars().all()
            total = (await session.execute(count_query)).scalar_one()

        return [_message_record(row) for row in rows], total
