"""Conversation and message API models."""

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from gateway.app.models.common import MessageRole

if TYPE_CHECKING:
    from gateway.app.db.repositories import ConversationRecord, MessageRecord


class Conversation(BaseModel):
    """Conversation summary."""

    id: str
    created_at: datetime
    updated_at: datetime
    message_count: int = 0

    @classmethod
    def from_record(cls, record: "ConversationRecord") -> "Conversation":
        return cls(
            id=record.id,
            created_at=record.created_at,
            updated_at=record.updated_at,
            message_count=record.message_count,
        )


class Message(BaseModel):
    """One turn of a conversation."""

    id: str
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime
    metadata: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: "MessageRecord") -> "Message":
        return cls(
            id=record.id,
            conversation_id=record.conversation_id,
            role=record.role,
            content=record.content,
            created_at=record.created_at,
            metadata=record.metadata,
        )


class ConversationList(BaseModel):
    """Page of conversations."""

    conversations: list[Conversation]
    total: int
    limit: int
    offset: int


class MessageList(BaseModel):
    """Page of messages, oldest first."""

    messages: list[Message]
    total: int
    limit: int
    offset: int
