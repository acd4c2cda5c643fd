"""Conversation and message endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from gateway.app.api.auth import Principal, get_current_principal
from gateway.app.api.deps import get_conversations
from gateway.app.models.common import MessageRole
from gateway.app.models.conversations import Conversation, ConversationList, Message, MessageList
from gateway.app.orchestration.conversations import MAX_MESSAGE_ID_LENGTH, ConversationCoordinator
from gateway.app.orchestration.paging import DEFAULT_LIMIT, MAX_LIMIT

router = APIRouter(prefix="/conversations", tags=["conversations"])

Conversations = Annotated[ConversationCoordinator, Depends(get_conversations)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


class CreateMessageRequest(BaseModel):
    """Request body for POST /conversations/{id}/messages."""

    id: str | None = Field(
        None,
        min_length=1,
        max_length=MAX_MESSAGE_ID_LENGTH,
        description="Client ID for idempotent retries",
    )
    role: MessageRole
    content: str = Field(..., min_length=1)
    metadata: dict[str, str] = Field(default_factory=dict)


@router.post("", response_model=Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(conversations: Conversations, _: CurrentPrincipal) -> Conversation:
    """Start an empty conversation."""
    return Conversation.from_record(await conversations.create_conversation())


@router.get("", response_model=ConversationList)
async def list_conversations(
    conversations: Conversations,
    _: CurrentPrincipal,
    limit: Annotated[int, Query(ge=1, le=MAX_LIMIT)] = DEFAULT_LIMIT,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ConversationList:
    """List conversations newest first."""
    records, total = await conversations.list_conversations(limit, offset)
    return ConversationList(
        conversations=[Conversation.from_record(r) for r in records],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{conversation_id}", response_model=Conversation)
async def get_conversation(
    conversation_id: str, conversations: Conversations, _: CurrentPrincipal
) -> Conversation:
    """Get one conversation."""
    return Conversation.from_record(await conversations.get_conversation(conversation_id))


@router.post(
    "/{conversation_id}/messages", response_model=Message, status_code=status.HTTP_201_CREATED
)
async def create_message(
    conversation_id: str,
    request: CreateMessageRequest,
    conversations: Conversations,
    _: CurrentPrincipal,
) -> Message:
    """Append a message to a conversation."""
    record = await conversations.create_message(
        conversation_id,
        request.role,
        request.content,
        metadata=request.metadata,
        message_id=request.id,
    )
    return Message.from_record(record)


@router.get("/{conversation_id}/messages", response_model=MessageList)
async def list_messages(
    conversation_id: str,
    conversations: Conversations,
    _: CurrentPrincipal,
    limit: Annotated[int, Query(ge=1, le=MAX_LIMIT)] = DEFAULT_LIMIT,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> MessageList:
    """List messages oldest first."""
    records, total = await conversations.list_messages(conversation_id, limit, offset)
    return MessageList(
        messages=[Message.from_record(r) for r in records],
        total=total,
        limit=limit,
        offset=offset,
    )
