"""Unit tests for ConversationCoordinator."""

import asyncio

import pytest

from gateway.app.db.models import Message
from gateway.app.errors import NotFoundError, PersistenceError, ValidationError
from gateway.app.models.common import MessageRole
from gateway.app.orchestration.conversations import MAX_MESSAGE_ID_LENGTH, ConversationCoordinator
from tests.fakes import FlakyRecordStore


@pytest.mark.asyncio
async def test_new_conversation_is_empty(conversations: ConversationCoordinator) -> None:
    conv = await conversations.create_conversation()

    assert conv.message_count == 0
    assert conv.created_at == conv.updated_at
    assert (await conversations.get_conversation(conv.id)).id == conv.id


@pytest.mark.asyncio
async def test_append_increments_count_and_orders_messages(
    conversations: ConversationCoordinator,
) -> None:
    conv = await conversations.create_conversation()

    first = await conversations.create_message(conv.id, "user", "What is the refund policy?")
    second = await conversations.create_message(conv.id, MessageRole.assistant, "30 days.")
    third = await conversations.create_message(conv.id, "user", "Thanks")

    assert first.created_at < second.created_at < third.created_at

    refreshed = await conversations.get_conversation(conv.id)
    assert refreshed.message_count == 3
    assert refreshed.updated_at == third.created_at

    messages, total = await conversations.list_messages(conv.id, 10, 0)
    assert total == 3
    assert [m.id for m in messages] == [first.id, second.id, third.id]


@pytest.mark.asyncio
async def test_concurrent_appends_keep_count_consistent(
    conversations: ConversationCoordinator,
) -> None:
    conv = await conversations.create_conversation()

    await asyncio.gather(
        *(conversations.create_message(conv.id, "user", f"message {i}") for i in range(25))
    )

    refreshed = await conversations.get_conversation(conv.id)
    messages, total = await conversations.list_messages(conv.id, 100, 0)
    assert refreshed.message_count == total == 25
    timestamps = [m.created_at for m in messages]
    assert timestamps == sorted(timestamps)
    assert len(set(timestamps)) == 25


@pytest.mark.asyncio
async def test_client_message_id_makes_retries_idempotent(
    conversations: ConversationCoordinator,
) -> None:
    conv = await conversations.create_conversation()

    first = await conversations.create_message(conv.id, "user", "hello", message_id="client-1")
    retry = await conversations.create_message(conv.id, "user", "hello", message_id="client-1")

    assert retry.id == first.id
    assert (await conversations.get_conversation(conv.id)).message_count == 1


@pytest.mark.asyncio
async def test_message_id_reused_in_other_conversation_is_rejected(
    conversations: ConversationCoordinator,
) -> None:
    first = await conversations.create_conversation()
    second = await conversations.create_conversation()
    await conversations.create_message(first.id, "user", "only for the first", message_id="m-1")

    with pytest.raises(ValidationError) as exc_info:
        await conversations.create_message(second.id, "user", "hello", message_id="m-1")

    assert exc_info.value.details == {"id": "m-1", "conversation_id": second.id}
    assert "only for the first" not in str(exc_info.value.to_envelope())
    assert (await conversations.get_conversation(second.id)).message_count == 0
    messages, total = await conversations.list_messages(second.id, 10, 0)
    assert (messages, total) == ([], 0)
    assert (await conversations.get_conversation(first.id)).message_count == 1


@pytest.mark.asyncio
async def test_overlong_message_id_rejected(conversations: ConversationCoordinator) -> None:
    conv = await conversations.create_conversation()

    with pytest.raises(ValidationError):
        await conversations.create_message(
            conv.id, "user", "hello", message_id="x" * (MAX_MESSAGE_ID_LENGTH + 1)
        )

    stored = await conversations.create_message(
        conv.id, "user", "hello", message_id="x" * MAX_MESSAGE_ID_LENGTH
    )
    assert len(stored.id) == MAX_MESSAGE_ID_LENGTH


def test_message_id_limit_matches_column_width() -> None:
    assert Message.__table__.c.id.type.length == MAX_MESSAGE_ID_LENGTH


@pytest.mark.asyncio
@pytest.mark.parametrize("role,content", [("system", "hi"), ("user", ""), ("assistant", "   ")])
async def test_rejects_bad_messages(
    conversations: ConversationCoordinator, role: str, content: str
) -> None:
    conv = await conversations.create_conversation()

    with pytest.raises(ValidationError):
        await conversations.create_message(conv.id, role, content)

    assert (await conversations.get_conversation(conv.id)).message_count == 0


@pytest.mark.asyncio
async def test_unknown_conversation(conversations: ConversationCoordinator) -> None:
    with pytest.raises(NotFoundError):
        await conversations.get_conversation("missing")
    with pytest.raises(NotFoundError):
        await conversations.create_message("missing", "user", "hello")
    with pytest.raises(NotFoundError):
        await conversations.list_messages("missing", 10, 0)


@pytest.mark.asyncio
async def test_store_failure_is_persistence_error(
    conversations: ConversationCoordinator, records: FlakyRecordStore
) -> None:
    conv = await conversations.create_conversation()
    records.fail_append_roles.add("user")

    with pytest.raises(PersistenceError):
        await conversations.create_message(conv.id, "user", "hello")


@pytest.mark.asyncio
async def test_list_conversations_newest_first(conversations: ConversationCoordinator) -> None:
    older = await conversations.create_conversation()
    await asyncio.sleep(0.001)
    newer = await conversations.create_conversation()

    page, total = await conversations.list_conversations(10, 0)

    assert total == 2
    assert [c.id for c in page] == [newer.id, older.id]

    page, _ = await conversations.list_conversations(1, 1)
    assert [c.id for c in page] == [older.id]
