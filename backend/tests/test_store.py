"""Tests for the conversation store and its repositories."""

from __future__ import annotations

import json

import pytest

from advisor.core import PersistenceError
from advisor.db import (
    STATUS_IDLE,
    STATUS_RUNNING,
    ConversationStore,
    build_engine,
    create_session_factory,
)


@pytest.mark.asyncio
async def test_messages_keep_insertion_order(store: ConversationStore) -> None:
    conversation = await store.create_conversation("alice", summary="Launch plan")

    for index in range(5):
        role = "user" if index % 2 == 0 else "assistant"
        await store.insert_message(conversation.id, role, f"m{index}")

    messages = await store.list_messages(conversation.id)
    assert [m.content for m in messages] == ["m0", "m1", "m2", "m3", "m4"]
    assert [m.seq for m in messages] == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_system_messages_are_hidden_by_default(store: ConversationStore) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    await store.insert_message(conversation.id, "system", "directive")
    await store.insert_message(conversation.id, "user", "hi")

    assert [m.role for m in await store.list_messages(conversation.id)] == ["user"]
    assert len(await store.list_messages(conversation.id, include_system=True)) == 2


@pytest.mark.asyncio
async def test_result_metadata_is_stored_as_json(store: ConversationStore) -> None:
    conversation = await store.create_conversation("alice", summary="x")

    message = await store.insert_message(
        conversation.id, "assistant", "reply", result={"id": "chatcmpl-1", "model": "gpt"}
    )

    assert json.loads(message.result) == {"id": "chatcmpl-1", "model": "gpt"}


@pytest.mark.asyncio
async def test_summary_is_trimmed_to_column_size(store: ConversationStore) -> None:
    conversation = await store.create_conversation("alice", summary="  " + "a" * 400)

    assert conversation.summary == "a" * 255
    assert conversation.status == STATUS_IDLE


@pytest.mark.asyncio
async def test_owner_filter(store: ConversationStore) -> None:
    conversation = await store.create_conversation("alice", summary="x")

    assert await store.get_conversation(conversation.id, user_id="alice") is not None
    assert await store.get_conversation(conversation.id, user_id="bob") is None
    assert await store.get_conversation(conversation.id) is not None
    assert [c.id for c in await store.list_conversations("alice")] == [conversation.id]
    assert await store.list_conversations("bob") == []


@pytest.mark.asyncio
async def test_reset_running_returns_conversations_to_idle(store: ConversationStore) -> None:
    stuck = await store.create_conversation("alice", summary="stuck")
    idle = await store.create_conversation("alice", summary="idle")
    await store.update_conversation_status(stuck.id, STATUS_RUNNING)

    assert await store.reset_running() == 1
    assert (await store.get_conversation(stuck.id)).status == STATUS_IDLE
    assert (await store.get_conversation(idle.id)).status == STATUS_IDLE


@pytest.mark.asyncio
async def test_delete_removes_messages(store: ConversationStore) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    await store.insert_message(conversation.id, "user", "hi")

    assert await store.delete_conversation("bob", conversation.id) is False
    assert await store.delete_conversation("alice", conversation.id) is True
    assert await store.list_messages(conversation.id) == []
    assert await store.insert_message(conversation.id, "assistant", "late") is None
    assert await store.update_conversation_status(conversation.id, STATUS_IDLE) is None


@pytest.mark.asyncio
async def test_database_errors_surface_as_persistence_error(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    store = ConversationStore(create_session_factory(engine))

    with pytest.raises(PersistenceError) as exc:
        await store.create_conversation("alice", summary="no tables")

    assert exc.value.details == {"operation": "create_conversation"}
    engine.dispose()
