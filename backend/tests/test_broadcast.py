"""Tests for the subscriber broadcast hub."""

from __future__ import annotations

import asyncio
import time

import pytest

from advisor.services import (
    BroadcastHub,
    ConnectFailure,
    ConnectRejected,
    ContentDeltaEvent,
    ConversationSnapshotEvent,
    StreamEndEvent,
    Subscription,
    parse_event,
)
from conftest import FakeTransport, HeldTransport, make_token


@pytest.mark.asyncio
async def test_connect_sends_snapshot_and_registers(hub: BroadcastHub, store) -> None:
    conversation = await store.create_conversation("alice", summary="Pricing")
    await store.insert_message(conversation.id, "user", "Pricing")
    transport = FakeTransport()

    subscription = await hub.connect(conversation.id, make_token("alice"), transport)

    assert isinstance(subscription, Subscription)
    assert hub.subscriber_count(conversation.id) == 1
    [frame] = transport.sent
    snapshot = parse_event(frame)
    assert isinstance(snapshot, ConversationSnapshotEvent)
    assert snapshot.data.id == conversation.id
    assert snapshot.data.status == "idle"
    assert [m.content for m in snapshot.data.messages] == ["Pricing"]


@pytest.mark.asyncio
async def test_connect_rejects_invalid_token(hub: BroadcastHub, store) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    transport = FakeTransport()

    result = await hub.connect(conversation.id, "garbage", transport)

    assert result == ConnectRejected(ConnectFailure.UNAUTHENTICATED, 4401)
    assert transport.close_code == 4401
    assert transport.sent == []
    assert hub.subscriber_count() == 0


@pytest.mark.asyncio
async def test_connect_rejects_missing_token(hub: BroadcastHub, store) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    transport = FakeTransport()

    result = await hub.connect(conversation.id, None, transport)

    assert isinstance(result, ConnectRejected)
    assert transport.close_code == 4401


@pytest.mark.asyncio
async def test_connect_rejects_other_users_conversation(hub: BroadcastHub, store) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    transport = FakeTransport()

    result = await hub.connect(conversation.id, make_token("mallory"), transport)

    assert isinstance(result, ConnectRejected)
    assert result.reason is ConnectFailure.NOT_FOUND
    assert transport.close_code == 4404
    assert transport.sent == []
    assert hub.subscriber_count() == 0


@pytest.mark.asyncio
async def test_connect_rejects_unknown_conversation(hub: BroadcastHub) -> None:
    transport = FakeTransport()

    result = await hub.connect("does-not-exist", make_token("alice"), transport)

    assert isinstance(result, ConnectRejected)
    assert transport.close_code == 4404


@pytest.mark.asyncio
async def test_broadcast_reaches_only_that_conversation(hub: BroadcastHub, store) -> None:
    first = await store.create_conversation("alice", summary="one")
    second = await store.create_conversation("alice", summary="two")
    watcher_one, watcher_two = FakeTransport(), FakeTransport()
    await hub.connect(first.id, make_token("alice"), watcher_one)
    await hub.connect(second.id, make_token("alice"), watcher_two)

    delivered = await hub.broadcast(first.id, ContentDeltaEvent(data="hello"))

    assert delivered == 1
    assert watcher_one.deltas == ["hello"]
    assert watcher_two.deltas == []


@pytest.mark.asyncio
async def test_broadcast_without_subscribers_delivers_nothing(hub: BroadcastHub) -> None:
    assert await hub.broadcast("nobody", StreamEndEvent()) == 0


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(hub: BroadcastHub, store) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    transport = FakeTransport()
    subscription = await hub.connect(conversation.id, make_token("alice"), transport)

    hub.disconnect(subscription)
    hub.disconnect(subscription)

    assert hub.subscriber_count(conversation.id) == 0
    assert await hub.broadcast(conversation.id, StreamEndEvent()) == 0


@pytest.mark.asyncio
async def test_failed_send_drops_only_that_subscriber(hub: BroadcastHub, store) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    healthy = FakeTransport()
    broken = FakeTransport()
    await hub.connect(conversation.id, make_token("alice"), healthy)
    await hub.connect(conversation.id, make_token("alice"), broken)
    broken.fail = True

    delivered = await hub.broadcast(conversation.id, ContentDeltaEvent(data="a"))
    delivered_again = await hub.broadcast(conversation.id, ContentDeltaEvent(data="ab"))

    assert delivered == 1
    assert delivered_again == 1
    assert healthy.deltas == ["a", "ab"]
    assert broken.close_code == 1011
    assert hub.subscriber_count(conversation.id) == 1


@pytest.mark.asyncio
async def test_slow_subscriber_is_dropped_after_timeout(store, verifier) -> None:
    hub = BroadcastHub(store, verifier, send_timeout=0.05)
    conversation = await store.create_conversation("alice", summary="x")
    slow = FakeTransport()
    await hub.connect(conversation.id, make_token("alice"), slow)
    slow.delay = 1.0

    delivered = await hub.broadcast(conversation.id, StreamEndEvent())

    assert delivered == 0
    assert slow.closed
    assert hub.subscriber_count() == 0


@pytest.mark.asyncio
async def test_close_conversation_closes_every_subscriber(hub: BroadcastHub, store) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    first, second = FakeTransport(), FakeTransport()
    await hub.connect(conversation.id, make_token("alice"), first)
    await hub.connect(conversation.id, make_token("alice"), second)

    closed = await hub.close_conversation(conversation.id)

    assert closed == 2
    assert first.close_code == second.close_code == 4410
    assert hub.subscriber_count() == 0


@pytest.mark.asyncio
async def test_close_all(hub: BroadcastHub, store) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    transport = FakeTransport()
    await hub.connect(conversation.id, make_token("alice"), transport)

    await hub.close_all()

    assert transport.close_code == 1001
    assert hub.subscriber_count() == 0


@pytest.mark.asyncio
async def test_events_broadcast_while_connecting_follow_the_snapshot(
    hub: BroadcastHub, store
) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    transport = HeldTransport()
    connecting = asyncio.create_task(
        hub.connect(conversation.id, make_token("alice"), transport)
    )
    await transport.holding.wait()

    assert await hub.broadcast(conversation.id, ContentDeltaEvent(data="par")) == 1
    assert await hub.broadcast(conversation.id, ContentDeltaEvent(data="partial")) == 1
    assert await hub.broadcast(conversation.id, StreamEndEvent()) == 1
    transport.release.set()
    subscription = await connecting

    assert isinstance(subscription, Subscription)
    assert subscription.live
    assert transport.types == [
        "conversation_snapshot",
        "content_delta",
        "content_delta",
        "stream_end",
    ]
    assert transport.deltas == ["par", "partial"]

    await hub.broadcast(conversation.id, ContentDeltaEvent(data="next"))
    assert transport.deltas[-1] == "next"


@pytest.mark.asyncio
async def test_conversation_closed_while_connecting_rejects_subscriber(
    hub: BroadcastHub, store
) -> None:
    conversation = await store.create_conversation("alice", summary="x")
    transport = HeldTransport()
    connecting = asyncio.create_task(
        hub.connect(conversation.id, make_token("alice"), transport)
    )
    await transport.holding.wait()

    assert await hub.close_conversation(conversation.id) == 1
    transport.release.set()
    result = await connecting

    assert result == ConnectRejected(ConnectFailure.CLOSED, 4410)
    assert transport.close_code == 4410
    assert hub.subscriber_count() == 0


@pytest.mark.asyncio
async def test_stalled_subscribers_time_out_together(store, verifier) -> None:
    hub = BroadcastHub(store, verifier, send_timeout=0.2)
    conversation = await store.create_conversation("alice", summary="x")
    healthy = FakeTransport()
    stalled = [FakeTransport() for _ in range(3)]
    for transport in [healthy, *stalled]:
        await hub.connect(conversation.id, make_token("alice"), transport)
    for transport in stalled:
        transport.delay = 5.0

    started = time.perf_counter()
    delivered = await hub.broadcast(conversation.id, ContentDeltaEvent(data="hi"))
    elapsed = time.perf_counter() - started

    assert delivered == 1
    assert healthy.deltas == ["hi"]
    assert all(transport.close_code == 1011 for transport in stalled)
    assert hub.subscriber_count(conversation.id) == 1
    # One timeout for the whole event, not one per stalled subscriber.
    assert elapsed < 0.5
