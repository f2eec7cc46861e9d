"""
Broadcast hub for live conversation subscribers.

Subscribers attach to exactly one conversation. A connection is authorized
once at connect time; after that the hub only fans events out. A new handle is
registered as pending before its snapshot is read, and events broadcast while
it is pending are queued and delivered right after the snapshot. Each event is
sent to all live handles at once and every send is bounded by a timeout, so a
slow or broken subscriber is dropped instead of stalling the run that feeds it.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

from advisor.auth.tokens import TokenVerifier
from advisor.core import AuthError, PersistenceError, get_logger, metrics
from advisor.core.time import utcnow
from advisor.db.store import ConversationStore
from advisor.services.events import (
    ConversationDocument,
    ConversationSnapshotEvent,
    ServerEvent,
    serialize_event,
)

logger = get_logger(__name__)

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_INTERNAL_ERROR = 1011
CLOSE_UNAUTHENTICATED = 4401
CLOSE_NOT_FOUND = 4404
CLOSE_CONVERSATION_DELETED = 4410


class SubscriberTransport(Protocol):
    """The two operations the hub needs from a live connection."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = CLOSE_NORMAL, reason: str | None = None) -> None: ...


class ConnectFailure(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    CLOSED = "closed"


@dataclass(frozen=True)
class ConnectRejected:
    """Returned by ``BroadcastHub.connect`` when the connection was refused."""

    reason: ConnectFailure
    close_code: int


@dataclass(eq=False)
class Subscription:
    """A registered subscriber handle."""

    conversation_id: str
    user_id: str
    transport: SubscriberTransport
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    connected_at: datetime = field(default_factory=utcnow)
    # Envelopes queued until the connect snapshot is out; None once live.
    backlog: list[str] | None = field(default=None, repr=False)
    close_code: int | None = field(default=None, repr=False)

    @property
    def live(self) -> bool:
        return self.backlog is None


class BroadcastHub:
    """Registry of subscribers keyed by conversation id."""

    def __init__(
        self,
        store: ConversationStore,
        verifier: TokenVerifier,
        send_timeout: float | None = 5.0,
    ):
        self._store = store
        self._verifier = verifier
        self._send_timeout = send_timeout if send_timeout and send_timeout > 0 else None
        self._subscribers: dict[str, dict[str, Subscription]] = {}

    async def connect(
        self,
        conversation_id: str | None,
        token: str | None,
        transport: SubscriberTransport,
    ) -> Subscription | ConnectRejected:
        """
        Authorize a new subscriber and register it.

        The handle is registered as pending before the snapshot is read, so the
        snapshot is never older than the connection. Events broadcast while the
        snapshot is in flight are queued and sent right after it, in order.
        On failure the handle is removed and the transport is closed.
        """
        try:
            claims = self._verifier.verify(token)
        except AuthError as exc:
            logger.info("Subscriber rejected", data={"reason": exc.message})
            return await self._reject(
                transport, ConnectFailure.UNAUTHENTICATED, CLOSE_UNAUTHENTICATED
            )

        if not conversation_id:
            return await self._reject(transport, ConnectFailure.NOT_FOUND, CLOSE_NOT_FOUND)

        subscription = Subscription(
            conversation_id=conversation_id,
            user_id=claims.user_id,
            transport=transport,
            backlog=[],
        )
        self._subscribers.setdefault(conversation_id, {})[subscription.id] = subscription

        try:
            conversation = await self._store.get_conversation(
                conversation_id, user_id=claims.user_id
            )
            if conversation is None:
                self._unregister(subscription)
                logger.info(
                    "Subscriber rejected",
                    data={"reason": "not_found", "conversation_id": conversation_id},
                )
                return await self._reject(
                    transport, ConnectFailure.NOT_FOUND, CLOSE_NOT_FOUND
                )
            messages = await self._store.list_messages(conversation_id)
        except PersistenceError:
            self._unregister(subscription)
            return await self._reject(
                transport, ConnectFailure.UNAVAILABLE, CLOSE_INTERNAL_ERROR
            )

        snapshot = ConversationSnapshotEvent(
            data=ConversationDocument.from_records(conversation, messages)
        )
        try:
            await self._send(transport, serialize_event(snapshot))
            while subscription.backlog:
                await self._send(transport, subscription.backlog.pop(0))
        except Exception as exc:
            self._unregister(subscription)
            if subscription.close_code is not None:
                return ConnectRejected(
                    reason=ConnectFailure.CLOSED, close_code=subscription.close_code
                )
            logger.warning(
                "Failed to deliver snapshot to new subscriber",
                data={"conversation_id": conversation_id, "error": repr(exc)},
            )
            return await self._reject(
                transport, ConnectFailure.UNAVAILABLE, CLOSE_INTERNAL_ERROR
            )
        subscription.backlog = None

        if subscription.close_code is not None:
            # Closed by close_conversation or close_all while connecting.
            return ConnectRejected(
                reason=ConnectFailure.CLOSED, close_code=subscription.close_code
            )

        self._update_gauge()
        logger.info(
            "Subscriber connected",
            data={
                "conversation_id": conversation_id,
                "subscription_id": subscription.id,
                "subscribers": self.subscriber_count(conversation_id),
            },
        )
        return subscription

    def disconnect(self, subscription: Subscription) -> None:
        """Remove a subscriber. Calling it twice is harmless."""
        if not self._unregister(subscription):
            return
        logger.info(
            "Subscriber disconnected",
            data={
                "conversation_id": subscription.conversation_id,
                "subscription_id": subscription.id,
            },
        )

    async def broadcast(self, conversation_id: str, event: ServerEvent) -> int:
        """
        Send ``event`` to every subscriber of ``conversation_id``.

        Live handles are sent to concurrently and the call returns once every
        send has finished, so each subscriber sees events in broadcast order.
        Pending handles queue the event instead. Subscribers whose send fails
        or times out are closed and removed.

        Returns:
            Number of subscribers the event was delivered or queued to.
        """
        handles = list(self._subscribers.get(conversation_id, {}).values())
        if not handles:
            return 0

        payload = serialize_event(event)
        results = await asyncio.gather(
            *(self._deliver(subscription, payload, event.type) for subscription in handles)
        )
        return sum(results)

    async def close_conversation(
        self, conversation_id: str, code: int = CLOSE_CONVERSATION_DELETED
    ) -> int:
        """Close and remove every subscriber of one conversation."""
        handles = self._subscribers.pop(conversation_id, {})
        if handles:
            self._update_gauge()
        for subscription in handles.values():
            subscription.close_code = code
            await self._close_transport(subscription.transport, code)
        return len(handles)

    async def close_all(self, code: int = CLOSE_GOING_AWAY) -> None:
        for conversation_id in list(self._subscribers):
            await self.close_conversation(conversation_id, code=code)

    def subscriber_count(self, conversation_id: str | None = None) -> int:
        if conversation_id is not None:
            return len(self._subscribers.get(conversation_id, {}))
        return sum(len(handles) for handles in self._subscribers.values())

    async def _deliver(self, subscription: Subscription, payload: str, event_type: str) -> bool:
        if subscription.backlog is not None:
            subscription.backlog.append(payload)
            return True
        try:
            await self._send(subscription.transport, payload)
        except Exception as exc:
            metrics.increment("broadcast_failures_total")
            logger.warning(
                "Dropping subscriber after failed send",
                data={
                    "conversation_id": subscription.conversation_id,
                    "subscription_id": subscription.id,
                    "event": event_type,
                    "error": repr(exc),
                },
            )
            self.disconnect(subscription)
            subscription.close_code = CLOSE_INTERNAL_ERROR
            await self._close_transport(subscription.transport, CLOSE_INTERNAL_ERROR)
            return False
        return True

    async def _send(self, transport: SubscriberTransport, payload: str) -> None:
        if self._send_timeout is None:
            await transport.send_text(payload)
        else:
            await asyncio.wait_for(transport.send_text(payload), self._send_timeout)

    def _unregister(self, subscription: Subscription) -> bool:
        handles = self._subscribers.get(subscription.conversation_id)
        if not handles or handles.pop(subscription.id, None) is None:
            return False
        if not handles:
            del self._subscribers[subscription.conversation_id]
        self._update_gauge()
        return True

    async def _reject(
        self, transport: SubscriberTransport, reason: ConnectFailure, code: int
    ) -> ConnectRejected:
        await self._close_transport(transport, code)
        return ConnectRejected(reason=reason, close_code=code)

    async def _close_transport(self, transport: SubscriberTransport, code: int) -> None:
        try:
            await transport.close(code=code)
        except Exception as exc:
            # The peer may already be gone.
            logger.debug("Transport close failed", data={"error": repr(exc)})

    def _update_gauge(self) -> None:
        metrics.set_gauge("active_subscribers", float(self.subscriber_count()))
