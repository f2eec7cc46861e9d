"""
Business logic services.

Run state, subscriber broadcast, and the chat orchestrator that ties the
completion provider to both.
"""

from advisor.services.broadcast import (
    BroadcastHub,
    ConnectFailure,
    ConnectRejected,
    SubscriberTransport,
    Subscription,
)
from advisor.services.chat_service import ChatService, StreamSession
from advisor.services.events import (
    ContentDeltaEvent,
    ConversationDocument,
    ConversationSnapshotEvent,
    MessageDocument,
    StreamEndEvent,
    parse_event,
    serialize_event,
)
from advisor.services.run_state import BeginResult, RunStateMachine

__all__ = [
    "BeginResult",
    "BroadcastHub",
    "ChatService",
    "ConnectFailure",
    "ConnectRejected",
    "ContentDeltaEvent",
    "ConversationDocument",
    "ConversationSnapshotEvent",
    "MessageDocument",
    "RunStateMachine",
    "StreamEndEvent",
    "StreamSession",
    "SubscriberTransport",
    "Subscription",
    "parse_event",
    "serialize_event",
]
