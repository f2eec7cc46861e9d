"""
Server-to-subscriber event envelope and the documents it carries.

Every frame sent to a subscriber is one of the tagged events below,
serialized as JSON: ``{"type": ..., "data": ...}``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from advisor.db.models import ROLE_SYSTEM, Conversation, Message


class MessageDocument(BaseModel):
    id: str
    role: str
    content: str
    result: dict[str, Any] | None = None
    created_at: datetime

    @classmethod
    def from_record(cls, message: Message) -> "MessageDocument":
        result = None
        if message.result:
            try:
                result = json.loads(message.result)
            except json.JSONDecodeError:
                result = None
        return cls(
            id=message.id,
            role=message.role,
            content=message.content,
            result=result,
            created_at=message.created_at,
        )


class ConversationDocument(BaseModel):
    id: str
    user_id: str
    status: str
    summary: str
    created_at: datetime
    updated_at: datetime
    messages: list[MessageDocument] = Field(default_factory=list)

    @classmethod
    def from_records(
        cls, conversation: Conversation, messages: Iterable[Message] = ()
    ) -> "ConversationDocument":
        """Build the public document; system messages are never included."""
        return cls(
            id=conversation.id,
            user_id=conversation.user_id,
            status=conversation.status,
            summary=conversation.summary,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            messages=[
                MessageDocument.from_record(message)
                for message in messages
                if message.role != ROLE_SYSTEM
            ],
        )


class ConversationSnapshotEvent(BaseModel):
    """Full current document (sent on connect and when a run starts)."""

    type: Literal["conversation_snapshot"] = "conversation_snapshot"
    data: ConversationDocument


class ContentDeltaEvent(BaseModel):
    """Cumulative assistant text produced so far in the current turn."""

    type: Literal["content_delta"] = "content_delta"
    data: str


class StreamEndEvent(BaseModel):
    """End of one assistant turn."""

    type: Literal["stream_end"] = "stream_end"


ServerEvent = Annotated[
    Union[ConversationSnapshotEvent, ContentDeltaEvent, StreamEndEvent],
    Field(discriminator="type"),
]

server_event_adapter: TypeAdapter[ServerEvent] = TypeAdapter(ServerEvent)


def serialize_event(event: ServerEvent) -> str:
    return event.model_dump_json()


def parse_event(raw: str | bytes) -> ServerEvent:
    """Parse a serialized envelope (used by clients and tests)."""
    return server_event_adapter.validate_json(raw)
