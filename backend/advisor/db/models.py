"""
SQLAlchemy ORM models.

Defines the conversation and message tables. Users live with the external
identity provider; ``user_id`` is the opaque subject of the bearer token.
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from advisor.core.time import utcnow
from advisor.db.base import Base, TimestampMixin

STATUS_IDLE = "idle"
STATUS_RUNNING = "running"

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_SYSTEM = "system"


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


class Conversation(Base, TimestampMixin):
    """Chat conversation model."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=STATUS_IDLE
    )  # idle, running
    summary: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Relationships
    messages: Mapped[list[Message]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.seq",
    )

    __table_args__ = (
        Index("ix_conversations_id_user_id", "id", "user_id"),
        Index("ix_conversations_created_at", "created_at"),
    )


class Message(Base):
    """Chat message model."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    conversation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # system, user, assistant
    content: Mapped[str] = mapped_column(Text, nullable=False)
    result: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON string
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    # Relationships
    conversation: Mapped[Conversation] = relationship(back_populates="messages")

    __table_args__ = (
        Index("ix_messages_conversation_seq", "conversation_id", "seq", unique=True),
        Index("ix_messages_conversation_role", "conversation_id", "role"),
    )
