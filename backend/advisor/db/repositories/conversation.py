"""Repository helpers for conversations and messages."""

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from advisor.core.time import utcnow
from advisor.db.models import (
    ROLE_SYSTEM,
    STATUS_IDLE,
    STATUS_RUNNING,
    Conversation,
    Message,
)

SUMMARY_MAX_LENGTH = 255


def create_conversation(db: Session, user_id: str, summary: str = "") -> Conversation:
    """Create a new idle conversation for the given user."""
    conversation = Conversation(
        user_id=user_id,
        status=STATUS_IDLE,
        summary=summary.strip()[:SUMMARY_MAX_LENGTH],
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return conversation


def get_conversation(db: Session, conversation_id: str) -> Conversation | None:
    """Fetch a conversation regardless of owner."""
    return db.get(Conversation, conversation_id)


def get_user_conversation(
    db: Session, user_id: str, conversation_id: str
) -> Conversation | None:
    """Fetch conversation owned by user."""
    stmt = (
        select(Conversation)
        .where(
            Conversation.id == conversation_id,
            Conversation.user_id == user_id,
        )
    )
    return db.execute(stmt).scalar_one_or_none()


def list_user_conversations(db: Session, user_id: str) -> list[Conversation]:
    """List conversations belonging to the user, newest first."""
    stmt = (
        select(Conversation)
        .where(Conversation.user_id == user_id)
        .order_by(Conversation.created_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def update_conversation_status(
    db: Session, conversation_id: str, status: str
) -> Conversation | None:
    """Set the lifecycle status of a conversation."""
    conversation = get_conversation(db, conversation_id)
    if not conversation:
        return None
    conversation.status = status
    conversation.updated_at = utcnow()
    db.commit()
    db.refresh(conversation)
    return conversation


def reset_running_conversations(db: Session) -> int:
    """Return every ``running`` conversation to ``idle``."""
    result = db.execute(
        update(Conversation)
        .where(Conversation.status == STATUS_RUNNING)
        .values(status=STATUS_IDLE, updated_at=utcnow())
    )
    db.commit()
    return result.rowcount or 0


def delete_conversation(db: Session, user_id: str, conversation_id: str) -> bool:
    """Delete a conversation and cascade its messages."""
    conversation = get_user_conversation(db, user_id, conversation_id)
    if not conversation:
        return False
    db.delete(conversation)
    db.commit()
    return True


def create_message(
    db: Session,
    conversation_id: str,
    role: str,
    content: str,
    *,
    result: str | None = None,
) -> Message | None:
    """
    Append a chat message at the end of the conversation.

    Returns None if the conversation no longer exists.
    """
    conversation = get_conversation(db, conversation_id)
    if not conversation:
        return None
    next_seq = db.execute(
        select(func.coalesce(func.max(Message.seq), 0)).where(
            Message.conversation_id == conversation_id
        )
    ).scalar_one() + 1
    message = Message(
        conversation_id=conversation_id,
        seq=next_seq,
        role=role,
        content=content,
        result=result,
    )
    db.add(message)
    conversation.updated_at = utcnow()
    db.commit()
    db.refresh(message)
    return message


def get_conversation_messages(
    db: Session, conversation_id: str, *, include_system: bool = False
) -> list[Message]:
    """Get messages for a conversation in insertion order."""
    stmt = select(Message).where(Message.conversation_id == conversation_id)
    if not include_system:
        stmt = stmt.where(Message.role != ROLE_SYSTEM)
    stmt = stmt.order_by(Message.seq.asc())
    return list(db.execute(stmt).scalars().all())
