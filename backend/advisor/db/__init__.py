"""Database models, engine, session management, and the conversation store."""

from advisor.db.base import Base, TimestampMixin
from advisor.db.engine import (
    build_engine,
    dispose_engine,
    get_engine,
    init_database,
    verify_database_connection,
)
from advisor.db.models import (
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    STATUS_IDLE,
    STATUS_RUNNING,
    Conversation,
    Message,
)
from advisor.db.session import (
    create_session_factory,
)
from advisor.db.store import ConversationStore

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Engine
    "build_engine",
    "get_engine",
    "init_database",
    "verify_database_connection",
    "dispose_engine",
    # Session
    "create_session_factory",
    # Models
    "Conversation",
    "Message",
    "ROLE_ASSISTANT",
    "ROLE_SYSTEM",
    "ROLE_USER",
    "STATUS_IDLE",
    "STATUS_RUNNING",
    # Store
    "ConversationStore",
]
