"""
Conversation store.

Async facade over the repository helpers used by the relay core. Each call
runs in its own short-lived session so background runs never share a session
with the request that started them. Database failures surface as
``PersistenceError``; "no such row" is an ordinary ``None`` result.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from advisor.core import PersistenceError, get_logger
from advisor.db.models import Conversation, Message
from advisor.db.repositories import (
    create_conversation,
    create_message,
    delete_conversation,
    get_conversation,
    get_conversation_messages,
    get_user_conversation,
    list_user_conversations,
    reset_running_conversations,
    update_conversation_status,
)

logger = get_logger(__name__)

T = TypeVar("T")


class ConversationStore:
    """Persistence interface consumed by the hub and the orchestrator."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "Database operation failed",
                exc_info=exc,
                data={"operation": operation},
            )
            raise PersistenceError(details={"operation": operation}) from exc
        finally:
            session.close()

    def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        with self._session(operation) as session:
            return fn(session)

    async def create_conversation(self, user_id: str, summary: str) -> Conversation:
        return self._run(
            "create_conversation",
            lambda db: create_conversation(db, user_id, summary=summary),
        )

    async def get_conversation(
        self, conversation_id: str, user_id: str | None = None
    ) -> Conversation | None:
        """Fetch a conversation, optionally restricted to its owner."""
        if user_id is None:
            return self._run(
                "get_conversation", lambda db: get_conversation(db, conversation_id)
            )
        return self._run(
            "get_conversation",
            lambda db: get_user_conversation(db, user_id, conversation_id),
        )

    async def list_conversations(self, user_id: str) -> list[Conversation]:
        return self._run(
            "list_conversations", lambda db: list_user_conversations(db, user_id)
        )

    async def insert_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        result: dict[str, Any] | None = None,
    ) -> Message | None:
        """Append a message; None when the conversation has been deleted."""
        payload = json.dumps(result, default=str) if result is not None else None
        return self._run(
            "insert_message",
            lambda db: create_message(
                db, conversation_id, role, content, result=payload
            ),
        )

    async def list_messages(
        self, conversation_id: str, *, include_system: bool = False
    ) -> list[Message]:
        return self._run(
            "list_messages",
            lambda db: get_conversation_messages(
                db, conversation_id, include_system=include_system
            ),
        )

    async def update_conversation_status(
        self, conversation_id: str, status: str
    ) -> Conversation | None:
        return self._run(
            "update_conversation_status",
            lambda db: update_conversation_status(db, conversation_id, status),
        )

    async def delete_conversation(self, user_id: str, conversation_id: str) -> bool:
        return self._run(
            "delete_conversation",
            lambda db: delete_conversation(db, user_id, conversation_id),
        )

    async def reset_running(self) -> int:
        """Return conversations left ``running`` by a previous process to idle."""
        return self._run("reset_running", reset_running_conversations)
