"""Database repositories for data access."""

from advisor.db.repositories.conversation import (
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

__all__ = [
    "create_conversation",
    "create_message",
    "delete_conversation",
    "get_conversation",
    "get_conversation_messages",
    "get_user_conversation",
    "list_user_conversations",
    "reset_running_conversations",
    "update_conversation_status",
]
