"""Chat and conversation endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field

from advisor.auth import RequireAuth
from advisor.core import conversation_id_ctx
from advisor.services import ChatService

router = APIRouter(prefix="/v1/chats", tags=["chat"])


class TurnRequest(BaseModel):
    message: str | None = Field(None, max_length=32_000)


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]


async def bind_conversation_id(conversation_id: str) -> str:
    """Tag log records emitted while handling this request with the conversation id."""
    conversation_id_ctx.set(conversation_id)
    return conversation_id


ConversationId = Annotated[str, Depends(bind_conversation_id)]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_chat_route(
    body: TurnRequest,
    ctx: RequireAuth,
    service: ChatServiceDep,
) -> dict[str, Any]:
    """Start a new conversation with its first message."""
    conversation = await service.submit_turn(ctx, None, body.message)
    return {"conversation": conversation}


@router.post("/{conversation_id}/message", status_code=status.HTTP_202_ACCEPTED)
async def send_message_route(
    conversation_id: ConversationId,
    body: TurnRequest,
    ctx: RequireAuth,
    service: ChatServiceDep,
) -> dict[str, Any]:
    """Add a message to an existing conversation."""
    conversation = await service.submit_turn(ctx, conversation_id, body.message)
    return {"conversation": conversation}


@router.get("")
async def list_chats_route(ctx: RequireAuth, service: ChatServiceDep) -> dict[str, Any]:
    conversations = await service.list_conversations(ctx)
    return {"data": conversations, "count": len(conversations)}


@router.get("/{conversation_id}")
async def get_chat_route(
    conversation_id: ConversationId, ctx: RequireAuth, service: ChatServiceDep
) -> dict[str, Any]:
    return {"conversation": await service.get_conversation(ctx, conversation_id)}


@router.delete("/{conversation_id}")
async def delete_chat_route(
    conversation_id: ConversationId, ctx: RequireAuth, service: ChatServiceDep
) -> dict[str, Any]:
    await service.delete_conversation(ctx, conversation_id)
    return {"status": "deleted", "conversation_id": conversation_id}
