"""
Live conversation WebSocket.

``GET /chat?id=<conversation_id>&token=<jwt>``. The first frame is the
conversation snapshot; after that the socket receives the events of every
run on that conversation. Frames sent by the client, text or binary, are
ignored.
"""

from __future__ import annotations

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketState

from advisor.core import get_logger
from advisor.services import BroadcastHub, ConnectRejected

logger = get_logger(__name__)

router = APIRouter(tags=["ws"])


def _bearer_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


@router.websocket("/chat")
async def chat_socket(websocket: WebSocket) -> None:
    hub: BroadcastHub = websocket.app.state.hub
    await websocket.accept()

    subscription = await hub.connect(
        websocket.query_params.get("id"), _bearer_token(websocket), websocket
    )
    if isinstance(subscription, ConnectRejected):
        return

    try:
        # The hub may close the socket while we wait here.
        while websocket.application_state == WebSocketState.CONNECTED:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        hub.disconnect(subscription)
