"""API routers."""

from advisor.api.chat import router as chat_router
from advisor.api.health import router as health_router
from advisor.api.ws import router as ws_router

__all__ = [
    "chat_router",
    "health_router",
    "ws_router",
]
