"""
Advisor Backend Application.

FastAPI application with structured logging, error handling, the live
conversation WebSocket, and the chat REST routes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from advisor import __version__
from advisor.api import chat_router, health_router, ws_router
from advisor.auth import TokenVerifier
from advisor.config import get_settings
from advisor.core import get_logger, setup_logging
from advisor.core.middleware import RequestContextMiddleware, setup_exception_handlers
from advisor.db import (
    ConversationStore,
    create_session_factory,
    dispose_engine,
    get_engine,
    init_database,
)
from advisor.providers import CompletionAdapter, create_provider
from advisor.services import BroadcastHub, ChatService, RunStateMachine

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Startup
    setup_logging(
        level=settings.log_level,
        json_output=not settings.debug,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting advisor backend",
        data={
            "host": settings.host,
            "port": settings.port,
            "debug": settings.debug,
            "model": settings.completion_model,
        },
    )

    # Collaborators already on app.state (tests) are used as given
    engine_created = getattr(app.state, "engine", None) is None
    if engine_created:
        app.state.engine = get_engine()
    init_database(app.state.engine)

    store = ConversationStore(create_session_factory(app.state.engine))
    reset = await store.reset_running()
    if reset:
        logger.warning("Reset conversations left running", data={"count": reset})

    provider_created = getattr(app.state, "provider", None) is None
    if provider_created:
        app.state.provider = create_provider(settings)

    if getattr(app.state, "token_verifier", None) is None:
        if not settings.jwt_secret:
            logger.warning("JWT_SECRET is empty - NOT FOR PRODUCTION")
        app.state.token_verifier = TokenVerifier.from_settings(settings)

    adapter = CompletionAdapter(
        app.state.provider,
        model=settings.completion_model,
        system_prompt=settings.system_prompt,
    )
    hub = BroadcastHub(
        store,
        app.state.token_verifier,
        send_timeout=settings.ws_send_timeout_seconds,
    )
    app.state.hub = hub
    app.state.chat_service = ChatService(
        store,
        hub,
        adapter,
        RunStateMachine(),
        batch_chunks=settings.stream_batch_chunks,
        batch_interval=settings.stream_batch_interval_ms / 1000 or None,
    )
    app.state.start_time = datetime.now(timezone.utc)

    yield

    # Shutdown
    logger.info("Shutting down advisor backend")
    await app.state.chat_service.aclose(settings.shutdown_grace_seconds)
    await hub.close_all()
    if provider_created:
        await app.state.provider.aclose()
        app.state.provider = None
    if engine_created:
        dispose_engine()
        app.state.engine = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Advisor",
        description="Marketing advisor chat with live reply streaming",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Setup exception handlers (must be before middleware)
    setup_exception_handlers(app)

    # Add middleware (order matters - last added = first executed)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(chat_router)
    app.include_router(ws_router)

    return app


# Create application instance
app = create_app()
