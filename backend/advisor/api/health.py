"""
Health check endpoints.

Provides liveness and readiness probes for monitoring.
"""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from advisor import __version__
from advisor.config import get_settings
from advisor.core import metrics
from advisor.db import verify_database_connection

router = APIRouter(tags=["health"])


@router.get("/health")
async def healthcheck() -> dict[str, Any]:
    """Liveness probe."""
    settings = get_settings()
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "debug": settings.debug,
    }


@router.get("/health/deep")
async def deep_healthcheck(request: Request) -> JSONResponse:
    """
    Readiness probe.

    Checks the database and reports relay metrics: runs in flight and
    connected subscribers.
    """
    engine = getattr(request.app.state, "engine", None)
    checks = {"database": verify_database_connection(engine)}
    service = getattr(request.app.state, "chat_service", None)
    hub = getattr(request.app.state, "hub", None)

    started = getattr(request.app.state, "start_time", None)

    all_ready = all(checks.values())
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "status": "ready" if all_ready else "not_ready",
        "timestamp": now.isoformat(),
        "uptime_seconds": round((now - started).total_seconds(), 1) if started else None,
        "checks": checks,
        "running_conversations": len(service.active_sessions()) if service else 0,
        "subscribers": hub.subscriber_count() if hub else 0,
        "metrics": metrics.snapshot(),
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=payload,
    )
