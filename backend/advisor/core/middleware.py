"""
Application middleware for observability and error handling.

Includes request ID injection, request logging, and global exception handlers.
"""

import time
import uuid
from collections.abc import Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from advisor.core.errors import AppError, ErrorCode, ErrorResponse
from advisor.core.logging import get_logger, request_id_ctx

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to inject request ID and track request context."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with context injection."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request_id_token = request_id_ctx.set(request_id)

        start_time = time.perf_counter()

        try:
            response = await call_next(request)

            response.headers["X-Request-ID"] = request_id

            duration_ms = (time.perf_counter() - start_time) * 1000
            data = {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
            conversation_id = request.path_params.get("conversation_id")
            if conversation_id:
                data["conversation_id"] = conversation_id
            logger.info("Request completed", data=data)

            return response

        finally:
            request_id_ctx.reset(request_id_token)


def _json_error(status_code: int, error_response: ErrorResponse) -> JSONResponse:
    request_id = error_response.request_id
    return JSONResponse(
        status_code=status_code,
        content=error_response.to_dict(),
        headers={"X-Request-ID": request_id} if request_id else {},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure global exception handlers for the application."""
    from fastapi.exceptions import RequestValidationError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle validation errors with structured response."""
        error_response = ErrorResponse(
            code=ErrorCode.VALIDATION_ERROR,
            message="Validation error",
            request_id=request_id_ctx.get(),
            details={"errors": exc.errors()},
        )
        return _json_error(422, error_response)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        _request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle HTTP exceptions with structured response."""
        code_map = {
            404: ErrorCode.NOT_FOUND,
            405: ErrorCode.METHOD_NOT_ALLOWED,
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.FORBIDDEN,
            429: ErrorCode.RATE_LIMITED,
        }
        error_response = ErrorResponse(
            code=code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
            message=str(exc.detail) if exc.detail else "HTTP error",
            request_id=request_id_ctx.get(),
        )
        return _json_error(exc.status_code, error_response)

    @app.exception_handler(AppError)
    async def app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
        """Handle application errors with structured response."""
        logger.warning(
            f"Application error: {exc.message}",
            data={"code": exc.code.value, "details": exc.details},
        )
        return _json_error(exc.status_code, exc.to_response(request_id=request_id_ctx.get()))

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors without exposing internals."""
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            data={"path": request.url.path, "method": request.method},
        )
        error_response = ErrorResponse(
            code=ErrorCode.INTERNAL_ERROR,
            message="An unexpected error occurred",
            request_id=request_id_ctx.get(),
        )
        return _json_error(500, error_response)
