"""
Structured error handling with stable error codes.

No stack traces are exposed to clients. All errors are mapped to
stable, documented error codes for reliable client handling.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for API responses."""

    # General errors (1xxx)
    INTERNAL_ERROR = "E1000"
    VALIDATION_ERROR = "E1001"
    NOT_FOUND = "E1002"
    METHOD_NOT_ALLOWED = "E1003"
    RATE_LIMITED = "E1005"
    RUN_IN_PROGRESS = "E1006"
    PERSISTENCE_ERROR = "E1007"

    # Authentication errors (2xxx)
    UNAUTHORIZED = "E2000"
    TOKEN_EXPIRED = "E2002"

    # Authorization errors (3xxx)
    FORBIDDEN = "E3000"

    # Provider errors (4xxx)
    PROVIDER_UNAVAILABLE = "E4000"
    PROVIDER_ERROR = "E4001"
    MODEL_NOT_FOUND = "E4002"
    STREAMING_ERROR = "E4003"
    PROVIDER_BAD_RESPONSE = "E4004"
    PROVIDER_AUTH_FAILED = "E4005"

    # Resource errors (5xxx)
    CONVERSATION_NOT_FOUND = "E5000"


@dataclass(frozen=True)
class ErrorResponse:
    """Structured error response for API.

    Format: {error: {code, message, request_id, details?}}
    """

    code: ErrorCode
    message: str
    request_id: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON response."""
        error: dict[str, Any] = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.request_id:
            error["request_id"] = self.request_id
        if self.details:
            error["details"] = self.details
        return {"error": error}


class AppError(Exception):
    """Base application error with structured error detail."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)

    def to_response(self, request_id: str | None = None) -> ErrorResponse:
        """Create error response with request ID."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            request_id=request_id,
            details=self.details,
        )


class InvalidInputError(AppError):
    """User-correctable input error (400)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, 400, details)


class OwnershipError(AppError):
    """Conversation missing or owned by someone else (404, existence is not leaked)."""

    def __init__(self, message: str = "Please provide a valid chat id"):
        super().__init__(ErrorCode.CONVERSATION_NOT_FOUND, message, 404)


class AuthError(AppError):
    """Authentication required or token rejected (401)."""

    def __init__(self, message: str = "Authentication required", code: ErrorCode = ErrorCode.UNAUTHORIZED):
        super().__init__(code, message, 401)


class ConflictError(AppError):
    """A reply is already being generated for this conversation (409)."""

    def __init__(
        self,
        message: str = "A reply is already being generated",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(ErrorCode.RUN_IN_PROGRESS, message, 409, details)


class PersistenceError(AppError):
    """Storage layer failure (500)."""

    def __init__(
        self, message: str = "Storage operation failed", details: dict[str, Any] | None = None
    ):
        super().__init__(ErrorCode.PERSISTENCE_ERROR, message, 500, details)


class ProviderError(AppError):
    """Provider error (502)."""

    def __init__(
        self,
        message: str = "Provider error",
        details: dict[str, Any] | None = None,
        code: ErrorCode = ErrorCode.PROVIDER_ERROR,
        status_code: int = 502,
    ):
        super().__init__(code, message, status_code, details)


class ProviderUnavailableError(ProviderError):
    """Provider unavailable (503)."""

    def __init__(
        self, message: str = "Provider unavailable", details: dict[str, Any] | None = None
    ):
        super().__init__(message, details, ErrorCode.PROVIDER_UNAVAILABLE, 503)


class ProviderBadResponseError(ProviderError):
    """Provider returned malformed response (502)."""

    def __init__(
        self, message: str = "Provider returned invalid response", details: dict[str, Any] | None = None
    ):
        super().__init__(message, details, ErrorCode.PROVIDER_BAD_RESPONSE, 502)


class ProviderAuthError(ProviderError):
    """Provider authentication failed (401/403)."""

    def __init__(
        self,
        message: str = "Provider authentication failed",
        status_code: int = 401,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details, ErrorCode.PROVIDER_AUTH_FAILED, status_code)


class RateLimitError(ProviderError):
    """Provider rate limit exceeded (429)."""

    def __init__(self, message: str = "Rate limit exceeded", details: dict[str, Any] | None = None):
        super().__init__(message, details, ErrorCode.RATE_LIMITED, 429)


class ModelNotFoundError(ProviderError):
    """Requested model not found (404)."""

    def __init__(self, message: str = "Model not found", details: dict[str, Any] | None = None):
        super().__init__(message, details, ErrorCode.MODEL_NOT_FOUND, 404)
