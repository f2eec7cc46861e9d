"""Core module with logging, errors, metrics, and middleware."""

from advisor.core.errors import (
    AppError,
    AuthError,
    ConflictError,
    ErrorCode,
    ErrorResponse,
    InvalidInputError,
    ModelNotFoundError,
    OwnershipError,
    PersistenceError,
    ProviderAuthError,
    ProviderBadResponseError,
    ProviderError,
    ProviderUnavailableError,
    RateLimitError,
)
from advisor.core.logging import (
    conversation_id_ctx,
    get_logger,
    request_id_ctx,
    setup_logging,
)
from advisor.core.metrics import metrics

__all__ = [
    # Errors
    "AppError",
    "AuthError",
    "ConflictError",
    "ErrorCode",
    "ErrorResponse",
    "InvalidInputError",
    "ModelNotFoundError",
    "OwnershipError",
    "PersistenceError",
    "ProviderAuthError",
    "ProviderBadResponseError",
    "ProviderError",
    "ProviderUnavailableError",
    "RateLimitError",
    # Logging
    "conversation_id_ctx",
    "get_logger",
    "request_id_ctx",
    "setup_logging",
    # Metrics
    "metrics",
]
