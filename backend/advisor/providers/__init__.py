"""Completion provider interfaces, adapters, and batching."""

from advisor.config import Settings
from advisor.providers.base import (
    ChatChunk,
    ChatMessage,
    ChatRequest,
    CompletionProvider,
)
from advisor.providers.batching import DeltaBatcher, coalesce_deltas
from advisor.providers.completion import (
    CompletionAdapter,
    CompletionDelta,
    CompletionEvent,
    CompletionResult,
)
from advisor.providers.openai_compat import OpenAICompatProvider


def create_provider(settings: Settings) -> CompletionProvider:
    """Build the configured completion provider."""
    return OpenAICompatProvider(
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key or None,
        timeout=settings.provider_timeout_seconds,
        max_retries=settings.provider_max_retries,
    )


__all__ = [
    "ChatChunk",
    "ChatMessage",
    "ChatRequest",
    "CompletionAdapter",
    "CompletionDelta",
    "CompletionEvent",
    "CompletionProvider",
    "CompletionResult",
    "DeltaBatcher",
    "OpenAICompatProvider",
    "coalesce_deltas",
    "create_provider",
]
