"""
Base provider interface.

Defines the contract a streaming completion backend must implement.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass


@dataclass
class ChatMessage:
    """A single chat message."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ChatRequest:
    """Request for a streamed chat completion."""

    messages: list[ChatMessage]
    model: str
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class ChatChunk:
    """A single chunk from a streaming response."""

    content: str
    id: str | None = None
    created: int | None = None  # unix seconds
    model: str | None = None
    finish_reason: str | None = None


class CompletionProvider(ABC):
    """
    Abstract base class for completion providers.

    Implementations wrap the network call only; aggregation, batching and
    error normalization live in ``CompletionAdapter``.
    """

    name: str = "provider"

    async def aclose(self) -> None:
        """Close any underlying resources (optional)."""
        return None

    @abstractmethod
    async def healthcheck(self) -> bool:
        """
        Check if the provider is available and responding.

        Returns:
            True if provider is healthy, False otherwise
        """
        ...

    @abstractmethod
    def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        """
        Send a chat request and stream the response.

        Args:
            request: ChatRequest with messages and parameters

        Yields:
            ChatChunk objects as they arrive

        Raises:
            ProviderError: If the provider returns an error
            ProviderUnavailableError: If the provider is not available
        """
        ...
