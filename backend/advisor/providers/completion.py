"""
Completion adapter.

Turns a conversation history into a uniform stream of ``CompletionDelta``
items terminated by a single ``CompletionResult``. The adapter never
persists or broadcasts anything; a failure simply ends the iteration with a
``ProviderError``.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from advisor.core import ProviderError, get_logger
from advisor.core.time import from_unix, utcnow
from advisor.providers.base import ChatMessage, ChatRequest, CompletionProvider

logger = get_logger(__name__)


@dataclass(frozen=True)
class CompletionDelta:
    """An incremental piece of generated text."""

    text: str


@dataclass(frozen=True)
class CompletionResult:
    """Aggregated outcome of one completion call."""

    id: str
    created_at: datetime
    model: str
    text: str

    def to_metadata(self) -> dict[str, Any]:
        """Metadata stored with the assistant message."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "model": self.model,
        }


CompletionEvent = CompletionDelta | CompletionResult


class CompletionAdapter:
    """Wrap a provider with the advisor's system directive and aggregation."""

    def __init__(
        self,
        provider: CompletionProvider,
        model: str,
        system_prompt: str,
        temperature: float | None = None,
    ):
        self.provider = provider
        self.model = model
        self.system_prompt = system_prompt.strip()
        self.temperature = temperature

    def build_request(self, history: Sequence[ChatMessage]) -> ChatRequest:
        """Prepend the system directive to the non-system history."""
        messages = [ChatMessage(role="system", content=self.system_prompt)]
        messages.extend(
            ChatMessage(role=message.role, content=message.content)
            for message in history
            if message.role != "system"
        )
        return ChatRequest(
            messages=messages, model=self.model, temperature=self.temperature
        )

    async def stream(
        self, history: Sequence[ChatMessage]
    ) -> AsyncIterator[CompletionEvent]:
        """
        Stream deltas for ``history`` and finish with the aggregated result.

        Zero chunks yield an empty result rather than an error.
        """
        request = self.build_request(history)
        parts: list[str] = []
        completion_id: str | None = None
        created: int | None = None
        model: str | None = None

        try:
            async for chunk in self.provider.chat_stream(request):
                if completion_id is None and chunk.id:
                    completion_id = chunk.id
                if created is None and chunk.created:
                    created = chunk.created
                if model is None and chunk.model:
                    model = chunk.model
                if chunk.content:
                    parts.append(chunk.content)
                    yield CompletionDelta(chunk.content)
        except ProviderError:
            raise
        except Exception as exc:
            logger.error(
                "Unexpected provider failure",
                exc_info=exc,
                data={"provider": self.provider.name},
            )
            raise ProviderError(
                "Completion stream failed", details={"reason": type(exc).__name__}
            ) from exc

        yield CompletionResult(
            id=completion_id or f"local-{uuid.uuid4()}",
            created_at=from_unix(created) if created else utcnow(),
            model=model or request.model,
            text="".join(parts),
        )
