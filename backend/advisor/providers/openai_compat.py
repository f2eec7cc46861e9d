"""OpenAI-compatible provider adapter (``/chat/completions`` with SSE streaming)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import httpx

from advisor.core import ProviderBadResponseError, ProviderError, get_logger
from advisor.providers.base import (
    ChatChunk,
    ChatMessage,
    ChatRequest,
    CompletionProvider,
)
from advisor.providers.http_client import (
    create_http_client,
    parse_json_line,
    raise_for_status,
    request_with_retries,
    stream_with_retries,
)

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"


class OpenAICompatProvider(CompletionProvider):
    """Adapter for OpenAI and OpenAI-compatible chat completion endpoints."""

    name = "openai_compat"

    def __init__(
        self,
        base_url: str,
        timeout: int,
        max_retries: int,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.max_retries = max_retries
        self.client = create_http_client(
            base_url=base_url,
            timeout_seconds=timeout,
            headers=headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def healthcheck(self) -> bool:
        """Check provider health by listing models."""
        try:
            response = await request_with_retries(
                self.client, "GET", "/models", max_retries=self.max_retries
            )
            raise_for_status(response)
            return True
        except ProviderError as exc:
            logger.warning(
                "Provider healthcheck failed",
                data={"error": exc.message, "provider": self.name},
            )
            return False

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        """Stream chat completion chunks parsed from ``data:`` lines."""
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": _format_messages(request.messages),
            "stream": True,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens

        response = await stream_with_retries(
            self.client,
            "POST",
            "/chat/completions",
            json=payload,
            max_retries=self.max_retries,
        )
        try:
            if response.status_code >= 400:
                await response.aread()
                raise_for_status(response)

            async for line in response.aiter_lines():
                line = line.strip()
                if not line or not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == DONE_SENTINEL:
                    break

                chunk_obj = parse_json_line(data)
                if not isinstance(chunk_obj, dict):
                    raise ProviderBadResponseError(
                        "Provider returned invalid response", details={"body": data[:500]}
                    )
                if "error" in chunk_obj:
                    raise ProviderError(
                        "Provider reported an error mid-stream",
                        details={"error": chunk_obj["error"]},
                    )

                content = ""
                finish_reason = None
                choices = chunk_obj.get("choices") or []
                if choices:
                    choice = choices[0]
                    content = (choice.get("delta") or {}).get("content") or ""
                    finish_reason = choice.get("finish_reason")

                yield ChatChunk(
                    content=content,
                    id=chunk_obj.get("id"),
                    created=chunk_obj.get("created"),
                    model=chunk_obj.get("model"),
                    finish_reason=finish_reason,
                )
        except httpx.HTTPError as exc:
            raise ProviderError(
                "Provider stream interrupted", details={"reason": str(exc)}
            ) from exc
        finally:
            await response.aclose()


def _format_messages(messages: list[ChatMessage]) -> list[dict[str, str]]:
    """Convert ChatMessage objects to the OpenAI wire shape."""
    return [{"role": msg.role, "content": msg.content} for msg in messages]
