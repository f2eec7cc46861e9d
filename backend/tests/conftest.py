import asyncio
import json
import threading
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from advisor.auth import RequestContext, TokenVerifier
from advisor.db import ConversationStore, build_engine, create_session_factory, init_database
from advisor.providers import (
    ChatChunk,
    ChatRequest,
    CompletionAdapter,
    CompletionProvider,
)
from advisor.services import BroadcastHub, ChatService

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
TEST_ISSUER = "backend"
SYSTEM_PROMPT = "You are a marketing advisor."


def make_token(
    user_id: str,
    *,
    secret: str = TEST_SECRET,
    issuer: str = TEST_ISSUER,
    expires_in: int = 3600,
) -> str:
    payload = {
        "userId": user_id,
        "iss": issuer,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


class ScriptedProvider(CompletionProvider):
    """Provider stub that streams a fixed list of text chunks."""

    name = "scripted"

    def __init__(
        self,
        chunks: list[str] | None = None,
        *,
        error: Exception | None = None,
        error_after: int | None = None,
        gate: asyncio.Event | threading.Event | None = None,
        model: str = "gpt-test",
    ):
        self.chunks = chunks if chunks is not None else ["Hello", ", ", "world"]
        self.error = error
        self.error_after = error_after
        self.gate = gate
        self.model = model
        self.requests: list[ChatRequest] = []

    async def healthcheck(self) -> bool:
        return True

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ChatChunk]:
        self.requests.append(request)
        if isinstance(self.gate, threading.Event):
            await asyncio.to_thread(self.gate.wait, 5)
        elif self.gate is not None:
            await self.gate.wait()
        for index, text in enumerate(self.chunks):
            if self.error is not None and self.error_after == index:
                raise self.error
            yield ChatChunk(
                content=text,
                id="chatcmpl-test",
                created=1_700_000_000,
                model=self.model,
            )
        if self.error is not None and (
            self.error_after is None or self.error_after >= len(self.chunks)
        ):
            raise self.error


class FakeTransport:
    """In-memory subscriber connection."""

    def __init__(self, *, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.sent: list[str] = []
        self.close_code: int | None = None

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("peer gone")
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code

    @property
    def closed(self) -> bool:
        return self.close_code is not None

    @property
    def events(self) -> list[dict]:
        return [json.loads(frame) for frame in self.sent]

    @property
    def types(self) -> list[str]:
        return [event["type"] for event in self.events]

    @property
    def deltas(self) -> list[str]:
        return [event["data"] for event in self.events if event["type"] == "content_delta"]


class HeldTransport(FakeTransport):
    """Transport whose first send waits until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.holding = asyncio.Event()
        self.release = asyncio.Event()

    async def send_text(self, data: str) -> None:
        if not self.sent and not self.release.is_set():
            self.holding.set()
            await self.release.wait()
        await super().send_text(data)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> ConversationStore:
    return ConversationStore(create_session_factory(engine))


@pytest.fixture
def verifier() -> TokenVerifier:
    return TokenVerifier(TEST_SECRET, issuer=TEST_ISSUER)


@pytest.fixture
def hub(store, verifier) -> BroadcastHub:
    return BroadcastHub(store, verifier, send_timeout=0.5)


@pytest.fixture
def alice() -> RequestContext:
    return RequestContext(user_id="alice", request_id="req-alice")


@pytest.fixture
def bob() -> RequestContext:
    return RequestContext(user_id="bob", request_id="req-bob")


@pytest.fixture
def make_service(store, hub):
    def _make(provider: CompletionProvider | None = None, **kwargs) -> ChatService:
        adapter = CompletionAdapter(
            provider or ScriptedProvider(),
            model="gpt-test",
            system_prompt=SYSTEM_PROMPT,
        )
        return ChatService(store, hub, adapter, **kwargs)

    return _make


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def client(engine, verifier, provider):
    from advisor.main import create_app

    app = create_app()
    app.state.engine = engine
    app.state.provider = provider
    app.state.token_verifier = verifier
    with TestClient(app) as c:
        yield c


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}
