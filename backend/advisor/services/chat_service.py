"""Chat orchestration: accepts user turns and relays advisor replies to subscribers."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from advisor.auth.context import RequestContext
from advisor.core import (
    AppError,
    ConflictError,
    InvalidInputError,
    OwnershipError,
    PersistenceError,
    ProviderError,
    conversation_id_ctx,
    get_logger,
    metrics,
)
from advisor.core.time import utcnow
from advisor.db.models import ROLE_ASSISTANT, ROLE_USER, STATUS_IDLE, STATUS_RUNNING, Message
from advisor.db.store import ConversationStore
from advisor.providers import (
    ChatMessage,
    CompletionAdapter,
    CompletionResult,
    DeltaBatcher,
    coalesce_deltas,
)
from advisor.services.broadcast import BroadcastHub
from advisor.services.events import (
    ContentDeltaEvent,
    ConversationDocument,
    ConversationSnapshotEvent,
    StreamEndEvent,
)
from advisor.services.run_state import BeginResult, RunStateMachine

logger = get_logger(__name__)


@dataclass
class StreamSession:
    """Metadata for one in-flight assistant turn."""

    conversation_id: str
    user_id: str
    batcher: DeltaBatcher
    request_id: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    task: asyncio.Task | None = None

    @property
    def text(self) -> str:
        return self.batcher.text


class ChatService:
    """Starts runs for user turns and streams the replies through the hub."""

    def __init__(
        self,
        store: ConversationStore,
        hub: BroadcastHub,
        adapter: CompletionAdapter,
        run_state: RunStateMachine | None = None,
        *,
        batch_chunks: int = 10,
        batch_interval: float | None = None,
    ):
        self.store = store
        self.hub = hub
        self.adapter = adapter
        self.run_state = run_state or RunStateMachine()
        self.batch_chunks = batch_chunks
        self.batch_interval = batch_interval
        self._sessions: dict[str, StreamSession] = {}

    async def submit_turn(
        self,
        ctx: RequestContext,
        conversation_id: str | None,
        message: str | None,
    ) -> ConversationDocument:
        """
        Persist a user message and start generating the advisor's reply.

        Without ``conversation_id`` a new conversation is created, summarised
        by the message. The reply is produced in the background; the returned
        document reflects the conversation with its run already started.

        Raises:
            InvalidInputError: If the message is empty.
            OwnershipError: If the conversation does not exist or is not owned.
            ConflictError: If a reply is already being generated.
        """
        text = (message or "").strip()
        if not text:
            raise InvalidInputError(
                "Please provide a valid message", details={"field": "message"}
            )

        if conversation_id is None:
            conversation = await self.store.create_conversation(ctx.user_id, summary=text)
        else:
            conversation = await self.store.get_conversation(
                conversation_id, user_id=ctx.user_id
            )
            if conversation is None:
                raise OwnershipError()
        conversation_id = conversation.id

        # The user message is kept even when the turn is rejected below.
        if await self.store.insert_message(conversation_id, ROLE_USER, text) is None:
            raise OwnershipError()

        if self.run_state.try_begin_run(conversation_id) is BeginResult.ALREADY_RUNNING:
            logger.info(
                "Turn rejected while a reply is in progress",
                data={"conversation_id": conversation_id, "user_id": ctx.user_id},
            )
            raise ConflictError(details={"conversation_id": conversation_id})

        try:
            conversation = await self.store.update_conversation_status(
                conversation_id, STATUS_RUNNING
            )
            if conversation is None:
                raise OwnershipError()
            messages = await self.store.list_messages(conversation_id)
            session = StreamSession(
                conversation_id=conversation_id,
                user_id=ctx.user_id,
                request_id=ctx.request_id,
                batcher=DeltaBatcher(self.batch_chunks, self.batch_interval),
            )
            self._sessions[conversation_id] = session
            session.task = asyncio.create_task(
                self._run(session), name=f"chat-run-{conversation_id}"
            )
        except BaseException:
            self._sessions.pop(conversation_id, None)
            self.run_state.end_run(conversation_id)
            raise

        logger.info(
            "Run started",
            data={"conversation_id": conversation_id, "user_id": ctx.user_id},
        )
        return ConversationDocument.from_records(conversation, messages)

    async def get_conversation(
        self, ctx: RequestContext, conversation_id: str
    ) -> ConversationDocument:
        conversation = await self.store.get_conversation(conversation_id, user_id=ctx.user_id)
        if conversation is None:
            raise OwnershipError()
        messages = await self.store.list_messages(conversation_id)
        return ConversationDocument.from_records(conversation, messages)

    async def list_conversations(self, ctx: RequestContext) -> list[ConversationDocument]:
        """List the caller's conversations, newest first."""
        conversations = await self.store.list_conversations(ctx.user_id)
        return [
            ConversationDocument.from_records(item, await self.store.list_messages(item.id))
            for item in conversations
        ]

    async def delete_conversation(self, ctx: RequestContext, conversation_id: str) -> None:
        """Delete a conversation and disconnect everyone watching it."""
        if not await self.store.delete_conversation(ctx.user_id, conversation_id):
            raise OwnershipError()
        closed = await self.hub.close_conversation(conversation_id)
        logger.info(
            "Conversation deleted",
            data={"conversation_id": conversation_id, "subscribers_closed": closed},
        )

    def is_running(self, conversation_id: str) -> bool:
        return self.run_state.is_running(conversation_id)

    def active_sessions(self) -> list[StreamSession]:
        return list(self._sessions.values())

    async def wait_for_run(self, conversation_id: str) -> None:
        """Wait until the current run of a conversation has finished."""
        session = self._sessions.get(conversation_id)
        if session is None or session.task is None:
            return
        await asyncio.wait({session.task})

    async def aclose(self, grace_seconds: float = 10.0) -> None:
        """Let in-flight runs finish for up to ``grace_seconds``, then cancel them."""
        tasks = [s.task for s in self._sessions.values() if s.task is not None]
        if not tasks:
            return
        logger.info("Waiting for in-flight runs", data={"runs": len(tasks)})
        _, pending = await asyncio.wait(tasks, timeout=grace_seconds)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled unfinished runs", data={"runs": len(pending)})
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(self, session: StreamSession) -> None:
        conversation_id = session.conversation_id
        conversation_id_ctx.set(conversation_id)
        metrics.increment("runs_started_total")
        started = time.perf_counter()
        try:
            await self._broadcast_snapshot(conversation_id)
            history = await self.store.list_messages(conversation_id)
            result = await self._relay(session, history)
            saved = await self.store.insert_message(
                conversation_id,
                ROLE_ASSISTANT,
                result.text,
                result=result.to_metadata(),
            )
            if saved is None:
                logger.info("Conversation deleted during run; reply discarded")
            else:
                logger.info(
                    "Run completed",
                    data={
                        "message_id": saved.id,
                        "chunks": session.batcher.sequence,
                        "chars": len(result.text),
                    },
                )
        except AppError as exc:
            metrics.increment("runs_failed_total")
            logger.warning(
                "Run failed",
                data={"code": exc.code.value, "error": exc.message, "details": exc.details},
            )
            await self._flush_partial(session)
        except Exception as exc:
            metrics.increment("runs_failed_total")
            logger.error("Run failed unexpectedly", exc_info=exc)
            await self._flush_partial(session)
        finally:
            try:
                await self._finish(session)
            finally:
                self.run_state.end_run(conversation_id)
                if self._sessions.get(conversation_id) is session:
                    del self._sessions[conversation_id]
                metrics.observe("run_duration_seconds", time.perf_counter() - started)

    async def _relay(
        self, session: StreamSession, history: Sequence[Message]
    ) -> CompletionResult:
        """Stream the completion, broadcasting cumulative batches as they fill."""
        result: CompletionResult | None = None

        async def deltas() -> AsyncIterator[str]:
            nonlocal result
            messages = [ChatMessage(role=item.role, content=item.content) for item in history]
            async for event in self.adapter.stream(messages):
                if isinstance(event, CompletionResult):
                    result = event
                else:
                    yield event.text

        async for batch in coalesce_deltas(deltas(), session.batcher):
            await self.hub.broadcast(session.conversation_id, ContentDeltaEvent(data=batch))
            metrics.increment("deltas_broadcast_total")

        if result is None:
            raise ProviderError("Completion ended without a result")
        return result

    async def _broadcast_snapshot(self, conversation_id: str) -> None:
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            return
        messages = await self.store.list_messages(conversation_id)
        await self.hub.broadcast(
            conversation_id,
            ConversationSnapshotEvent(
                data=ConversationDocument.from_records(conversation, messages)
            ),
        )

    async def _flush_partial(self, session: StreamSession) -> None:
        """Send whatever text was produced before the failure."""
        batch = session.batcher.flush()
        if batch is not None:
            await self.hub.broadcast(session.conversation_id, ContentDeltaEvent(data=batch))

    async def _finish(self, session: StreamSession) -> None:
        try:
            await self.store.update_conversation_status(session.conversation_id, STATUS_IDLE)
        except PersistenceError as exc:
            # The slot is still released; the row is reset on the next run or restart.
            logger.error(
                "Failed to mark conversation idle",
                exc_info=exc,
                data={"conversation_id": session.conversation_id},
            )
        await self.hub.broadcast(session.conversation_id, StreamEndEvent())
