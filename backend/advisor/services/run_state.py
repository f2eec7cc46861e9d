"""
Per-conversation run state.

A conversation is either ``idle`` or ``running``. At most one run may own a
conversation id at a time; the slot is taken with a check-and-set that
contains no ``await``, so it is atomic on the event loop.
"""

from __future__ import annotations

from enum import Enum

from advisor.core import get_logger, metrics

logger = get_logger(__name__)


class BeginResult(str, Enum):
    """Outcome of ``RunStateMachine.try_begin_run``."""

    OK = "ok"
    ALREADY_RUNNING = "already_running"


class RunStateMachine:
    """Owns the single-flight run slot of every conversation."""

    def __init__(self) -> None:
        self._running: set[str] = set()

    def try_begin_run(self, conversation_id: str) -> BeginResult:
        """Move ``idle -> running``; report ``ALREADY_RUNNING`` otherwise."""
        if conversation_id in self._running:
            return BeginResult.ALREADY_RUNNING
        self._running.add(conversation_id)
        metrics.set_gauge("active_runs", float(len(self._running)))
        return BeginResult.OK

    def end_run(self, conversation_id: str) -> None:
        """Move ``running -> idle``. No-op when already idle."""
        if conversation_id not in self._running:
            logger.debug("end_run on idle conversation", data={"conversation_id": conversation_id})
            return
        self._running.discard(conversation_id)
        metrics.set_gauge("active_runs", float(len(self._running)))

    def is_running(self, conversation_id: str) -> bool:
        return conversation_id in self._running

    def running_ids(self) -> frozenset[str]:
        return frozenset(self._running)

    def __len__(self) -> int:
        return len(self._running)
