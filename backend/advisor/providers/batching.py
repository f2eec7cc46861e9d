"""
Delta batching.

Coalesces provider deltas into cumulative-text batches before they are
handed to the broadcast hub. Pure transformation: no I/O, no broadcast.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterable, AsyncIterator, Callable


class DeltaBatcher:
    """
    Accumulate deltas and decide when a cumulative batch should be emitted.

    A batch is due after ``every`` unsent deltas, or once ``interval``
    seconds have passed since the previous batch (``None`` disables the
    timer). Each emitted batch is the full text so far, never a diff.
    """

    def __init__(
        self,
        every: int = 10,
        interval: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if every < 1:
            raise ValueError("every must be at least 1")
        self.every = every
        self.interval = interval or None
        self._clock = clock
        self._parts: list[str] = []
        self._pending = 0
        self._emitted = 0
        self._sequence = 0
        self._last_emit = clock()

    @property
    def text(self) -> str:
        """All text accumulated so far."""
        return "".join(self._parts)

    @property
    def sequence(self) -> int:
        """Number of deltas accepted so far."""
        return self._sequence

    @property
    def emitted(self) -> int:
        """Number of batches emitted so far."""
        return self._emitted

    def push(self, delta: str) -> str | None:
        """Add a delta; return the cumulative text if a batch is due."""
        if not delta:
            return None
        self._parts.append(delta)
        self._pending += 1
        self._sequence += 1
        if self._pending >= self.every:
            return self._emit()
        if self.interval is not None and self._clock() - self._last_emit >= self.interval:
            return self._emit()
        return None

    def flush(self) -> str | None:
        """
        Return the cumulative text if anything is unsent.

        Also returns the (possibly empty) text when no batch was ever
        emitted, so every stream ends with at least one batch.
        """
        if self._pending or not self._emitted:
            return self._emit()
        return None

    def _emit(self) -> str:
        self._pending = 0
        self._emitted += 1
        self._last_emit = self._clock()
        return self.text


async def coalesce_deltas(
    deltas: AsyncIterable[str], batcher: DeltaBatcher
) -> AsyncIterator[str]:
    """Yield cumulative batches for ``deltas``, ending with the final flush."""
    async for delta in deltas:
        batch = batcher.push(delta)
        if batch is not None:
            yield batch
    final = batcher.flush()
    if final is not None:
        yield final
