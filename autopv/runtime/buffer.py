"""
autopv.runtime.buffer
=====================
DataBuffer: collects records and hands them to a flush callback in batches.

    buffer = DataBuffer(500, write_batch)
    for record in records:
        await buffer.add(record)      # flushes automatically at 500
    await buffer.flush()              # remainder

The callback may be a plain function or a coroutine function.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, List, Optional

from autopv.core.logger import StructuredLogger


FlushCallback = Callable[[List[Any]], Any]


class DataBuffer:
    """
    Bounded in-memory batch buffer with auto-flush.

    Parameters
    ----------
    max_size : int
        Flush as soon as this many items are held (>= 1).
    flush_callback : callable
        Receives each batch as a new list. May return an awaitable.
    logger : StructuredLogger or None

    Notes
    -----
    The buffer is emptied before the callback runs. If the callback
    raises, the error propagates and that batch is not retried.
    """

    def __init__(
        self,
        max_size: int,
        flush_callback: FlushCallback,
        logger: Optional[StructuredLogger] = None,
    ):
        if not isinstance(max_size, int) or max_size < 1:
            raise ValueError(f"DataBuffer.max_size must be an int >= 1, got {max_size!r}")
        self.max_size        = max_size
        self._flush_callback = flush_callback
        self._logger         = logger or StructuredLogger(name="buffer")
        self._items: List[Any] = []
        self._flushed_batches  = 0

    async def add(self, item: Any) -> None:
        self._items.append(item)
        if len(self._items) >= self.max_size:
            await self.flush()

    async def flush(self) -> None:
        """Hand everything held to the callback; no-op when empty."""
        if not self._items:
            return
        batch, self._items = self._items, []
        self._flushed_batches += 1
        self._logger.log("buffer_flushed", size=len(batch), batch=self._flushed_batches)
        out = self._flush_callback(batch)
        if inspect.isawaitable(out):
            await out

    @property
    def flushed_batches(self) -> int:
        return self._flushed_batches

    def size(self) -> int:
        return len(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"DataBuffer(max_size={self.max_size}, held={len(self._items)})"
