"""
autopv.runtime.chunk_processor
==============================
Drives large record sets through a worker in bounded units of work.

Two modes:
  process_in_chunks(items, worker)     worker(chunk)        → list of results
  process_sequentially(items, worker)  worker(item, index)  → one result

Both return results in input order. Between units of work the processor
awaits asyncio.sleep(0), which hands control back to the event loop; this
is cooperative scheduling only, never parallelism.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, List, Optional, Sequence

from autopv.core.exceptions import ChunkProcessingError
from autopv.core.logger import StructuredLogger
from autopv.runtime.resource_monitor import ResourceMonitor


DEFAULT_CHUNK_SIZE    = 100
DEFAULT_YIELD_EVERY   = 100
DEFAULT_RECLAIM_EVERY = 1000

ProgressCallback = Callable[[int, int], None]


class ChunkProcessor:
    """
    Bounded, cooperative batch processing.

    Parameters
    ----------
    chunk_size : int
        Default chunk length for process_in_chunks (>= 1).
    yield_every : int
        process_sequentially yields control every N items.
    reclaim_every : int
        Request memory reclamation from the monitor every N items.
    monitor : ResourceMonitor or None
        Receives update_progress() after each unit and reclamation requests.
    stage : str
        Stage name reported to the monitor.
    logger : StructuredLogger or None

    Usage
    -----
    processor = ChunkProcessor(chunk_size=50, monitor=monitor, stage="Scrubbing")
    results = await processor.process_in_chunks(events, scrub_chunk)
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        yield_every: int = DEFAULT_YIELD_EVERY,
        reclaim_every: int = DEFAULT_RECLAIM_EVERY,
        monitor: Optional[ResourceMonitor] = None,
        stage: str = "processing",
        logger: Optional[StructuredLogger] = None,
    ):
        for name, value in (("chunk_size", chunk_size),
                            ("yield_every", yield_every),
                            ("reclaim_every", reclaim_every)):
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"ChunkProcessor.{name} must be an int >= 1, got {value!r}")

        self.chunk_size    = chunk_size
        self.yield_every   = yield_every
        self.reclaim_every = reclaim_every
        self.monitor       = monitor
        self.stage         = stage
        self._logger       = logger or StructuredLogger(name="chunks")
        self._processed    = 0

    @property
    def processed_count(self) -> int:
        """Items processed over this processor's lifetime."""
        return self._processed

    # ── Chunked mode ──────────────────────────────────────────────────────────

    async def process_in_chunks(
        self,
        items: Sequence[Any],
        worker: Callable[[List[Any]], Any],
        chunk_size: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[Any]:
        """
        Run `worker` over contiguous chunks of `items`, in order.

        The worker receives a list (the last one may be shorter) and returns
        an iterable of results, or an awaitable of one. Results are
        concatenated in chunk order.

        Raises
        ------
        ChunkProcessingError
            The worker raised; `.original` holds its exception and
            details["index"] the first item index of the failing chunk.
        """
        size = self.chunk_size if chunk_size is None else chunk_size
        if not isinstance(size, int) or size < 1:
            raise ValueError(f"chunk_size must be an int >= 1, got {size!r}")

        total = len(items)
        results: List[Any] = []
        done = 0

        for start in range(0, total, size):
            chunk = list(items[start:start + size])
            try:
                out = worker(chunk)
                if inspect.isawaitable(out):
                    out = await out
                results.extend(out)
            except Exception as exc:
                raise self._failure(exc, "chunk", start, total) from exc

            done += len(chunk)
            self._advance(len(chunk), done, total, on_progress)
            await asyncio.sleep(0)

        return results

    # ── Sequential mode ───────────────────────────────────────────────────────

    async def process_sequentially(
        self,
        items: Sequence[Any],
        worker: Callable[[Any, int], Any],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[Any]:
        """
        Run `worker(item, index)` one item at a time, in order.

        Yields control every `yield_every` items. Failure semantics are the
        same as process_in_chunks, with details["index"] the failing item.
        """
        total = len(items)
        results: List[Any] = []

        for index, item in enumerate(items):
            try:
                out = worker(item, index)
                if inspect.isawaitable(out):
                    out = await out
            except Exception as exc:
                raise self._failure(exc, "item", index, total) from exc

            results.append(out)
            self._advance(1, index + 1, total, on_progress)
            if (index + 1) % self.yield_every == 0:
                await asyncio.sleep(0)

        return results

    # ── Internals ─────────────────────────────────────────────────────────────

    def _advance(
        self,
        count: int,
        done: int,
        total: int,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        before = self._processed
        self._processed += count

        if on_progress is not None:
            on_progress(done, total)

        if self.monitor is not None:
            self.monitor.update_progress(self.stage, self._processed, total)
            # Crossed a reclaim_every boundary
            if self._processed // self.reclaim_every > before // self.reclaim_every:
                self.monitor.request_reclamation()

    def _failure(self, exc: Exception, unit: str, index: int, total: int) -> ChunkProcessingError:
        self._logger.error(
            "chunk_failed",
            stage=self.stage,
            unit=unit,
            index=index,
            total=total,
            error=f"{type(exc).__name__}: {exc}",
        )
        return ChunkProcessingError(
            f"Worker failed on {unit} at index {index}: {exc}",
            original=exc,
            details={"stage": self.stage, "index": index},
        )

    def __repr__(self) -> str:
        return (
            f"ChunkProcessor(chunk_size={self.chunk_size}, stage={self.stage!r}, "
            f"processed={self._processed})"
        )
