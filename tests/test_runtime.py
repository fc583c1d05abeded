"""
Tests for the resource monitor, the chunk processor and the data buffer.
Run with: python -m pytest tests/ -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio

import pytest

from autopv.core.exceptions import ChunkProcessingError
from autopv.core.logger import StructuredLogger
from autopv.runtime import ChunkProcessor, DataBuffer, ResourceMonitor


# ── Fixtures ──────────────────────────────────────────────────────────────────

class ScriptedMemory:
    """Returns the given readings in order, then repeats the last one."""

    def __init__(self, *readings):
        self.readings = list(readings)

    def __call__(self):
        value = self.readings.pop(0) if len(self.readings) > 1 else self.readings[0]
        if isinstance(value, BaseException):
            raise value
        return value


@pytest.fixture
def logger():
    return StructuredLogger(name="runtime-test")


@pytest.fixture
def monitor(logger):
    return ResourceMonitor(sample_interval=0, memory_reader=lambda: 50.0, logger=logger)


# ── ResourceMonitor ───────────────────────────────────────────────────────────

class TestResourceMonitor:

    def test_summary_fields(self, monitor):
        monitor.start()
        monitor.update_progress("Scrubbing", processed=40, estimated_total=100)
        summary = monitor.stop()

        assert summary["peak_memory_mb"] == 50.0
        assert summary["final_memory_mb"] == 50.0
        assert summary["processed_items"] == 40
        assert summary["final_stage"] == "Scrubbing"
        assert summary["ceiling_mb"] == 300.0
        assert summary["within_limit"] is True
        assert summary["duration_seconds"] >= 0

    def test_stop_is_idempotent(self, monitor):
        monitor.start()
        assert monitor.stop() is monitor.stop()

    def test_peak_is_tracked(self, logger):
        reader = ScriptedMemory(80.0, 120.0, 90.0)
        monitor = ResourceMonitor(sample_interval=0, memory_reader=reader, logger=logger)
        monitor.start()
        monitor.sample()
        summary = monitor.stop()
        assert summary["peak_memory_mb"] == 120.0
        assert summary["final_memory_mb"] == 90.0

    def test_over_ceiling_is_reported_not_raised(self, logger):
        monitor = ResourceMonitor(
            ceiling_mb=100, warn_mb=80, sample_interval=0,
            memory_reader=lambda: 150.0, logger=logger,
        )
        monitor.start()
        summary = monitor.stop()

        assert summary["within_limit"] is False
        assert logger.get_entries(operation="memory_high")
        assert logger.get_entries(operation="resource_summary", level="WARNING")

    def test_failed_reading_keeps_last_value(self, logger):
        reader = ScriptedMemory(64.0, OSError("no /proc"))
        monitor = ResourceMonitor(sample_interval=0, memory_reader=reader, logger=logger)
        monitor.start()
        assert monitor.current_memory_mb() == 64.0
        assert logger.get_entries(operation="memory_read_failed")

    def test_snapshot(self, monitor):
        monitor.update_progress("Classifying", processed=3, estimated_total=10)
        snap = monitor.snapshot()
        assert snap.stage == "Classifying"
        assert snap.processed_items == 3
        assert snap.estimated_total == 10
        assert snap.memory_mb == 50.0

    def test_reclamation(self, monitor, logger):
        assert monitor.request_reclamation() >= 0
        assert logger.get_entries(operation="reclamation")

    def test_background_sampling_thread(self, logger):
        monitor = ResourceMonitor(sample_interval=0.01, memory_reader=lambda: 10.0, logger=logger)
        monitor.start()
        assert monitor._thread is not None and monitor._thread.daemon
        monitor.stop()
        assert monitor._thread is None

    def test_default_reader_uses_process_rss(self):
        monitor = ResourceMonitor(sample_interval=0)
        assert monitor.current_memory_mb() > 0


# ── ChunkProcessor ────────────────────────────────────────────────────────────

def _double_chunk(chunk):
    return [x * 2 for x in chunk]


class TestChunkProcessor:

    @pytest.mark.parametrize("n", [0, 1, 7, 10, 23])
    @pytest.mark.parametrize("size", [1, 3, 10])
    def test_chunked_equals_sequential(self, n, size):
        items = list(range(n))
        processor = ChunkProcessor(chunk_size=size, yield_every=2)

        chunked = asyncio.run(processor.process_in_chunks(items, _double_chunk))
        sequential = asyncio.run(processor.process_sequentially(items, lambda x, i: x * 2))

        assert chunked == sequential == [x * 2 for x in items]

    def test_chunk_boundaries(self):
        seen = []

        def worker(chunk):
            seen.append(list(chunk))
            return chunk

        asyncio.run(ChunkProcessor(chunk_size=3).process_in_chunks(list(range(7)), worker))
        assert seen == [[0, 1, 2], [3, 4, 5], [6]]

    def test_chunk_size_override(self):
        seen = []
        processor = ChunkProcessor(chunk_size=100)
        asyncio.run(processor.process_in_chunks(
            list(range(5)), lambda c: seen.append(len(c)) or c, chunk_size=2,
        ))
        assert seen == [2, 2, 1]

    def test_async_worker(self):
        async def worker(chunk):
            await asyncio.sleep(0)
            return [str(x) for x in chunk]

        out = asyncio.run(ChunkProcessor(chunk_size=2).process_in_chunks([1, 2, 3], worker))
        assert out == ["1", "2", "3"]

    def test_sequential_receives_index(self):
        out = asyncio.run(ChunkProcessor().process_sequentially(["a", "b"], lambda x, i: f"{i}:{x}"))
        assert out == ["0:a", "1:b"]

    def test_progress_callback(self):
        calls = []
        asyncio.run(ChunkProcessor(chunk_size=4).process_in_chunks(
            list(range(10)), _double_chunk, on_progress=lambda done, total: calls.append((done, total)),
        ))
        assert calls == [(4, 10), (8, 10), (10, 10)]

    def test_worker_failure_wrapped(self, logger):
        original = KeyError("missing")

        def worker(item, index):
            if index == 2:
                raise original
            return item

        processor = ChunkProcessor(stage="Scrubbing", logger=logger)
        with pytest.raises(ChunkProcessingError) as exc_info:
            asyncio.run(processor.process_sequentially(list("abcd"), worker))

        err = exc_info.value
        assert err.original is original
        assert err.__cause__ is original
        assert err.details == {"stage": "Scrubbing", "index": 2}
        assert logger.get_entries(operation="chunk_failed")

    def test_chunk_failure_reports_chunk_start(self):
        def worker(chunk):
            if 5 in chunk:
                raise ValueError("bad record")
            return chunk

        with pytest.raises(ChunkProcessingError) as exc_info:
            asyncio.run(ChunkProcessor(chunk_size=4).process_in_chunks(list(range(10)), worker))
        assert exc_info.value.details["index"] == 4
        assert isinstance(exc_info.value.original, ValueError)

    def test_monitor_receives_progress_and_reclamation(self, monitor, logger):
        processor = ChunkProcessor(chunk_size=5, reclaim_every=10, monitor=monitor, stage="Scrubbing")
        asyncio.run(processor.process_in_chunks(list(range(25)), _double_chunk))

        assert processor.processed_count == 25
        snap = monitor.snapshot()
        assert snap.stage == "Scrubbing"
        assert snap.processed_items == 25
        assert len(logger.get_entries(operation="reclamation")) == 2

    @pytest.mark.parametrize("kwargs", [
        {"chunk_size": 0}, {"yield_every": 0}, {"reclaim_every": -1}, {"chunk_size": 2.5},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            ChunkProcessor(**kwargs)

    def test_cooperative_yield_lets_other_tasks_run(self):
        order = []

        async def main():
            async def other():
                order.append("other")

            def worker(chunk):
                order.append(f"chunk{chunk[0]}")
                return chunk

            task = asyncio.ensure_future(other())
            await ChunkProcessor(chunk_size=1).process_in_chunks([0, 1, 2], worker)
            await task

        asyncio.run(main())
        assert order.index("other") < order.index("chunk2")


# ── DataBuffer ────────────────────────────────────────────────────────────────

class TestDataBuffer:

    def test_auto_flush_when_full(self, logger):
        batches = []
        buffer = DataBuffer(3, batches.append, logger=logger)

        async def fill():
            for item in range(7):
                await buffer.add(item)

        asyncio.run(fill())
        assert batches == [[0, 1, 2], [3, 4, 5]]
        assert buffer.size() == 1
        assert len(logger.get_entries(operation="buffer_flushed")) == 2

    def test_manual_flush_hands_over_remainder(self):
        batches = []
        buffer = DataBuffer(10, batches.append)

        async def main():
            await buffer.add("a")
            await buffer.add("b")
            await buffer.flush()
            await buffer.flush()

        asyncio.run(main())
        assert batches == [["a", "b"]]
        assert len(buffer) == 0
        assert buffer.flushed_batches == 1

    def test_async_callback(self):
        batches = []

        async def write(batch):
            await asyncio.sleep(0)
            batches.append(batch)

        buffer = DataBuffer(2, write)

        async def main():
            for item in "abc":
                await buffer.add(item)
            await buffer.flush()

        asyncio.run(main())
        assert batches == [["a", "b"], ["c"]]

    def test_callback_error_propagates_and_buffer_is_cleared(self):
        def boom(batch):
            raise OSError("disk full")

        buffer = DataBuffer(2, boom)

        async def main():
            await buffer.add(1)
            await buffer.add(2)

        with pytest.raises(OSError):
            asyncio.run(main())
        assert buffer.size() == 0

    @pytest.mark.parametrize("size", [0, -1, 1.5])
    def test_invalid_size(self, size):
        with pytest.raises(ValueError):
            DataBuffer(size, lambda batch: None)
