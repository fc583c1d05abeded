"""
autopv.runtime.resource_monitor
===============================
Advisory memory and progress tracking for one pipeline run.

A daemon thread samples process RSS at a fixed interval and keeps the
running peak. Nothing here ever blocks or aborts the pipeline: crossing
the warning threshold or the ceiling is logged, never raised.
"""

from __future__ import annotations

import gc
import os
import threading
import time
from typing import Any, Callable, Dict, Optional

import psutil

from autopv.core.data_types import ResourceSnapshot
from autopv.core.logger import StructuredLogger


DEFAULT_CEILING_MB      = 300.0
DEFAULT_WARN_MB         = 250.0
DEFAULT_SAMPLE_INTERVAL = 5.0

_BYTES_PER_MB = 1024 * 1024


class ResourceMonitor:
    """
    Tracks elapsed time, stage progress and process memory.

    Parameters
    ----------
    ceiling_mb : float
        Soft ceiling; stop() reports `within_limit` against it.
    warn_mb : float
        A sample above this logs a "memory_high" warning.
    sample_interval : float
        Seconds between background samples. 0 disables the thread.
    memory_reader : callable or None
        Returns current memory in MB. Defaults to psutil RSS of this process.
    logger : StructuredLogger or None

    Usage
    -----
    monitor = ResourceMonitor().start()
    monitor.update_progress("Scrubbing", processed=500, estimated_total=2000)
    summary = monitor.stop()
    summary["within_limit"]     # True
    """

    def __init__(
        self,
        ceiling_mb: float = DEFAULT_CEILING_MB,
        warn_mb: float = DEFAULT_WARN_MB,
        sample_interval: float = DEFAULT_SAMPLE_INTERVAL,
        memory_reader: Optional[Callable[[], float]] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.ceiling_mb      = float(ceiling_mb)
        self.warn_mb         = float(warn_mb)
        self.sample_interval = float(sample_interval)
        self._reader         = memory_reader or _process_rss_mb
        self._logger         = logger or StructuredLogger(name="resources")

        self._start_time      = time.monotonic()
        self._stage           = "initialization"
        self._processed       = 0
        self._estimated_total = 0
        self._last_memory     = 0.0
        self._peak_mb         = 0.0

        self._peak_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._summary: Optional[Dict[str, Any]] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> "ResourceMonitor":
        """Start background sampling. Safe to call more than once."""
        self._start_time = time.monotonic()
        self.sample()
        if self.sample_interval > 0 and self._thread is None:
            self._thread = threading.Thread(
                target=self._run, name="autopv-resource-sampler", daemon=True
            )
            self._thread.start()
        return self

    def stop(self) -> Dict[str, Any]:
        """
        End sampling and return the run summary.

        Returns
        -------
        dict
            duration_seconds, peak_memory_mb, final_memory_mb,
            processed_items, final_stage, ceiling_mb, within_limit.
            A second call returns the same summary.
        """
        if self._summary is not None:
            return self._summary

        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=max(self.sample_interval, 1.0))
            self._thread = None

        final = self.sample()
        peak = self.peak_memory_mb
        summary = {
            "duration_seconds": round(time.monotonic() - self._start_time, 3),
            "peak_memory_mb":   round(peak, 1),
            "final_memory_mb":  round(final, 1),
            "processed_items":  self._processed,
            "final_stage":      self._stage,
            "ceiling_mb":       self.ceiling_mb,
            "within_limit":     peak <= self.ceiling_mb,
        }
        if summary["within_limit"]:
            self._logger.log("resource_summary", **summary)
        else:
            self._logger.warn("resource_summary", **summary)

        self._summary = summary
        return summary

    # ── Measurements ──────────────────────────────────────────────────────────

    def current_memory_mb(self) -> float:
        """Instantaneous memory use in MB; last known value if the read fails."""
        try:
            value = float(self._reader())
        except (psutil.Error, OSError, ValueError) as exc:
            self._logger.debug("memory_read_failed", error=str(exc))
            return self._last_memory
        self._last_memory = value
        return value

    def sample(self) -> float:
        """Read memory once, update the peak, warn above warn_mb."""
        current = self.current_memory_mb()
        with self._peak_lock:
            if current > self._peak_mb:
                self._peak_mb = current
        if current > self.warn_mb:
            self._logger.warn(
                "memory_high",
                memory_mb=round(current, 1),
                ceiling_mb=self.ceiling_mb,
            )
        return current

    @property
    def peak_memory_mb(self) -> float:
        with self._peak_lock:
            return self._peak_mb

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start_time

    # ── Bookkeeping ───────────────────────────────────────────────────────────

    def update_progress(
        self,
        stage: str,
        processed: int,
        estimated_total: Optional[int] = None,
    ) -> None:
        """Record progress. No side effects beyond state."""
        self._stage = stage
        self._processed = processed
        if estimated_total:
            self._estimated_total = estimated_total

    def snapshot(self) -> ResourceSnapshot:
        return ResourceSnapshot(
            stage           = self._stage,
            processed_items = self._processed,
            estimated_total = self._estimated_total,
            memory_mb       = round(self.current_memory_mb(), 1),
        )

    def request_reclamation(self) -> int:
        """Ask the runtime to reclaim memory. Returns objects collected."""
        collected = gc.collect()
        self._logger.debug(
            "reclamation",
            collected=collected,
            memory_mb=round(self.current_memory_mb(), 1),
        )
        return collected

    # ── Sampling thread ───────────────────────────────────────────────────────

    def _run(self) -> None:
        while not self._stop_event.wait(self.sample_interval):
            self.sample()

    def __repr__(self) -> str:
        return (
            f"ResourceMonitor(stage={self._stage!r}, "
            f"peak_mb={self.peak_memory_mb:.1f}, ceiling_mb={self.ceiling_mb})"
        )


def _process_rss_mb() -> float:
    return psutil.Process(os.getpid()).memory_info().rss / _BYTES_PER_MB
