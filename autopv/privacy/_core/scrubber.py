"""
autopv.privacy._core.scrubber
=============================
Recursive PII scrubber for arbitrary hierarchical values.

scrub(value) → ScrubResult
  - null / bool / number pass through unchanged
  - strings are redacted through the PatternRegistry
  - mapping keys are redacted as strings too
  - arrays are mapped element-wise (order and length preserved)

The input is never mutated; the result is a deep, independent copy.
Statistics are counted on the JSON serialisation of the ORIGINAL value.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from autopv.core.data_types import ScrubResult, ValueKind, kind_of
from autopv.core.exceptions import ScrubDepthError
from autopv.core.logger import StructuredLogger
from autopv.privacy._core.pattern_registry import PatternRegistry


DEFAULT_MAX_DEPTH = 100

# Lists in the top levels of a merged dataset that are worth streaming
_STREAM_LEVELS = 2


class Scrubber:
    """
    Walks a hierarchical value and redacts every string leaf and key.

    Parameters
    ----------
    registry : PatternRegistry or None
        Patterns to apply. Defaults to PatternRegistry() (default toggles).
    max_depth : int
        Maximum nesting depth. Deeper input raises ScrubDepthError.
    logger : StructuredLogger or None

    Usage
    -----
    scrubber = Scrubber()
    result = scrubber.scrub({"email": "user@example.com"})
    result.scrubbed_data        # {"email": "[REDACTED]"}
    result.stats["email"]       # 1
    """

    def __init__(
        self,
        registry: Optional[PatternRegistry] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        logger: Optional[StructuredLogger] = None,
    ):
        self.registry  = registry or PatternRegistry()
        self.max_depth = max_depth
        self._logger   = logger or StructuredLogger(name="scrubber")

    # ── Public API ────────────────────────────────────────────────────────────

    def scrub(self, value: Any) -> ScrubResult:
        """Redact `value` and compute statistics."""
        scrubbed = self.redact_value(value)
        return self._build_result(value, scrubbed)

    def redact_value(self, value: Any, _depth: int = 0) -> Any:
        """Return a redacted deep copy of value (no statistics)."""
        if _depth > self.max_depth:
            raise ScrubDepthError(
                f"Value nested deeper than {self.max_depth} levels",
                details={"max_depth": self.max_depth},
            )

        kind = kind_of(value)

        if kind in (ValueKind.NULL, ValueKind.BOOL, ValueKind.NUMBER):
            return value
        if kind == ValueKind.STRING:
            return self.registry.redact(value)
        if kind == ValueKind.ARRAY:
            return [self.redact_value(item, _depth + 1) for item in value]
        if kind == ValueKind.OBJECT:
            return self._redact_mapping(value, _depth)

        raise AssertionError(f"unhandled kind {kind!r}")

    async def scrub_streaming(self, value: Any, processor) -> ScrubResult:
        """
        Same result as scrub(), but lists found in the first two levels of
        a mapping are redacted through `processor` (a ChunkProcessor), which
        yields control between chunks.
        """
        scrubbed = await self._stream(value, processor, 0)
        return self._build_result(value, scrubbed)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _redact_mapping(self, value: Mapping, depth: int) -> Dict[Any, Any]:
        out: Dict[Any, Any] = {}
        for key, child in value.items():
            out[self._redact_key(key, out)] = self.redact_value(child, depth + 1)
        return out

    def _redact_key(self, key: Any, taken: Mapping) -> Any:
        if not isinstance(key, str):
            return key
        new_key = self.registry.redact(key)
        if new_key == key or new_key not in taken:
            return new_key
        # Two different keys collapsed onto the same redacted text
        n = 2
        while f"{new_key}#{n}" in taken:
            n += 1
        return f"{new_key}#{n}"

    async def _stream(self, value: Any, processor, level: int) -> Any:
        kind = kind_of(value)

        if kind == ValueKind.OBJECT and level < _STREAM_LEVELS:
            out: Dict[Any, Any] = {}
            for key, child in value.items():
                new_key = self._redact_key(key, out)
                out[new_key] = await self._stream(child, processor, level + 1)
            return out

        if kind == ValueKind.ARRAY and len(value) > processor.chunk_size:
            depth = level + 1
            return await processor.process_in_chunks(
                list(value),
                lambda chunk: [self.redact_value(item, depth) for item in chunk],
            )

        return self.redact_value(value, level)

    def _build_result(self, original: Any, scrubbed: Any) -> ScrubResult:
        original_text = _serialise(original)
        scrubbed_text = _serialise(scrubbed)

        stats = self.registry.count_matches(original_text)
        bytes_reduced = len(original_text.encode("utf-8")) - len(scrubbed_text.encode("utf-8"))

        self._logger.log(
            "scrub",
            items_found=sum(stats.values()),
            bytes_reduced=bytes_reduced,
            stats=stats,
        )
        return ScrubResult(
            scrubbed_data=scrubbed,
            stats=stats,
            bytes_reduced=bytes_reduced,
        )

    def __repr__(self) -> str:
        return f"Scrubber(registry={self.registry!r}, max_depth={self.max_depth})"


# ── Helpers ───────────────────────────────────────────────────────────────────

def _serialise(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=_json_default)


def _json_default(obj: Any) -> Any:
    # Read-only mappings (RawDataset.providers) are not dict subclasses
    if isinstance(obj, Mapping):
        return dict(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def scrub_pii(value: Any, registry: Optional[PatternRegistry] = None) -> ScrubResult:
    """Convenience wrapper: scrub with default settings."""
    return Scrubber(registry=registry).scrub(value)


def scrub_string(text: str, registry: Optional[PatternRegistry] = None) -> str:
    """Convenience wrapper: redact a single string."""
    return (registry or PatternRegistry()).redact(text)
