"""
autopv.classification.field_paths
=================================
Field-path extraction and structural sampling for classification.

extract({"github": {"events": [{"type": "PushEvent"}]}})
  → ["github", "github.events", "github.events[0]", "github.events[0].type"]

Arrays are sampled, not enumerated: only index 0 is walked.
"""

from __future__ import annotations

from typing import Any, Dict, List

from autopv.core.data_types import ValueKind, kind_of


DEFAULT_MAX_DEPTH    = 3
DEFAULT_SAMPLE_DEPTH = 2
DEFAULT_SAMPLE_KEYS  = 5


class FieldPathExtractor:
    """
    Depth-first walk that emits addressable field paths.

    A path's depth is its number of dotted segments; an array index
    ("[0]") does not add a segment. Objects are entered while their own
    depth is at most `max_depth`, so paths run to `max_depth + 1`
    segments and containers at that depth are emitted but not entered.

    Parameters
    ----------
    max_depth : int
        Deepest container depth to descend into (default 3, giving
        paths such as "github.events[0].actor.login").
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        if max_depth < 1:
            raise ValueError("FieldPathExtractor.max_depth must be >= 1")
        self.max_depth = max_depth

    def extract(self, value: Any) -> List[str]:
        """Return all field paths in `value`; [] for null or scalar roots."""
        paths: List[str] = []
        self._walk(value, "", 0, paths)
        return paths

    def _walk(self, node: Any, prefix: str, depth: int, out: List[str]) -> None:
        kind = kind_of(node)

        if kind == ValueKind.OBJECT:
            for key, child in node.items():
                path = f"{prefix}.{key}" if prefix else str(key)
                out.append(path)
                if depth < self.max_depth and _is_container(child):
                    self._walk(child, path, depth + 1, out)
            return

        if kind == ValueKind.ARRAY:
            if not node:
                return
            path = f"{prefix}[0]"
            out.append(path)
            if _is_container(node[0]):
                self._walk(node[0], path, depth, out)
            return

        # NULL / BOOL / NUMBER / STRING contribute no paths of their own


def create_data_sample(
    value: Any,
    max_depth: int = DEFAULT_SAMPLE_DEPTH,
    max_keys: int = DEFAULT_SAMPLE_KEYS,
    _depth: int = 0,
) -> Any:
    """
    Build a small structural sample of `value`.

    Leaves are replaced by their type tag ("string", "number", ...), so
    no raw value ever leaves the process. Objects keep at most `max_keys`
    keys, arrays keep only their first element, and anything at
    `max_depth` collapses to its type tag.
    """
    kind = kind_of(value)

    if _depth >= max_depth or kind not in (ValueKind.ARRAY, ValueKind.OBJECT):
        return kind

    if kind == ValueKind.ARRAY:
        if not value:
            return []
        return [create_data_sample(value[0], max_depth, max_keys, _depth + 1)]

    sample: Dict[str, Any] = {}
    for key, child in value.items():
        if len(sample) >= max_keys:
            break
        sample[str(key)] = create_data_sample(child, max_depth, max_keys, _depth + 1)
    return sample


def _is_container(value: Any) -> bool:
    return kind_of(value) in (ValueKind.ARRAY, ValueKind.OBJECT)
