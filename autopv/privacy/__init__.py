"""
autopv.privacy — THE BOUNDARY FILE
==================================
Package boundary. Exports the public redaction API only.
Everything inside _core/ is private and should NOT be imported directly.

PUBLIC API:
  Scrubber           — recursive scrubber, returns ScrubResult
  PatternRegistry    — ordered PII / credential patterns
  NamedPattern       — one compiled pattern (count_matches / redact)
  ScrubResult        — returned by Scrubber.scrub()
  scrub_pii          — one-shot scrub with default settings
  scrub_string       — one-shot redaction of a single string
  ScrubError, ScrubDepthError — raised on unsupported / too-deep input
"""

from autopv.privacy._core.pattern_registry import (
    ALWAYS_ON,
    CATEGORY_ORDER,
    DEFAULT_PLACEHOLDER,
    TOGGLE_DEFAULTS,
    NamedPattern,
    PatternRegistry,
)
from autopv.privacy._core.scrubber import Scrubber, scrub_pii, scrub_string
from autopv.core.data_types import ScrubResult
from autopv.core.exceptions import ScrubError, ScrubDepthError


__all__ = [
    "Scrubber",
    "PatternRegistry",
    "NamedPattern",
    "ScrubResult",
    "scrub_pii",
    "scrub_string",
    "ScrubError",
    "ScrubDepthError",
    "ALWAYS_ON",
    "CATEGORY_ORDER",
    "DEFAULT_PLACEHOLDER",
    "TOGGLE_DEFAULTS",
]
