"""
autopv.core.data_types
======================
Core data structures used throughout the autopv pipeline.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Optional

from autopv.core.exceptions import UnsupportedValueError


# ── Enums (as string constants for simplicity / no extra import) ──────────────

class ValueKind:
    """
    The closed set of node kinds a hierarchical value may contain.
    Every recursive visitor dispatches on kind_of() and handles all six.
    """
    NULL   = "null"
    BOOL   = "boolean"
    NUMBER = "number"
    STRING = "string"
    ARRAY  = "array"
    OBJECT = "object"

    ALL = (NULL, BOOL, NUMBER, STRING, ARRAY, OBJECT)


class Sensitivity:
    LOW    = "low"
    MEDIUM = "medium"
    HIGH   = "high"

    ALL = (LOW, MEDIUM, HIGH)


class PipelineState:
    INIT        = "Init"
    EXPORTING   = "Exporting"
    MERGING     = "Merging"
    SCRUBBING   = "Scrubbing"
    CLASSIFYING = "Classifying"
    PACKAGING   = "Packaging"
    ARCHIVING   = "Archiving"
    DONE        = "Done"
    FAILED      = "Failed"

    TERMINAL = (DONE, FAILED)


def kind_of(value: Any) -> str:
    """
    Map a Python value onto its ValueKind.

    bool is checked before number because bool subclasses int.
    Tuples are treated as arrays. Anything that is not JSON-shaped
    raises UnsupportedValueError.
    """
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, Mapping):
        return ValueKind.OBJECT
    raise UnsupportedValueError(
        f"Unsupported value type: {type(value).__name__}",
        details={"type": type(value).__name__},
    )


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ── Raw Dataset ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RawDataset:
    """
    Everything exported for one data subject, as captured from providers.

    Attributes:
        subject     : The data subject identifier (email or login).
        scope       : Organisation / account scope used for the export.
        providers   : provider name → hierarchical value. Read-only view.
        exported_at : ISO-8601 UTC export timestamp.
    """
    subject:     str
    scope:       Optional[str]       = None
    providers:   Mapping[str, Any]   = field(default_factory=dict)
    exported_at: str                 = field(default_factory=_utc_now_iso)

    def __post_init__(self):
        object.__setattr__(self, "providers", MappingProxyType(dict(self.providers)))

    def merged(self) -> Dict[str, Any]:
        """Return the single hierarchical value handed to the scrubber."""
        merged: Dict[str, Any] = {
            "subject":     self.subject,
            "scope":       self.scope,
            "exported_at": self.exported_at,
        }
        for name, data in self.providers.items():
            merged[name] = data
        return merged

    def record_counts(self) -> Dict[str, Dict[str, int]]:
        """Return {provider: {section: len(list)}} for list-valued sections."""
        counts: Dict[str, Dict[str, int]] = {}
        for name, data in self.providers.items():
            if isinstance(data, Mapping):
                counts[name] = {
                    k: len(v) for k, v in data.items() if isinstance(v, (list, tuple))
                }
        return counts


# ── Scrub Result ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScrubResult:
    """
    Returned by Scrubber.scrub().

    Attributes:
        scrubbed_data : Redacted deep copy, same shape as the input.
        stats         : category → number of matches in the original.
        bytes_reduced : UTF-8 byte delta between original and scrubbed JSON.
    """
    scrubbed_data: Any
    stats:         Mapping[str, int] = field(default_factory=dict)
    bytes_reduced: int               = 0

    def __post_init__(self):
        object.__setattr__(self, "stats", MappingProxyType(dict(self.stats)))

    @property
    def items_found(self) -> int:
        return sum(self.stats.values())


# ── Classification ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClassificationRecord:
    """
    One classified field.

    Attributes:
        field          : Field path, e.g. "github.events[0].actor.login".
        rule_reference : Regulation citation, e.g. "Art. 15".
        rationale      : Why the rule applies.
        category       : Personal-data category (contact, financial, ...).
        sensitivity    : low / medium / high.
    """
    field:          str
    rule_reference: str
    rationale:      str
    category:       str
    sensitivity:    str


@dataclass(frozen=True)
class ClassificationSummary:
    total_fields:              int       = 0
    distinct_rule_references:  List[str] = field(default_factory=list)
    high_sensitivity_count:    int       = 0
    processing_time_ms:        int       = 0


@dataclass(frozen=True)
class ClassificationResult:
    classifications: List[ClassificationRecord] = field(default_factory=list)
    summary:         ClassificationSummary      = field(default_factory=ClassificationSummary)


# ── Resources ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ResourceSnapshot:
    stage:           str
    processed_items: int   = 0
    estimated_total: int   = 0
    memory_mb:       float = 0.0


# ── Packaging results (structured, never raised) ──────────────────────────────

@dataclass
class PackResult:
    """
    Returned by EvidencePackBuilder.build().

    Attributes:
        success       : False when any artifact could not be written.
        files_created : Absolute paths of artifacts written, in order
                        (report, mapping CSV, scrubbed JSON).
        summary       : Sizes and counts for reporting.
        error         : Human-readable failure reason.
    """
    success:       bool                 = False
    files_created: List[str]            = field(default_factory=list)
    summary:       Dict[str, Any]       = field(default_factory=dict)
    error:         Optional[str]        = None


@dataclass
class ArchiveResult:
    archive_path:      str                = ""
    files_archived:    List[str]          = field(default_factory=list)
    archive_size:      int                = 0
    compression_ratio: int                = 0
    success:           bool               = False
    error:             Optional[str]      = None


@dataclass
class CleanupResult:
    files_scanned:    int        = 0
    files_deleted:    int        = 0
    deleted_files:    List[str]  = field(default_factory=list)
    total_size_freed: int        = 0
    errors:           List[str]  = field(default_factory=list)


# ── Run Report ────────────────────────────────────────────────────────────────

@dataclass
class RunReport:
    """
    Returned by PipelineOrchestrator.run().

    Attributes:
        state          : Final state (Done or Failed).
        subject        : Data subject the run was for.
        transitions    : Every state entered, in order.
        skipped        : Optional stages skipped (degraded run when non-empty).
        error          : Stage-tagged message when state is Failed.
        dataset        : RawDataset as exported.
        scrub_result   : Output of the scrubbing stage.
        classification : ClassificationResult, or None when skipped / failed.
        pack_result    : Output of the packaging stage.
        archive_result : Output of the archiving stage.
        cleanup_result : Old-artifact sweep performed before Done.
        resources      : ResourceMonitor summary.
    """
    state:          str                              = PipelineState.INIT
    subject:        str                              = ""
    transitions:    List[str]                        = field(default_factory=list)
    skipped:        List[Dict[str, str]]             = field(default_factory=list)
    error:          Optional[str]                    = None
    dataset:        Optional[RawDataset]             = None
    scrub_result:   Optional[ScrubResult]            = None
    classification: Optional[ClassificationResult]   = None
    pack_result:    Optional[PackResult]             = None
    archive_result: Optional[ArchiveResult]          = None
    cleanup_result: Optional[CleanupResult]          = None
    resources:      Dict[str, Any]                   = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return bool(self.skipped)

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.DONE
