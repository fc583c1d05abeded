"""autopv.core — Foundation layer shared by every autopv component."""

from autopv.core.data_types import (
    ValueKind,
    Sensitivity,
    PipelineState,
    kind_of,
    RawDataset,
    ScrubResult,
    ClassificationRecord,
    ClassificationSummary,
    ClassificationResult,
    ResourceSnapshot,
    PackResult,
    ArchiveResult,
    CleanupResult,
    RunReport,
)
from autopv.core.exceptions import (
    AutoPVError,
    ConfigError,
    PreconditionError,
    InvalidTransitionError,
    PackagingError,
    ScrubError,
    ScrubDepthError,
    UnsupportedValueError,
    ClassificationError,
    MalformedResponseError,
    ProviderError,
    CredentialError,
    ChunkProcessingError,
    CredentialStoreError,
)
from autopv.core.config_loader import load_config
from autopv.core.logger import StructuredLogger
from autopv.core.retry import RetryPolicy

__all__ = [
    "ValueKind",
    "Sensitivity",
    "PipelineState",
    "kind_of",
    "RawDataset",
    "ScrubResult",
    "ClassificationRecord",
    "ClassificationSummary",
    "ClassificationResult",
    "ResourceSnapshot",
    "PackResult",
    "ArchiveResult",
    "CleanupResult",
    "RunReport",
    "AutoPVError",
    "ConfigError",
    "PreconditionError",
    "InvalidTransitionError",
    "PackagingError",
    "ScrubError",
    "ScrubDepthError",
    "UnsupportedValueError",
    "ClassificationError",
    "MalformedResponseError",
    "ProviderError",
    "CredentialError",
    "ChunkProcessingError",
    "CredentialStoreError",
    "load_config",
    "StructuredLogger",
    "RetryPolicy",
]
