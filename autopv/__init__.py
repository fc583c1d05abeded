"""
autopv
======
AutoPrivacy DSAR evidence-pack generator.

Pulls a data subject's records from third-party providers, scrubs PII,
classifies the remaining fields against GDPR articles and packages the
result into an encrypted evidence archive.
"""

__version__ = "0.3.0"
__author__ = "AutoPrivacy Team"

# Lazy import to avoid circular dependencies
def __getattr__(name):
    if name == "PipelineOrchestrator":
        from autopv.pipeline.orchestrator import PipelineOrchestrator
        return PipelineOrchestrator
    if name == "Scrubber":
        from autopv.privacy import Scrubber
        return Scrubber
    raise AttributeError(f"module 'autopv' has no attribute {name!r}")


__all__ = [
    "__version__",
]
