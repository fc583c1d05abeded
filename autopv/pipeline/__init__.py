"""autopv.pipeline — stage sequencing for a DSAR run."""

from autopv.pipeline.orchestrator import PipelineOrchestrator, TRANSITIONS, can_transition

__all__ = ["PipelineOrchestrator", "TRANSITIONS", "can_transition"]
