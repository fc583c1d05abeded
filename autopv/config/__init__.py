"""Config package init."""
from autopv.config.pipeline_config import PipelineConfig
from autopv.config.validator import ConfigValidator
__all__ = ["PipelineConfig", "ConfigValidator"]
