"""
autopv.config.pipeline_config
=============================
Typed, validated configuration for a pipeline run.
Can be initialized from:
  - A preset name string ("default", "strict")
  - A YAML file path
  - A raw dict
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from autopv.core.config_loader import load_config
from autopv.config.validator import ConfigValidator
from autopv.privacy._core.pattern_registry import DEFAULT_PLACEHOLDER, TOGGLE_DEFAULTS


class PipelineConfig:
    """
    Typed configuration for PipelineOrchestrator.

    Usage
    -----
    # From preset
    cfg = PipelineConfig("strict")

    # From dict
    cfg = PipelineConfig({
        "scrubber": {"toggles": {"network_address": True}},
        "output":   {"directory": "./evidence"},
    })

    # From YAML file
    cfg = PipelineConfig("/path/to/autopv.yaml")
    """

    def __init__(self, source: Union[str, Dict[str, Any], None] = None):
        raw = load_config(source) if source is not None else {}
        raw = ConfigValidator.validate(raw)
        self._raw = raw

        # ── Scrubber ───────────────────────────────────────────────────────
        scrubber_cfg = raw.get("scrubber", {})
        self.toggles: Dict[str, bool]     = {**TOGGLE_DEFAULTS, **scrubber_cfg.get("toggles", {})}
        self.placeholder: str             = scrubber_cfg.get("placeholder", DEFAULT_PLACEHOLDER)
        self.custom_patterns: List[str]   = list(scrubber_cfg.get("custom_patterns", []))
        self.scrub_max_depth: int         = int(scrubber_cfg.get("max_depth", 100))

        # ── Classifier ─────────────────────────────────────────────────────
        classifier_cfg = raw.get("classifier", {})
        self.classifier_enabled: bool     = classifier_cfg.get("enabled", True)
        self.model: str                   = classifier_cfg.get("model", "gemini-2.5-flash")
        self.temperature: float           = float(classifier_cfg.get("temperature", 0.1))
        self.max_output_tokens: int       = int(classifier_cfg.get("max_output_tokens", 2000))
        self.max_field_depth: int         = int(classifier_cfg.get("max_field_depth", 3))
        self.sample_depth: int            = int(classifier_cfg.get("sample_depth", 2))
        self.sample_breadth: int          = int(classifier_cfg.get("sample_breadth", 5))
        self.classifier_retry: Dict[str, Any] = _retry_cfg(classifier_cfg)

        # ── Resources ──────────────────────────────────────────────────────
        resources_cfg = raw.get("resources", {})
        self.memory_ceiling_mb: float     = float(resources_cfg.get("memory_ceiling_mb", 300))
        self.warn_mb: float               = float(resources_cfg.get("warn_mb", 250))
        self.sample_interval: float       = float(resources_cfg.get("sample_interval_seconds", 5))

        # ── Chunking ───────────────────────────────────────────────────────
        chunking_cfg = raw.get("chunking", {})
        self.chunk_size: int              = int(chunking_cfg.get("chunk_size", 100))
        self.yield_every: int             = int(chunking_cfg.get("yield_every", 100))
        self.reclaim_every: int           = int(chunking_cfg.get("reclaim_every", 1000))

        # ── Output ─────────────────────────────────────────────────────────
        output_cfg = raw.get("output", {})
        self.output_dir: str              = output_cfg.get("directory", ".")
        self.retention_hours: float       = float(output_cfg.get("retention_hours", 24))
        self.remove_loose_artifacts: bool = output_cfg.get("remove_loose_artifacts", True)

        # ── Providers ──────────────────────────────────────────────────────
        providers_cfg = raw.get("providers", {})
        github_cfg = providers_cfg.get("github", {})
        stripe_cfg = providers_cfg.get("stripe", {})
        self.github_max_events: int       = int(github_cfg.get("max_events", 1000))
        self.github_max_audit: int        = int(github_cfg.get("max_audit", 500))
        self.stripe_max_records: int      = int(stripe_cfg.get("max_records", 100))
        self.provider_timeout: float      = float(providers_cfg.get("timeout_seconds", 30))
        self.provider_retry: Dict[str, Any] = _retry_cfg(providers_cfg)

    def to_dict(self) -> Dict[str, Any]:
        """Return the raw config dict."""
        return dict(self._raw)

    def with_output_dir(self, directory: Optional[str]) -> "PipelineConfig":
        """Return self with output_dir overridden (None keeps the current one)."""
        if directory:
            self.output_dir = directory
        return self

    def scrubber_config(self) -> Dict[str, Any]:
        """Return keyword arguments for PatternRegistry."""
        return {
            "toggles":         {k: v for k, v in self.toggles.items() if k in TOGGLE_DEFAULTS},
            "custom_patterns": self.custom_patterns,
            "placeholder":     self.placeholder,
        }

    def classifier_config(self) -> Dict[str, Any]:
        """Return keyword arguments for Classifier (service/extractor excluded)."""
        return {
            "temperature":       self.temperature,
            "max_output_tokens": self.max_output_tokens,
            "sample_depth":      self.sample_depth,
            "sample_keys":       self.sample_breadth,
        }

    def resource_config(self) -> Dict[str, Any]:
        """Return keyword arguments for ResourceMonitor."""
        return {
            "ceiling_mb":      self.memory_ceiling_mb,
            "warn_mb":         self.warn_mb,
            "sample_interval": self.sample_interval,
        }

    def chunking_config(self) -> Dict[str, Any]:
        """Return keyword arguments for ChunkProcessor."""
        return {
            "chunk_size":    self.chunk_size,
            "yield_every":   self.yield_every,
            "reclaim_every": self.reclaim_every,
        }

    def __repr__(self) -> str:
        return (
            f"PipelineConfig(active_toggles={[k for k, v in self.toggles.items() if v]}, "
            f"classifier_enabled={self.classifier_enabled}, "
            f"output_dir={self.output_dir!r})"
        )


def _retry_cfg(section: Dict[str, Any]) -> Dict[str, Any]:
    retry = section.get("retry", {})
    return {
        "max_attempts":    int(retry.get("max_attempts", 3)),
        "backoff_seconds": float(retry.get("backoff_seconds", 2.0)),
    }
