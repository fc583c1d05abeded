"""
autopv.config.validator
=======================
Config validation. Raises ConfigError with descriptive messages
when a section is malformed or a value is out of range.
"""

from __future__ import annotations

from typing import Any, Dict

from autopv.core.exceptions import ConfigError
from autopv.privacy._core.pattern_registry import ALWAYS_ON, TOGGLE_DEFAULTS


_VALID_SECTIONS = {"scrubber", "classifier", "resources", "chunking", "output", "providers"}


class ConfigValidator:
    """
    Validates a pipeline config dict.
    All fields are optional (defaults are applied in PipelineConfig).
    Raises ConfigError for unknown sections, bad types or bad ranges.
    """

    @staticmethod
    def validate(config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate the config dict. Returns the same dict if valid.
        Raises ConfigError if any value is invalid.
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Config must be a dict, got {type(config).__name__}",
                details={"type": type(config).__name__},
            )

        unknown = set(config) - _VALID_SECTIONS
        if unknown:
            raise ConfigError(
                f"Unknown config section(s): {sorted(unknown)}",
                details={"valid": sorted(_VALID_SECTIONS)},
            )

        for section in _VALID_SECTIONS:
            if section in config and not isinstance(config[section], dict):
                raise ConfigError(f"{section} must be a mapping")

        scrubber   = config.get("scrubber", {})
        classifier = config.get("classifier", {})
        resources  = config.get("resources", {})
        chunking   = config.get("chunking", {})
        output     = config.get("output", {})
        providers  = config.get("providers", {})

        # ── Scrubber ───────────────────────────────────────────────────────
        toggles = scrubber.get("toggles", {})
        if not isinstance(toggles, dict):
            raise ConfigError("scrubber.toggles must be a mapping")
        forced = ALWAYS_ON.intersection(toggles)
        if forced:
            raise ConfigError(
                f"scrubber.toggles cannot disable always-on categories: {sorted(forced)}",
                details={"always_on": sorted(ALWAYS_ON)},
            )
        bad = set(toggles) - set(TOGGLE_DEFAULTS)
        if bad:
            raise ConfigError(
                f"Unknown category in scrubber.toggles: {sorted(bad)}",
                details={"valid": sorted(TOGGLE_DEFAULTS)},
            )
        for name, value in toggles.items():
            if not isinstance(value, bool):
                raise ConfigError(f"scrubber.toggles.{name} must be a bool, got {value!r}")

        if "placeholder" in scrubber:
            p = scrubber["placeholder"]
            if not isinstance(p, str) or not p:
                raise ConfigError(f"scrubber.placeholder must be a non-empty string, got {p!r}")

        if "custom_patterns" in scrubber:
            cp = scrubber["custom_patterns"]
            if not isinstance(cp, list) or not all(isinstance(x, str) for x in cp):
                raise ConfigError("scrubber.custom_patterns must be a list of strings")

        _positive_int(scrubber, "scrubber", "max_depth")

        # ── Classifier ─────────────────────────────────────────────────────
        _bool(classifier, "classifier", "enabled")
        if "model" in classifier and not isinstance(classifier["model"], str):
            raise ConfigError("classifier.model must be a string")
        if "temperature" in classifier:
            t = classifier["temperature"]
            if not _is_number(t) or not 0 <= t <= 2:
                raise ConfigError(f"classifier.temperature must be within [0, 2], got {t!r}")
        for key in ("max_output_tokens", "max_field_depth", "sample_depth", "sample_breadth"):
            _positive_int(classifier, "classifier", key)
        _retry(classifier, "classifier")

        # ── Resources ──────────────────────────────────────────────────────
        for key in ("memory_ceiling_mb", "warn_mb"):
            if key in resources:
                v = resources[key]
                if not _is_number(v) or v <= 0:
                    raise ConfigError(f"resources.{key} must be a positive number, got {v!r}")
        if "sample_interval_seconds" in resources:
            v = resources["sample_interval_seconds"]
            if not _is_number(v) or v < 0:
                raise ConfigError(
                    f"resources.sample_interval_seconds must be >= 0, got {v!r}"
                )
        if "memory_ceiling_mb" in resources and "warn_mb" in resources:
            if resources["warn_mb"] > resources["memory_ceiling_mb"]:
                raise ConfigError("resources.warn_mb must not exceed resources.memory_ceiling_mb")

        # ── Chunking ───────────────────────────────────────────────────────
        for key in ("chunk_size", "yield_every", "reclaim_every"):
            _positive_int(chunking, "chunking", key)

        # ── Output ─────────────────────────────────────────────────────────
        if "directory" in output and not isinstance(output["directory"], str):
            raise ConfigError("output.directory must be a string")
        if "retention_hours" in output:
            v = output["retention_hours"]
            if not _is_number(v) or v < 0:
                raise ConfigError(f"output.retention_hours must be >= 0, got {v!r}")
        _bool(output, "output", "remove_loose_artifacts")

        # ── Providers ──────────────────────────────────────────────────────
        for name in ("github", "stripe"):
            sub = providers.get(name, {})
            if not isinstance(sub, dict):
                raise ConfigError(f"providers.{name} must be a mapping")
        _positive_int(providers.get("github", {}), "providers.github", "max_events")
        _positive_int(providers.get("github", {}), "providers.github", "max_audit")
        _positive_int(providers.get("stripe", {}), "providers.stripe", "max_records")
        if "timeout_seconds" in providers:
            v = providers["timeout_seconds"]
            if not _is_number(v) or v <= 0:
                raise ConfigError(f"providers.timeout_seconds must be positive, got {v!r}")
        _retry(providers, "providers")

        return config


# ── Helpers ───────────────────────────────────────────────────────────────────

def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _positive_int(section: Dict[str, Any], prefix: str, key: str) -> None:
    if key in section:
        v = section[key]
        if not isinstance(v, int) or isinstance(v, bool) or v < 1:
            raise ConfigError(f"{prefix}.{key} must be a positive int, got {v!r}")


def _bool(section: Dict[str, Any], prefix: str, key: str) -> None:
    if key in section and not isinstance(section[key], bool):
        raise ConfigError(f"{prefix}.{key} must be a bool")


def _retry(section: Dict[str, Any], prefix: str) -> None:
    if "retry" not in section:
        return
    retry = section["retry"]
    if not isinstance(retry, dict):
        raise ConfigError(f"{prefix}.retry must be a mapping")
    _positive_int(retry, f"{prefix}.retry", "max_attempts")
    if "backoff_seconds" in retry:
        v = retry["backoff_seconds"]
        if not _is_number(v) or v < 0:
            raise ConfigError(f"{prefix}.retry.backoff_seconds must be >= 0, got {v!r}")
