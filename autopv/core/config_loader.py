"""
autopv.core.config_loader
=========================
Reads YAML configuration files, named presets, or plain dicts.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Union

import yaml

from autopv.core.exceptions import ConfigError


def load_config(source: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """
    Load and return a config dict from various sources.

    Parameters
    ----------
    source : str, dict, or None
        - None       → returns empty dict (components use their own defaults)
        - dict       → returned as-is
        - str path   → loaded from YAML file at that path
        - preset name (no slashes) → looked up in autopv/config/presets/

    Returns
    -------
    dict
        Raw configuration dictionary (validation is the caller's job).

    Raises
    ------
    ConfigError
        If the source is invalid or the YAML cannot be parsed.
    """
    if source is None:
        return {}

    if isinstance(source, dict):
        return source

    if isinstance(source, str):
        # Check if it's a preset name (no path separators, no .yaml extension)
        if os.sep not in source and "/" not in source and not source.endswith((".yaml", ".yml")):
            resolved = _resolve_preset(source)
            if resolved is not None:
                return resolved
            # Fall through to try as a file path

        if not os.path.isfile(source):
            raise ConfigError(
                f"Config file not found: {source!r}",
                details={"path": source},
            )
        return _read_yaml(source)

    raise ConfigError(
        f"Unsupported config source type: {type(source).__name__}",
        details={"source": repr(source)},
    )


def preset_path(name: str) -> str:
    """Return the path a preset named `name` would live at."""
    this_dir = os.path.dirname(os.path.abspath(__file__))
    package_dir = os.path.dirname(this_dir)
    return os.path.join(package_dir, "config", "presets", f"{name}.yaml")


def _resolve_preset(name: str) -> Dict[str, Any] | None:
    """
    Look up a named preset in autopv/config/presets/.
    Returns None if the preset is not found (caller can try other sources).
    """
    path = preset_path(name)
    if not os.path.isfile(path):
        return None
    return _read_yaml(path)


def _read_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Failed to parse YAML config: {path!r}",
            details={"error": str(exc)},
        ) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config root must be a mapping: {path!r}",
            details={"got": type(data).__name__},
        )
    return data
