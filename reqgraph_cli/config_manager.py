"""Configuration manager for ReqGraph using TOML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import toml

from . import config

logger = logging.getLogger(__name__)

ANALYSIS_KEYS = ("root_prefix", "entry_prefix", "extensions", "report_path")


def default_analysis_config() -> Dict[str, Any]:
    return {
        "root_prefix": config.ROOT_PREFIX,
        "entry_prefix": config.ENTRY_PREFIX,
        "extensions": sorted(config.SOURCE_EXTENSIONS),
        "report_path": str(config.REPORT_FILE),
    }


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not config.CONFIG_FILE.exists():
        return {}
    try:
        with open(config.CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config.CONFIG_FILE, exc)
        return {}


def _save_full_config(payload: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    config.CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(config.CONFIG_FILE, "w", encoding="utf-8") as f:
            toml.dump(payload, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", config.CONFIG_FILE, exc)
        return False


def load_analysis_config() -> Dict[str, Any]:
    """Load analysis settings from the ``[analysis]`` section.

    Returns:
        The built-in defaults overlaid with whatever keys the TOML file sets.
        Unknown keys are dropped.
    """
    settings = default_analysis_config()
    section = load_full_config().get("analysis", {})
    for key in ANALYSIS_KEYS:
        if key in section:
            settings[key] = section[key]
    return settings


def save_analysis_config(**values: Any) -> bool:
    """Persist analysis settings, preserving other sections in the file.

    ``None`` values are skipped so callers can pass CLI options through
    unchanged.
    """
    payload = load_full_config()
    section = payload.setdefault("analysis", {})
    for key, value in values.items():
        if key not in ANALYSIS_KEYS:
            raise ValueError(f"Unknown analysis setting: {key}")
        if value is None:
            continue
        section[key] = str(value) if isinstance(value, Path) else value
    return _save_full_config(payload)


def clear_analysis_config() -> bool:
    """Remove ``[analysis]`` section from config, resetting to defaults."""
    payload = load_full_config()
    payload.pop("analysis", None)
    return _save_full_config(payload)
