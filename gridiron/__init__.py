"""Configuration tooling for the Gridiron ingestion pipeline."""
from __future__ import annotations

from .config_manager import ConfigError, apply_updates, load_config, save_config
from .config_schema import DEFAULT_CONFIG, Config, iter_field_docs

__all__ = [
    "Config",
    "ConfigError",
    "DEFAULT_CONFIG",
    "apply_updates",
    "iter_field_docs",
    "load_config",
    "save_config",
]
