"""Project configuration facade backed by gridiron.config_manager."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from gridiron.config_manager import Config, ConfigError, load_config

CONFIG: Config = load_config()

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = CONFIG.paths.data_dir
LOGS_DIR = CONFIG.paths.logs_dir

for directory in (DATA_DIR, LOGS_DIR):
    directory.mkdir(parents=True, exist_ok=True)

ENVIRONMENT = CONFIG.app.environment
DEBUG = CONFIG.app.debug
IS_PRODUCTION = ENVIRONMENT == "production"

DATABASE_CONFIG: Dict[str, Any] = CONFIG.database.model_dump(mode="python")
DATABASE_CONFIG["type"] = DATABASE_CONFIG.pop("driver")

COLLECTION_CONFIG: Dict[str, Any] = CONFIG.collection.model_dump(mode="python")
COLLECTION_CONFIG["request_timeout"] = COLLECTION_CONFIG["request_timeout_seconds"]

RATE_LIMITING_CONFIG: Dict[str, Any] = CONFIG.rate_limiting.model_dump(mode="python")
FILTERING_CONFIG: Dict[str, Any] = CONFIG.filtering.model_dump(mode="python")
DATES_CONFIG: Dict[str, Any] = CONFIG.dates.model_dump(mode="python")
CLASSIFICATION_CONFIG: Dict[str, Any] = CONFIG.classification.model_dump(mode="python")
IMAGES_CONFIG: Dict[str, Any] = CONFIG.images.model_dump(mode="python")
METRICS_CONFIG: Dict[str, Any] = CONFIG.metrics.model_dump(mode="python")

LOGGING_CONFIG: Dict[str, Any] = {
    "level": CONFIG.logging.level,
    "file_path": str(CONFIG.logging.file_path),
    "max_file_size": f"{CONFIG.logging.max_file_size_mb} MB",
    "retention": f"{CONFIG.logging.retention_days} days",
    "format": CONFIG.logging.format,
}


def validate_config(config: Config | None = None) -> None:
    """Run cross-field checks the schema cannot express on its own."""

    cfg = config or CONFIG
    weights = cfg.dates.weights
    document_level = [weights[name] for name in ("rss", "atom", "dc", "jsonld")]
    if min(document_level) < max(weights["og"], weights["meta"]):
        raise ConfigError("dates.weights: feed/structured signals must outrank meta tags")
    if weights["http-header"] > weights["url"]:
        raise ConfigError("dates.weights: http-header must not outrank url-derived dates")
    if cfg.collection.per_source_limit > cfg.collection.default_item_limit:
        raise ConfigError("collection.per_source_limit exceeds default_item_limit")
    if cfg.database.driver == "postgresql" and not cfg.database.password:
        raise ConfigError("postgresql configuration missing: password")


__all__ = [
    "BASE_DIR",
    "CONFIG",
    "DATA_DIR",
    "LOGS_DIR",
    "ENVIRONMENT",
    "DEBUG",
    "IS_PRODUCTION",
    "DATABASE_CONFIG",
    "COLLECTION_CONFIG",
    "RATE_LIMITING_CONFIG",
    "FILTERING_CONFIG",
    "DATES_CONFIG",
    "CLASSIFICATION_CONFIG",
    "IMAGES_CONFIG",
    "METRICS_CONFIG",
    "LOGGING_CONFIG",
    "validate_config",
]
