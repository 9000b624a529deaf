# src/utils/logger.py
# Logging setup for the ingestion pipeline
# ========================================

"""
loguru configuration shared by every pipeline component.

Components never configure sinks themselves: they ask the process-wide
:class:`IngestLogger` for a module-bound logger and emit structured payload
dicts (``{"event": "ingest.item.upserted", ...}``) through it.
"""

import sys
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from config.settings import DEBUG, LOGGING_CONFIG


class IngestLogger:
    """Centralized loguru configurator."""

    def __init__(self) -> None:
        self.is_configured = False
        self.log_file_path: Optional[Path] = None

    def configure_logging(self, config: Optional[Dict[str, Any]] = None) -> None:
        """
        Install the console and rotating file sinks.

        Args:
            config: logging settings; defaults to ``LOGGING_CONFIG``.
        """
        if self.is_configured:
            logger.debug("Logging already configured, skipping")
            return

        config = config or LOGGING_CONFIG
        logger.remove()
        self._configure_console_handler(config)
        if config.get("file_path"):
            self._configure_file_handler(config)

        self.is_configured = True
        logger.debug("Logging configured: {}", config)

    def _configure_console_handler(self, config: Dict[str, Any]) -> None:
        if DEBUG:
            console_format = (
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{extra[module]}</cyan> | "
                "<level>{message}</level>"
            )
            console_level = "DEBUG"
        else:
            console_format = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
            console_level = config.get("level", "INFO")

        logger.configure(extra={"module": "-"})
        logger.add(
            sys.stderr,
            format=console_format,
            level=console_level,
            colorize=DEBUG,
            backtrace=DEBUG,
            diagnose=DEBUG,
        )

    def _configure_file_handler(self, config: Dict[str, Any]) -> None:
        self.log_file_path = Path(config["file_path"])
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            str(self.log_file_path),
            format=config.get(
                "format",
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} | {message}",
            ),
            level=config.get("level", "INFO"),
            rotation=config.get("max_file_size", "10 MB"),
            retention=config.get("retention", "14 days"),
            compression="gz",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    def create_module_logger(self, module_name: str) -> Any:
        """Return a logger bound to ``module_name``."""

        if not self.is_configured:
            self.configure_logging()
        return logger.bind(module=module_name)

    def log_run_summary(self, summary: Dict[str, Any], context: str = "") -> None:
        """Log the counters of a finished ingestion run, one per line."""

        run_logger = self.create_module_logger("ingest.summary")
        run_logger.info("Run summary {}", context)
        for name, value in summary.items():
            if isinstance(value, float):
                run_logger.info("  {}: {:.3f}", name, value)
            else:
                run_logger.info("  {}: {}", name, value)


_logger_instance: Optional[IngestLogger] = None


def get_logger() -> IngestLogger:
    """Return the process-wide logging configurator, configuring it on first use."""

    global _logger_instance
    if _logger_instance is None:
        _logger_instance = IngestLogger()
        _logger_instance.configure_logging()
    return _logger_instance


def setup_logging(config: Optional[Dict[str, Any]] = None) -> IngestLogger:
    """Configure logging at process start; ``config`` overrides the settings."""

    global _logger_instance
    if _logger_instance is None:
        _logger_instance = IngestLogger()
        _logger_instance.configure_logging(config)
    return _logger_instance


def build_log_payload(event: str, **fields: Any) -> Dict[str, Any]:
    """Return an event payload with ``None`` fields dropped."""

    payload: Dict[str, Any] = {"event": event}
    payload.update(fields)
    return {key: value for key, value in payload.items() if value is not None}


__all__ = ["IngestLogger", "build_log_payload", "get_logger", "setup_logging"]
