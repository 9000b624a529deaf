"""
Shared utilities for the ingestion pipeline.
"""

from .logger import build_log_payload, get_logger, setup_logging
from .url_canonicalizer import CanonicalUrl, canonicalize, canonicalize_url

__all__ = [
    "CanonicalUrl",
    "build_log_payload",
    "canonicalize",
    "canonicalize_url",
    "get_logger",
    "setup_logging",
]
