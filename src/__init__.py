"""
Gridiron ingestion pipeline.

Subpackages: ``gateways`` (candidate producers), ``filtering``, ``dates``
(published-date resolver), ``classify``, ``storage`` (models, typed merge,
database handle) and ``ingest`` (orchestrator and observers).
"""

from config.version import PROJECT_VERSION, PYTHON_REQUIRES_SPECIFIER

__version__ = PROJECT_VERSION
__description__ = "Fantasy football news ingestion and normalization pipeline"

__package_info__ = {
    "name": "gridiron-ingest",
    "version": __version__,
    "description": __description__,
    "python_requires": PYTHON_REQUIRES_SPECIFIER,
}

__all__ = ["__version__", "__description__", "__package_info__"]
