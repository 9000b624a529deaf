# main.py
# Process wiring for the Gridiron ingestion pipeline
# ==================================================

"""
Builds every pipeline component from configuration and owns their lifecycle.

The persistence handle is constructed here and passed down; nothing below
this module opens a database on its own. ``create_system()`` returns an
initialized :class:`IngestSystem` ready to run ingestion triggers.
"""

import uuid
from typing import Any, Dict, List, Optional

from config import (
    CLASSIFICATION_CONFIG,
    COLLECTION_CONFIG,
    DATABASE_CONFIG,
    DATES_CONFIG,
    FILTERING_CONFIG,
    IMAGES_CONFIG,
    METRICS_CONFIG,
    RATE_LIMITING_CONFIG,
    SEED_SOURCES,
    validate_config,
)
from src.dates import DateResolver
from src.filtering import CandidateFilter
from src.gateways import AutoSourceGateway, HttpFetcher
from src.ingest import (
    ArticleNormalizer,
    AsyncPageFetcher,
    CancellationToken,
    CompositeObserver,
    DatabaseObserver,
    ImageSelector,
    IngestObserver,
    IngestPipeline,
    LoggingObserver,
    MetricsObserver,
    RunSummary,
)
from src.storage import DatabaseManager
from src.utils import build_log_payload, setup_logging
from src.utils.url_canonicalizer import canonicalize


class IngestSystem:
    """Owns the database handle, the HTTP clients and the pipeline."""

    def __init__(self, config_override: Optional[Dict[str, Any]] = None):
        """
        Args:
            config_override: per-section overrides, e.g.
                ``{"database": {"type": "sqlite", "path": ":memory:"}}``
        """
        self.system_id = str(uuid.uuid4())[:8]
        self.config_override = config_override or {}

        self.db_manager: Optional[DatabaseManager] = None
        self.fetcher: Optional[HttpFetcher] = None
        self.pipeline: Optional[IngestPipeline] = None
        self.metrics: Optional[MetricsObserver] = None
        self.logger = None
        self.system_logger = None
        self.is_initialized = False

    def _section(self, name: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
        merged = dict(defaults)
        merged.update(self.config_override.get(name, {}))
        return merged

    def initialize(self) -> bool:
        """Wire every component; returns False (after logging) when something fails."""

        self.logger = setup_logging()
        self.system_logger = self.logger.create_module_logger("system")
        try:
            validate_config()
            self.db_manager = DatabaseManager(self._section("database", DATABASE_CONFIG))

            collection = self._section("collection", COLLECTION_CONFIG)
            rate_limiting = self._section("rate_limiting", RATE_LIMITING_CONFIG)
            classification = self._section("classification", CLASSIFICATION_CONFIG)

            self.fetcher = HttpFetcher(collection, rate_limiting)
            normalizer = ArticleNormalizer(
                resolver=DateResolver(self._section("dates", DATES_CONFIG)),
                images=ImageSelector(self._section("images", IMAGES_CONFIG)),
                classification_config=classification,
            )
            self.pipeline = IngestPipeline(
                self.db_manager,
                gateway=AutoSourceGateway(self.fetcher),
                candidate_filter=CandidateFilter(self._section("filtering", FILTERING_CONFIG)),
                normalizer=normalizer,
                observer=self._build_observer(),
                page_fetcher=AsyncPageFetcher(collection, rate_limiting),
                collection_config=collection,
                classification_config=classification,
            )
        except Exception as exc:
            self.system_logger.error(
                build_log_payload(
                    "system.initialize.failed",
                    details={"system_id": self.system_id, "error": str(exc)},
                )
            )
            return False

        self.is_initialized = True
        self.system_logger.info(
            build_log_payload(
                "system.initialize.completed",
                details={"system_id": self.system_id, "database": self.db_manager.config.get("type")},
            )
        )
        return True

    def _build_observer(self) -> IngestObserver:
        observers: List[IngestObserver] = [LoggingObserver(), DatabaseObserver(self.db_manager)]
        metrics = self._section("metrics", METRICS_CONFIG)
        if metrics.get("enabled"):
            self.metrics = MetricsObserver(namespace=metrics.get("namespace", "gridiron"))
            observers.append(self.metrics)
        return CompositeObserver(observers)

    def _require(self) -> IngestPipeline:
        if not self.is_initialized or self.pipeline is None:
            raise RuntimeError("System not initialized; call initialize() first")
        return self.pipeline

    # Triggers
    # ========

    def run_source(
        self,
        source_id: int,
        limit: Optional[int] = None,
        *,
        with_job: bool = False,
        actor: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RunSummary:
        pipeline = self._require()
        if with_job:
            return pipeline.run_source_with_job(source_id, limit, actor=actor, cancel=cancel)
        return pipeline.ingest_source(source_id, limit, cancel=cancel)

    def run_all(
        self,
        per_source_limit: Optional[int] = None,
        *,
        with_job: bool = False,
        actor: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RunSummary:
        pipeline = self._require()
        if with_job:
            return pipeline.run_all_with_job(per_source_limit, actor=actor, cancel=cancel)
        return pipeline.ingest_all_sources(per_source_limit, cancel=cancel)

    # Operator helpers
    # ================

    def seed_sources(self, seeds: Optional[List[Dict[str, Any]]] = None) -> int:
        self._require()
        return self.db_manager.seed_sources(seeds if seeds is not None else SEED_SOURCES)

    def list_sources(self) -> List[Any]:
        self._require()
        return self.db_manager.list_sources()

    def block_url(self, url: str, reason: Optional[str] = None) -> bool:
        self._require()
        return self.db_manager.block_url(canonicalize(url).canonical, reason)

    def reclassify(self, limit: int = 500, policy: Optional[str] = None) -> int:
        return self._require().reclassify_articles(limit, policy)

    def backfill_images(self, limit: int = 50):
        return self._require().backfill_images(limit)

    def shutdown(self) -> None:
        if self.fetcher is not None:
            self.fetcher.close()
        if self.db_manager is not None:
            self.db_manager.dispose()
        self.is_initialized = False


def create_system(config_override: Optional[Dict[str, Any]] = None) -> IngestSystem:
    """Build and initialize an :class:`IngestSystem`; raises if wiring fails."""

    system = IngestSystem(config_override)
    if not system.initialize():
        raise RuntimeError("Failed to initialize ingestion system")
    return system
