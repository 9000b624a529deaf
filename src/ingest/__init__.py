"""Ingestion orchestration: normalization, enrichment, observers and runs."""

from .enrichment import AsyncPageFetcher, PageSnapshot
from .images import ImageBackfiller, ImageSelector
from .normalize import ArticleNormalizer, NormalizedItem
from .observers import (
    CompositeObserver,
    DatabaseObserver,
    EventRecord,
    InMemoryObserver,
    IngestObserver,
    LoggingObserver,
    MetricsObserver,
    NullObserver,
    ProgressUpdate,
)
from .pipeline import CancellationToken, IngestPipeline, RunState, RunSummary

__all__ = [
    "ArticleNormalizer",
    "AsyncPageFetcher",
    "CancellationToken",
    "CompositeObserver",
    "DatabaseObserver",
    "EventRecord",
    "ImageBackfiller",
    "ImageSelector",
    "InMemoryObserver",
    "IngestObserver",
    "IngestPipeline",
    "LoggingObserver",
    "MetricsObserver",
    "NormalizedItem",
    "NullObserver",
    "PageSnapshot",
    "ProgressUpdate",
    "RunState",
    "RunSummary",
]
