# src/storage/models.py
# Persistent data model for the ingestion pipeline
# ================================================

"""
SQLAlchemy models for articles, sources, the append-only ingest event log,
job progress records and the operator URL blocklist.

The only schema contract the pipeline depends on is the ``articles`` shape
and the uniqueness constraint on ``articles.canonical_url``.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

JOB_STATUS_VALUES = ("queued", "running", "success", "error")
JOB_TYPES = ("ingest", "backfill")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Article(Base):
    """One normalized article, keyed by its canonical URL."""

    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    # ========
    canonical_url = Column(String(1000), unique=True, nullable=False, index=True)
    url = Column(String(1000))  # last-seen variant
    domain = Column(String(255), index=True)
    source_id = Column(Integer, ForeignKey("sources.id"), index=True)

    # Content
    # =======
    title = Column(String(500))
    cleaned_title = Column(String(500))
    summary = Column(Text)
    author = Column(String(255))
    image_url = Column(String(1000))
    image_checked_at = Column(DateTime(timezone=True))

    # Fingerprints
    content_hash = Column(String(64), index=True)
    simhash = Column(String(16))  # hex, unsigned 64-bit

    # Published date resolution
    # =========================
    published_at = Column(DateTime(timezone=True), index=True)
    published_raw = Column(String(255))
    published_source = Column(String(32))
    published_confidence = Column(Integer)
    published_tz = Column(String(64))

    # Classification
    # ==============
    topics = Column(JSON)
    primary_topic = Column(String(32), index=True)
    secondary_topic = Column(String(32))
    week = Column(Integer)
    players = Column(JSON)
    is_player_page = Column(Boolean, default=False, nullable=False)
    is_static = Column(Boolean, default=False, nullable=False)
    static_type = Column(String(32))

    # Bookkeeping
    # ===========
    discovered_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("idx_articles_source_discovered", "source_id", "discovered_at"),
        Index("idx_articles_topic_week", "primary_topic", "week"),
    )

    def __repr__(self):
        return f"<Article(id={self.id}, canonical_url='{self.canonical_url}')>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "canonical_url": self.canonical_url,
            "url": self.url,
            "domain": self.domain,
            "source_id": self.source_id,
            "title": self.title,
            "cleaned_title": self.cleaned_title,
            "author": self.author,
            "image_url": self.image_url,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "published_source": self.published_source,
            "published_confidence": self.published_confidence,
            "topics": list(self.topics or []),
            "primary_topic": self.primary_topic,
            "secondary_topic": self.secondary_topic,
            "week": self.week,
            "players": list(self.players or []),
            "is_static": bool(self.is_static),
            "static_type": self.static_type,
            "discovered_at": self.discovered_at.isoformat() if self.discovered_at else None,
        }


class Source(Base):
    """A publisher and how to reach it. Owned by the admin surface."""

    __tablename__ = "sources"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    homepage_url = Column(String(1000))
    rss_url = Column(String(1000))
    sitemap_url = Column(String(1000))
    scrape_selector = Column(String(500))
    fetch_mode = Column(String(16), default="auto", nullable=False)
    category = Column(String(50))
    priority = Column(Integer)
    allowed = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self):
        return f"<Source(id={self.id}, name='{self.name}', allowed={self.allowed})>"


class IngestEvent(Base):
    """Append-only audit row, one per decision point per candidate."""

    __tablename__ = "ingest_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(Integer, index=True)
    job_id = Column(String(36), index=True)
    url = Column(String(1000))
    domain = Column(String(255))
    title = Column(String(500))
    reason = Column(String(32), nullable=False, index=True)
    detail = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self):
        return f"<IngestEvent(id={self.id}, reason='{self.reason}', url='{self.url}')>"


class Job(Base):
    """Progress side channel for external monitors."""

    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True)
    type = Column(String(16), nullable=False)
    params = Column(JSON)
    status = Column(String(16), default="queued", nullable=False)
    progress_current = Column(Integer, default=0, nullable=False)
    progress_total = Column(Integer)
    last_message = Column(Text)
    error_detail = Column(Text)
    actor = Column(String(100))
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    started_at = Column(DateTime(timezone=True))
    finished_at = Column(DateTime(timezone=True))

    def __repr__(self):
        return f"<Job(id='{self.id}', type='{self.type}', status='{self.status}')>"


class JobEvent(Base):
    __tablename__ = "job_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    level = Column(String(10), default="info", nullable=False)
    message = Column(Text, nullable=False)
    meta = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class BlockedUrl(Base):
    """Canonical URLs an operator has excluded from ingestion."""

    __tablename__ = "blocked_urls"

    id = Column(Integer, primary_key=True, autoincrement=True)
    canonical_url = Column(String(1000), unique=True, nullable=False, index=True)
    reason = Column(Text)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


def create_all_tables(engine) -> None:
    Base.metadata.create_all(engine)


__all__ = [
    "Article",
    "Base",
    "BlockedUrl",
    "IngestEvent",
    "JOB_STATUS_VALUES",
    "JOB_TYPES",
    "Job",
    "JobEvent",
    "Source",
    "create_all_tables",
]
