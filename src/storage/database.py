# src/storage/database.py
# Persistence handle for the ingestion pipeline
# =============================================

"""
``DatabaseManager`` is the explicitly constructed persistence handle. The
process entry point builds one and passes it to the pipeline; nothing in the
pipeline reaches for a global connection.

Upserts are keyed by ``articles.canonical_url``. The merge itself is the
pure :func:`src.storage.merge.merge_article`; this module only loads the
current row, applies the computed changes and maps SQLAlchemy failures to
:class:`src.errors.PersistenceError`.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import create_engine, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from src.errors import PersistenceError
from src.storage.merge import (
    EMPTY_STATE,
    PartialArticle,
    changed_fields,
    merge_article,
    snapshot,
)
from src.storage.models import (
    Article,
    BlockedUrl,
    IngestEvent,
    Job,
    JobEvent,
    Source,
    create_all_tables,
)

logger = logging.getLogger(__name__)

SOURCE_FIELDS = (
    "name",
    "homepage_url",
    "rss_url",
    "sitemap_url",
    "scrape_selector",
    "fetch_mode",
    "category",
    "priority",
    "allowed",
)


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of one upsert: ``inserted``, ``updated`` or ``skipped`` (no change)."""

    action: str
    article_id: int
    canonical_url: str
    changed: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def inserted(self) -> bool:
        return self.action == "inserted"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseManager:
    """SQLAlchemy engine, session factory and the queries the pipeline needs."""

    def __init__(self, database_config: Optional[Dict[str, Any]] = None):
        """
        Args:
            database_config: ``{"type": "sqlite", "path": ...}`` or the
                postgresql keys. Defaults to ``config.settings.DATABASE_CONFIG``.
        """
        if database_config is None:
            from config.settings import DATABASE_CONFIG

            database_config = DATABASE_CONFIG
        self.config = dict(database_config)
        self.engine = None
        self.SessionLocal = None
        self._setup_database()

    def _setup_database(self) -> None:
        db_type = self.config.get("type", "sqlite")
        try:
            if db_type == "sqlite":
                db_path = self.config.get("path")
                if db_path in (None, ":memory:"):
                    database_url = "sqlite://"
                else:
                    db_path = Path(db_path)
                    db_path.parent.mkdir(parents=True, exist_ok=True)
                    database_url = f"sqlite:///{db_path}"
                self.engine = create_engine(
                    database_url,
                    echo=False,
                    connect_args={"check_same_thread": False, "timeout": 20},
                    pool_pre_ping=True,
                )
            elif db_type == "postgresql":
                database_url = (
                    f"postgresql://{self.config['user']}:{self.config['password']}"
                    f"@{self.config['host']}:{self.config['port']}/{self.config['name']}"
                )
                self.engine = create_engine(
                    database_url,
                    echo=False,
                    pool_size=self.config.get("pool_size", 5),
                    max_overflow=self.config.get("max_overflow", 10),
                    pool_pre_ping=True,
                )
            else:
                raise ValueError(f"Unsupported database type: {db_type}")

            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine,
                expire_on_commit=False,
            )
            create_all_tables(self.engine)
            logger.info("Database ready: %s", db_type)
        except SQLAlchemyError as exc:
            logger.error("Database setup failed: %s", exc)
            raise PersistenceError(f"database setup failed: {exc}") from exc

    @contextmanager
    def get_session(self):
        """
        Transactional session scope: commit on success, rollback on error.

            with db.get_session() as session:
                session.query(Article).first()
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("Database operation failed: %s", e)
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()

    # =====================================
    # ARTICLES
    # =====================================

    def upsert_article(self, partial: PartialArticle) -> UpsertResult:
        """
        Insert or merge ``partial`` under its canonical identity.

        A lost insert race against another run surfaces as an
        ``IntegrityError``; the upsert is then retried once as a merge.

        Raises:
            PersistenceError: any SQLAlchemy failure after rollback.
        """
        try:
            try:
                return self._upsert_once(partial)
            except IntegrityError:
                logger.info("Concurrent insert for %s, retrying as merge", partial.canonical_url)
                return self._upsert_once(partial)
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"upsert failed for {partial.canonical_url}: {exc}"
            ) from exc

    def _find_existing(self, session, partial: PartialArticle) -> Optional[Article]:
        row = (
            session.query(Article)
            .filter(Article.canonical_url == partial.canonical_url)
            .first()
        )
        if row is not None or not partial.alternate_urls:
            return row
        alternates = list(partial.alternate_urls)
        return (
            session.query(Article)
            .filter(
                or_(
                    Article.canonical_url.in_(alternates),
                    Article.url.in_(alternates),
                )
            )
            .order_by(Article.id)
            .first()
        )

    def _upsert_once(self, partial: PartialArticle) -> UpsertResult:
        now = _utcnow()
        with self.get_session() as session:
            row = self._find_existing(session, partial)
            if row is None:
                values = {
                    name: value
                    for name, value in merge_article(EMPTY_STATE, partial).items()
                    if value is not None
                }
                row = Article(
                    canonical_url=partial.canonical_url,
                    discovered_at=now,
                    updated_at=now,
                    **values,
                )
                session.add(row)
                session.flush()
                return UpsertResult(
                    action="inserted",
                    article_id=row.id,
                    canonical_url=row.canonical_url,
                    changed=tuple(sorted(values)),
                )

            before = snapshot(row)
            changes = changed_fields(before, merge_article(before, partial))
            if not changes:
                return UpsertResult(
                    action="skipped", article_id=row.id, canonical_url=row.canonical_url
                )
            for name, value in changes.items():
                setattr(row, name, value)
            row.updated_at = now
            return UpsertResult(
                action="updated",
                article_id=row.id,
                canonical_url=row.canonical_url,
                changed=tuple(sorted(changes)),
            )

    def get_article(self, canonical_url: str) -> Optional[Article]:
        with self.get_session() as session:
            return (
                session.query(Article)
                .filter(Article.canonical_url == canonical_url)
                .first()
            )

    def count_articles(self) -> int:
        with self.get_session() as session:
            return session.query(func.count(Article.id)).scalar() or 0

    def articles_needing_images(
        self,
        limit: int = 50,
        retry_after: timedelta = timedelta(days=7),
        is_weak: Optional[Callable[[str], bool]] = None,
    ) -> List[Article]:
        """Rows due for an image lookup, newest first.

        A row is due when its last lookup is missing or older than
        ``retry_after`` and it has no image, or ``is_weak`` rejects the one
        it has (logos, placeholders, tiny thumbnails).
        """
        cutoff = _utcnow() - retry_after
        with self.get_session() as session:
            query = (
                session.query(Article)
                .filter(
                    or_(
                        Article.image_checked_at.is_(None),
                        Article.image_checked_at < cutoff,
                    )
                )
                .order_by(Article.discovered_at.desc(), Article.id.desc())
            )
            if is_weak is None:
                missing = or_(Article.image_url.is_(None), Article.image_url == "")
                return query.filter(missing).limit(limit).all()
            due: List[Article] = []
            for row in query.all():
                if not row.image_url or is_weak(row.image_url):
                    due.append(row)
                    if len(due) >= limit:
                        break
            return due

    def record_image_check(self, article_id: int, image_url: Optional[str] = None) -> None:
        """Store a found image (never clearing one) and stamp ``image_checked_at``."""
        with self.get_session() as session:
            row = session.get(Article, article_id)
            if row is None:
                return
            if image_url:
                row.image_url = image_url
            row.image_checked_at = _utcnow()

    def articles_for_reclassification(self, limit: int = 500) -> List[Article]:
        with self.get_session() as session:
            return (
                session.query(Article)
                .order_by(Article.id)
                .limit(limit)
                .all()
            )

    # =====================================
    # SOURCES
    # =====================================

    def seed_sources(self, seeds: Iterable[Dict[str, Any]]) -> int:
        """Insert or refresh source rows from seed dicts; returns the count written."""
        count = 0
        with self.get_session() as session:
            for seed in seeds:
                source = session.get(Source, int(seed["id"]))
                if source is None:
                    source = Source(id=int(seed["id"]))
                    session.add(source)
                for name in SOURCE_FIELDS:
                    if name in seed:
                        setattr(source, name, seed[name])
                count += 1
        logger.info("%d sources seeded", count)
        return count

    def get_source(self, source_id: int) -> Optional[Source]:
        with self.get_session() as session:
            return session.get(Source, source_id)

    def list_sources(self, *, allowed_only: bool = False) -> List[Source]:
        """Sources ordered by priority (nulls last) then id."""
        with self.get_session() as session:
            query = session.query(Source)
            if allowed_only:
                query = query.filter(Source.allowed.is_(True))
            return query.order_by(
                Source.priority.is_(None), Source.priority, Source.id
            ).all()

    # =====================================
    # BLOCKLIST
    # =====================================

    def block_url(self, canonical_url: str, reason: Optional[str] = None) -> bool:
        """Add ``canonical_url`` to the blocklist; False when already present."""
        try:
            with self.get_session() as session:
                if (
                    session.query(BlockedUrl)
                    .filter(BlockedUrl.canonical_url == canonical_url)
                    .first()
                ):
                    return False
                session.add(BlockedUrl(canonical_url=canonical_url, reason=reason))
                return True
        except IntegrityError:
            return False

    def is_blocked(self, canonical_url: str) -> bool:
        with self.get_session() as session:
            return (
                session.query(BlockedUrl.id)
                .filter(BlockedUrl.canonical_url == canonical_url)
                .first()
                is not None
            )

    # =====================================
    # INGEST EVENTS
    # =====================================

    def append_event(
        self,
        *,
        reason: str,
        source_id: Optional[int] = None,
        url: Optional[str] = None,
        domain: Optional[str] = None,
        title: Optional[str] = None,
        detail: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> None:
        with self.get_session() as session:
            session.add(
                IngestEvent(
                    source_id=source_id,
                    job_id=job_id,
                    url=url,
                    domain=domain,
                    title=(title or None) and title[:500],
                    reason=reason,
                    detail=detail,
                    created_at=_utcnow(),
                )
            )

    def list_events(
        self,
        *,
        source_id: Optional[int] = None,
        job_id: Optional[str] = None,
        limit: int = 500,
    ) -> List[IngestEvent]:
        """Events in arrival order."""
        with self.get_session() as session:
            query = session.query(IngestEvent)
            if source_id is not None:
                query = query.filter(IngestEvent.source_id == source_id)
            if job_id is not None:
                query = query.filter(IngestEvent.job_id == job_id)
            return query.order_by(IngestEvent.id).limit(limit).all()

    def event_counts(self, job_id: Optional[str] = None) -> Dict[str, int]:
        with self.get_session() as session:
            query = session.query(IngestEvent.reason, func.count(IngestEvent.id))
            if job_id is not None:
                query = query.filter(IngestEvent.job_id == job_id)
            return {reason: count for reason, count in query.group_by(IngestEvent.reason)}

    # =====================================
    # JOBS
    # =====================================

    def create_job(
        self,
        job_type: str,
        params: Optional[Dict[str, Any]] = None,
        actor: Optional[str] = None,
    ) -> str:
        job_id = str(uuid.uuid4())
        with self.get_session() as session:
            session.add(
                Job(
                    id=job_id,
                    type=job_type,
                    params=params or {},
                    status="queued",
                    actor=actor,
                    created_at=_utcnow(),
                )
            )
        return job_id

    def start_job(self, job_id: str, total: Optional[int] = None) -> None:
        with self.get_session() as session:
            job = session.get(Job, job_id)
            if job is None:
                return
            job.status = "running"
            job.started_at = _utcnow()
            job.progress_current = 0
            if total is not None:
                job.progress_total = total

    def set_job_progress(
        self,
        job_id: str,
        current: int,
        total: Optional[int] = None,
        message: Optional[str] = None,
    ) -> None:
        with self.get_session() as session:
            job = session.get(Job, job_id)
            if job is None:
                return
            job.progress_current = max(current, job.progress_current or 0)
            if total is not None:
                job.progress_total = total
            if message:
                job.last_message = message

    def finish_job(self, job_id: str, message: Optional[str] = None) -> None:
        with self.get_session() as session:
            job = session.get(Job, job_id)
            if job is None:
                return
            job.status = "success"
            job.finished_at = _utcnow()
            if message:
                job.last_message = message

    def fail_job(self, job_id: str, detail: str) -> None:
        with self.get_session() as session:
            job = session.get(Job, job_id)
            if job is None:
                return
            job.status = "error"
            job.finished_at = _utcnow()
            job.error_detail = detail
            job.last_message = detail.splitlines()[0][:500] if detail else None

    def append_job_event(
        self,
        job_id: str,
        message: str,
        *,
        level: str = "info",
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        with self.get_session() as session:
            session.add(
                JobEvent(
                    job_id=job_id,
                    level=level,
                    message=message,
                    meta=meta,
                    created_at=_utcnow(),
                )
            )

    def get_job(self, job_id: str) -> Optional[Job]:
        with self.get_session() as session:
            return session.get(Job, job_id)

    def list_job_events(self, job_id: str) -> List[JobEvent]:
        with self.get_session() as session:
            return (
                session.query(JobEvent)
                .filter(JobEvent.job_id == job_id)
                .order_by(JobEvent.id)
                .all()
            )


__all__ = ["DatabaseManager", "UpsertResult"]
