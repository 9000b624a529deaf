# src/ingest/pipeline.py
# Ingestion orchestrator
# ======================

"""
Drives one ingestion run for one source, or for every allowed source.

Per run the state moves ``not-started -> fetching -> processing ->
summarizing -> finished``. Candidates are fetched from the gateway (bounded
by ``limit``), pre-filtered, their pages fetched concurrently, and then
processed one by one:

    filter -> blocklist -> normalize (canonicalize, resolve, classify) -> upsert

Every decision is reported to the observer as an ``EventRecord``. Any
exception raised while handling one candidate is caught here, reported as
an error event and counted; the next candidate is processed regardless.
"""

import threading
import time
import traceback
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from src.classify import needs_reclassification
from src.contracts import CandidateModel
from src.errors import GatewayError, PersistenceError, SourceNotFoundError
from src.filtering import CandidateFilter, FilterDecision
from src.gateways import AutoSourceGateway, SourceGateway
from src.ingest.enrichment import AsyncPageFetcher, PageSnapshot
from src.ingest.images import BackfillSummary, ImageBackfiller
from src.ingest.normalize import ArticleNormalizer
from src.ingest.observers import EventRecord, IngestObserver, NullObserver, ProgressUpdate
from src.storage.merge import PartialArticle
from src.utils.datetime_utils import ensure_utc, utcnow
from src.utils.logger import build_log_payload, get_logger
from src.utils.url_canonicalizer import canonicalize, domain_of


class RunState(str, Enum):
    NOT_STARTED = "not-started"
    FETCHING = "fetching"
    PROCESSING = "processing"
    SUMMARIZING = "summarizing"
    FINISHED = "finished"


class CancellationToken:
    """Run-scoped stop flag; in-flight work finishes, no new items start."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class RunSummary:
    """Counters for one run. ``total`` equals the sum of the outcome counters
    (``inserted + updated + skipped + filtered + errors``) unless the run was
    cancelled part-way."""

    source_id: Optional[int] = None
    job_id: Optional[str] = None
    total: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    filtered: int = 0
    errors: int = 0
    cancelled: bool = False
    fetch_error: Optional[str] = None
    state: str = RunState.NOT_STARTED.value
    sources: List["RunSummary"] = field(default_factory=list)

    def add(self, other: "RunSummary") -> None:
        for name in ("total", "inserted", "updated", "skipped", "filtered", "errors"):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.cancelled = self.cancelled or other.cancelled
        self.sources.append(other)

    def counters(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "filtered": self.filtered,
            "errors": self.errors,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sources"] = [source.to_dict() for source in self.sources]
        return data

    def describe(self) -> str:
        return ", ".join(f"{name}={value}" for name, value in self.counters().items())


UPSERT_REASONS = {
    "inserted": "upsert_inserted",
    "updated": "upsert_updated",
    "skipped": "upsert_skipped",
}


class IngestPipeline:
    """The orchestrator. Every collaborator is injected; defaults come from settings."""

    def __init__(
        self,
        db,
        gateway: Optional[SourceGateway] = None,
        candidate_filter: Optional[CandidateFilter] = None,
        normalizer: Optional[ArticleNormalizer] = None,
        observer: Optional[IngestObserver] = None,
        page_fetcher: Optional[AsyncPageFetcher] = None,
        collection_config: Optional[Mapping[str, Any]] = None,
        classification_config: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if collection_config is None or classification_config is None:
            from config.settings import CLASSIFICATION_CONFIG, COLLECTION_CONFIG

            collection_config = collection_config or COLLECTION_CONFIG
            classification_config = classification_config or CLASSIFICATION_CONFIG
        self.db = db
        self.gateway = gateway or AutoSourceGateway()
        self.filter = candidate_filter or CandidateFilter()
        self.normalizer = normalizer or ArticleNormalizer(
            classification_config=classification_config
        )
        self.observer = observer or NullObserver()
        self.page_fetcher = page_fetcher
        self.default_limit = int(collection_config.get("default_item_limit", 200))
        self.per_source_limit = int(collection_config.get("per_source_limit", 50))
        self.junk_topics_policy = classification_config.get("junk_topics_policy", "keep")
        self.module_logger = get_logger().create_module_logger("ingest.pipeline")

    # =====================================
    # OBSERVER PLUMBING (best-effort)
    # =====================================

    def _emit_log(self, level: str, event: str, **fields: Any) -> None:
        getattr(self.module_logger, level, self.module_logger.info)(
            build_log_payload(event, **fields)
        )

    def _notify(self, method: str, *args: Any, **kwargs: Any) -> None:
        try:
            getattr(self.observer, method)(*args, **kwargs)
        except Exception as exc:
            self._emit_log(
                "warning",
                "ingest.observer.failed",
                details={"method": method, "error": str(exc)},
            )

    def _event(
        self,
        reason: str,
        *,
        source_id: Optional[int],
        job_id: Optional[str],
        url: Optional[str] = None,
        title: Optional[str] = None,
        detail: Optional[str] = None,
        domain: Optional[str] = None,
    ) -> None:
        if domain is None and url:
            domain = domain_of(url)
        self._notify(
            "on_event",
            EventRecord(
                reason=reason,
                source_id=source_id,
                url=url,
                domain=domain,
                title=title or None,
                detail=detail,
                job_id=job_id,
            ),
        )

    def _set_state(self, summary: RunSummary, state: RunState) -> None:
        summary.state = state.value
        self._notify("on_state", state.value, source_id=summary.source_id, job_id=summary.job_id)

    # =====================================
    # SINGLE SOURCE
    # =====================================

    def _load_source(self, source_id: int):
        source = self.db.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def ingest_source(
        self,
        source_id: int,
        limit: Optional[int] = None,
        *,
        job_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
        now: Optional[datetime] = None,
        report_progress: bool = True,
    ) -> RunSummary:
        """
        Ingest up to ``limit`` candidates of one source.

        Raises:
            SourceNotFoundError: ``source_id`` does not exist.
        """
        source = self._load_source(source_id)
        limit = int(limit or self.default_limit)
        now = ensure_utc(now) if now else utcnow()
        summary = RunSummary(source_id=source_id, job_id=job_id)
        started = time.monotonic()

        self._emit_log(
            "info",
            "ingest.run.start",
            source_id=source_id,
            job_id=job_id,
            details={"limit": limit, "source": source.name},
        )

        self._set_state(summary, RunState.FETCHING)
        try:
            candidates = self.gateway.fetch_candidates(source, limit)[:limit]
        except Exception as exc:
            # a broken gateway (bad selector, malformed feed) fails this source only
            detail = str(exc) if isinstance(exc, GatewayError) else f"{type(exc).__name__}: {exc}"
            summary.fetch_error = detail
            summary.errors += 1
            self._event(
                "fetch_error",
                source_id=source_id,
                job_id=job_id,
                url=getattr(exc, "url", None),
                detail=detail,
            )
            self._emit_log(
                "warning",
                "ingest.source.fetch_failed",
                source_id=source_id,
                job_id=job_id,
                details={"error": detail, "status_code": getattr(exc, "status_code", None)},
            )
            self._set_state(summary, RunState.SUMMARIZING)
            self._set_state(summary, RunState.FINISHED)
            return summary

        summary.total = len(candidates)
        if report_progress:
            self._notify(
                "on_progress",
                ProgressUpdate(0, summary.total, f"{summary.total} candidates", job_id),
            )

        self._set_state(summary, RunState.PROCESSING)
        decisions = [self._precheck(candidate, source_id) for candidate in candidates]
        pages: Dict[str, PageSnapshot] = {}
        if not (cancel and cancel.cancelled):
            pages = self._fetch_pages(
                [c.link for c, d in zip(candidates, decisions) if d is not None and d.keep]
            )

        for index, (candidate, decision) in enumerate(zip(candidates, decisions), start=1):
            if cancel is not None and cancel.cancelled:
                summary.cancelled = True
                self._emit_log(
                    "info",
                    "ingest.run.cancelled",
                    source_id=source_id,
                    job_id=job_id,
                    details={"processed": index - 1, "total": summary.total},
                )
                break
            try:
                self._process_item(
                    candidate, decision, source_id, job_id, pages.get(candidate.link), now, summary
                )
            except Exception as exc:
                summary.errors += 1
                self._event(
                    "item_error",
                    source_id=source_id,
                    job_id=job_id,
                    url=candidate.link or None,
                    title=candidate.title,
                    detail=f"{type(exc).__name__}: {exc}",
                )
                self._emit_log(
                    "error",
                    "ingest.item.error",
                    source_id=source_id,
                    job_id=job_id,
                    url=candidate.link or None,
                    details={"error": str(exc), "type": type(exc).__name__},
                )
            if report_progress:
                self._notify(
                    "on_progress",
                    ProgressUpdate(index, summary.total, candidate.title or candidate.link, job_id),
                )

        self._set_state(summary, RunState.SUMMARIZING)
        self._emit_log(
            "info",
            "ingest.run.completed",
            source_id=source_id,
            job_id=job_id,
            latency=round(time.monotonic() - started, 3),
            details=summary.counters(),
        )
        self._set_state(summary, RunState.FINISHED)
        return summary

    def _precheck(self, candidate: CandidateModel, source_id: int) -> Optional[FilterDecision]:
        """Filter decision, or ``None`` when the filter itself blew up."""
        try:
            return self.filter.check(
                candidate.link, candidate.title, candidate.description, source_id=source_id
            )
        except Exception as exc:
            self._emit_log(
                "warning",
                "ingest.filter.failed",
                source_id=source_id,
                url=candidate.link or None,
                details={"error": str(exc)},
            )
            return None

    def _fetch_pages(self, links: List[str]) -> Dict[str, PageSnapshot]:
        if self.page_fetcher is None or not links:
            return {}
        try:
            return self.page_fetcher.fetch_pages(links)
        except Exception as exc:
            self._emit_log(
                "warning", "ingest.enrichment.failed", details={"error": str(exc), "pages": len(links)}
            )
            return {}

    def _process_item(
        self,
        candidate: CandidateModel,
        decision: Optional[FilterDecision],
        source_id: int,
        job_id: Optional[str],
        snapshot: Optional[PageSnapshot],
        now: datetime,
        summary: RunSummary,
    ) -> None:
        link = candidate.link or None
        title = candidate.title
        self._event("discovered", source_id=source_id, job_id=job_id, url=link, title=title)

        if not link:
            summary.filtered += 1
            self._event(
                "invalid_item", source_id=source_id, job_id=job_id, title=title, detail="missing link"
            )
            return
        if decision is None:
            raise RuntimeError("filter failed for candidate")
        if not decision.keep:
            summary.filtered += 1
            reason = "filtered_out" if decision.stage == "url" else "blocked_by_filter"
            self._event(
                reason, source_id=source_id, job_id=job_id, url=link, title=title, detail=decision.reason
            )
            return

        canonical = canonicalize(link)
        if not canonical.parsed:
            summary.filtered += 1
            self._event(
                "invalid_item", source_id=source_id, job_id=job_id, url=link, title=title, detail="unparseable url"
            )
            return
        if self.db.is_blocked(canonical.canonical):
            summary.filtered += 1
            self._event(
                "blocked_url", source_id=source_id, job_id=job_id, url=canonical.canonical, title=title
            )
            return

        try:
            item = self.normalizer.normalize(
                candidate, source_id=source_id, snapshot=snapshot, now=now
            )
        except Exception as exc:
            summary.errors += 1
            self._event(
                "parse_error",
                source_id=source_id,
                job_id=job_id,
                url=canonical.canonical,
                title=title,
                detail=f"{type(exc).__name__}: {exc}",
            )
            return

        try:
            result = self.db.upsert_article(item.partial)
        except PersistenceError as exc:
            summary.errors += 1
            self._event(
                "persist_error",
                source_id=source_id,
                job_id=job_id,
                url=canonical.canonical,
                title=title,
                detail=str(exc),
            )
            self._emit_log(
                "error",
                "ingest.item.persist_failed",
                source_id=source_id,
                job_id=job_id,
                url=canonical.canonical,
                details={"error": str(exc)},
            )
            return

        setattr(summary, result.action, getattr(summary, result.action) + 1)
        self._event(
            UPSERT_REASONS[result.action],
            source_id=source_id,
            job_id=job_id,
            url=result.canonical_url,
            domain=canonical.domain,
            title=title,
            detail=",".join(result.changed) or None,
        )

        if snapshot is not None:
            self._record_image(item, result, source_id, job_id)

    def _record_image(self, item, result, source_id: int, job_id: Optional[str]) -> None:
        """Stamp the page lookup; the item already counts as stored."""
        image = item.partial.image_url.value if item.partial.image_url else None
        if image and not item.image_from_page:
            return
        try:
            # a searched page without a usable image still counts as checked
            self.db.record_image_check(result.article_id, image)
        except Exception as exc:
            self._emit_log(
                "warning",
                "ingest.images.record_failed",
                url=result.canonical_url,
                details={"error": str(exc)},
            )
            return
        if image:
            self._event(
                "image_backfilled",
                source_id=source_id,
                job_id=job_id,
                url=result.canonical_url,
                detail=image,
            )

    # =====================================
    # ALL SOURCES
    # =====================================

    def ingest_all_sources(
        self,
        per_source_limit: Optional[int] = None,
        *,
        job_id: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
        now: Optional[datetime] = None,
    ) -> RunSummary:
        """Ingest every allowed source in priority order; one failure never stops the rest."""

        limit = int(per_source_limit or self.per_source_limit)
        sources = self.db.list_sources(allowed_only=True)
        overall = RunSummary(job_id=job_id)
        self._notify(
            "on_progress", ProgressUpdate(0, len(sources), f"{len(sources)} sources", job_id)
        )

        for index, source in enumerate(sources, start=1):
            if cancel is not None and cancel.cancelled:
                overall.cancelled = True
                break
            try:
                result = self.ingest_source(
                    source.id, limit, job_id=job_id, cancel=cancel, now=now, report_progress=False
                )
            except Exception as exc:
                result = RunSummary(source_id=source.id, job_id=job_id, errors=1, fetch_error=str(exc))
                self._event("fetch_error", source_id=source.id, job_id=job_id, detail=str(exc))
                self._emit_log(
                    "error",
                    "ingest.source.failed",
                    source_id=source.id,
                    job_id=job_id,
                    details={"error": str(exc)},
                )
            overall.add(result)
            self._notify(
                "on_progress",
                ProgressUpdate(index, len(sources), f"{source.name}: {result.describe()}", job_id),
            )

        overall.state = RunState.FINISHED.value
        get_logger().log_run_summary(overall.counters(), context="all sources")
        return overall

    # =====================================
    # JOB-TRACKED TRIGGERS
    # =====================================

    def _run_with_job(self, job_type: str, params: Dict[str, Any], actor: Optional[str], run) -> RunSummary:
        job_id = self.db.create_job(job_type, params=params, actor=actor)
        self.db.start_job(job_id)
        try:
            summary = run(job_id)
        except Exception:
            self.db.fail_job(job_id, traceback.format_exc())
            raise
        if summary.fetch_error and not summary.sources:
            self.db.fail_job(job_id, summary.fetch_error)
        else:
            self.db.finish_job(job_id, summary.describe())
        return summary

    def run_source_with_job(
        self,
        source_id: int,
        limit: Optional[int] = None,
        *,
        actor: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RunSummary:
        return self._run_with_job(
            "ingest_source",
            {"source_id": source_id, "limit": limit},
            actor,
            lambda job_id: self.ingest_source(source_id, limit, job_id=job_id, cancel=cancel),
        )

    def run_all_with_job(
        self,
        per_source_limit: Optional[int] = None,
        *,
        actor: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> RunSummary:
        return self._run_with_job(
            "ingest_all",
            {"per_source_limit": per_source_limit},
            actor,
            lambda job_id: self.ingest_all_sources(per_source_limit, job_id=job_id, cancel=cancel),
        )

    # =====================================
    # MAINTENANCE PASSES
    # =====================================

    def reclassify_articles(
        self, limit: int = 500, policy: Optional[str] = None, now: Optional[datetime] = None
    ) -> int:
        """Re-run the classifier over stored rows whose topics are missing."""

        policy = policy or self.junk_topics_policy
        now = ensure_utc(now) if now else utcnow()
        updated = 0
        for row in self.db.articles_for_reclassification(limit):
            if not needs_reclassification(row.topics, policy):
                continue
            reference = ensure_utc(row.published_at) if row.published_at else now
            result = self.normalizer.classify(
                row.cleaned_title or row.title or "",
                row.url or row.canonical_url,
                row.summary,
                reference,
            )
            partial = PartialArticle.build(
                row.canonical_url,
                topics=result.topics,
                primary_topic=result.primary,
                secondary_topic=result.secondary,
                week=result.week,
                is_static=result.is_static,
                static_type=result.static_type,
            )
            try:
                outcome = self.db.upsert_article(partial)
            except PersistenceError as exc:
                self._emit_log(
                    "warning",
                    "ingest.reclassify.persist_failed",
                    url=row.canonical_url,
                    details={"error": str(exc)},
                )
                continue
            if outcome.action == "updated":
                updated += 1
        self._emit_log(
            "info", "ingest.reclassify.done", details={"updated": updated, "policy": policy}
        )
        return updated

    def backfill_images(self, limit: int = 50) -> BackfillSummary:
        if self.page_fetcher is None:
            return BackfillSummary()
        return ImageBackfiller(
            self.db, self.page_fetcher, self.observer, self.normalizer.images
        ).backfill(limit)


__all__ = ["CancellationToken", "IngestPipeline", "RunState", "RunSummary"]
