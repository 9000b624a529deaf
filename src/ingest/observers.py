# src/ingest/observers.py
# Observability sinks for ingestion runs
# ======================================

"""
The orchestrator reports everything it decides through one
:class:`IngestObserver`. Sinks are best-effort: a failing sink is logged
and ignored, never allowed to fail the run.

- :class:`NullObserver` drops everything.
- :class:`InMemoryObserver` keeps events and progress in lists (tests).
- :class:`LoggingObserver` writes structured loguru payloads.
- :class:`DatabaseObserver` appends ``IngestEvent`` rows and job progress.
- :class:`MetricsObserver` feeds prometheus counters and gauges.
- :class:`CompositeObserver` fans out to several sinks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge

from src.utils.logger import build_log_payload, get_logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EventRecord:
    """One decision about one candidate; mirrors an ``IngestEvent`` row."""

    reason: str
    source_id: Optional[int] = None
    url: Optional[str] = None
    domain: Optional[str] = None
    title: Optional[str] = None
    detail: Optional[str] = None
    job_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ProgressUpdate:
    current: int
    total: Optional[int] = None
    message: Optional[str] = None
    job_id: Optional[str] = None


class IngestObserver(ABC):
    """Sink interface held by the orchestrator."""

    @abstractmethod
    def on_event(self, event: EventRecord) -> None:
        """Record one ingestion decision."""

    def on_progress(self, progress: ProgressUpdate) -> None:
        """Record incremental progress; optional for sinks."""

    def on_state(self, state: str, *, source_id: Optional[int] = None, job_id: Optional[str] = None) -> None:
        """Record a run state transition; optional for sinks."""


class NullObserver(IngestObserver):
    def on_event(self, event: EventRecord) -> None:
        return None


class InMemoryObserver(IngestObserver):
    def __init__(self) -> None:
        self.events: List[EventRecord] = []
        self.progress: List[ProgressUpdate] = []
        self.states: List[str] = []

    def on_event(self, event: EventRecord) -> None:
        self.events.append(event)

    def on_progress(self, progress: ProgressUpdate) -> None:
        self.progress.append(progress)

    def on_state(self, state: str, *, source_id: Optional[int] = None, job_id: Optional[str] = None) -> None:
        self.states.append(state)

    def reasons(self) -> List[str]:
        return [event.reason for event in self.events]

    def count(self, reason: str) -> int:
        return sum(1 for event in self.events if event.reason == reason)


class LoggingObserver(IngestObserver):
    """Writes every decision as an ``ingest.event.<reason>`` payload."""

    NOISY_REASONS = ("discovered", "upsert_skipped", "filtered_out")

    def __init__(self) -> None:
        self.module_logger = get_logger().create_module_logger("ingest.events")

    def on_event(self, event: EventRecord) -> None:
        payload = build_log_payload(
            f"ingest.event.{event.reason}",
            source_id=event.source_id,
            job_id=event.job_id,
            url=event.url,
            details={"detail": event.detail} if event.detail else None,
        )
        if event.reason.endswith("_error"):
            self.module_logger.warning(payload)
        elif event.reason in self.NOISY_REASONS:
            self.module_logger.debug(payload)
        else:
            self.module_logger.info(payload)

    def on_state(self, state: str, *, source_id: Optional[int] = None, job_id: Optional[str] = None) -> None:
        self.module_logger.debug(
            build_log_payload("ingest.run.state", state=state, source_id=source_id, job_id=job_id)
        )


class DatabaseObserver(IngestObserver):
    """Persists events and job progress through a ``DatabaseManager``."""

    def __init__(self, db) -> None:
        self.db = db

    def on_event(self, event: EventRecord) -> None:
        self.db.append_event(
            reason=event.reason,
            source_id=event.source_id,
            url=event.url,
            domain=event.domain,
            title=event.title,
            detail=event.detail,
            job_id=event.job_id,
        )

    def on_progress(self, progress: ProgressUpdate) -> None:
        if progress.job_id:
            self.db.set_job_progress(
                progress.job_id, progress.current, progress.total, progress.message
            )

    def on_state(self, state: str, *, source_id: Optional[int] = None, job_id: Optional[str] = None) -> None:
        if job_id:
            meta = {"source_id": source_id} if source_id is not None else None
            self.db.append_job_event(job_id, f"state: {state}", meta=meta)


class MetricsObserver(IngestObserver):
    """Prometheus counters on a private registry."""

    def __init__(self, namespace: str = "gridiron", registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.events_total = Counter(
            f"{namespace}_ingest_events_total",
            "Ingestion decisions by reason",
            labelnames=["reason"],
            registry=self.registry,
        )
        self.run_states_total = Counter(
            f"{namespace}_ingest_run_states_total",
            "Run state transitions",
            labelnames=["state"],
            registry=self.registry,
        )
        self.progress_current = Gauge(
            f"{namespace}_ingest_progress_current",
            "Items processed in the current run",
            registry=self.registry,
        )
        self.progress_total = Gauge(
            f"{namespace}_ingest_progress_total",
            "Items expected in the current run",
            registry=self.registry,
        )

    def on_event(self, event: EventRecord) -> None:
        self.events_total.labels(reason=event.reason).inc()

    def on_progress(self, progress: ProgressUpdate) -> None:
        self.progress_current.set(progress.current)
        if progress.total is not None:
            self.progress_total.set(progress.total)

    def on_state(self, state: str, *, source_id: Optional[int] = None, job_id: Optional[str] = None) -> None:
        self.run_states_total.labels(state=state).inc()

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        return self.registry.get_sample_value(name, labels or {})


class CompositeObserver(IngestObserver):
    """Fans out to every child; one failing child never affects the others."""

    def __init__(self, observers: Iterable[IngestObserver]) -> None:
        self.observers = list(observers)
        self.module_logger = get_logger().create_module_logger("ingest.observers")

    def _dispatch(self, method: str, *args: Any, **kwargs: Any) -> None:
        for observer in self.observers:
            try:
                getattr(observer, method)(*args, **kwargs)
            except Exception as exc:
                self.module_logger.warning(
                    build_log_payload(
                        "ingest.observer.failed",
                        details={
                            "observer": type(observer).__name__,
                            "method": method,
                            "error": str(exc),
                        },
                    )
                )

    def on_event(self, event: EventRecord) -> None:
        self._dispatch("on_event", event)

    def on_progress(self, progress: ProgressUpdate) -> None:
        self._dispatch("on_progress", progress)

    def on_state(self, state: str, *, source_id: Optional[int] = None, job_id: Optional[str] = None) -> None:
        self._dispatch("on_state", state, source_id=source_id, job_id=job_id)


__all__ = [
    "CompositeObserver",
    "DatabaseObserver",
    "EventRecord",
    "InMemoryObserver",
    "IngestObserver",
    "LoggingObserver",
    "MetricsObserver",
    "NullObserver",
    "ProgressUpdate",
]
