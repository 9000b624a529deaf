"""Multi-signal published-date resolver."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from src.dates import extractors
from src.dates.candidates import DateCandidate, pick_best
from src.utils.datetime_utils import ensure_utc, utcnow
from src.utils.logger import get_logger

MIN_PLAUSIBLE_YEAR = 1995


@dataclass(frozen=True)
class ResolvedDate:
    """Best published-date estimate; every field is ``None`` when unresolved."""

    published_at: Optional[datetime] = None
    published_raw: Optional[str] = None
    published_source: Optional[str] = None
    published_confidence: Optional[int] = None
    published_tz: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.published_at is not None

    @classmethod
    def from_candidate(cls, candidate: Optional[DateCandidate]) -> "ResolvedDate":
        if candidate is None:
            return cls()
        return cls(
            published_at=candidate.value,
            published_raw=candidate.raw,
            published_source=candidate.source.value,
            published_confidence=candidate.confidence,
            published_tz=candidate.tz,
        )


class DateResolver:
    """Collects candidates from every available signal and picks the best one.

    Weights come from ``dates.weights``; candidates beyond
    ``max_future_skew_hours`` or before 1995 are discarded as implausible.
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None) -> None:
        if config is None:
            from config.settings import DATES_CONFIG

            config = DATES_CONFIG
        self.weights: Dict[str, int] = dict(config.get("weights") or {})
        self.max_future_skew = timedelta(hours=int(config.get("max_future_skew_hours", 36)))
        self.logger = get_logger().create_module_logger("dates.resolver")

    def _run(self, name: str, extractor: Callable[[], List[DateCandidate]]) -> List[DateCandidate]:
        try:
            return extractor()
        except Exception as exc:  # extractor bugs must not escape the resolver
            self.logger.debug(
                {"event": "dates.extractor.failed", "details": {"extractor": name, "error": str(exc)}}
            )
            return []

    def collect(
        self,
        url: str,
        *,
        html: Optional[str] = None,
        feed: Optional[Mapping[str, Optional[str]]] = None,
        sitemap_lastmod: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> List[DateCandidate]:
        reference = ensure_utc(now) if now else utcnow()
        weights = self.weights
        candidates: List[DateCandidate] = []

        candidates += self._run("url", lambda: extractors.from_url(url, weights))
        if feed:
            candidates += self._run("feed", lambda: extractors.from_feed(feed, weights))
        if html:
            soup = self._run_soup(html)
            if soup is not None:
                text = extractors.body_text(soup)
                candidates += self._run("jsonld", lambda: extractors.from_jsonld(soup, weights))
                candidates += self._run("meta", lambda: extractors.from_meta(soup, weights))
                candidates += self._run("time", lambda: extractors.from_time_tags(soup, weights))
                candidates += self._run(
                    "label", lambda: extractors.from_published_label(text, weights)
                )
                candidates += self._run(
                    "relative", lambda: extractors.from_relative(text, reference, weights)
                )
        if sitemap_lastmod:
            candidates += self._run(
                "sitemap", lambda: extractors.from_sitemap(sitemap_lastmod, weights)
            )

        candidates = [c for c in candidates if self._plausible(c, reference)]
        if not candidates and headers:
            candidates = [
                c
                for c in self._run("http", lambda: extractors.from_http_headers(headers, weights))
                if self._plausible(c, reference)
            ]
        return candidates

    def _run_soup(self, html: str):
        try:
            return extractors.load_html(html)
        except Exception as exc:
            self.logger.debug({"event": "dates.html.unparseable", "details": {"error": str(exc)}})
            return None

    def _plausible(self, candidate: DateCandidate, reference: datetime) -> bool:
        if candidate.value.year < MIN_PLAUSIBLE_YEAR:
            return False
        return candidate.value <= reference + self.max_future_skew

    def resolve(
        self,
        url: str,
        *,
        html: Optional[str] = None,
        feed: Optional[Mapping[str, Optional[str]]] = None,
        sitemap_lastmod: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        now: Optional[datetime] = None,
    ) -> ResolvedDate:
        candidates = self.collect(
            url,
            html=html,
            feed=feed,
            sitemap_lastmod=sitemap_lastmod,
            headers=headers,
            now=now,
        )
        return ResolvedDate.from_candidate(pick_best(candidates))


__all__ = ["DateResolver", "ResolvedDate"]
