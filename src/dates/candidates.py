"""Date candidates produced by the signal extractors and the best-pick rule."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping, Optional

from gridiron.config_schema import DEFAULT_DATE_WEIGHTS
from src.utils.datetime_utils import isoformat_utc


class PublishedSource(str, Enum):
    """Signal family a published date came from."""

    RSS = "rss"
    ATOM = "atom"
    DC = "dc"
    JSONLD = "jsonld"
    OG = "og"
    META = "meta"
    TIME_TAG = "time-tag"
    TEXT = "text"
    URL = "url"
    RELATIVE = "relative"
    SITEMAP = "sitemap"
    HTTP_HEADER = "http-header"
    MODIFIED = "modified"


# Families observed in the document itself; HTTP headers only count without them.
DOCUMENT_SOURCES = frozenset(source for source in PublishedSource if source is not PublishedSource.HTTP_HEADER)


@dataclass(frozen=True)
class DateCandidate:
    value: datetime
    raw: str
    source: PublishedSource
    confidence: int
    tz: Optional[str] = None

    @property
    def iso(self) -> str:
        return isoformat_utc(self.value)


def weight_for(source: PublishedSource, weights: Optional[Mapping[str, int]] = None) -> int:
    table = weights or DEFAULT_DATE_WEIGHTS
    return int(table.get(source.value, DEFAULT_DATE_WEIGHTS.get(source.value, 0)))


def make_candidate(
    value: datetime,
    raw: str,
    source: PublishedSource,
    weights: Optional[Mapping[str, int]] = None,
    tz: Optional[str] = None,
) -> DateCandidate:
    return DateCandidate(
        value=value,
        raw=raw,
        source=source,
        confidence=weight_for(source, weights),
        tz=tz,
    )


def pick_best(candidates: Iterable[DateCandidate]) -> Optional[DateCandidate]:
    """Highest confidence wins; equal confidence resolves to the earliest timestamp."""

    best: Optional[DateCandidate] = None
    for candidate in candidates:
        if best is None:
            best = candidate
            continue
        if candidate.confidence > best.confidence:
            best = candidate
        elif candidate.confidence == best.confidence and candidate.value < best.value:
            best = candidate
    return best


__all__ = [
    "DOCUMENT_SOURCES",
    "DateCandidate",
    "PublishedSource",
    "make_candidate",
    "pick_best",
    "weight_for",
]
