"""Independent published-date signal extractors.

Each extractor returns a (possibly empty) list of candidates. Values that
cannot be parsed are dropped here, at the extractor, and never raise.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional, Tuple

from bs4 import BeautifulSoup
from dateutil.relativedelta import relativedelta

from src.dates.candidates import DateCandidate, PublishedSource, make_candidate
from src.dates.jsonld import parse_block, visit
from src.utils.datetime_utils import parse_to_utc_with_tzinfo

Weights = Optional[Mapping[str, int]]

_URL_DATE_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"/(20\d{2}|19\d{2})/(\d{1,2})/(\d{1,2})(?:/|$)"),
    re.compile(r"(?<!\d)(20\d{2}|19\d{2})-(\d{1,2})-(\d{1,2})(?!\d)"),
)

_META_SELECTORS: Tuple[Tuple[str, str, PublishedSource], ...] = (
    ("property", "article:published_time", PublishedSource.OG),
    ("property", "og:published_time", PublishedSource.OG),
    ("property", "article:modified_time", PublishedSource.MODIFIED),
    ("property", "og:updated_time", PublishedSource.MODIFIED),
    ("name", "date", PublishedSource.META),
    ("name", "publish-date", PublishedSource.META),
    ("name", "pubdate", PublishedSource.META),
    ("itemprop", "datepublished", PublishedSource.META),
    ("name", "parsely-pub-date", PublishedSource.META),
    ("name", "publication_date", PublishedSource.META),
    ("name", "publish_date", PublishedSource.META),
    ("name", "pub_date", PublishedSource.META),
    ("name", "sailthru.date", PublishedSource.META),
    ("name", "dc.date", PublishedSource.DC),
    ("name", "dc.date.issued", PublishedSource.DC),
    ("name", "dcterms.created", PublishedSource.DC),
)

_LABEL_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"Published\s*(?:on\s*)?[:\-]?\s*([A-Za-z]{3,9}\.?\s+\d{1,2},\s+\d{4})", re.I),
    re.compile(r"Published\s*(?:on\s*)?[:\-]?\s*(\d{1,2}[/-]\d{1,2}[/-]\d{2,4})", re.I),
    re.compile(r"Published\s*(?:on\s*)?[:\-]?\s*(\d{4}-\d{2}-\d{2})", re.I),
)
_LABEL_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%b. %d, %Y", "%m/%d/%Y", "%m/%d/%y", "%m-%d-%Y", "%Y-%m-%d")

_RELATIVE_PATTERN = re.compile(
    r"(?:Published|Updated)?\s*(\d+)\s*(seconds?|secs?|minutes?|mins?|hours?|hrs?|h|m|days?|weeks?|months?|years?)\s+ago\b",
    re.I,
)
_RELATIVE_UNITS: Dict[str, str] = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}

_FEED_FAMILIES: Tuple[PublishedSource, ...] = (
    PublishedSource.RSS,
    PublishedSource.ATOM,
    PublishedSource.DC,
    PublishedSource.META,
    PublishedSource.MODIFIED,
)


def _from_raw(raw: Optional[str], source: PublishedSource, weights: Weights) -> Optional[DateCandidate]:
    if raw is None or not str(raw).strip():
        return None
    parsed = parse_to_utc_with_tzinfo(str(raw).strip())
    if parsed is None:
        return None
    value, _, tz_name = parsed
    return make_candidate(value, str(raw).strip(), source, weights, tz=tz_name)


def load_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def from_url(url: str, weights: Weights = None) -> List[DateCandidate]:
    for pattern in _URL_DATE_PATTERNS:
        match = pattern.search(url or "")
        if not match:
            continue
        year, month, day = (int(part) for part in match.groups())
        try:
            value = datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            continue
        return [make_candidate(value, match.group(0).strip("/"), PublishedSource.URL, weights)]
    return []


def from_feed(entry: Mapping[str, Optional[str]], weights: Weights = None) -> List[DateCandidate]:
    """``entry`` maps a family tag (``rss``, ``atom``, ``dc``, ``modified``) to its raw text."""
    candidates = []
    for family in _FEED_FAMILIES:
        candidate = _from_raw(entry.get(family.value), family, weights)
        if candidate:
            candidates.append(candidate)
    return candidates


def from_jsonld(soup: BeautifulSoup, weights: Weights = None) -> List[DateCandidate]:
    candidates = []
    for script in soup.find_all("script", attrs={"type": re.compile(r"ld\+json", re.I)}):
        document = parse_block(script.string or script.get_text() or "")
        if document is None:
            continue
        for match in visit(document):
            source = (
                PublishedSource.MODIFIED if match.key == "dateModified" else PublishedSource.JSONLD
            )
            candidate = _from_raw(match.value, source, weights)
            if candidate:
                candidates.append(candidate)
    return candidates


def from_meta(soup: BeautifulSoup, weights: Weights = None) -> List[DateCandidate]:
    index: Dict[Tuple[str, str], str] = {}
    for tag in soup.find_all("meta"):
        content = (tag.get("content") or "").strip()
        if not content:
            continue
        for attr in ("property", "name", "itemprop"):
            value = tag.get(attr)
            if value:
                index.setdefault((attr, value.strip().lower()), content)

    candidates = []
    for attr, name, source in _META_SELECTORS:
        candidate = _from_raw(index.get((attr, name)), source, weights)
        if candidate:
            candidates.append(candidate)
    return candidates


def from_time_tags(soup: BeautifulSoup, weights: Weights = None) -> List[DateCandidate]:
    candidates = []
    for tag in soup.find_all("time"):
        candidate = _from_raw(tag.get("datetime"), PublishedSource.TIME_TAG, weights)
        if candidate:
            candidates.append(candidate)
    return candidates


def _parse_label(text: str) -> Optional[datetime]:
    cleaned = " ".join(text.split())
    for fmt in _LABEL_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    parsed = parse_to_utc_with_tzinfo(cleaned)
    return parsed[0] if parsed else None


def from_published_label(text: str, weights: Weights = None) -> List[DateCandidate]:
    """Visible ``Published <date>`` labels in body text; the first parseable one wins."""
    for pattern in _LABEL_PATTERNS:
        match = pattern.search(text or "")
        if not match:
            continue
        value = _parse_label(match.group(1))
        if value is not None:
            return [make_candidate(value, match.group(1), PublishedSource.TEXT, weights)]
    return []


def _relative_delta(amount: int, unit: str):
    unit = unit.lower()
    if unit.startswith("mo"):
        return relativedelta(months=amount)
    if unit.startswith("y"):
        return relativedelta(years=amount)
    key = _RELATIVE_UNITS.get(unit[0])
    if key is None:
        return None
    return timedelta(**{key: amount})


def from_relative(text: str, now: datetime, weights: Weights = None) -> List[DateCandidate]:
    """``45m ago`` / ``3 hours ago`` phrases resolved against ``now``."""
    match = _RELATIVE_PATTERN.search(text or "")
    if not match:
        return []
    delta = _relative_delta(int(match.group(1)), match.group(2))
    if delta is None:
        return []
    value = (now - delta).astimezone(timezone.utc)
    return [make_candidate(value, match.group(0).strip(), PublishedSource.RELATIVE, weights, tz="UTC")]


def from_sitemap(lastmod: Optional[str], weights: Weights = None) -> List[DateCandidate]:
    candidate = _from_raw(lastmod, PublishedSource.SITEMAP, weights)
    return [candidate] if candidate else []


def from_http_headers(headers: Mapping[str, str], weights: Weights = None) -> List[DateCandidate]:
    lowered = {str(key).lower(): value for key, value in headers.items()}
    candidates = []
    for name in ("last-modified", "date"):
        candidate = _from_raw(lowered.get(name), PublishedSource.HTTP_HEADER, weights)
        if candidate:
            candidates.append(candidate)
    return candidates


def body_text(soup: BeautifulSoup) -> str:
    body = soup.body or soup
    return " ".join(body.get_text(" ").split())


__all__ = [
    "body_text",
    "from_feed",
    "from_http_headers",
    "from_jsonld",
    "from_meta",
    "from_published_label",
    "from_relative",
    "from_sitemap",
    "from_time_tags",
    "from_url",
    "load_html",
]
