# src/ingest/normalize.py
# Candidate -> typed partial article
# ==================================

"""
Builds the :class:`PartialArticle` for one kept candidate.

The identity key is always the canonical form of the candidate's own link,
so re-ingesting the same feed converges on the same row whether or not the
page could be fetched. A page-declared ``<link rel=canonical>`` and the
post-redirect URL only ever become *alternate* identities used to collapse
near-duplicate submissions, and generic section-root canonicals are ignored.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from src.classify import Classification, classify, extract_players, looks_like_player_page
from src.contracts import CandidateModel
from src.dates import DateResolver, ResolvedDate
from src.ingest.enrichment import PageSnapshot
from src.ingest.images import ImageSelector
from src.storage.merge import PartialArticle
from src.utils.datetime_utils import ensure_utc, utcnow
from src.utils.fingerprint import content_fingerprint
from src.utils.text_cleaner import clean_title, normalize_text
from src.utils.url_canonicalizer import CanonicalUrl, canonicalize

PUBLISHER_SUFFIXES = (
    re.compile(r"\s*[-–—]\s*fantasypros.*$", re.I),
    re.compile(r"\s*[-–—]\s*cbs sports.*$", re.I),
    re.compile(r"\s*[-–—]\s*yahoo sports.*$", re.I),
    re.compile(r"\s*[-–—]\s*rotowire.*$", re.I),
    re.compile(r"\s*[-–—]\s*numberfire.*$", re.I),
    re.compile(r"\s*[-–—]\s*nbc sports edge.*$", re.I),
    re.compile(r"\s*\|\s*[^|]*$"),
)

GENERIC_CANONICAL_PATHS = frozenset(
    {
        "",
        "/",
        "/news",
        "/nfl",
        "/nfl/news",
        "/fantasy",
        "/fantasy-football",
        "/fantasy/football",
        "/football",
        "/sports",
        "/articles",
        "/blog",
        "/home",
        "/index",
    }
)


def strip_publisher_suffix(title: str) -> str:
    text = normalize_text(title)
    for pattern in PUBLISHER_SUFFIXES:
        stripped = pattern.sub("", text).strip()
        # keep the title when stripping would leave almost nothing
        if len(stripped) >= 12:
            text = stripped
    return text


def cleaned_title_for(title: str) -> str:
    return clean_title(strip_publisher_suffix(title))


def _segments(path: str) -> List[str]:
    return [segment for segment in path.split("/") if segment]


def is_generic_canonical(declared: str, page_url: str) -> bool:
    """True when ``declared`` points at a section root or collapses a deep path."""

    try:
        declared_parts = urlparse(declared)
        page_parts = urlparse(page_url)
    except ValueError:
        return True
    path = declared_parts.path.rstrip("/").lower()
    if path in GENERIC_CANONICAL_PATHS:
        return True
    declared_host = (declared_parts.hostname or "").removeprefix("www.")
    page_host = (page_parts.hostname or "").removeprefix("www.")
    if declared_host and declared_host == page_host:
        page_depth = len(_segments(page_parts.path))
        declared_depth = len(_segments(declared_parts.path))
        if page_depth >= 2 and declared_depth <= 1 and declared_depth < page_depth:
            return True
    return False


def page_canonical(html: Optional[str]) -> Optional[str]:
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for link in soup.find_all("link", href=True):
        rel = link.get("rel") or []
        rels = [rel] if isinstance(rel, str) else rel
        if any(value.lower() == "canonical" for value in rels):
            href = link["href"].strip()
            if href.lower().startswith(("http://", "https://")):
                return href
    return None


def page_title(html: Optional[str]) -> Optional[str]:
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    for attrs in ({"property": "og:title"}, {"name": "twitter:title"}):
        tag = soup.find("meta", attrs=attrs)
        if tag and (tag.get("content") or "").strip():
            return tag["content"].strip()
    if soup.title and soup.title.string:
        return clean_title(soup.title.string, strip_site_suffix=True)
    return None


def alternate_identities(canon: CanonicalUrl, snapshot: Optional[PageSnapshot]) -> Tuple[str, ...]:
    alternates = [canon.url]
    if snapshot is not None:
        final = canonicalize(snapshot.final_url)
        if final.parsed:
            alternates.append(final.canonical)
        declared = page_canonical(snapshot.html)
        if declared and not is_generic_canonical(declared, snapshot.final_url):
            probed = canonicalize(declared)
            if probed.parsed:
                alternates.append(probed.canonical)
    return tuple(dict.fromkeys(u for u in alternates if u and u != canon.canonical))


@dataclass(frozen=True)
class NormalizedItem:
    partial: PartialArticle
    canonical: CanonicalUrl
    resolved: ResolvedDate
    classification: Classification
    image_from_page: bool = False


class ArticleNormalizer:
    """Canonicalizer, date resolver, classifier and image selection for one candidate."""

    def __init__(
        self,
        resolver: Optional[DateResolver] = None,
        images: Optional[ImageSelector] = None,
        classification_config: Optional[Mapping[str, Any]] = None,
    ) -> None:
        if classification_config is None:
            from config.settings import CLASSIFICATION_CONFIG

            classification_config = CLASSIFICATION_CONFIG
        self.resolver = resolver or DateResolver()
        self.images = images or ImageSelector()
        self.max_week = int(classification_config.get("max_week", 18))
        self.preseason_months = tuple(classification_config.get("preseason_months") or (6, 7, 8))

    def classify(self, title: str, url: str, summary: Optional[str], reference: datetime) -> Classification:
        return classify(
            title,
            url,
            summary,
            reference=reference,
            max_week=self.max_week,
            preseason_months=self.preseason_months,
        )

    def normalize(
        self,
        candidate: CandidateModel,
        *,
        source_id: Optional[int] = None,
        snapshot: Optional[PageSnapshot] = None,
        now: Optional[datetime] = None,
    ) -> NormalizedItem:
        now = ensure_utc(now) if now else utcnow()
        canon = canonicalize(candidate.link)

        raw_title = candidate.title or page_title(snapshot.html if snapshot else None) or ""
        cleaned = cleaned_title_for(raw_title)

        resolved = self.resolver.resolve(
            canon.url,
            html=snapshot.html if snapshot else None,
            feed=candidate.feed_dates(),
            sitemap_lastmod=candidate.sitemap_lastmod(),
            headers=snapshot.headers if snapshot else None,
            now=now,
        )
        classification = self.classify(
            cleaned, canon.url, candidate.description, resolved.published_at or now
        )

        image = self.images.usable(candidate.image_url, canon.url)
        image_from_page = False
        if image is None and snapshot is not None and self.images.enabled:
            image = self.images.from_page(snapshot.html, snapshot.final_url)
            image_from_page = image is not None

        fingerprint = content_fingerprint(cleaned, candidate.description)
        partial = PartialArticle.build(
            canon.canonical,
            alternate_urls=alternate_identities(canon, snapshot),
            url=canon.url,
            domain=canon.domain,
            source_id=source_id,
            title=normalize_text(raw_title),
            cleaned_title=cleaned,
            summary=candidate.description,
            author=candidate.author,
            image_url=image,
            content_hash=fingerprint.digest,
            simhash=f"{fingerprint.simhash:016x}",
            published_at=resolved.published_at,
            published_raw=resolved.published_raw,
            published_source=resolved.published_source,
            published_confidence=resolved.published_confidence,
            published_tz=resolved.published_tz,
            topics=classification.topics,
            primary_topic=classification.primary,
            secondary_topic=classification.secondary,
            week=classification.week,
            players=extract_players(cleaned, canon.url),
            is_static=classification.is_static,
            static_type=classification.static_type,
            is_player_page=looks_like_player_page(canon.url, cleaned),
        )
        return NormalizedItem(
            partial=partial,
            canonical=canon,
            resolved=resolved,
            classification=classification,
            image_from_page=image_from_page,
        )


__all__ = [
    "ArticleNormalizer",
    "NormalizedItem",
    "alternate_identities",
    "cleaned_title_for",
    "is_generic_canonical",
    "page_canonical",
    "page_title",
    "strip_publisher_suffix",
]
