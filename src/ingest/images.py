# src/ingest/images.py
# Representative image selection and backfill
# ===========================================

"""
Picks a usable representative image for an article.

Candidates come from the feed entry, ``og:image`` / ``twitter:image`` meta
tags and JSON-LD ``image`` nodes. Anything that looks like an icon, sprite,
logo, avatar or tiny thumbnail is rejected, as are SVGs and non-http URLs.
Next.js ``/_next/image?url=...`` proxies are unwrapped to the original asset.

:class:`ImageBackfiller` revisits stored rows that still have no image and
stamps ``image_checked_at`` whether or not a better image was found.
"""

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Iterable, List, Mapping, Optional
from urllib.parse import parse_qs, unquote, urljoin, urlparse

from bs4 import BeautifulSoup

from src.dates.jsonld import find_images, parse_block
from src.ingest.observers import EventRecord, NullObserver
from src.utils.logger import build_log_payload, get_logger

IMAGE_META_KEYS = (
    ("property", "og:image:secure_url"),
    ("property", "og:image"),
    ("name", "og:image"),
    ("name", "twitter:image"),
    ("name", "twitter:image:src"),
    ("property", "twitter:image"),
)
AUTHOR_IMAGE_MARKERS = ("authoring-images", "/byline/", "/profile/", "/profiles/", "/authors/")
SIGNED_RESIZERS = (
    re.compile(r"://[^/]*masslive\.com/resizer/", re.I),
    re.compile(r"://[^/]*advance\.digital/resizer/", re.I),
)
_SVG = re.compile(r"\.svg(\?|#|$)", re.I)

DEFAULT_WEAK_MARKERS = ("favicon", "apple-touch-icon", "sprite", "logo", "avatar", "headshot")


def unwrap_next_image(url: str) -> str:
    """Return the asset behind a Next.js image optimizer URL, or ``url`` itself."""
    parsed = urlparse(url)
    if parsed.path.endswith("/_next/image"):
        raw = parse_qs(parsed.query).get("url")
        if raw:
            decoded = unquote(raw[0])
            if decoded.lower().startswith(("http://", "https://")):
                return decoded
    return url


def _dimension_hints(query: str) -> List[int]:
    values = []
    params = parse_qs(query)
    for key in ("w", "width", "h", "height"):
        for raw in params.get(key, []):
            if raw.isdigit():
                values.append(int(raw))
    return values


def normalize_image_url(
    url: Optional[str],
    *,
    base_url: Optional[str] = None,
    weak_markers: Iterable[str] = DEFAULT_WEAK_MARKERS,
    min_dimension: int = 200,
) -> Optional[str]:
    """Return an absolute, usable image URL or ``None`` when the image is weak."""

    if not url or not url.strip():
        return None
    candidate = unwrap_next_image(url.strip())
    if candidate.startswith("//"):
        candidate = "https:" + candidate
    elif base_url and not urlparse(candidate).scheme:
        candidate = urljoin(base_url, candidate)

    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    if _SVG.search(candidate):
        return None
    if any(pattern.search(candidate) for pattern in SIGNED_RESIZERS):
        return None

    path = parsed.path.lower()
    lowered = candidate.lower()
    if any(marker.lower() in path for marker in weak_markers):
        return None
    if any(marker in lowered for marker in AUTHOR_IMAGE_MARKERS):
        return None
    hints = _dimension_hints(parsed.query)
    if hints and max(hints) < min_dimension:
        return None
    return candidate


def is_weak_image(url: Optional[str], **options: Any) -> bool:
    return normalize_image_url(url, **options) is None


def image_candidates(html: str) -> List[str]:
    """Image URLs declared by a page, best signals first."""
    soup = BeautifulSoup(html, "html.parser")
    found: List[str] = []
    for attr, key in IMAGE_META_KEYS:
        for tag in soup.find_all("meta", attrs={attr: key}):
            content = (tag.get("content") or "").strip()
            if content:
                found.append(content)
    for script in soup.find_all("script", attrs={"type": re.compile(r"ld\+json", re.I)}):
        document = parse_block(script.string or script.get_text() or "")
        if document is not None:
            found.extend(find_images(document))
    return list(dict.fromkeys(found))


def find_article_image(
    html: Optional[str],
    base_url: str,
    *,
    weak_markers: Iterable[str] = DEFAULT_WEAK_MARKERS,
    min_dimension: int = 200,
) -> Optional[str]:
    if not html:
        return None
    markers = tuple(weak_markers)
    for raw in image_candidates(html):
        usable = normalize_image_url(
            raw, base_url=base_url, weak_markers=markers, min_dimension=min_dimension
        )
        if usable:
            return usable
    return None


class ImageSelector:
    """Config-bound wrapper used by the orchestrator."""

    def __init__(self, config: Optional[Mapping[str, Any]] = None) -> None:
        if config is None:
            from config.settings import IMAGES_CONFIG

            config = IMAGES_CONFIG
        self.enabled = bool(config.get("backfill_enabled", True))
        self.weak_markers = tuple(config.get("weak_markers") or DEFAULT_WEAK_MARKERS)
        self.min_dimension = int(config.get("min_dimension", 200))

    def usable(self, url: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
        return normalize_image_url(
            url,
            base_url=base_url,
            weak_markers=self.weak_markers,
            min_dimension=self.min_dimension,
        )

    def is_weak(self, url: Optional[str]) -> bool:
        return is_weak_image(url, weak_markers=self.weak_markers, min_dimension=self.min_dimension)

    def from_page(self, html: Optional[str], base_url: str) -> Optional[str]:
        return find_article_image(
            html, base_url, weak_markers=self.weak_markers, min_dimension=self.min_dimension
        )


@dataclass(frozen=True)
class BackfillSummary:
    checked: int = 0
    found: int = 0


class ImageBackfiller:
    """Best-effort image lookup for stored rows without a usable image."""

    def __init__(self, db, fetcher, observer=None, selector: Optional[ImageSelector] = None) -> None:
        self.db = db
        self.fetcher = fetcher
        self.observer = observer or NullObserver()
        self.selector = selector or ImageSelector()
        self.module_logger = get_logger().create_module_logger("ingest.images")

    def backfill(self, limit: int = 50, retry_after: timedelta = timedelta(days=7)) -> BackfillSummary:
        rows = self.db.articles_needing_images(
            limit=limit, retry_after=retry_after, is_weak=self.selector.is_weak
        )
        if not rows:
            return BackfillSummary()

        pages = self.fetcher.fetch_pages(row.url or row.canonical_url for row in rows)
        found = 0
        for row in rows:
            page_url = row.url or row.canonical_url
            snapshot = pages.get(page_url)
            image = None
            if snapshot is not None:
                image = self.selector.from_page(snapshot.html, snapshot.final_url)
            self.db.record_image_check(row.id, image)
            reason = "image_backfilled" if image else "image_checked"
            found += 1 if image else 0
            try:
                self.observer.on_event(
                    EventRecord(
                        reason=reason,
                        source_id=row.source_id,
                        url=row.canonical_url,
                        domain=row.domain,
                        title=row.title,
                        detail=image,
                    )
                )
            except Exception as exc:
                self.module_logger.warning(
                    build_log_payload("ingest.observer.failed", details={"error": str(exc)})
                )

        self.module_logger.info(
            build_log_payload(
                "ingest.images.backfill_done", details={"checked": len(rows), "found": found}
            )
        )
        return BackfillSummary(checked=len(rows), found=found)


__all__ = [
    "BackfillSummary",
    "ImageBackfiller",
    "ImageSelector",
    "find_article_image",
    "image_candidates",
    "is_weak_image",
    "normalize_image_url",
    "unwrap_next_image",
]
