"""URL-shape checks deciding whether a link is worth ingesting."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import parse_qs, unquote, urlparse

from src.utils.text_cleaner import lowered_words


@dataclass(frozen=True)
class FilterDecision:
    """Outcome of a filter check.

    ``stage`` is ``"url"`` for structural rejections and ``"content"`` for
    editorial or per-source rejections; the orchestrator maps the two onto
    different event reasons.
    """

    keep: bool
    reason: Optional[str] = None
    stage: str = "url"

    @classmethod
    def accept(cls) -> "FilterDecision":
        return cls(keep=True)

    @classmethod
    def reject(cls, reason: str, stage: str = "url") -> "FilterDecision":
        return cls(keep=False, reason=reason, stage=stage)


_SECTION_PATH = re.compile(
    r"(/|^)(articles|index|rankings|tools|tag|tags|category|categories|author|authors|"
    r"team|teams|topic|topics|series|search|videos?|podcasts?|shop|about|contact|privacy|terms)(/|$)",
    re.I,
)
_PAGINATION = re.compile(r"(^|/)page/\d+(/|$)", re.I)
_FILE_TAIL = re.compile(r"^(|index|feed|rss|json|xml)$", re.I)
_EXTENSION = re.compile(r"\.(html?|php|aspx?)$", re.I)
_DATED_PATH = re.compile(r"/20\d{2}[/-]\d{1,2}(?:[/-]\d{1,2})?/")
_NUMERIC_ID = re.compile(r"\b\d{4,}\b")
_HYPHENATED = re.compile(r"[a-z][-_][a-z]", re.I)
_DASHED_TOKEN = re.compile(r"^[a-z0-9-]{16,}$", re.I)
_CONTENT_ID_PARAMS = ("id", "storyId", "cid")

_UTILITY_PATH = re.compile(r"sitemap|google-news|where-to-watch|(^|/)(watch|videos?)(/|$)", re.I)
_NON_ARTICLE_MARKERS = (
    "/tags/",
    "/tag/",
    "/category/",
    "/categories/",
    "/author/",
    "/authors/",
    "/login",
    "/signup",
    "/subscribe",
    "/store",
    "/shop",
    "/page/",
)


def _http_url(link: str):
    try:
        parsed = urlparse(link)
    except ValueError:
        return None
    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        return None
    return parsed


def is_likely_article_url(link: str) -> bool:
    """Return True when the URL shape looks like a single article rather than an index."""

    parsed = _http_url(link or "")
    if parsed is None:
        return False

    path = re.sub(r"/+$", "", parsed.path or "/")
    if not path or path == "/":
        return False

    segments = [segment for segment in path.split("/") if segment]
    last = _EXTENSION.sub("", segments[-1] if segments else "")

    if _SECTION_PATH.search(path):
        return False
    if _PAGINATION.search(path):
        return False
    if _FILE_TAIL.match(last):
        return False

    if _DATED_PATH.search(path + "/"):
        return True
    if _NUMERIC_ID.search(path):
        return True
    if len(segments) >= 3:
        return True
    if len(segments) >= 2 and _HYPHENATED.search(last):
        return True

    params = parse_qs(parsed.query)
    if any(name in params for name in _CONTENT_ID_PARAMS):
        return True

    words = [word for word in re.split(r"[-_]+", last) if word]
    if len(words) >= 3 and len(last) >= 12:
        return True
    return bool(_DASHED_TOKEN.match(last) and "-" in last)


def is_utility_url(link: str) -> bool:
    """Homepages, sitemaps, watch pages and similar navigation targets."""

    parsed = _http_url(link or "")
    if parsed is None:
        return True
    path = parsed.path.lower()
    if path in ("", "/"):
        return True
    return bool(_UTILITY_PATH.search(path))


def looks_like_non_article(link: str) -> bool:
    parsed = _http_url(link or "")
    if parsed is None:
        return True
    path = parsed.path.lower()
    return path.rstrip("/").endswith("/fantasy") or any(
        marker in path for marker in _NON_ARTICLE_MARKERS
    )


def host_matches(host: str, domains: Iterable[str]) -> bool:
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    for domain in domains:
        domain = domain.lower().lstrip(".")
        if host == domain or host.endswith(f".{domain}"):
            return True
    return False


def find_deny_keyword(title: str, link: str, keywords: Iterable[str]) -> Optional[str]:
    """Return the first deny keyword found as a whole word in title or URL path."""

    try:
        parsed = urlparse(link)
        path = unquote(f"{parsed.path} {parsed.query}")
    except ValueError:
        path = ""
    haystack = lowered_words(f"{title or ''} {path}")
    for keyword in keywords:
        needle = lowered_words(keyword)
        if needle.strip() and needle in haystack:
            return keyword
    return None


def check_url(
    link: str,
    title: str = "",
    *,
    deny_domains: Iterable[str] = (),
    deny_keywords: Iterable[str] = (),
) -> FilterDecision:
    """Structural URL filter. Never raises; malformed links are rejected."""

    if not link or not link.strip():
        return FilterDecision.reject("empty_link")
    parsed = _http_url(link.strip())
    if parsed is None:
        return FilterDecision.reject("malformed_url")
    if host_matches(parsed.hostname, deny_domains):
        return FilterDecision.reject("deny_domain")
    keyword = find_deny_keyword(title, link, deny_keywords)
    if keyword:
        return FilterDecision.reject(f"deny_keyword:{keyword}")
    if is_utility_url(link):
        return FilterDecision.reject("utility_url")
    if looks_like_non_article(link):
        return FilterDecision.reject("non_article_path")
    if not is_likely_article_url(link):
        return FilterDecision.reject("not_article_shape")
    return FilterDecision.accept()


__all__ = [
    "FilterDecision",
    "check_url",
    "find_deny_keyword",
    "host_matches",
    "is_likely_article_url",
    "is_utility_url",
    "looks_like_non_article",
]
