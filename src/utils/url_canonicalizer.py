"""Utilities for deterministic URL canonicalization.

Rules implemented:
- Unwrap redirector links (``?url=``, ``?u=``, Google ``/url?q=`` ...) up to
  four hops before anything else.
- Lower-case scheme/host, upgrade http to https, remove default ports.
- Strip the ``www.``/``m.``/``amp.`` host prefixes and trailing ``/amp``.
- Strip tracking parameters (utm_*, click ids, referrer markers).
- Collapse duplicate slashes, remove fragments, trim a trailing slash on
  every path except the root.
- Sort the remaining query parameters.

The canonical string is the storage identity key, so the rules only ever
remove information that does not change which article is addressed.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Iterable, Optional, Tuple
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlparse, urlunparse

TRACKING_PARAM_PREFIXES: Tuple[str, ...] = ("utm_", "icid")

TRACKING_PARAMS: Tuple[str, ...] = (
    "fbclid",
    "gclid",
    "yclid",
    "mc_cid",
    "mc_eid",
    "mkt_tok",
    "igshid",
    "vero_conv",
    "vero_id",
    "_hsenc",
    "_hsmi",
    "spm",
    "sr",
    "ref",
    "ref_src",
    "cmp",
    "cmpid",
    "cmpid2",
    "camp",
    "campaign",
    "eid",
    "mibextid",
    "src",
    "guce_referrer",
    "guce_referrer_sig",
    "guccounter",
    "amp",
    "amp_js_v",
    "amp_gsa",
)

REDIRECT_PARAM_KEYS: Tuple[str, ...] = (
    "url",
    "u",
    "q",
    "to",
    "dest",
    "destination",
    "redirect",
    "redirect_url",
    "redir",
    "rd",
    "r",
    "target",
    "link",
    "out",
    "go",
)

# Hosts known to embed the destination inside the path
REDIRECTOR_HOSTS: Tuple[str, ...] = (
    "l.facebook.com",
    "out.reddit.com",
    "news.google.com",
    "flip.it",
    "apple.news",
    "r.zemanta.com",
    "feedproxy.google.com",
)

MAX_REDIRECT_HOPS = 4

STRIPPED_HOST_PREFIXES: Tuple[str, ...] = ("www.", "m.", "amp.")

AMP_PATH_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"/amp/?$", re.IGNORECASE),
    re.compile(r"\.amp$", re.IGNORECASE),
)

SAFE_PATH_CHARS = "@:$&'()*+,;=-._~!%/"

_ABSOLUTE_HTTP = re.compile(r"^https?://", re.IGNORECASE)
_EMBEDDED_URL = re.compile(r"https?://.+$", re.IGNORECASE)
_SCHEME_PREFIX = re.compile(r"^[a-z][a-z0-9+.-]*:(?!\d)", re.IGNORECASE)


@dataclass(frozen=True)
class CanonicalUrl:
    """Result of :func:`canonicalize`.

    ``parsed`` is False when the input could not be interpreted as an
    absolute URL; all three strings then hold the raw input unchanged and
    callers must treat the identity as low confidence.
    """

    url: str
    canonical: str
    domain: str
    parsed: bool = True


def unwrap_once(href: str) -> Optional[str]:
    """Return the destination of a redirector link, or ``None``."""

    try:
        parsed = urlparse(href)
    except ValueError:
        return None
    if not parsed.netloc:
        return None

    for key, value in parse_qsl(parsed.query, keep_blank_values=False):
        if key.lower() in REDIRECT_PARAM_KEYS and _ABSOLUTE_HTTP.match(value.strip()):
            return value.strip()

    host = parsed.netloc.lower()
    if any(host == known or host.endswith("." + known) for known in REDIRECTOR_HOSTS):
        match = _EMBEDDED_URL.search(unquote(parsed.path))
        if match:
            return match.group(0)
    return None


def unwrap_redirects(href: str, max_hops: int = MAX_REDIRECT_HOPS) -> str:
    """Follow :func:`unwrap_once` until it stops changing the URL."""

    current = href
    for _ in range(max_hops):
        following = unwrap_once(current)
        if not following or following == current:
            break
        current = following
    return current


def _clean_host(host: str) -> str:
    host = host.lower().rstrip(".")
    for prefix in STRIPPED_HOST_PREFIXES:
        if host.startswith(prefix) and host.count(".") > 1:
            return host[len(prefix) :]
    return host


def _normalize_path(path: str) -> str:
    if not path:
        return "/"
    decoded = re.sub(r"//+", "/", unquote(path))
    normalized = posixpath.normpath(decoded)
    if normalized in (".", "//"):
        normalized = "/"
    previous = None
    while previous != normalized:
        previous = normalized
        for pattern in AMP_PATH_PATTERNS:
            normalized = pattern.sub("", normalized) or "/"
    if normalized != "/" and normalized.endswith("/"):
        normalized = normalized[:-1]
    return quote(normalized, safe=SAFE_PATH_CHARS)


def _is_tracking(key: str) -> bool:
    lowered = key.lower()
    if any(lowered.startswith(prefix) for prefix in TRACKING_PARAM_PREFIXES):
        return True
    return lowered in TRACKING_PARAMS


def _filter_query_params(pairs: Iterable[Tuple[str, str]]) -> Iterable[Tuple[str, str]]:
    seen = set()
    for key, value in pairs:
        if not key or _is_tracking(key) or value == "":
            continue
        pair = (key, value)
        if pair in seen:
            continue
        seen.add(pair)
        yield pair


def _split_netloc(netloc: str, scheme: str) -> str:
    netloc = netloc.lower()
    if "@" in netloc:
        netloc = netloc.rsplit("@", 1)[1]
    if ":" in netloc and not netloc.endswith("]"):
        host, port = netloc.rsplit(":", 1)
        if port in ("", "80", "443") or (scheme == "https" and port == "443"):
            return host
    return netloc


def _build_canonical(raw: str) -> Optional[str]:
    """Return the canonical identity string, or ``None`` when ``raw`` is unusable."""
    try:
        target = unwrap_redirects(raw)
        if not _SCHEME_PREFIX.match(target):
            # scheme-less input such as ``example.com/foo`` or ``example.com:8080/foo``
            target = f"https://{target.lstrip('/')}"
        parsed = urlparse(target)
        scheme = parsed.scheme.lower()
        netloc = parsed.netloc
        path = parsed.path
        if scheme not in ("http", "https"):
            return None
        host = _clean_host(_split_netloc(netloc, scheme))
        if not host or ("." not in host and host != "localhost") or " " in host:
            return None
        query_pairs = sorted(
            _filter_query_params(parse_qsl(parsed.query, keep_blank_values=False))
        )
        return urlunparse(
            ("https", host, _normalize_path(path), "", urlencode(query_pairs), "")
        )
    except ValueError:
        return None


_CACHE_SIZE = -1
_cached_build: Callable[[str], Optional[str]] = _build_canonical


def configure_canonicalization_cache(size: int) -> None:
    """Configure the LRU cache shared by :func:`canonicalize` and :func:`canonicalize_url`."""

    global _cached_build, _CACHE_SIZE
    if size == _CACHE_SIZE:
        return
    if size <= 0:
        _cached_build = _build_canonical
    else:
        _cached_build = lru_cache(maxsize=size)(_build_canonical)
    _CACHE_SIZE = size


def clear_canonicalization_cache() -> None:
    """Clear the active canonicalization cache if enabled."""

    if hasattr(_cached_build, "cache_clear"):
        _cached_build.cache_clear()


def canonicalization_cache_info():
    """Return ``functools`` cache statistics, or ``None`` when caching is off."""

    info = getattr(_cached_build, "cache_info", None)
    return info() if info is not None else None


configure_canonicalization_cache(4096)


def canonicalize_url(url: str) -> str:
    """Return the canonical identity string for ``url`` (raw input on failure)."""
    if not url or not url.strip():
        return url
    return _cached_build(url.strip()) or url.strip()


def domain_of(url: str) -> Optional[str]:
    """Return the host of ``url`` without a leading ``www.``, or ``None``."""

    try:
        host = urlparse(url.strip()).hostname
    except ValueError:
        return None
    if not host:
        return None
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def canonicalize(raw_url: str) -> CanonicalUrl:
    """Normalize ``raw_url`` into its last-seen variant, identity key and domain."""

    text = (raw_url or "").strip()
    canonical = _cached_build(text) if text else None
    domain = domain_of(canonical) if canonical else None
    if canonical is None or domain is None:
        return CanonicalUrl(url=raw_url, canonical=raw_url, domain=raw_url, parsed=False)
    url = unwrap_redirects(text)
    if not _ABSOLUTE_HTTP.match(url):
        url = f"https://{url.lstrip('/')}"
    return CanonicalUrl(url=url, canonical=canonical, domain=domain)


__all__ = [
    "CanonicalUrl",
    "canonicalize",
    "canonicalize_url",
    "canonicalization_cache_info",
    "clear_canonicalization_cache",
    "configure_canonicalization_cache",
    "domain_of",
    "unwrap_once",
    "unwrap_redirects",
]
