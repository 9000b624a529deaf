"""Content fingerprints: an exact sha256 digest plus a 64-bit SimHash.

The digest is the duplicate key; the SimHash is stored alongside it as a
16-digit hex column for offline near-duplicate analysis.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Optional, Tuple

from src.utils.text_cleaner import clean_html, normalize_text


SIMHASH_BITS = 64


@dataclass(frozen=True)
class ContentFingerprint:
    digest: str
    simhash: int


def normalize_article_text(title: str, summary: str) -> Tuple[str, str, str]:
    """Return normalized title, summary (HTML cleaned) and combined text."""
    normalized_title = normalize_text(title or "").lower()
    normalized_summary = normalize_text(clean_html(summary or "")).lower()
    combined = f"{normalized_title} {normalized_summary}".strip()
    return normalized_title, normalized_summary, combined


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def simhash64(text: str, num_bits: int = SIMHASH_BITS) -> int:
    if not text:
        return 0
    tokens = text.split()
    if not tokens:
        return 0
    vector = [0] * num_bits
    for token in tokens:
        h = int(
            hashlib.md5(token.encode("utf-8"), usedforsecurity=False).hexdigest(), 16
        )
        for i in range(num_bits):
            bit = (h >> i) & 1
            vector[i] += 1 if bit else -1
    result = 0
    for i in range(num_bits):
        if vector[i] >= 0:
            result |= 1 << i
    return result


def content_fingerprint(title: str, summary: Optional[str] = None) -> ContentFingerprint:
    _, _, combined = normalize_article_text(title, summary or "")
    return ContentFingerprint(digest=sha256_hex(combined), simhash=simhash64(combined))
