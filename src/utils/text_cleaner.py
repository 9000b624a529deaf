from __future__ import annotations

import html as _html
import re
import unicodedata
from typing import Iterable

from bs4 import BeautifulSoup


_BOILERPLATE_PATTERNS: Iterable[re.Pattern] = [
    re.compile(r"^\s*read more\s*$", re.I),
    re.compile(r"^\s*continue reading\s*$", re.I),
    re.compile(r"^\s*the post .* appeared first on .*", re.I),
]

_TITLE_PREFIXES = re.compile(
    r"^\s*(?:news|breaking|report|update|fantasy football|nfl)\s*[:|\-–—]\s+",
    re.I,
)
_TITLE_SITE_SUFFIX = re.compile(r"\s+[|–—-]\s+[^|–—-]{2,40}$")


def normalize_text(text: str) -> str:
    if not text:
        return ""
    text = _html.unescape(text)
    text = unicodedata.normalize("NFKC", text)
    text = text.replace("\x00", "").replace("\r", " ").replace("\n", " ")
    text = " ".join(text.split())
    return text.strip()


def clean_html(html: str) -> str:
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    for el in list(soup.find_all(string=True)):
        txt = normalize_text(str(el))
        if any(p.search(txt) for p in _BOILERPLATE_PATTERNS):
            el.extract()
    text = soup.get_text(" ")
    return normalize_text(text)


def clean_title(title: str, *, strip_site_suffix: bool = False) -> str:
    """Return a display title: entities decoded, whitespace collapsed, label prefixes removed.

    ``strip_site_suffix`` additionally drops a trailing ``| Site Name`` segment,
    which is what scraped ``<title>`` elements usually carry.
    """
    text = normalize_text(title)
    previous = None
    while previous != text:
        previous = text
        text = _TITLE_PREFIXES.sub("", text)
    if strip_site_suffix:
        stripped = _TITLE_SITE_SUFFIX.sub("", text)
        if len(stripped) >= 12:
            text = stripped
    return text.strip()


def lowered_words(text: str) -> str:
    """Lower-cased text with punctuation folded to single spaces, for keyword matching."""
    folded = re.sub(r"[^a-z0-9]+", " ", normalize_text(text).lower())
    return f" {folded.strip()} "
