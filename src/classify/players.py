"""Player name inference from headlines and player-page detection."""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import unquote, urlparse

STOP_WORDS = frozenset(
    {
        "diagnosed", "with", "out", "vs", "at", "ruled", "placed", "signs", "agrees",
        "trade", "injury", "injured", "activated", "reinstated", "questionable",
        "doubtful", "probable", "update", "news", "notes", "expected", "likely",
        "season", "game", "practice", "status", "listed", "concussion", "hamstring",
        "ankle", "knee", "groin", "back", "fracture", "tear", "week", "fantasy",
        "football", "nfl", "waiver", "rankings", "start", "sit",
    }
)

_LABEL_PREFIX = re.compile(r"^[A-Za-z ]{2,20}:\s+")
_CAPITALIZED = re.compile(r"^[A-Z](?:[a-z'.-]|(?<=[a-z'])[A-Z])*$|^[A-Z]\.[A-Z]\.?$")
_PLAYER_PATH = re.compile(r"/(players?|player-news)/[a-z0-9-]+(?:/|\.php|$)", re.I)
_NAME_ONLY_TITLE = re.compile(r"^[A-Z][A-Za-z.'-]+( [A-Z][A-Za-z.'-]+){1,3}$")


def extract_likely_name(title: Optional[str]) -> Optional[str]:
    """Return the leading run of two or three capitalized tokens, if any."""

    if not title:
        return None
    text = _LABEL_PREFIX.sub("", title.strip()).replace("’", "'")
    text = re.sub(r"'s\b", "", text)

    parts: List[str] = []
    for raw in text.split():
        word = re.sub(r"[^\w'.-]", "", raw).rstrip(".")
        if not word:
            if parts:
                break
            continue
        if parts and word.lower() in STOP_WORDS:
            break
        if _CAPITALIZED.match(word) and word.lower() not in STOP_WORDS:
            parts.append(word)
            if len(parts) == 3:
                break
            continue
        if parts:
            break

    if len(parts) >= 2:
        return " ".join(parts)
    return None


def extract_players(title: Optional[str], url: Optional[str] = None) -> List[str]:
    """Player names referenced by the article; slug-derived names come from player URLs."""

    names: List[str] = []
    name = extract_likely_name(title)
    if name:
        names.append(name)
    if url:
        try:
            path = unquote(urlparse(url).path)
        except ValueError:
            path = ""
        match = _PLAYER_PATH.search(path)
        if match:
            slug = path[match.start() :].strip("/").split("/")[1]
            slug = re.sub(r"\.php$", "", slug)
            slug_name = " ".join(part.capitalize() for part in slug.split("-") if part.isalpha())
            if slug_name and slug_name.count(" ") >= 1 and slug_name not in names:
                names.append(slug_name)
    return names


def looks_like_player_page(url: Optional[str], title: Optional[str] = None) -> bool:
    try:
        path = unquote(urlparse(url or "").path)
    except ValueError:
        path = ""
    if _PLAYER_PATH.search(path):
        return True
    return bool(title and _NAME_ONLY_TITLE.match(title.strip()))


def to_player_key(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.strip().lower()).strip("-")
    return f"nfl:name:{slug}"


__all__ = [
    "STOP_WORDS",
    "extract_likely_name",
    "extract_players",
    "looks_like_player_page",
    "to_player_key",
]
