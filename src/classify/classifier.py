"""Rule-based topic tagger and week inference.

Rules are evaluated in a fixed order against the lower-cased title and
summary. The first rule that matches supplies the primary topic, the next
distinct match (if any) the secondary topic. Nothing matching yields
``news``. The module is pure: no I/O, no exceptions on odd input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple
from urllib.parse import unquote, urlparse

DEFAULT_TOPIC = "news"
DEFAULT_MAX_WEEK = 18
DEFAULT_PRESEASON_MONTHS: Tuple[int, ...] = (6, 7, 8)

_WAIVER = re.compile(
    r"\b(waiver\s*wire|waivers?|pick\s*ups?|adds?|streamers?|deep\s*adds?|stash(?:es)?|faab|"
    r"sleepers?|spec\s*adds?|roster\s*moves?)\b"
)
_NOT_WAIVER = re.compile(
    r"\b(practice|training\s*camp|beat\s*report|press\s*conference|injury|injured|trade|"
    r"transaction|signs?|re-signs?|agrees\s+to|extension|arrested|suspended)\b"
)

TOPIC_RULES: Tuple[Tuple[str, re.Pattern], ...] = (
    ("waiver", _WAIVER),
    ("rankings", re.compile(r"\b(rankings?|top\s*\d+(\s*(rb|wr|te|qb|dst|k)s?)?|tiers?)\b")),
    (
        "start_sit",
        re.compile(r"\b(start\s*/?\s*sit|start(?:s|'em)?\s+(?:and|or|&)\s+sit(?:s|'em)?|who\s+to\s+(?:start|sit))\b"),
    ),
    ("trade", re.compile(r"\b(trade(?:s|d)?|buy\s*low|sell\s*high|buy\s*/\s*sell|rest\s+of\s+season)\b")),
    (
        "injury",
        re.compile(
            r"\b(injury|injuries|injured|out\s+for|placed\s+on\s+ir|tore|torn|ruptured|sidelined|"
            r"inactives?|questionable|doubtful|hamstring|acl|mcl|concussion)\b"
        ),
    ),
    ("dfs", re.compile(r"\b(dfs|draftkings|fanduel|lineups?|cash\s*games?|gpp|value\s*plays?)\b")),
    ("advice", re.compile(r"\b(advice|tips?|guide|strateg(?:y|ies)|help|sleepers?\s+and\s+busts?)\b")),
)

CANONICAL_TOPICS: Tuple[str, ...] = tuple(name for name, _ in TOPIC_RULES) + (DEFAULT_TOPIC,)

_WEEK_TEXT = re.compile(r"\b(?:week|wk)\.?\s*:?\s*#?(\d{1,3})\b", re.I)
_WEEK_URL = re.compile(r"(?:^|[/_-])(?:week|wk)[-_]?(\d{1,3})(?=$|[/_.-])", re.I)
_DATED_PATH = re.compile(r"/20\d{2}/\d{1,2}/")

STATIC_RULES: Tuple[Tuple[str, re.Pattern, re.Pattern], ...] = (
    (
        "rankings_ros",
        re.compile(r"(ros|rest-of-season)[^/]*rank|rank[^/]*(ros|rest-of-season)"),
        re.compile(r"\b(ros|rest[- ]of[- ]season)\b.*\brankings?\b"),
    ),
    (
        "dfs_tools",
        re.compile(r"dfs[^/]*(tool|optimizer|lineup-generator|cheat-sheet)|/(optimizer|lineup-optimizer)(/|$)"),
        re.compile(r"\bdfs\b.*\b(tools?|optimizer)\b"),
    ),
    (
        "projections",
        re.compile(r"/projections?(/|\.php|$)"),
        re.compile(r"^(fantasy football |nfl )?(weekly )?projections\b"),
    ),
    (
        "rankings_weekly",
        re.compile(r"/rankings(/[a-z-]+)?(\.php)?/?$"),
        re.compile(r"^(fantasy football |nfl )?weekly\s+rankings\b"),
    ),
    (
        "waiver_wire",
        re.compile(r"/waiver-wire(/(?:pickups|adds|[a-z]{1,3}))?/?$"),
        re.compile(r"^(fantasy football |nfl )?waiver wire (hub|pickups)$"),
    ),
    (
        "stats",
        re.compile(r"/stats(/[a-z-]+)?(\.php)?/?$"),
        re.compile(r"^(fantasy football |nfl )?(player )?stats$"),
    ),
)


@dataclass(frozen=True)
class Classification:
    topics: List[str] = field(default_factory=lambda: [DEFAULT_TOPIC])
    primary: str = DEFAULT_TOPIC
    secondary: Optional[str] = None
    week: Optional[int] = None
    is_static: bool = False
    static_type: Optional[str] = None


def _matching_topics(text: str) -> List[str]:
    matched = []
    for name, pattern in TOPIC_RULES:
        if not pattern.search(text):
            continue
        if name == "waiver" and _NOT_WAIVER.search(text):
            continue
        matched.append(name)
    return matched


def clamp_week(value: int, max_week: int = DEFAULT_MAX_WEEK) -> int:
    return max(0, min(int(value), max_week))


def infer_week(
    title: Optional[str],
    url: Optional[str] = None,
    *,
    reference: Optional[datetime] = None,
    max_week: int = DEFAULT_MAX_WEEK,
    preseason_months: Sequence[int] = DEFAULT_PRESEASON_MONTHS,
) -> Optional[int]:
    """``week N`` from the title (or URL slug), clamped; preseason months give 0."""

    match = _WEEK_TEXT.search(title or "")
    if match is None and url:
        try:
            path = unquote(urlparse(url).path)
        except ValueError:
            path = ""
        match = _WEEK_URL.search(path)
    if match is not None:
        return clamp_week(int(match.group(1)), max_week)
    if reference is not None and reference.month in preseason_months:
        return 0
    return None


def detect_static_type(title: Optional[str], url: Optional[str]) -> Optional[str]:
    """Return the reference-content type for hub pages, or ``None`` for dated articles."""

    try:
        path = unquote(urlparse(url or "").path).lower()
    except ValueError:
        path = ""
    if _DATED_PATH.search(path):
        return None
    lowered_title = " ".join((title or "").lower().split())
    if _WEEK_TEXT.search(lowered_title):
        return None
    for static_type, url_pattern, title_pattern in STATIC_RULES:
        if path and url_pattern.search(path):
            return static_type
        if lowered_title and title_pattern.search(lowered_title):
            return static_type
    return None


def classify(
    title: Optional[str],
    url: Optional[str] = None,
    summary: Optional[str] = None,
    *,
    reference: Optional[datetime] = None,
    max_week: int = DEFAULT_MAX_WEEK,
    preseason_months: Sequence[int] = DEFAULT_PRESEASON_MONTHS,
) -> Classification:
    text = " ".join(f"{title or ''} {summary or ''}".lower().split())
    matched = _matching_topics(text)
    primary = matched[0] if matched else DEFAULT_TOPIC
    secondary = matched[1] if len(matched) > 1 else None
    static_type = detect_static_type(title, url)
    return Classification(
        topics=matched or [DEFAULT_TOPIC],
        primary=primary,
        secondary=secondary,
        week=infer_week(
            title,
            url,
            reference=reference,
            max_week=max_week,
            preseason_months=preseason_months,
        ),
        is_static=static_type is not None,
        static_type=static_type,
    )


def has_canonical_topic(topics: Optional[Iterable[str]]) -> bool:
    return any(topic in CANONICAL_TOPICS for topic in topics or ())


def needs_reclassification(topics: Optional[Iterable[str]], policy: str = "keep") -> bool:
    """Decide whether a stored topic list should be recomputed.

    Empty lists always qualify. A non-empty list with no canonical tag
    ("junk-only") qualifies only under the ``reclassify`` policy.
    """
    values = [topic for topic in (topics or ()) if topic]
    if not values:
        return True
    if has_canonical_topic(values):
        return False
    return policy == "reclassify"


__all__ = [
    "CANONICAL_TOPICS",
    "Classification",
    "DEFAULT_TOPIC",
    "TOPIC_RULES",
    "clamp_week",
    "classify",
    "detect_static_type",
    "has_canonical_topic",
    "infer_week",
    "needs_reclassification",
]
