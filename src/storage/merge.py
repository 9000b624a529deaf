"""Typed partial updates and the pure, non-destructive article merge.

Every optional field of :class:`PartialArticle` is either ``Present(value)``
or ``ABSENT``. :func:`merge_article` maps ``(existing, partial)`` to the
next state without touching a database:

- a present value replaces the stored one, an absent value never does;
- ``is_static`` and ``is_player_page`` are sticky once true;
- the ``published_*`` fields move as one group: a present date replaces
  the stored group, an absent one leaves it alone.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict, Generic, Iterable, Mapping, Optional, Tuple, TypeVar, Union

from src.utils.datetime_utils import ensure_utc

T = TypeVar("T")


class _Absent:
    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


@dataclass(frozen=True)
class Present(Generic[T]):
    value: T


FieldValue = Union[Present[T], _Absent]


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def field_value(value: Any) -> FieldValue:
    """Wrap ``value``; null and empty values become ``ABSENT``."""
    if isinstance(value, (Present, _Absent)):
        return value
    if is_empty(value):
        return ABSENT
    if isinstance(value, (set, frozenset, tuple)):
        value = sorted(value) if isinstance(value, (set, frozenset)) else list(value)
    if isinstance(value, datetime):
        value = ensure_utc(value)
    return Present(value)


PUBLISHED_FIELDS: Tuple[str, ...] = (
    "published_at",
    "published_raw",
    "published_source",
    "published_confidence",
    "published_tz",
)
STICKY_FLAGS: Tuple[str, ...] = ("is_static", "is_player_page")


@dataclass(frozen=True)
class PartialArticle:
    """Normalized fields produced for one candidate, ready for upsert."""

    canonical_url: str
    url: FieldValue[str] = ABSENT
    domain: FieldValue[str] = ABSENT
    source_id: FieldValue[int] = ABSENT
    title: FieldValue[str] = ABSENT
    cleaned_title: FieldValue[str] = ABSENT
    summary: FieldValue[str] = ABSENT
    author: FieldValue[str] = ABSENT
    image_url: FieldValue[str] = ABSENT
    content_hash: FieldValue[str] = ABSENT
    simhash: FieldValue[str] = ABSENT
    published_at: FieldValue[datetime] = ABSENT
    published_raw: FieldValue[str] = ABSENT
    published_source: FieldValue[str] = ABSENT
    published_confidence: FieldValue[int] = ABSENT
    published_tz: FieldValue[str] = ABSENT
    topics: FieldValue[list] = ABSENT
    primary_topic: FieldValue[str] = ABSENT
    secondary_topic: FieldValue[str] = ABSENT
    week: FieldValue[int] = ABSENT
    players: FieldValue[list] = ABSENT
    is_static: FieldValue[bool] = ABSENT
    static_type: FieldValue[str] = ABSENT
    is_player_page: FieldValue[bool] = ABSENT
    # lookup-only identity variants, never stored
    alternate_urls: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls, canonical_url: str, *, alternate_urls: Iterable[str] = (), **values: Any
    ) -> "PartialArticle":
        """Construct from plain values, treating ``None``/empty as absent."""
        unknown = set(values) - set(MERGE_FIELDS)
        if unknown:
            raise TypeError(f"unknown article fields: {sorted(unknown)}")
        wrapped = {name: field_value(value) for name, value in values.items()}
        alternates = tuple(
            dict.fromkeys(u for u in alternate_urls if u and u != canonical_url)
        )
        return cls(canonical_url=canonical_url, alternate_urls=alternates, **wrapped)

    def present_values(self) -> Dict[str, Any]:
        return {
            name: getattr(self, name).value
            for name in MERGE_FIELDS
            if isinstance(getattr(self, name), Present)
        }


MERGE_FIELDS: Tuple[str, ...] = tuple(
    f.name for f in fields(PartialArticle) if f.name not in ("canonical_url", "alternate_urls")
)


def snapshot(row: Any) -> Dict[str, Any]:
    """Read the mergeable columns of an ORM row (or mapping) into a plain dict."""
    state: Dict[str, Any] = {}
    for name in MERGE_FIELDS:
        value = row.get(name) if isinstance(row, Mapping) else getattr(row, name, None)
        if isinstance(value, datetime):
            value = ensure_utc(value)
        state[name] = value
    return state


def merge_article(existing: Mapping[str, Any], partial: PartialArticle) -> Dict[str, Any]:
    """Return the merged state. ``existing`` is left unchanged.

    Present values overwrite, absent values keep what is stored. The
    ``published_*`` columns move together: a present ``published_at``
    replaces the whole group so raw text, signal tag and confidence always
    describe the same date.
    """

    merged = {name: existing.get(name) for name in MERGE_FIELDS}
    incoming = partial.present_values()

    published = {name: incoming.pop(name, None) for name in PUBLISHED_FIELDS}
    if published["published_at"] is not None:
        merged.update(published)

    for name in STICKY_FLAGS:
        if name in incoming:
            value = incoming.pop(name)
            merged[name] = bool(existing.get(name)) or bool(value)

    merged.update(incoming)
    return merged


def changed_fields(before: Mapping[str, Any], after: Mapping[str, Any]) -> Dict[str, Any]:
    return {name: after[name] for name in MERGE_FIELDS if before.get(name) != after.get(name)}


EMPTY_STATE: Dict[str, Any] = {name: None for name in MERGE_FIELDS}


__all__ = [
    "ABSENT",
    "EMPTY_STATE",
    "FieldValue",
    "MERGE_FIELDS",
    "PartialArticle",
    "Present",
    "changed_fields",
    "field_value",
    "is_empty",
    "merge_article",
    "snapshot",
]
