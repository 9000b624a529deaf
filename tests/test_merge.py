from datetime import datetime, timezone

import pytest

from src.storage.merge import (
    ABSENT,
    EMPTY_STATE,
    PartialArticle,
    Present,
    changed_fields,
    field_value,
    merge_article,
)

URL = "https://example.com/2024/10/story"
OCT_1 = datetime(2024, 10, 1, tzinfo=timezone.utc)
OCT_2 = datetime(2024, 10, 2, tzinfo=timezone.utc)


def _merge(*partials: PartialArticle) -> dict:
    state = dict(EMPTY_STATE)
    for partial in partials:
        state = merge_article(state, partial)
    return state


def test_field_value_wraps_and_drops_empty() -> None:
    assert field_value(None) is ABSENT
    assert field_value("  ") is ABSENT
    assert field_value([]) is ABSENT
    assert field_value(False) == Present(False)
    assert field_value(0) == Present(0)
    assert field_value({"b", "a"}) == Present(["a", "b"])


def test_absent_never_clears_present_title() -> None:
    state = _merge(
        PartialArticle.build(URL, title="A"),
        PartialArticle.build(URL, title=None),
        PartialArticle.build(URL, title=""),
    )
    assert state["title"] == "A"

    state = merge_article(state, PartialArticle.build(URL, title="B"))
    assert state["title"] == "B"


def test_merge_does_not_mutate_existing() -> None:
    existing = dict(EMPTY_STATE, title="Old")
    merged = merge_article(existing, PartialArticle.build(URL, title="New"))
    assert existing["title"] == "Old"
    assert merged["title"] == "New"
    assert changed_fields(existing, merged) == {"title": "New"}


def test_sticky_flags_stay_true() -> None:
    state = _merge(
        PartialArticle.build(URL, is_static=True, static_type="rankings_ros"),
        PartialArticle.build(URL, is_static=False, is_player_page=True),
        PartialArticle.build(URL, is_player_page=False),
    )
    assert state["is_static"] is True
    assert state["is_player_page"] is True
    assert state["static_type"] == "rankings_ros"


def test_sticky_flag_survives_reingest_from_true_state() -> None:
    stored = dict(EMPTY_STATE, is_player_page=True, is_static=True)
    state = merge_article(stored, PartialArticle.build(URL, is_player_page=False, is_static=False))
    assert state["is_player_page"] is True
    assert state["is_static"] is True


def _dated(value: datetime, source: str, confidence: int, raw: str = "raw") -> PartialArticle:
    return PartialArticle.build(
        URL,
        published_at=value,
        published_raw=raw,
        published_source=source,
        published_confidence=confidence,
    )


def test_present_published_group_replaces_stored_date() -> None:
    state = _merge(_dated(OCT_2, "meta", 70, raw="meta value"))
    state = merge_article(state, PartialArticle.build(
        URL,
        published_at=OCT_1,
        published_source="jsonld",
        published_confidence=90,
    ))
    assert state["published_at"] == OCT_1
    assert state["published_source"] == "jsonld"
    assert state["published_confidence"] == 90
    # the group is replaced as a whole
    assert state["published_raw"] is None


def test_later_lower_confidence_date_still_overwrites() -> None:
    state = _merge(_dated(OCT_1, "jsonld", 90), _dated(OCT_2, "url", 60, raw="/2024/10/02/"))
    assert state["published_at"] == OCT_2
    assert state["published_source"] == "url"
    assert state["published_confidence"] == 60
    assert state["published_raw"] == "/2024/10/02/"


def test_absent_published_date_keeps_stored_group() -> None:
    state = _merge(_dated(OCT_1, "rss", 95), PartialArticle.build(URL, title="Retitled"))
    assert state["published_at"] == OCT_1
    assert state["published_source"] == "rss"
    # a source tag without a date does not touch the group
    state = merge_article(state, PartialArticle.build(URL, published_source="og"))
    assert state["published_source"] == "rss"


def test_naive_datetimes_are_treated_as_utc() -> None:
    partial = PartialArticle.build(URL, published_at=datetime(2024, 10, 1), published_confidence=50)
    assert partial.published_at.value.tzinfo is not None


def test_build_rejects_unknown_fields_and_dedupes_alternates() -> None:
    with pytest.raises(TypeError):
        PartialArticle.build(URL, headline="nope")

    partial = PartialArticle.build(
        URL, alternate_urls=[URL, "https://example.com/amp/story", "", "https://example.com/amp/story"]
    )
    assert partial.alternate_urls == ("https://example.com/amp/story",)
    assert partial.present_values() == {}
