from datetime import datetime, timezone

import pytest

from src.classify import classify, extract_players, infer_week, looks_like_player_page, to_player_key
from src.classify.classifier import detect_static_type, needs_reclassification
from src.classify.players import extract_likely_name

OCTOBER = datetime(2024, 10, 16, tzinfo=timezone.utc)
JULY = datetime(2024, 7, 20, tzinfo=timezone.utc)


def test_unmatched_title_defaults_to_news() -> None:
    result = classify("Team announces new stadium plans", "https://example.com/2024/10/stadium")
    assert result.topics == ["news"]
    assert result.primary == "news"
    assert result.secondary is None
    assert result.week is None


def test_primary_and_secondary_follow_rule_order() -> None:
    result = classify("Week 7 rankings and waiver wire pickups", reference=OCTOBER)
    assert result.primary == "waiver"
    assert result.secondary == "rankings"
    assert result.week == 7


def test_waiver_is_suppressed_by_transaction_language() -> None:
    result = classify("Bears claim receiver off waivers after injury", reference=OCTOBER)
    assert "waiver" not in result.topics
    assert result.primary == "injury"


@pytest.mark.parametrize(
    "title, topic",
    [
        ("Start/Sit: Week 5 quarterbacks", "start_sit"),
        ("Buy low, sell high candidates", "trade"),
        ("DraftKings cash game lineup picks", "dfs"),
        ("Running back placed on IR with torn ACL", "injury"),
        ("Draft strategy guide for beginners", "advice"),
    ],
)
def test_topic_rules(title: str, topic: str) -> None:
    assert classify(title, reference=OCTOBER).primary == topic


def test_week_is_clamped() -> None:
    assert classify("Week 99 waiver wire", reference=OCTOBER).week == 18
    assert infer_week("Wk. 3 streamers") == 3


def test_week_from_url_slug() -> None:
    assert infer_week("Streamers to target", "https://example.com/nfl/week-11-streamers") == 11


def test_preseason_reference_gives_week_zero() -> None:
    assert classify("Sleepers to target in drafts", reference=JULY).week == 0
    assert classify("Sleepers to target in drafts", reference=OCTOBER).week is None
    assert infer_week("Camp notes", reference=JULY, preseason_months=[9]) is None


@pytest.mark.parametrize(
    "title, url, expected",
    [
        ("Rest of Season Rankings", "https://example.com/nfl/ros-rankings", "rankings_ros"),
        ("Weekly Projections", "https://example.com/nfl/projections", "projections"),
        ("Waiver Wire Hub", "https://example.com/nfl/waiver-wire/", "waiver_wire"),
        ("Player stats", "https://example.com/nfl/stats/qb", "stats"),
        ("Week 7 rankings", "https://example.com/nfl/rankings/", None),
        ("Rankings update", "https://example.com/2024/10/rankings/", None),
    ],
)
def test_static_page_detection(title: str, url: str, expected) -> None:
    assert detect_static_type(title, url) == expected
    result = classify(title, url, reference=OCTOBER)
    assert result.is_static is (expected is not None)
    assert result.static_type == expected


def test_reclassification_policy() -> None:
    assert needs_reclassification(None)
    assert needs_reclassification([])
    assert needs_reclassification(["", None])
    assert not needs_reclassification(["waiver"])
    assert not needs_reclassification(["misc", "rankings"], policy="reclassify")
    assert not needs_reclassification(["misc"], policy="keep")
    assert needs_reclassification(["misc"], policy="reclassify")


def test_player_extraction() -> None:
    assert extract_likely_name("Christian McCaffrey ruled out for Week 7") == "Christian McCaffrey"
    assert extract_likely_name("Injury update: Ja'Marr Chase questionable") == "Ja'Marr Chase"
    assert extract_likely_name("waiver wire adds") is None
    players = extract_players(
        "Breece Hall's outlook", "https://example.com/nfl/players/breece-hall"
    )
    assert players == ["Breece Hall"]
    assert extract_players(
        "Notes", "https://example.com/nfl/player-news/puka-nacua.php"
    ) == ["Puka Nacua"]


def test_player_page_detection() -> None:
    assert looks_like_player_page("https://example.com/nfl/players/bijan-robinson")
    assert looks_like_player_page("https://example.com/x", "Bijan Robinson")
    assert not looks_like_player_page("https://example.com/2024/10/recap", "Game recap and notes")
    assert to_player_key("Ja'Marr Chase") == "nfl:name:ja-marr-chase"
