from datetime import datetime, timezone

import pytest

from conftest import CLASSIFICATION_CONFIG, DATES_CONFIG, IMAGES_CONFIG, NOW
from src.contracts import CandidateModel
from src.dates import DateResolver
from src.ingest.enrichment import PageSnapshot
from src.ingest.images import ImageSelector
from src.ingest.normalize import (
    ArticleNormalizer,
    alternate_identities,
    cleaned_title_for,
    is_generic_canonical,
    page_canonical,
    page_title,
    strip_publisher_suffix,
)
from src.storage.merge import Present
from src.utils.url_canonicalizer import canonicalize

LINK = "https://www.example.com/2024/10/15/week-7-waiver-wire-pickups/?utm_source=rss"
CANONICAL = "https://example.com/2024/10/15/week-7-waiver-wire-pickups"


@pytest.fixture
def normalizer() -> ArticleNormalizer:
    return ArticleNormalizer(
        resolver=DateResolver(DATES_CONFIG),
        images=ImageSelector(IMAGES_CONFIG),
        classification_config=CLASSIFICATION_CONFIG,
    )


def test_publisher_suffixes_are_stripped() -> None:
    assert strip_publisher_suffix("Week 7 Waiver Wire Pickups - FantasyPros") == "Week 7 Waiver Wire Pickups"
    assert strip_publisher_suffix("Week 7 start/sit decisions | CBS Sports") == "Week 7 start/sit decisions"
    assert strip_publisher_suffix("Start/Sit | CBS Sports") == "Start/Sit | CBS Sports"
    assert cleaned_title_for("NFL: Week 7 waiver targets - Rotowire") == "Week 7 waiver targets"


@pytest.mark.parametrize(
    "declared, page, generic",
    [
        ("https://example.com/nfl/", "https://example.com/2024/10/story", True),
        ("https://example.com/", "https://example.com/2024/10/story", True),
        ("https://example.com/story-slug", "https://example.com/nfl/news/story-slug", True),
        ("https://example.com/nfl/news/story-slug", "https://example.com/nfl/news/story-slug", False),
        ("https://partner.example.org/syndicated", "https://example.com/nfl/news/story", False),
    ],
)
def test_generic_canonical_detection(declared: str, page: str, generic: bool) -> None:
    assert is_generic_canonical(declared, page) is generic


def test_page_helpers() -> None:
    html = (
        '<html><head><link rel="canonical" href="https://example.com/nfl/story">'
        '<meta property="og:title" content="OG headline">'
        "<title>Title tag | Site</title></head></html>"
    )
    assert page_canonical(html) == "https://example.com/nfl/story"
    assert page_canonical('<link rel="canonical" href="/relative">') is None
    assert page_title(html) == "OG headline"
    assert page_title("<title>A longer title tag | Site Name</title>") == "A longer title tag"
    assert page_title(None) is None


def test_alternates_exclude_generic_and_identity() -> None:
    canon = canonicalize(LINK)
    snapshot = PageSnapshot(
        url=LINK,
        final_url="https://example.com/nfl/waiver/week-7-pickups",
        status=200,
        html='<link rel="canonical" href="https://example.com/nfl/">',
    )
    assert alternate_identities(canon, snapshot) == (
        LINK,
        "https://example.com/nfl/waiver/week-7-pickups",
    )
    assert alternate_identities(canonicalize(CANONICAL), None) == ()


def test_normalize_builds_partial_article(normalizer: ArticleNormalizer) -> None:
    candidate = CandidateModel(
        title="Week 7 Waiver Wire Pickups - FantasyPros",
        link=LINK,
        description="Top adds for your roster",
        published_hint="Tue, 15 Oct 2024 12:00:00 GMT",
        published_hint_source="rss",
        image_url="https://img.example.com/hero.jpg",
        author="Staff",
    )
    item = normalizer.normalize(candidate, source_id=1, now=NOW)
    partial = item.partial

    assert partial.canonical_url == CANONICAL
    assert partial.alternate_urls == (LINK,)
    assert partial.url == Present(LINK)
    assert partial.domain == Present("example.com")
    assert partial.source_id == Present(1)
    assert partial.title == Present("Week 7 Waiver Wire Pickups - FantasyPros")
    assert partial.cleaned_title == Present("Week 7 Waiver Wire Pickups")
    assert partial.published_source == Present("rss")
    assert partial.published_confidence == Present(95)
    assert partial.published_at == Present(datetime(2024, 10, 15, 12, 0, tzinfo=timezone.utc))
    assert partial.primary_topic == Present("waiver")
    assert partial.week == Present(7)
    assert partial.image_url == Present("https://img.example.com/hero.jpg")
    assert len(partial.simhash.value) == 16
    assert len(partial.content_hash.value) == 64
    assert not item.image_from_page


def test_normalize_uses_page_when_feed_is_thin(normalizer: ArticleNormalizer) -> None:
    link = "https://example.com/news/123456/headline"
    html = (
        "<html><head>"
        '<meta property="og:title" content="Christian McCaffrey ruled out for Week 7">'
        '<meta property="og:image" content="https://img.example.com/cmc.jpg">'
        '<meta property="article:published_time" content="2024-10-14T18:00:00Z">'
        "</head></html>"
    )
    snapshot = PageSnapshot(url=link, final_url=link, status=200, html=html)
    item = normalizer.normalize(CandidateModel(link=link), snapshot=snapshot, now=NOW)

    assert item.partial.cleaned_title == Present("Christian McCaffrey ruled out for Week 7")
    assert item.partial.image_url == Present("https://img.example.com/cmc.jpg")
    assert item.image_from_page
    assert item.partial.published_source == Present("og")
    assert item.partial.players == Present(["Christian McCaffrey"])
    assert item.classification.primary == "injury"
