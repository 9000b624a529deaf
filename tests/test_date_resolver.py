from datetime import datetime, timedelta, timezone

import pytest

from conftest import DATES_CONFIG, NOW
from src.dates import DateResolver, PublishedSource, pick_best
from src.dates.candidates import make_candidate
from src.dates.extractors import (
    from_meta,
    from_published_label,
    from_relative,
    from_url,
    load_html,
)
from src.dates.jsonld import find_images, parse_block, visit


@pytest.fixture
def resolver() -> DateResolver:
    return DateResolver(DATES_CONFIG)


def _page(head: str = "", body: str = "") -> str:
    return f"<html><head>{head}</head><body>{body}</body></html>"


JSONLD = (
    '<script type="application/ld+json">'
    '{"@context": "https://schema.org", "@type": "NewsArticle",'
    ' "datePublished": "2024-10-15T09:30:00-04:00", "dateModified": "2024-10-16T08:00:00Z"}'
    "</script>"
)


def test_jsonld_beats_meta(resolver: DateResolver) -> None:
    html = _page(
        head=JSONLD + '<meta property="article:published_time" content="2024-10-14T10:00:00Z">'
    )
    resolved = resolver.resolve("https://example.com/story", html=html, now=NOW)
    assert resolved.published_source == "jsonld"
    assert resolved.published_confidence == 90
    assert resolved.published_at == datetime(2024, 10, 15, 13, 30, tzinfo=timezone.utc)
    assert resolved.published_raw == "2024-10-15T09:30:00-04:00"


def test_feed_hint_outranks_page_signals(resolver: DateResolver) -> None:
    html = _page(head=JSONLD)
    resolved = resolver.resolve(
        "https://example.com/story",
        html=html,
        feed={"rss": "Tue, 15 Oct 2024 12:00:00 GMT"},
        now=NOW,
    )
    assert resolved.published_source == "rss"
    assert resolved.published_confidence == 95


def test_equal_confidence_prefers_earliest(resolver: DateResolver) -> None:
    html = _page(
        head=(
            '<meta name="date" content="2024-10-12T10:00:00Z">'
            '<meta name="pubdate" content="2024-10-10T10:00:00Z">'
        )
    )
    resolved = resolver.resolve("https://example.com/story", html=html, now=NOW)
    assert resolved.published_source == "meta"
    assert resolved.published_at == datetime(2024, 10, 10, 10, 0, tzinfo=timezone.utc)


def test_pick_best_tie_break() -> None:
    later = make_candidate(datetime(2024, 10, 2, tzinfo=timezone.utc), "b", PublishedSource.META)
    earlier = make_candidate(datetime(2024, 10, 1, tzinfo=timezone.utc), "a", PublishedSource.OG)
    assert later.confidence == earlier.confidence
    assert pick_best([later, earlier]) is earlier
    assert pick_best([]) is None


def test_unresolved_when_no_signal(resolver: DateResolver) -> None:
    resolved = resolver.resolve("https://example.com/story", html=_page(body="<p>Hello</p>"), now=NOW)
    assert not resolved.is_resolved
    assert resolved.published_source is None
    assert resolved.published_confidence is None


def test_http_headers_only_as_fallback(resolver: DateResolver) -> None:
    headers = {"Last-Modified": "Mon, 14 Oct 2024 08:00:00 GMT"}
    fallback = resolver.resolve(
        "https://example.com/story", html=_page(), headers=headers, now=NOW
    )
    assert fallback.published_source == "http-header"
    assert fallback.published_confidence == 45

    with_url_date = resolver.resolve(
        "https://example.com/2024/10/13/story", html=_page(), headers=headers, now=NOW
    )
    assert with_url_date.published_source == "url"
    assert with_url_date.published_at == datetime(2024, 10, 13, tzinfo=timezone.utc)


def test_future_dates_beyond_skew_are_dropped(resolver: DateResolver) -> None:
    future = (NOW + timedelta(days=5)).strftime("%Y-%m-%dT%H:%M:%SZ")
    html = _page(head=f'<meta name="date" content="{future}">')
    resolved = resolver.resolve("https://example.com/story", html=html, now=NOW)
    assert not resolved.is_resolved


def test_unparseable_values_are_ignored(resolver: DateResolver) -> None:
    html = _page(
        head='<meta name="date" content="coming soon">'
        '<script type="application/ld+json">{broken json</script>',
        body='<time datetime="2024-10-11T07:00:00Z">Oct 11</time>',
    )
    resolved = resolver.resolve("https://example.com/story", html=html, now=NOW)
    assert resolved.published_source == "time-tag"


def test_modified_never_beats_published(resolver: DateResolver) -> None:
    html = _page(
        head='<meta property="article:modified_time" content="2024-10-15T10:00:00Z">',
        body="<p>Published: October 9, 2024</p>",
    )
    resolved = resolver.resolve("https://example.com/story", html=html, now=NOW)
    assert resolved.published_source == "text"
    assert resolved.published_at == datetime(2024, 10, 9, tzinfo=timezone.utc)


def test_sitemap_lastmod_is_weak_signal(resolver: DateResolver) -> None:
    resolved = resolver.resolve(
        "https://example.com/story", sitemap_lastmod="2024-10-14T00:00:00+00:00", now=NOW
    )
    assert resolved.published_source == "sitemap"
    assert resolved.published_confidence == 50


def test_news_sitemap_date_ranks_as_meta(resolver: DateResolver) -> None:
    resolved = resolver.resolve(
        "https://example.com/2024/10/09/story",
        feed={"meta": "2024-10-15T10:00:00+00:00"},
        sitemap_lastmod="2024-10-14T00:00:00+00:00",
        now=NOW,
    )
    assert resolved.published_source == "meta"
    assert resolved.published_confidence == 80
    assert resolved.published_at == datetime(2024, 10, 15, 10, tzinfo=timezone.utc)


def test_offset_is_kept_as_tz_label(resolver: DateResolver) -> None:
    resolved = resolver.resolve(
        "https://example.com/story", feed={"atom": "2024-10-15T09:30:00-04:00"}, now=NOW
    )
    assert resolved.published_source == "atom"
    assert resolved.published_tz == "UTC-04:00"


def test_from_url_patterns() -> None:
    (candidate,) = from_url("https://example.com/2024/09/08/week-1-recap")
    assert candidate.value == datetime(2024, 9, 8, tzinfo=timezone.utc)
    assert candidate.source is PublishedSource.URL
    (dashed,) = from_url("https://example.com/news/recap-2024-09-08")
    assert dashed.value.day == 8
    assert from_url("https://example.com/2024/13/45/bad") == []


def test_relative_phrases() -> None:
    (minutes,) = from_relative("Updated 45m ago by staff", NOW)
    assert minutes.value == NOW - timedelta(minutes=45)
    (hours,) = from_relative("3 hours ago", NOW)
    assert hours.value == NOW - timedelta(hours=3)
    assert hours.confidence == 55
    assert from_relative("no relative phrase here", NOW) == []


def test_published_label_formats() -> None:
    (named,) = from_published_label("Published Oct. 3, 2024 by staff")
    assert named.value == datetime(2024, 10, 3, tzinfo=timezone.utc)
    (numeric,) = from_published_label("Published on: 10/03/2024")
    assert numeric.value == datetime(2024, 10, 3, tzinfo=timezone.utc)
    assert numeric.source is PublishedSource.TEXT


def test_meta_dc_date_family() -> None:
    soup = load_html(_page(head='<meta name="DC.date.issued" content="2024-10-01">'))
    (candidate,) = from_meta(soup)
    assert candidate.source is PublishedSource.DC


def test_jsonld_visit_returns_independent_matches() -> None:
    document = parse_block(
        '{"@graph": [{"@type": "WebPage", "datePublished": "2024-10-01"},'
        ' {"@type": ["NewsArticle"], "dateModified": "2024-10-02",'
        ' "image": {"@type": "ImageObject", "url": "https://img.example.com/a.jpg"}}]}'
    )
    first = visit(document)
    second = visit(document)
    assert [m.key for m in first] == ["datePublished", "dateModified"]
    assert first == second and first is not second
    assert first[1].node_type == "NewsArticle"
    assert find_images(document) == ["https://img.example.com/a.jpg"]
    assert parse_block("{nope") is None
