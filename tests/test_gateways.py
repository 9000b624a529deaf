from typing import Dict, List

import pytest
import requests

from conftest import COLLECTION_CONFIG, RATE_LIMITING_CONFIG, make_source
from src.contracts import CandidateModel
from src.errors import GatewayError
from src.gateways import (
    AutoSourceGateway,
    FetchResult,
    HttpFetcher,
    RssGateway,
    ScrapeGateway,
    SitemapGateway,
)
from src.gateways.sitemap import parse_sitemap


class DummyResponse:
    def __init__(self, status_code, text="", headers=None, url=None, chunk_size=None):
        self.status_code = status_code
        self.headers = headers or {}
        self._text = text
        self.url = url
        self.encoding = None
        self.chunk_size = chunk_size
        self.chunks_read = 0
        self.closed = False

    @property
    def text(self):
        return self._text

    @property
    def content(self):
        return self._text.encode("utf-8")

    def iter_content(self, chunk_size=1):
        step = self.chunk_size or chunk_size
        body = self.content
        for start in range(0, len(body), step):
            self.chunks_read += 1
            yield body[start : start + step]

    def close(self):
        self.closed = True


class FakeSession:
    """Plays back responses (or raises exceptions) in order."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def get(self, url, timeout=None, headers=None, stream=False):
        self.calls.append((url, headers))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        pass


def _fetcher(outcomes, **collection_overrides):
    sleeps: List[float] = []
    fetcher = HttpFetcher(
        dict(COLLECTION_CONFIG, **collection_overrides),
        RATE_LIMITING_CONFIG,
        session=FakeSession(outcomes),
        sleep=sleeps.append,
    )
    return fetcher, sleeps


def test_fetch_returns_result_with_final_url_and_lowercased_headers() -> None:
    fetcher, sleeps = _fetcher(
        [
            DummyResponse(
                200,
                "<html></html>",
                headers={"Last-Modified": "Mon, 14 Oct 2024 08:00:00 GMT"},
                url="https://example.com/final",
            )
        ]
    )
    result = fetcher.get("https://example.com/start", accept="text/html")
    assert result.final_url == "https://example.com/final"
    assert result.headers == {"last-modified": "Mon, 14 Oct 2024 08:00:00 GMT"}
    assert fetcher.session.calls == [("https://example.com/start", {"Accept": "text/html"})]
    assert sleeps == []


def test_retry_statuses_back_off_then_succeed() -> None:
    fetcher, sleeps = _fetcher([DummyResponse(503), DummyResponse(429), DummyResponse(200, "ok")])
    assert fetcher.get("https://example.com/feed").text == "ok"
    assert len(sleeps) == 2
    assert all(0 <= delay <= RATE_LIMITING_CONFIG["backoff_max"] for delay in sleeps)


def test_retry_budget_exhaustion_raises() -> None:
    fetcher, sleeps = _fetcher([DummyResponse(503)] * 3)
    with pytest.raises(GatewayError) as excinfo:
        fetcher.get("https://example.com/feed")
    assert excinfo.value.status_code == 503
    assert excinfo.value.url == "https://example.com/feed"
    assert len(sleeps) == 2


def test_connection_errors_are_retried() -> None:
    fetcher, sleeps = _fetcher(
        [requests.exceptions.ConnectionError("reset"), requests.exceptions.Timeout("slow"), DummyResponse(200, "ok")]
    )
    assert fetcher.get("https://example.com/feed").text == "ok"
    assert len(sleeps) == 2

    fetcher, _ = _fetcher([requests.exceptions.Timeout("slow")] * 3)
    with pytest.raises(GatewayError):
        fetcher.get("https://example.com/feed")


def test_client_errors_fail_without_retry() -> None:
    fetcher, sleeps = _fetcher([DummyResponse(404)])
    with pytest.raises(GatewayError) as excinfo:
        fetcher.get("https://example.com/missing")
    assert excinfo.value.status_code == 404
    assert sleeps == []

    fetcher, _ = _fetcher([requests.exceptions.InvalidURL("bad")])
    with pytest.raises(GatewayError):
        fetcher.get("https://example.com/bad")


def test_oversized_response_is_rejected() -> None:
    fetcher, _ = _fetcher([DummyResponse(200, "x" * 64)], max_response_bytes=16)
    with pytest.raises(GatewayError, match="too large"):
        fetcher.get("https://example.com/huge")


def test_oversized_body_stops_reading_at_the_cap() -> None:
    response = DummyResponse(200, "x" * 1000, chunk_size=10)
    fetcher, _ = _fetcher([response], max_response_bytes=25)
    with pytest.raises(GatewayError, match="too large"):
        fetcher.get("https://example.com/huge")
    assert response.chunks_read == 3
    assert response.closed

    declared = DummyResponse(200, "x" * 10, headers={"Content-Length": "5000"})
    fetcher, _ = _fetcher([declared], max_response_bytes=25)
    with pytest.raises(GatewayError, match="too large"):
        fetcher.get("https://example.com/huge")
    assert declared.chunks_read == 0


def test_body_without_charset_decodes_as_utf8() -> None:
    response = DummyResponse(200, "Ja’Marr Chase", headers={"Content-Type": "text/html"})
    response.encoding = "ISO-8859-1"
    fetcher, _ = _fetcher([response])
    assert fetcher.get("https://example.com/story").text == "Ja’Marr Chase"


class FakeFetcher:
    """Serves canned documents by url; unknown urls fail like a 404."""

    def __init__(self, documents: Dict[str, str]) -> None:
        self.documents = documents
        self.requested: List[str] = []

    def get(self, url: str, *, accept: str = "") -> FetchResult:
        self.requested.append(url)
        if url not in self.documents:
            raise GatewayError("HTTP 404", url=url, status_code=404)
        return FetchResult(url=url, final_url=url, status_code=200, text=self.documents[url])


RSS_FEED = """<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/" xmlns:media="http://search.yahoo.com/mrss/">
<channel>
<title>Fantasy News</title>
<link>https://example.com/</link>
<item>
  <title>Week 7 Waiver Wire Pickups</title>
  <link>https://example.com/2024/10/week-7-waiver-wire-pickups</link>
  <pubDate>Tue, 15 Oct 2024 12:00:00 GMT</pubDate>
  <description>&lt;p&gt;Top adds for your roster&lt;/p&gt;</description>
  <media:content url="https://img.example.com/hero.jpg" medium="image" />
</item>
<item>
  <title>Injury report</title>
  <link>https://example.com/2024/10/injury-report</link>
  <dc:date>2024-10-14T08:00:00Z</dc:date>
</item>
<item>
  <title>Duplicate entry</title>
  <link>https://example.com/2024/10/week-7-waiver-wire-pickups</link>
</item>
</channel>
</rss>
"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
<title>Atom News</title>
<id>urn:feed</id>
<updated>2024-10-16T13:30:00Z</updated>
<entry>
  <title>Atom story</title>
  <id>urn:entry:1</id>
  <link href="https://example.com/2024/10/atom-story" />
  <published>2024-10-15T09:30:00-04:00</published>
  <updated>2024-10-16T09:30:00-04:00</updated>
</entry>
</feed>
"""


def test_rss_gateway_maps_entries() -> None:
    feed_url = "https://example.com/feed"
    gateway = RssGateway(FakeFetcher({feed_url: RSS_FEED}))
    candidates = gateway.fetch_candidates(make_source(rss_url=feed_url), limit=10)

    assert [c.link for c in candidates] == [
        "https://example.com/2024/10/week-7-waiver-wire-pickups",
        "https://example.com/2024/10/injury-report",
    ]
    first, second = candidates
    assert first.title == "Week 7 Waiver Wire Pickups"
    assert first.published_hint == "Tue, 15 Oct 2024 12:00:00 GMT"
    assert first.published_hint_source == "rss"
    assert first.description == "Top adds for your roster"
    assert first.image_url == "https://img.example.com/hero.jpg"
    assert second.published_hint_source == "dc"
    assert second.published_hint == "2024-10-14T08:00:00Z"


def test_rss_gateway_respects_limit_and_requires_feed_url() -> None:
    feed_url = "https://example.com/feed"
    gateway = RssGateway(FakeFetcher({feed_url: RSS_FEED}))
    assert len(gateway.fetch_candidates(make_source(rss_url=feed_url), limit=1)) == 1
    with pytest.raises(GatewayError):
        gateway.fetch_candidates(make_source(), limit=5)


def test_atom_entries_keep_updated_hint() -> None:
    feed_url = "https://example.com/atom"
    gateway = RssGateway(FakeFetcher({feed_url: ATOM_FEED}))
    (candidate,) = gateway.fetch_candidates(make_source(rss_url=feed_url), limit=5)
    assert candidate.published_hint_source == "atom"
    assert candidate.published_hint == "2024-10-15T09:30:00-04:00"
    assert candidate.updated_hint == "2024-10-16T09:30:00-04:00"
    assert candidate.feed_dates() == {
        "atom": "2024-10-15T09:30:00-04:00",
        "modified": "2024-10-16T09:30:00-04:00",
    }


SITEMAP_INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://example.com/sitemap-old.xml</loc><lastmod>2024-09-01</lastmod></sitemap>
  <sitemap><loc>https://example.com/sitemap-new.xml</loc><lastmod>2024-10-15</lastmod></sitemap>
</sitemapindex>
"""

NEWS_SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9"
        xmlns:news="http://www.google.com/schemas/sitemap-news/0.9">
  <url>
    <loc>https://example.com/2024/10/older-story</loc>
    <lastmod>2024-10-10T10:00:00+00:00</lastmod>
  </url>
  <url>
    <loc>https://example.com/2024/10/fresh-story</loc>
    <news:news>
      <news:publication_date>2024-10-15T10:00:00+00:00</news:publication_date>
      <news:title>Fresh story</news:title>
    </news:news>
  </url>
  <url><lastmod>2024-10-11</lastmod></url>
</urlset>
"""


def test_parse_sitemap_reads_news_extensions() -> None:
    children, candidates = parse_sitemap(NEWS_SITEMAP)
    assert children == []
    assert [c.link for c in candidates] == [
        "https://example.com/2024/10/older-story",
        "https://example.com/2024/10/fresh-story",
    ]
    assert candidates[1].title == "Fresh story"
    assert candidates[1].published_hint == "2024-10-15T10:00:00+00:00"
    assert [c.published_hint_source for c in candidates] == ["sitemap", "meta"]
    assert candidates[1].feed_dates() == {"meta": "2024-10-15T10:00:00+00:00"}
    assert candidates[1].sitemap_lastmod() is None
    assert candidates[0].sitemap_lastmod() == "2024-10-10T10:00:00+00:00"
    assert candidates[0].feed_dates() == {}


def test_sitemap_index_follows_newest_child_first() -> None:
    fetcher = FakeFetcher(
        {
            "https://example.com/sitemap.xml": SITEMAP_INDEX,
            "https://example.com/sitemap-new.xml": NEWS_SITEMAP,
        }
    )
    gateway = SitemapGateway(fetcher)
    candidates = gateway.fetch_candidates(
        make_source(sitemap_url="https://example.com/sitemap.xml"), limit=10
    )
    assert fetcher.requested[:2] == [
        "https://example.com/sitemap.xml",
        "https://example.com/sitemap-new.xml",
    ]
    # the failing older child is skipped, candidates come newest first
    assert [c.link for c in candidates] == [
        "https://example.com/2024/10/fresh-story",
        "https://example.com/2024/10/older-story",
    ]


INDEX_PAGE = """
<html><body>
  <article><a href="/2024/10/relative-story">Relative story</a></article>
  <h2><a href="https://example.com/2024/10/absolute-story">Absolute story</a></h2>
  <h3><a href="#top">Back to top</a></h3>
  <h3><a href="mailto:tips@example.com">Send tips</a></h3>
  <h3><a href="javascript:void(0)">Menu</a></h3>
  <h3><a href="ftp://example.com/file">FTP</a></h3>
  <div><a href="/2024/10/ignored-by-selector">Not selected</a></div>
</body></html>
"""


def test_scrape_extracts_selected_anchors() -> None:
    candidates = ScrapeGateway.extract(INDEX_PAGE, "https://example.com/nfl/")
    assert [(c.title, c.link) for c in candidates] == [
        ("Relative story", "https://example.com/2024/10/relative-story"),
        ("Absolute story", "https://example.com/2024/10/absolute-story"),
    ]


def test_scrape_gateway_uses_source_selector() -> None:
    fetcher = FakeFetcher({"https://example.com/nfl/": INDEX_PAGE})
    gateway = ScrapeGateway(fetcher)
    source = make_source(homepage_url="https://example.com/nfl/", scrape_selector="div a[href]")
    (candidate,) = gateway.fetch_candidates(source, limit=5)
    assert candidate.link == "https://example.com/2024/10/ignored-by-selector"


class StubGateway:
    def __init__(self, result) -> None:
        self.result = result
        self.calls = 0

    def fetch_candidates(self, source, limit):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _auto(rss, sitemap, scrape) -> AutoSourceGateway:
    return AutoSourceGateway(
        FakeFetcher({}), gateways={"rss": rss, "sitemap": sitemap, "scrape": scrape}
    )


def test_auto_falls_back_in_order() -> None:
    found = [CandidateModel(title="x", link="https://example.com/2024/10/x")]
    rss = StubGateway(GatewayError("feed down"))
    sitemap = StubGateway([])
    scrape = StubGateway(found)
    source = make_source(
        rss_url="https://example.com/feed",
        sitemap_url="https://example.com/sitemap.xml",
        homepage_url="https://example.com/",
    )
    assert _auto(rss, sitemap, scrape).fetch_candidates(source, 10) == found
    assert (rss.calls, sitemap.calls, scrape.calls) == (1, 1, 1)


def test_auto_skips_unconfigured_modes_and_reports_errors() -> None:
    rss = StubGateway(GatewayError("feed down"))
    sitemap = StubGateway([])
    scrape = StubGateway([])
    gateway = _auto(rss, sitemap, scrape)

    with pytest.raises(GatewayError, match="feed down"):
        gateway.fetch_candidates(make_source(rss_url="https://example.com/feed"), 10)
    assert sitemap.calls == 0

    assert gateway.fetch_candidates(make_source(homepage_url="https://example.com/"), 10) == []
    with pytest.raises(GatewayError, match="no fetch configuration"):
        gateway.fetch_candidates(make_source(), 10)


def test_explicit_fetch_mode_is_dispatched() -> None:
    scrape = StubGateway([])
    gateway = _auto(StubGateway([]), StubGateway([]), scrape)
    gateway.fetch_candidates(make_source(fetch_mode="scrape", homepage_url="https://example.com/"), 10)
    assert scrape.calls == 1
    with pytest.raises(GatewayError, match="unknown fetch mode"):
        gateway.fetch_candidates(make_source(fetch_mode="carrier-pigeon"), 10)
