from collections import Counter

import httpx

from conftest import COLLECTION_CONFIG, RATE_LIMITING_CONFIG
from src.ingest.enrichment import AsyncPageFetcher

PAGE = "<html><head><title>Story</title></head><body>Body</body></html>"


def _fetcher(handler, **collection_overrides):
    sleeps = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    fetcher = AsyncPageFetcher(
        dict(COLLECTION_CONFIG, **collection_overrides),
        RATE_LIMITING_CONFIG,
        transport=httpx.MockTransport(handler),
        sleep=fake_sleep,
    )
    return fetcher, sleeps


def test_pages_are_keyed_by_requested_url() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/old":
            return httpx.Response(301, headers={"Location": "https://example.com/new"})
        return httpx.Response(
            200, html=PAGE, headers={"Last-Modified": "Mon, 14 Oct 2024 08:00:00 GMT"}
        )

    fetcher, _ = _fetcher(handler)
    pages = fetcher.fetch_pages(["https://example.com/old", "https://example.com/other"])

    assert set(pages) == {"https://example.com/old", "https://example.com/other"}
    moved = pages["https://example.com/old"]
    assert moved.url == "https://example.com/old"
    assert moved.final_url == "https://example.com/new"
    assert moved.status == 200
    assert "<title>Story</title>" in moved.html
    assert moved.headers["last-modified"] == "Mon, 14 Oct 2024 08:00:00 GMT"


def test_unusable_responses_have_no_snapshot() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/missing":
            return httpx.Response(404, html="gone")
        if request.url.path == "/data":
            return httpx.Response(200, json={"not": "html"})
        if request.url.path == "/huge":
            return httpx.Response(200, html="x" * 4096)
        return httpx.Response(200, html=PAGE)

    fetcher, sleeps = _fetcher(handler, max_response_bytes=1024)
    pages = fetcher.fetch_pages(
        [
            "https://example.com/missing",
            "https://example.com/data",
            "https://example.com/huge",
            "https://example.com/ok",
        ]
    )
    assert list(pages) == ["https://example.com/ok"]
    assert sleeps == []


def test_oversized_page_stops_streaming_at_the_cap() -> None:
    served = []

    async def body():
        for _ in range(100):
            served.append(256)
            yield b"x" * 256

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/html"}, content=body())

    fetcher, _ = _fetcher(handler, max_response_bytes=1024)
    assert fetcher.fetch_pages(["https://example.com/endless"]) == {}
    assert sum(served) <= 1024 + 256


def test_retry_statuses_and_transport_errors_are_retried() -> None:
    attempts = Counter()

    def handler(request: httpx.Request) -> httpx.Response:
        attempts[request.url.path] += 1
        if request.url.path == "/flaky" and attempts["/flaky"] == 1:
            return httpx.Response(503)
        if request.url.path == "/reset" and attempts["/reset"] < 3:
            raise httpx.ConnectError("connection reset", request=request)
        if request.url.path == "/down":
            return httpx.Response(503)
        return httpx.Response(200, html=PAGE)

    fetcher, sleeps = _fetcher(handler)
    pages = fetcher.fetch_pages(
        ["https://example.com/flaky", "https://example.com/reset", "https://example.com/down"]
    )

    assert set(pages) == {"https://example.com/flaky", "https://example.com/reset"}
    assert attempts["/flaky"] == 2
    assert attempts["/reset"] == 3
    assert attempts["/down"] == RATE_LIMITING_CONFIG["max_retries"] + 1
    assert len(sleeps) == 1 + 2 + 2


def test_duplicate_and_empty_urls_are_fetched_once() -> None:
    attempts = Counter()

    def handler(request: httpx.Request) -> httpx.Response:
        attempts[str(request.url)] += 1
        return httpx.Response(200, html=PAGE)

    fetcher, _ = _fetcher(handler)
    pages = fetcher.fetch_pages(["https://example.com/a", "", "https://example.com/a"])
    assert list(pages) == ["https://example.com/a"]
    assert attempts == {"https://example.com/a": 1}
    assert fetcher.fetch_pages([]) == {}


def test_concurrency_is_capped() -> None:
    fetcher, _ = _fetcher(lambda request: httpx.Response(200, html=PAGE), max_concurrent_fetches=50)
    assert fetcher.max_concurrency == 8
    fetcher, _ = _fetcher(lambda request: httpx.Response(200, html=PAGE), max_concurrent_fetches=0)
    assert fetcher.max_concurrency == 1
