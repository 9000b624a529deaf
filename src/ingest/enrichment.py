# src/ingest/enrichment.py
# Bounded-concurrency page fetching
# =================================

"""
Fetches the article pages of a batch concurrently so the date resolver and
the image lookup can read their HTML.

Concurrency is capped by ``collection.max_concurrent_fetches`` through an
``asyncio.Semaphore``; results are keyed by the requested URL so a snapshot
is always attributed to the candidate that asked for it. Bodies are streamed
and abandoned once they pass ``collection.max_response_bytes``. A page that
cannot be fetched simply has no snapshot.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

import httpx

from src.gateways.http import DEFAULT_ACCEPT, RETRY_STATUSES
from src.utils.logger import build_log_payload, get_logger

HTML_TYPES = ("html", "xml")


@dataclass(frozen=True)
class PageSnapshot:
    url: str
    final_url: str
    status: int
    html: str
    headers: Dict[str, str] = field(default_factory=dict)


class AsyncPageFetcher:
    def __init__(
        self,
        collection_config: Optional[Mapping[str, Any]] = None,
        rate_limiting_config: Optional[Mapping[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if collection_config is None or rate_limiting_config is None:
            from config.settings import COLLECTION_CONFIG, RATE_LIMITING_CONFIG

            collection_config = collection_config or COLLECTION_CONFIG
            rate_limiting_config = rate_limiting_config or RATE_LIMITING_CONFIG
        self.collection_config = dict(collection_config)
        self.rate_limiting_config = dict(rate_limiting_config)
        self.max_concurrency = max(1, min(8, int(self.collection_config.get("max_concurrent_fetches", 6))))
        self.transport = transport
        self._sleep = sleep
        self.module_logger = get_logger().create_module_logger("ingest.enrichment")

    def _delay(self, attempt: int) -> float:
        base = self.rate_limiting_config.get("backoff_base", 0.5)
        max_b = self.rate_limiting_config.get("backoff_max", 8.0)
        jitter = random.uniform(0, self.rate_limiting_config.get("jitter_max", 0.3))
        return min(max_b, (base * (2**attempt)) + jitter)

    def _client(self) -> httpx.AsyncClient:
        headers = {
            "User-Agent": self.collection_config.get("user_agent", "GridironIngestBot"),
            "Accept": DEFAULT_ACCEPT,
            "Accept-Language": "en-US,en;q=0.9",
        }
        return httpx.AsyncClient(
            headers=headers,
            follow_redirects=True,
            timeout=self.collection_config.get("request_timeout", 15),
            transport=self.transport,
        )

    async def fetch_one(
        self, client: httpx.AsyncClient, url: str
    ) -> Optional[PageSnapshot]:
        max_retries = int(self.rate_limiting_config.get("max_retries", 2))
        max_bytes = int(self.collection_config.get("max_response_bytes", 5 * 1024 * 1024))

        for attempt in range(0, max_retries + 1):
            try:
                async with client.stream("GET", url) as response:
                    if response.status_code not in RETRY_STATUSES or attempt >= max_retries:
                        return await self._snapshot(response, url, max_bytes)
            except httpx.TransportError as exc:
                if attempt >= max_retries:
                    self.module_logger.warning(
                        build_log_payload(
                            "enrichment.fetch.retry_exhausted", url=url, details={"error": str(exc)}
                        )
                    )
                    return None
            await self._sleep(self._delay(attempt))
        return None

    async def _snapshot(
        self, response: httpx.Response, url: str, max_bytes: int
    ) -> Optional[PageSnapshot]:
        if response.status_code >= 400:
            self.module_logger.debug(
                build_log_payload(
                    "enrichment.fetch.http_error",
                    url=url,
                    details={"status_code": response.status_code},
                )
            )
            return None

        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(kind in content_type for kind in HTML_TYPES):
            return None

        declared = response.headers.get("content-length", "")
        size = int(declared) if declared.isdigit() else 0
        body = bytearray()
        if size <= max_bytes:
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                size = len(body)
                if size > max_bytes:
                    break
        if size > max_bytes:
            self.module_logger.debug(
                build_log_payload("enrichment.fetch.too_large", url=url, details={"bytes": size})
            )
            return None

        return PageSnapshot(
            url=url,
            final_url=str(response.url),
            status=response.status_code,
            html=bytes(body).decode(response.encoding or "utf-8", errors="replace"),
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    async def fetch_all(self, urls: Iterable[str]) -> Dict[str, PageSnapshot]:
        unique = list(dict.fromkeys(u for u in urls if u))
        if not unique:
            return {}

        results: Dict[str, PageSnapshot] = {}
        sem = asyncio.Semaphore(self.max_concurrency)

        async with self._client() as client:

            async def run_one(url: str) -> None:
                async with sem:
                    try:
                        snapshot = await self.fetch_one(client, url)
                    except Exception as exc:
                        self.module_logger.warning(
                            build_log_payload(
                                "enrichment.fetch.exception", url=url, details={"error": str(exc)}
                            )
                        )
                        return
                if snapshot is not None:
                    results[url] = snapshot

            await asyncio.gather(*(run_one(url) for url in unique))

        self.module_logger.debug(
            build_log_payload(
                "enrichment.batch.done",
                details={"requested": len(unique), "fetched": len(results)},
            )
        )
        return results

    def fetch_pages(self, urls: Iterable[str]) -> Dict[str, PageSnapshot]:
        """Synchronous entry point for the orchestrator."""
        return asyncio.run(self.fetch_all(urls))


__all__ = ["AsyncPageFetcher", "PageSnapshot"]
