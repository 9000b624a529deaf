# src/gateways/http.py
# Shared HTTP fetcher for source gateways
# =======================================

"""
One ``requests.Session`` shared by every gateway of a process.

Retries are handled here rather than by urllib3 so the jittered backoff
stays under our control: timeouts, connection errors, 429 and 5xx responses
are retried up to ``max_retries`` times, sleeping
``min(backoff_max, backoff_base * 2**attempt + jitter)`` between attempts.
Once the budget is spent the fetch raises :class:`GatewayError`.
"""

import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter

from src.errors import GatewayError
from src.utils.logger import build_log_payload, get_logger

RETRY_STATUSES = (429, 500, 502, 503, 504)

DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml"
CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FetchResult:
    url: str
    final_url: str
    status_code: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)


def _decode(body: bytes, encoding: Optional[str], headers: Mapping[str, str]) -> str:
    # no declared charset means utf-8, not the ISO-8859-1 requests assumes for text/*
    if not encoding or "charset" not in headers.get("content-type", "").lower():
        encoding = "utf-8"
    try:
        return body.decode(encoding, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


class HttpFetcher:
    """Blocking fetcher with timeout, size guard and bounded retries."""

    def __init__(
        self,
        collection_config: Optional[Mapping[str, Any]] = None,
        rate_limiting_config: Optional[Mapping[str, Any]] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if collection_config is None or rate_limiting_config is None:
            from config.settings import COLLECTION_CONFIG, RATE_LIMITING_CONFIG

            collection_config = collection_config or COLLECTION_CONFIG
            rate_limiting_config = rate_limiting_config or RATE_LIMITING_CONFIG
        self.collection_config = dict(collection_config)
        self.rate_limiting_config = dict(rate_limiting_config)
        self.session = session or self._create_session()
        self._sleep = sleep
        self.module_logger = get_logger().create_module_logger("gateways.http")

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "User-Agent": self.collection_config.get("user_agent", "GridironIngestBot"),
                "Accept-Language": "en-US,en;q=0.9",
                "Accept-Encoding": "gzip, deflate",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            }
        )

        # Pooling adapter; retries handled manually for jitter control
        adapter = HTTPAdapter(pool_connections=10, pool_maxsize=20)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def backoff_delay(self, attempt: int) -> float:
        base = self.rate_limiting_config.get("backoff_base", 0.5)
        max_b = self.rate_limiting_config.get("backoff_max", 8.0)
        jitter = random.uniform(0, self.rate_limiting_config.get("jitter_max", 0.3))
        return min(max_b, (base * (2**attempt)) + jitter)

    def _backoff_sleep(self, attempt: int) -> None:
        self._sleep(self.backoff_delay(attempt))

    def get(self, url: str, *, accept: str = DEFAULT_ACCEPT) -> FetchResult:
        """Fetch ``url`` or raise :class:`GatewayError` once retries are exhausted."""

        max_retries = int(self.rate_limiting_config.get("max_retries", 2))
        timeout = self.collection_config.get("request_timeout", 15)
        max_bytes = int(self.collection_config.get("max_response_bytes", 5 * 1024 * 1024))

        for attempt in range(0, max_retries + 1):
            try:
                response = self.session.get(
                    url, timeout=timeout, headers={"Accept": accept}, stream=True
                )
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                if attempt < max_retries:
                    self._backoff_sleep(attempt)
                    continue
                self.module_logger.warning(
                    build_log_payload(
                        "gateway.fetch.retry_exhausted",
                        url=url,
                        details={"error": str(exc), "attempts": attempt + 1},
                    )
                )
                raise GatewayError(f"fetch failed: {exc}", url=url) from exc
            except requests.exceptions.RequestException as exc:
                self.module_logger.warning(
                    build_log_payload(
                        "gateway.fetch.exception", url=url, details={"error": str(exc)}
                    )
                )
                raise GatewayError(f"fetch failed: {exc}", url=url) from exc

            if response.status_code in RETRY_STATUSES:
                response.close()
                if attempt < max_retries:
                    self._backoff_sleep(attempt)
                    continue
                self.module_logger.warning(
                    build_log_payload(
                        "gateway.fetch.status_retry_exhausted",
                        url=url,
                        details={"status_code": response.status_code},
                    )
                )
                raise GatewayError(
                    f"HTTP {response.status_code} after {attempt + 1} attempts",
                    url=url,
                    status_code=response.status_code,
                )

            if response.status_code >= 400:
                response.close()
                raise GatewayError(
                    f"HTTP {response.status_code}", url=url, status_code=response.status_code
                )

            headers = {k.lower(): v for k, v in dict(response.headers or {}).items()}
            try:
                body = self._read_capped(response, url, headers, max_bytes)
            except requests.exceptions.RequestException as exc:
                raise GatewayError(f"fetch failed: {exc}", url=url) from exc
            finally:
                response.close()

            return FetchResult(
                url=url,
                final_url=str(getattr(response, "url", None) or url),
                status_code=response.status_code,
                text=_decode(body, response.encoding, headers),
                headers=headers,
            )

        raise GatewayError("retry budget exhausted", url=url)

    def _read_capped(
        self, response: requests.Response, url: str, headers: Mapping[str, str], max_bytes: int
    ) -> bytes:
        """Read the body in chunks, giving up as soon as it passes ``max_bytes``."""
        declared = headers.get("content-length", "")
        size = int(declared) if declared.isdigit() else 0
        body = bytearray()
        if size <= max_bytes:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                body.extend(chunk)
                size = len(body)
                if size > max_bytes:
                    break
        if size > max_bytes:
            self.module_logger.warning(
                build_log_payload("gateway.fetch.too_large", url=url, details={"bytes": size})
            )
            raise GatewayError(
                f"response too large (over {max_bytes} bytes)",
                url=url,
                status_code=response.status_code,
            )
        return bytes(body)

    def close(self) -> None:
        self.session.close()


__all__ = ["DEFAULT_ACCEPT", "FEED_ACCEPT", "FetchResult", "HttpFetcher", "RETRY_STATUSES"]
