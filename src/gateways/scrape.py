# src/gateways/scrape.py
# HTML index scraping gateway
# ===========================

"""Candidates from the anchors of a source's index page."""

from typing import Any, List
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from src.contracts import CandidateModel
from src.errors import GatewayError
from src.gateways.base import SourceGateway

DEFAULT_SELECTOR = "article a[href], h2 a[href], h3 a[href]"


class ScrapeGateway(SourceGateway):
    name = "scrape"

    def fetch_candidates(self, source: Any, limit: int) -> List[CandidateModel]:
        page_url = getattr(source, "homepage_url", None)
        if not page_url:
            raise GatewayError(f"source {source.id} has no index page")

        result = self.fetcher.get(page_url)
        selector = getattr(source, "scrape_selector", None) or DEFAULT_SELECTOR
        return self._dedupe(self.extract(result.text, result.final_url, selector), limit)

    @staticmethod
    def extract(html: str, base_url: str, selector: str = DEFAULT_SELECTOR) -> List[CandidateModel]:
        soup = BeautifulSoup(html, "html.parser")
        candidates = []
        for anchor in soup.select(selector):
            href = (anchor.get("href") or "").strip()
            if not href or href.startswith(("#", "mailto:", "javascript:")):
                continue
            link = urljoin(base_url, href)
            if urlparse(link).scheme not in ("http", "https"):
                continue
            title = anchor.get_text(" ", strip=True) or anchor.get("title") or ""
            candidates.append(CandidateModel(title=title, link=link))
        return candidates


__all__ = ["DEFAULT_SELECTOR", "ScrapeGateway"]
