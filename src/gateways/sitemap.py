# src/gateways/sitemap.py
# Sitemap XML gateway
# ===================

"""
Candidates from a sitemap: every ``<url>`` contributes its ``<loc>`` as the
link and its ``<lastmod>`` as a ``sitemap``-tagged date hint. Google News
sitemaps also carry ``<news:title>`` and ``<news:publication_date>``; the
latter is a publisher-declared date and travels as a ``meta`` hint, which
outranks ``lastmod``.

Sitemap indexes are followed one level deep, newest child first.
"""

from typing import Any, List, Optional, Tuple

from bs4 import BeautifulSoup

from src.contracts import CandidateModel
from src.errors import GatewayError
from src.gateways.base import SourceGateway
from src.gateways.http import FEED_ACCEPT

MAX_CHILD_SITEMAPS = 3


def _text(node, name: str) -> Optional[str]:
    child = node.find(name)
    if child is None:
        return None
    value = child.get_text(strip=True)
    return value or None


def parse_sitemap(xml: str) -> Tuple[List[Tuple[str, Optional[str]]], List[CandidateModel]]:
    """Split a sitemap document into ``(child sitemaps, url candidates)``."""

    soup = BeautifulSoup(xml, "html.parser")
    children = []
    for node in soup.find_all("sitemap"):
        loc = _text(node, "loc")
        if loc:
            children.append((loc, _text(node, "lastmod")))

    candidates = []
    for node in soup.find_all("url"):
        loc = _text(node, "loc")
        if not loc:
            continue
        news_date = _text(node, "news:publication_date")
        candidates.append(
            CandidateModel(
                title=_text(node, "news:title") or "",
                link=loc,
                published_hint=news_date or _text(node, "lastmod"),
                published_hint_source="meta" if news_date else "sitemap",
            )
        )
    return children, candidates


class SitemapGateway(SourceGateway):
    name = "sitemap"

    def fetch_candidates(self, source: Any, limit: int) -> List[CandidateModel]:
        sitemap_url = getattr(source, "sitemap_url", None)
        if not sitemap_url:
            raise GatewayError(f"source {source.id} has no sitemap url")

        children, candidates = parse_sitemap(
            self.fetcher.get(sitemap_url, accept=FEED_ACCEPT).text
        )
        if children:
            children.sort(key=lambda item: item[1] or "", reverse=True)
            for child_url, _ in children[:MAX_CHILD_SITEMAPS]:
                if len(candidates) >= limit:
                    break
                try:
                    _, found = parse_sitemap(self.fetcher.get(child_url, accept=FEED_ACCEPT).text)
                except GatewayError as exc:
                    self._emit_log(
                        "warning",
                        "gateway.sitemap.child_failed",
                        source_id=source.id,
                        url=child_url,
                        details={"error": str(exc)},
                    )
                    continue
                candidates.extend(found)

        # newest first so the limit keeps the freshest urls
        candidates.sort(key=lambda c: c.published_hint or "", reverse=True)
        return self._dedupe(candidates, limit)


__all__ = ["SitemapGateway", "parse_sitemap"]
