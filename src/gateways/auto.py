# src/gateways/auto.py
# Gateway dispatch by source fetch mode
# =====================================

"""
``AutoSourceGateway`` is what the pipeline holds. Sources with an explicit
``fetch_mode`` go straight to that gateway; ``auto`` sources try the feed,
then the sitemap, then the index page, stopping at the first that yields
candidates.
"""

from typing import Any, Dict, List, Optional

from src.contracts import CandidateModel
from src.errors import GatewayError
from src.gateways.base import SourceGateway
from src.gateways.http import HttpFetcher
from src.gateways.rss import RssGateway
from src.gateways.scrape import ScrapeGateway
from src.gateways.sitemap import SitemapGateway

AUTO_ORDER = (("rss", "rss_url"), ("sitemap", "sitemap_url"), ("scrape", "homepage_url"))


class AutoSourceGateway(SourceGateway):
    name = "auto"

    def __init__(
        self,
        fetcher: Optional[HttpFetcher] = None,
        gateways: Optional[Dict[str, SourceGateway]] = None,
    ) -> None:
        super().__init__(fetcher)
        self.gateways: Dict[str, SourceGateway] = gateways or {
            "rss": RssGateway(self.fetcher),
            "sitemap": SitemapGateway(self.fetcher),
            "scrape": ScrapeGateway(self.fetcher),
        }

    def fetch_candidates(self, source: Any, limit: int) -> List[CandidateModel]:
        mode = (getattr(source, "fetch_mode", None) or "auto").lower()
        if mode != "auto":
            gateway = self.gateways.get(mode)
            if gateway is None:
                raise GatewayError(f"unknown fetch mode {mode!r} for source {source.id}")
            return gateway.fetch_candidates(source, limit)

        last_error: Optional[GatewayError] = None
        tried = False
        for mode, attribute in AUTO_ORDER:
            if not getattr(source, attribute, None) or mode not in self.gateways:
                continue
            tried = True
            try:
                candidates = self.gateways[mode].fetch_candidates(source, limit)
            except GatewayError as exc:
                last_error = exc
                self._emit_log(
                    "info",
                    "gateway.auto.fallback",
                    source_id=source.id,
                    details={"mode": mode, "error": str(exc)},
                )
                continue
            if candidates:
                return candidates

        if last_error is not None:
            raise last_error
        if not tried:
            raise GatewayError(f"source {source.id} has no fetch configuration")
        return []


__all__ = ["AUTO_ORDER", "AutoSourceGateway"]
