"""Source gateways: feed, sitemap and index-page candidate producers."""

from .auto import AutoSourceGateway
from .base import SourceGateway
from .http import FetchResult, HttpFetcher
from .rss import RssGateway
from .scrape import ScrapeGateway
from .sitemap import SitemapGateway

__all__ = [
    "AutoSourceGateway",
    "FetchResult",
    "HttpFetcher",
    "RssGateway",
    "ScrapeGateway",
    "SitemapGateway",
    "SourceGateway",
]
