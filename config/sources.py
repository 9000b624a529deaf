# config/sources.py
# Seed catalog of fantasy football publishers
# ===========================================

"""
Initial source rows loaded by ``run_ingest.py --seed-sources``.

Once seeded, sources are owned by the admin surface and the pipeline only
reads them. Each entry describes how the gateway reaches the publisher:

- ``fetch_mode``: ``rss``, ``sitemap``, ``scrape`` or ``auto``
- ``priority``: lower numbers are ingested first in all-sources runs
- ``allowed``: sources flagged ``False`` are skipped by all-sources runs
"""

from typing import Any, Dict, List

SEED_SOURCES: List[Dict[str, Any]] = [
    {
        "id": 1,
        "name": "FantasyPros News",
        "homepage_url": "https://www.fantasypros.com/nfl/",
        "rss_url": "https://www.fantasypros.com/feed/",
        "fetch_mode": "rss",
        "category": "analysis",
        "priority": 10,
        "allowed": True,
    },
    {
        "id": 2,
        "name": "Rotoballer NFL",
        "homepage_url": "https://www.rotoballer.com/",
        "rss_url": "https://www.rotoballer.com/category/nfl/feed",
        "fetch_mode": "rss",
        "category": "analysis",
        "priority": 20,
        "allowed": True,
    },
    {
        "id": 3,
        "name": "Razzball Football",
        "homepage_url": "https://football.razzball.com/",
        "rss_url": "https://football.razzball.com/feed",
        "fetch_mode": "rss",
        "category": "analysis",
        "priority": 30,
        "allowed": True,
    },
    {
        "id": 4,
        "name": "Yahoo Sports Fantasy",
        "homepage_url": "https://sports.yahoo.com/fantasy/",
        "rss_url": "https://sports.yahoo.com/fantasy/rss.xml",
        "fetch_mode": "rss",
        "category": "news",
        "priority": 40,
        "allowed": True,
    },
    {
        "id": 5,
        "name": "NFL.com Fantasy",
        "homepage_url": "https://www.nfl.com/news/",
        "sitemap_url": "https://www.nfl.com/sitemap/news.xml",
        "fetch_mode": "sitemap",
        "category": "news",
        "priority": 50,
        "allowed": True,
    },
    {
        "id": 6,
        "name": "CBS Sports",
        "homepage_url": "https://www.cbssports.com/fantasy/football/",
        "rss_url": "https://www.cbssports.com/rss/headlines/fantasy/",
        "fetch_mode": "auto",
        "category": "news",
        "priority": 60,
        "allowed": True,
    },
    {
        "id": 7,
        "name": "Fantasy Footballers",
        "homepage_url": "https://www.thefantasyfootballers.com/articles/",
        "scrape_selector": "article h2 a, .article-title a",
        "fetch_mode": "scrape",
        "category": "analysis",
        "priority": 70,
        "allowed": True,
    },
    {
        "id": 8,
        "name": "Generic Sports Wire",
        "homepage_url": "https://www.sportswire.example.com/",
        "rss_url": "https://www.sportswire.example.com/rss",
        "fetch_mode": "rss",
        "category": "news",
        "priority": 90,
        "allowed": False,
    },
]
