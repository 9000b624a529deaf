import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from src.storage.database import DatabaseManager  # noqa: E402

FILTER_CONFIG = {
    "deny_domains": ["nba.com", "mlb.com"],
    "deny_keywords": ["hockey", "nba"],
    "editorial_block_terms": ["nascar"],
    "forbidden_path_pattern": r"/(about|privacy|login)\b",
    "guarded_source_ids": [],
    "source_rules": {},
}
COLLECTION_CONFIG = {
    "default_item_limit": 200,
    "per_source_limit": 50,
    "max_concurrent_fetches": 4,
    "request_timeout": 5,
    "max_response_bytes": 1024 * 1024,
    "user_agent": "GridironTest/1.0",
}
RATE_LIMITING_CONFIG = {"max_retries": 2, "backoff_base": 0.01, "backoff_max": 0.05, "jitter_max": 0.0}
CLASSIFICATION_CONFIG = {"max_week": 18, "preseason_months": [6, 7, 8], "junk_topics_policy": "keep"}
IMAGES_CONFIG = {"backfill_enabled": True, "weak_markers": ["logo", "favicon", "avatar"], "min_dimension": 200}
DATES_CONFIG = {"max_future_skew_hours": 36}

NOW = datetime(2024, 10, 16, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager({"type": "sqlite", "path": tmp_path / "test.db"})
    yield manager
    manager.dispose()


@pytest.fixture
def seeded_db(db):
    db.seed_sources(
        [
            {
                "id": 1,
                "name": "Feed One",
                "homepage_url": "https://feedone.example.com/",
                "rss_url": "https://feedone.example.com/feed",
                "fetch_mode": "rss",
                "priority": 20,
                "allowed": True,
            },
            {
                "id": 2,
                "name": "Feed Two",
                "homepage_url": "https://feedtwo.example.com/",
                "rss_url": "https://feedtwo.example.com/feed",
                "fetch_mode": "rss",
                "priority": 10,
                "allowed": True,
            },
            {
                "id": 3,
                "name": "Disabled",
                "homepage_url": "https://disabled.example.com/",
                "fetch_mode": "scrape",
                "priority": 5,
                "allowed": False,
            },
        ]
    )
    return db


def make_source(**overrides):
    values = {
        "id": 1,
        "name": "Test Source",
        "homepage_url": None,
        "rss_url": None,
        "sitemap_url": None,
        "scrape_selector": None,
        "fetch_mode": "auto",
    }
    values.update(overrides)
    return SimpleNamespace(**values)
