"""
Persistence layer: models, the typed merge and the database handle.
"""

from .database import DatabaseManager, UpsertResult
from .merge import ABSENT, PartialArticle, Present, merge_article
from .models import Article, Base, BlockedUrl, IngestEvent, Job, JobEvent, Source

__all__ = [
    "ABSENT",
    "Article",
    "Base",
    "BlockedUrl",
    "DatabaseManager",
    "IngestEvent",
    "Job",
    "JobEvent",
    "PartialArticle",
    "Present",
    "Source",
    "UpsertResult",
    "merge_article",
]
