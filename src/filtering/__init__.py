"""Candidate filtering (URL shape, deny lists, editorial rules)."""

from .content_filter import CandidateFilter, SourceRule, looks_clearly_nfl
from .url_filter import FilterDecision, check_url, is_likely_article_url, is_utility_url

__all__ = [
    "CandidateFilter",
    "FilterDecision",
    "SourceRule",
    "check_url",
    "is_likely_article_url",
    "is_utility_url",
    "looks_clearly_nfl",
]
