"""Topic, week, static-content and player inference."""

from .classifier import (
    CANONICAL_TOPICS,
    Classification,
    classify,
    infer_week,
    needs_reclassification,
)
from .players import extract_players, looks_like_player_page, to_player_key

__all__ = [
    "CANONICAL_TOPICS",
    "Classification",
    "classify",
    "extract_players",
    "infer_week",
    "looks_like_player_page",
    "needs_reclassification",
    "to_player_key",
]
