"""Shared contracts for validated pipeline payloads."""

from .candidate import HINT_SOURCES, CandidateModel, CandidatePayload

__all__ = ["CandidateModel", "CandidatePayload", "HINT_SOURCES"]
