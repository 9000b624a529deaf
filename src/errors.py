"""Exception hierarchy for the ingestion pipeline.

Filter rejections and extractor parse failures are not exceptions: they are
returned as decisions or simply produce no candidates. Only failures that
cross a component boundary are modelled here.
"""

from __future__ import annotations

from typing import Optional


class IngestError(Exception):
    """Base class for pipeline failures."""


class GatewayError(IngestError):
    """A remote fetch failed after the bounded retry budget was spent."""

    def __init__(
        self, message: str, *, url: Optional[str] = None, status_code: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class SourceNotFoundError(IngestError):
    """The requested source id does not exist."""

    def __init__(self, source_id: int) -> None:
        super().__init__(f"Source {source_id} not found")
        self.source_id = source_id


class PersistenceError(IngestError):
    """A write against the relational store failed and was rolled back."""


__all__ = ["GatewayError", "IngestError", "PersistenceError", "SourceNotFoundError"]
