# src/gateways/base.py
# Common interface for source gateways
# ====================================

"""
A gateway turns one source row into a bounded list of raw candidates.

The pipeline treats gateways as opaque producers: it never looks at how a
candidate was found, only at the :class:`CandidateModel` fields. Gateways
raise :class:`src.errors.GatewayError` when the source cannot be reached;
anything malformed about an individual entry is left for the filter.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from src.contracts import CandidateModel
from src.gateways.http import HttpFetcher
from src.utils.logger import build_log_payload, get_logger


class SourceGateway(ABC):
    """Base class for everything that can list candidates for a source."""

    name = "base"

    def __init__(self, fetcher: Optional[HttpFetcher] = None) -> None:
        self.fetcher = fetcher or HttpFetcher()
        self.module_logger = get_logger().create_module_logger(f"gateways.{self.name}")

    @abstractmethod
    def fetch_candidates(self, source: Any, limit: int) -> List[CandidateModel]:
        """
        Return at most ``limit`` candidates for ``source``.

        Args:
            source: a ``Source`` row (or any object exposing the same attributes)
            limit: upper bound on the number of candidates returned
        """

    def _emit_log(
        self,
        level: str,
        event: str,
        *,
        source_id: Optional[int] = None,
        url: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = build_log_payload(event, source_id=source_id, url=url, details=details)
        getattr(self.module_logger, level, self.module_logger.info)(payload)

    @staticmethod
    def _dedupe(candidates: List[CandidateModel], limit: int) -> List[CandidateModel]:
        seen = set()
        unique: List[CandidateModel] = []
        for candidate in candidates:
            if not candidate.link or candidate.link in seen:
                continue
            seen.add(candidate.link)
            unique.append(candidate)
            if len(unique) >= limit:
                break
        return unique


__all__ = ["SourceGateway"]
