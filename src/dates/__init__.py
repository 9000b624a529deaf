"""Published-date resolution from independent page, feed and transport signals."""

from .candidates import DateCandidate, PublishedSource, pick_best
from .resolver import DateResolver, ResolvedDate

__all__ = ["DateCandidate", "DateResolver", "PublishedSource", "ResolvedDate", "pick_best"]
