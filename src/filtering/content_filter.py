"""Editorial filter: configured block terms, per-source rules and the non-NFL guard."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Pattern
from urllib.parse import unquote, urlparse

from src.filtering.url_filter import FilterDecision, check_url, host_matches
from src.utils.text_cleaner import lowered_words

_NFL_MARKERS = ("nfl", "fantasy football", "fantasy-football", "fantasyfootball", "fantasy%20football")


def looks_clearly_nfl(link: str, title: Optional[str] = None) -> bool:
    haystack = f"{link or ''} {title or ''}".lower()
    return any(marker in haystack for marker in _NFL_MARKERS)


def _compile_all(patterns: List[str]) -> List[Pattern[str]]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.I))
        except re.error:
            # an unusable regex is treated as a literal path fragment
            compiled.append(re.compile(re.escape(pattern), re.I))
    return compiled


@dataclass
class SourceRule:
    """Compiled form of a ``filtering.source_rules`` entry."""

    required_any: List[str] = field(default_factory=list)
    forbidden: List[str] = field(default_factory=list)
    path_allow: List[Pattern[str]] = field(default_factory=list)
    path_deny: List[Pattern[str]] = field(default_factory=list)

    @classmethod
    def from_config(cls, raw: Mapping[str, Any]) -> "SourceRule":
        return cls(
            required_any=[term.lower() for term in raw.get("required_any", [])],
            forbidden=[term.lower() for term in raw.get("forbidden", [])],
            path_allow=_compile_all(list(raw.get("path_allow", []))),
            path_deny=_compile_all(list(raw.get("path_deny", []))),
        )

    def check(self, text: str, path: str) -> Optional[str]:
        """Return a rejection reason, or ``None`` when the item passes."""
        folded = lowered_words(f"{text} {path}")
        if self.forbidden and any(lowered_words(term) in folded for term in self.forbidden):
            return "source_rule_forbidden"
        if self.path_deny and any(pattern.search(path) for pattern in self.path_deny):
            return "source_rule_path_deny"
        if self.path_allow and not any(pattern.search(path) for pattern in self.path_allow):
            return "source_rule_path_allow"
        if self.required_any and not any(
            lowered_words(term) in folded for term in self.required_any
        ):
            return "source_rule_required_any"
        return None


class CandidateFilter:
    """Combined URL and editorial filter.

    ``check(link, title, description, source_id)`` returns a
    :class:`FilterDecision` and never raises.
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None) -> None:
        if config is None:
            from config.settings import FILTERING_CONFIG

            config = FILTERING_CONFIG
        self.deny_domains: List[str] = list(config.get("deny_domains", []))
        self.deny_keywords: List[str] = list(config.get("deny_keywords", []))
        self.editorial_terms: List[str] = [
            term.lower() for term in config.get("editorial_block_terms", [])
        ]
        pattern = config.get("forbidden_path_pattern")
        self.forbidden_path: Optional[Pattern[str]] = (
            re.compile(pattern, re.I) if pattern else None
        )
        self.guarded_source_ids = {int(value) for value in config.get("guarded_source_ids", [])}
        self.source_rules: Dict[str, SourceRule] = {
            str(key).lower(): SourceRule.from_config(raw)
            for key, raw in (config.get("source_rules") or {}).items()
        }

    def _rules_for(self, source_id: Optional[int], host: str) -> List[SourceRule]:
        rules = []
        if source_id is not None and str(source_id) in self.source_rules:
            rules.append(self.source_rules[str(source_id)])
        for key, rule in self.source_rules.items():
            if not key.isdigit() and host_matches(host, [key]):
                rules.append(rule)
        return rules

    def check(
        self,
        link: str,
        title: str = "",
        description: Optional[str] = None,
        source_id: Optional[int] = None,
    ) -> FilterDecision:
        decision = check_url(
            link,
            title,
            deny_domains=self.deny_domains,
            deny_keywords=self.deny_keywords,
        )
        if not decision.keep:
            return decision

        parsed = urlparse(link.strip())
        path = unquote(parsed.path or "/")
        if self.forbidden_path is not None and self.forbidden_path.search(path):
            return FilterDecision.reject("forbidden_path")

        text = f"{title or ''} {description or ''}"
        folded = lowered_words(text)
        for term in self.editorial_terms:
            if lowered_words(term) in folded:
                return FilterDecision.reject(f"editorial_term:{term}", stage="content")

        if source_id is not None and source_id in self.guarded_source_ids:
            if not looks_clearly_nfl(link, title):
                return FilterDecision.reject("non_nfl_guard", stage="content")

        for rule in self._rules_for(source_id, parsed.hostname or ""):
            reason = rule.check(text, path)
            if reason:
                return FilterDecision.reject(reason, stage="content")

        return FilterDecision.accept()


__all__ = ["CandidateFilter", "SourceRule", "looks_clearly_nfl"]
