"""Contract for raw candidates yielded by source gateways."""

from __future__ import annotations

from typing import Any, Dict, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator

HINT_SOURCES = ("rss", "atom", "dc", "meta", "sitemap", "modified")


class CandidatePayload(TypedDict, total=False):
    """Serialized candidate as produced by a gateway."""

    title: str
    link: str
    published_hint: str
    published_hint_source: str
    updated_hint: str
    description: str
    image_url: str
    author: str


class CandidateModel(BaseModel):
    """A raw, unvalidated item: a link plus whatever metadata the source exposed.

    Validation is deliberately lenient. Anything structurally odd about the
    link is left for the filter to reject with a reason.
    """

    title: str = ""
    link: str = ""
    published_hint: Optional[str] = None
    published_hint_source: str = Field(default="rss")
    updated_hint: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    @field_validator("title", "link", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator("published_hint", "updated_hint", "description", "image_url", "author", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("published_hint_source", mode="before")
    @classmethod
    def normalize_hint_source(cls, value: Any) -> str:
        normalized = str(value or "rss").strip().lower()
        if normalized not in HINT_SOURCES:
            raise ValueError(f"published_hint_source must be one of {HINT_SOURCES}")
        return normalized

    def feed_dates(self) -> Dict[str, Optional[str]]:
        """Feed-family date hints keyed by family tag (sitemap hints excluded)."""
        hints: Dict[str, Optional[str]] = {}
        if self.published_hint and self.published_hint_source != "sitemap":
            hints[self.published_hint_source] = self.published_hint
        if self.updated_hint:
            hints["modified"] = self.updated_hint
        return hints

    def sitemap_lastmod(self) -> Optional[str]:
        if self.published_hint_source == "sitemap":
            return self.published_hint
        return None
