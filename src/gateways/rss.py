# src/gateways/rss.py
# RSS / Atom feed gateway
# =======================

"""Candidates from a source's RSS or Atom feed, parsed with feedparser."""

from typing import Any, List, Optional

import feedparser

from src.contracts import CandidateModel
from src.errors import GatewayError
from src.gateways.base import SourceGateway
from src.gateways.http import FEED_ACCEPT
from src.utils.text_cleaner import clean_html

# feedparser marks many usable feeds as bozo for minor defects
ACCEPTABLE_BOZO = ("CharacterEncodingOverride", "NonXMLContentType", "UndeclaredNamespace")


class RssGateway(SourceGateway):
    name = "rss"

    def fetch_candidates(self, source: Any, limit: int) -> List[CandidateModel]:
        feed_url = getattr(source, "rss_url", None)
        if not feed_url:
            raise GatewayError(f"source {source.id} has no feed url")

        result = self.fetcher.get(feed_url, accept=FEED_ACCEPT)
        parsed = feedparser.parse(result.text)
        if parsed.bozo and not self._is_acceptable_bozo(parsed):
            if not parsed.entries:
                raise GatewayError(
                    f"unparseable feed: {parsed.get('bozo_exception')}", url=feed_url
                )
            self._emit_log(
                "warning",
                "gateway.feed.bozo",
                source_id=source.id,
                url=feed_url,
                details={"error": str(parsed.get("bozo_exception"))},
            )

        is_atom = str(parsed.get("version") or "").startswith("atom")
        candidates = [self._to_candidate(entry, is_atom) for entry in parsed.entries]
        candidates = self._dedupe(candidates, limit)
        self._emit_log(
            "debug",
            "gateway.feed.parsed",
            source_id=source.id,
            url=feed_url,
            details={"entries": len(parsed.entries), "candidates": len(candidates)},
        )
        return candidates

    @staticmethod
    def _is_acceptable_bozo(parsed) -> bool:
        exception = parsed.get("bozo_exception")
        return exception is not None and exception.__class__.__name__ in ACCEPTABLE_BOZO

    def _to_candidate(self, entry, is_atom: bool) -> CandidateModel:
        published = entry.get("published") or entry.get("created")
        updated = entry.get("updated")
        if published:
            hint, hint_source = published, "atom" if is_atom else "rss"
            updated_hint = updated if updated and updated != published else None
        elif updated:
            # feedparser files dc:date under ``updated``
            hint, hint_source = updated, "atom" if is_atom else "dc"
            updated_hint = None
        else:
            hint, hint_source, updated_hint = None, "atom" if is_atom else "rss", None

        return CandidateModel(
            title=clean_html(entry.get("title") or ""),
            link=entry.get("link") or entry.get("id") or "",
            published_hint=hint,
            published_hint_source=hint_source,
            updated_hint=updated_hint,
            description=self._extract_summary(entry),
            image_url=self._extract_image(entry),
            author=entry.get("author"),
        )

    @staticmethod
    def _extract_summary(entry) -> Optional[str]:
        for field in ("summary", "description", "content"):
            content = entry.get(field)
            if isinstance(content, list) and content:
                content = content[0].get("value", "") if isinstance(content[0], dict) else str(content[0])
            elif isinstance(content, dict):
                content = content.get("value", "")
            if content and isinstance(content, str):
                cleaned = clean_html(content)
                if cleaned:
                    return cleaned
        return None

    @staticmethod
    def _extract_image(entry) -> Optional[str]:
        for field in ("media_content", "media_thumbnail"):
            for media in entry.get(field) or []:
                url = media.get("url") if isinstance(media, dict) else None
                medium = (media.get("medium") or media.get("type") or "image") if isinstance(media, dict) else ""
                if url and ("image" in medium or field == "media_thumbnail"):
                    return url
        for enclosure in entry.get("enclosures") or []:
            if str(enclosure.get("type", "")).startswith("image/") and enclosure.get("href"):
                return enclosure["href"]
        return None


__all__ = ["RssGateway"]
