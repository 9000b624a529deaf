"""Typed traversal of JSON-LD blocks.

``JsonValue`` mirrors what ``json.loads`` can return. The visitor walks it by
recursive descent and returns the matches it finds instead of mutating
shared state, so every caller gets an independent list.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

JsonValue = Union[str, int, float, bool, None, List["JsonValue"], Dict[str, "JsonValue"]]

DATE_FIELDS: Tuple[str, ...] = ("datePublished", "dateCreated", "dateModified")


@dataclass(frozen=True)
class JsonLdMatch:
    key: str
    value: str
    node_type: Optional[str] = None


def parse_block(text: str) -> Optional[JsonValue]:
    """Parse one ``<script type="application/ld+json">`` body; ``None`` if malformed."""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def _node_type(node: Dict[str, JsonValue]) -> Optional[str]:
    raw = node.get("@type")
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list) and raw and isinstance(raw[0], str):
        return raw[0]
    return None


def visit(value: JsonValue, keys: Tuple[str, ...] = DATE_FIELDS) -> List[JsonLdMatch]:
    """Return every string value stored under one of ``keys``, depth first."""

    if isinstance(value, list):
        matches: List[JsonLdMatch] = []
        for item in value:
            matches.extend(visit(item, keys))
        return matches

    if isinstance(value, dict):
        matches = []
        node_type = _node_type(value)
        for key in keys:
            field = value.get(key)
            if isinstance(field, str) and field.strip():
                matches.append(JsonLdMatch(key=key, value=field.strip(), node_type=node_type))
        for key, child in value.items():
            if key in keys:
                continue
            if isinstance(child, (list, dict)):
                matches.extend(visit(child, keys))
        return matches

    # scalars carry no nested structure
    return []


def find_images(value: JsonValue) -> List[str]:
    """Return ``image`` URLs (string, list or ImageObject forms) found in the tree."""

    if isinstance(value, list):
        found: List[str] = []
        for item in value:
            found.extend(find_images(item))
        return found
    if not isinstance(value, dict):
        return []

    found = []
    image = value.get("image") or value.get("thumbnailUrl")
    if isinstance(image, str):
        found.append(image)
    elif isinstance(image, dict) and isinstance(image.get("url"), str):
        found.append(image["url"])
    elif isinstance(image, list):
        for entry in image:
            if isinstance(entry, str):
                found.append(entry)
            elif isinstance(entry, dict) and isinstance(entry.get("url"), str):
                found.append(entry["url"])
    for key, child in value.items():
        if key not in ("image", "thumbnailUrl") and isinstance(child, (list, dict)):
            found.extend(find_images(child))
    return found


__all__ = ["DATE_FIELDS", "JsonLdMatch", "JsonValue", "find_images", "parse_block", "visit"]
