"""Category presentation helpers."""

from __future__ import annotations

import html
import re
import unicodedata

ALLOWED_NAME_TAGS = frozenset({"b", "em", "i", "strong"})
# Largest id a signed 64-bit integer column holds.
MAX_CATEGORY_ID = 2**63 - 1

_TAG_RE = re.compile(r"</?\s*([a-zA-Z][a-zA-Z0-9]*)[^>]*>")


def slugify(value: str) -> str:
    """Normalize a category slug or name to a URL-safe slug."""
    ascii_only = (
        unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    )
    lowered = ascii_only.lower()
    cleaned = re.sub(r"[^a-z0-9_]+", "-", lowered)
    return cleaned.strip("-")


def _strip_tags(text: str) -> str:
    def _keep_allowed(match: re.Match[str]) -> str:
        tag = match.group(1).lower()
        if tag not in ALLOWED_NAME_TAGS:
            return ""
        closing = match.group(0).startswith("</")
        return f"</{tag}>" if closing else f"<{tag}>"

    return _TAG_RE.sub(_keep_allowed, text)


def display_name(name: str) -> str:
    """Decode entities, drop markup except simple emphasis and upper-case."""

    decoded = html.unescape(name)
    return _strip_tags(decoded).upper()


def coerce_category_id(value: object) -> int:
    """Coerce request input to a category id.

    Malformed, negative or out-of-range input is 0, the root.
    """

    if value is None or isinstance(value, bool):
        return 0
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return 0
    return number if 0 < number <= MAX_CATEGORY_ID else 0


__all__ = ["ALLOWED_NAME_TAGS", "MAX_CATEGORY_ID", "coerce_category_id", "display_name", "slugify"]
