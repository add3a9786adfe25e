"""Text normalization utilities for search queries and result previews."""

from __future__ import annotations

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE = re.compile(r"\s+")


def normalize_query(
    text: str, *, collapse_whitespace: bool = False, strip: bool = True
) -> str:
    """Return ``text`` without control characters.

    Args:
        text: Raw query typed by the user.
        collapse_whitespace: Collapse inner whitespace runs to single spaces.
        strip: Trim surrounding whitespace. Content search keeps the query
            literal, so it turns this and ``collapse_whitespace`` off.

    Returns:
        str: Sanitized query.
    """

    sanitized = _CONTROL_CHARS.sub("", text)
    if collapse_whitespace:
        sanitized = _WHITESPACE.sub(" ", sanitized)
    return sanitized.strip() if strip else sanitized


def preview(text: str, position: int, *, width: int = 80) -> str:
    """Return a single-line excerpt of ``text`` centred on ``position``.

    Args:
        text: Note body.
        position: Character offset of the match.
        width: Maximum number of characters in the excerpt.

    Returns:
        str: Excerpt with whitespace collapsed and ellipses where trimmed.
    """

    if width <= 0:
        return ""
    start = max(0, position - width // 3)
    end = min(len(text), start + width)
    excerpt = _CONTROL_CHARS.sub(" ", text[start:end])
    excerpt = _WHITESPACE.sub(" ", excerpt).strip()
    if start > 0:
        excerpt = "..." + excerpt
    if end < len(text):
        excerpt = excerpt + "..."
    return excerpt


__all__ = ["normalize_query", "preview"]
