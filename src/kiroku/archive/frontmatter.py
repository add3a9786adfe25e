"""Frontmatter scanning for note tags.

Only the ``tags`` key of a leading ``---`` block is interpreted. The scanner
accepts the two list shapes people actually write::

    tags: [work, "urgent", 'q3 plans']

    tags:
      - work
      - urgent

Anything it cannot read is treated as "no tags"; callers never see an error.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from .errors import ParseDegradation

LOGGER = logging.getLogger(__name__)

DEFAULT_SCAN_BYTES = 64 * 1024
DELIMITER = "---"

_TAGS_KEY = re.compile(r"^tags\s*:(?P<rest>.*)$")
_SEQUENCE_ITEM = re.compile(r"^\s*-(?:\s+(?P<value>.*))?$")
_HEADING = re.compile(r"^\s{0,3}#{1,6}\s+(?P<text>.+?)(?:\s+#+)?\s*$")
_FENCE = re.compile(r"^\s{0,3}(```|~~~)")
_NULL_SCALARS = {"", "~", "null", "Null", "NULL"}


@dataclass(frozen=True, slots=True)
class Frontmatter:
    """Result of scanning the head of a note.

    Attributes:
        tags: Tags declared in the frontmatter block, in declaration order.
        present: Whether a well-formed frontmatter block was found.
        body_offset: Character offset where the note body starts.
    """

    tags: tuple[str, ...] = ()
    present: bool = False
    body_offset: int = 0


def decode_head(data: bytes | str, max_scan_bytes: int = DEFAULT_SCAN_BYTES) -> str:
    """Return at most ``max_scan_bytes`` of ``data`` as text without a BOM."""
    if isinstance(data, bytes):
        text = data[:max_scan_bytes].decode("utf-8", errors="replace")
    else:
        text = data[:max_scan_bytes]
    return text[1:] if text.startswith("\ufeff") else text


def parse_frontmatter(
    data: bytes | str, *, max_scan_bytes: int = DEFAULT_SCAN_BYTES
) -> Frontmatter:
    """Scan the leading frontmatter block of ``data``.

    Args:
        data: Raw file bytes or already decoded text.
        max_scan_bytes: Upper bound on how much of ``data`` is examined.

    Returns:
        Frontmatter: Parsed tags and the body offset. Malformed or missing
        blocks produce an empty result rather than an exception.
    """
    text = decode_head(data, max_scan_bytes)
    try:
        return _scan(text)
    except ParseDegradation as exc:
        LOGGER.debug("Ignoring malformed frontmatter: %s", exc)
        return Frontmatter()


def extract_tags(data: bytes | str, *, max_scan_bytes: int = DEFAULT_SCAN_BYTES) -> tuple[str, ...]:
    """Return the frontmatter tags of ``data`` (empty when absent or malformed)."""
    return parse_frontmatter(data, max_scan_bytes=max_scan_bytes).tags


def first_heading(text: str, start: int = 0) -> str | None:
    """Return the text of the first ATX heading at or after ``start``."""
    in_fence = False
    for line in text[start:].splitlines():
        if _FENCE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _HEADING.match(line)
        if match:
            return match.group("text").strip() or None
    return None


def _scan(text: str) -> Frontmatter:
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip() != DELIMITER:
        return Frontmatter()

    offset = len(lines[0])
    block: list[str] = []
    for line in lines[1:]:
        offset += len(line)
        if line.rstrip() == DELIMITER:
            tags = _read_tags(block)
            return Frontmatter(tags=tags, present=True, body_offset=offset)
        block.append(line.rstrip("\r\n"))

    raise ParseDegradation("frontmatter block has no closing delimiter within the scan window")


def _read_tags(block: list[str]) -> tuple[str, ...]:
    for index, line in enumerate(block):
        match = _TAGS_KEY.match(line)
        if match is None:
            continue
        rest = _strip_comment(match.group("rest")).strip()
        if rest.startswith("["):
            return _dedupe(_parse_flow_list(rest))
        if rest.startswith("{"):
            raise ParseDegradation("tags must be a list, not a mapping")
        if rest:
            return _dedupe([_unquote(rest)])
        return _dedupe(_parse_block_sequence(block[index + 1 :]))
    return ()


def _parse_block_sequence(lines: Iterable[str]) -> list[str]:
    items: list[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _SEQUENCE_ITEM.match(line)
        if match is None:
            if line[:1].isspace():
                raise ParseDegradation(f"unexpected line in tags sequence: {line!r}")
            break
        value = _strip_comment(match.group("value") or "").strip()
        if value.startswith(("[", "{")):
            raise ParseDegradation("nested collections are not valid tags")
        items.append(_unquote(value))
    return items


def _parse_flow_list(text: str) -> list[str]:
    if not text.endswith("]"):
        raise ParseDegradation(f"unterminated flow list: {text!r}")
    inner = text[1:-1]
    items: list[str] = []
    current: list[str] = []
    quote: str | None = None
    for char in inner:
        if quote is not None:
            current.append(char)
            if char == quote:
                quote = None
            continue
        if char in ("'", '"'):
            quote = char
            current.append(char)
        elif char in "[]{}":
            raise ParseDegradation("nested collections are not valid tags")
        elif char == ",":
            items.append(_unquote("".join(current).strip()))
            current = []
        else:
            current.append(char)
    if quote is not None:
        raise ParseDegradation("unterminated quoted scalar in tags")
    tail = "".join(current).strip()
    if tail:
        items.append(_unquote(tail))
    return items


def _strip_comment(value: str) -> str:
    quote: str | None = None
    for position, char in enumerate(value):
        if quote is not None:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char == "#" and (position == 0 or value[position - 1].isspace()):
            return value[:position]
    return value


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1].replace("''", "'")
    if value[:1] in ("'", '"'):
        raise ParseDegradation(f"unterminated quoted scalar: {value!r}")
    return value


def _dedupe(values: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for value in values:
        value = value.strip()
        if value and value not in _NULL_SCALARS:
            seen.setdefault(value, None)
    return tuple(seen)


__all__ = [
    "DEFAULT_SCAN_BYTES",
    "Frontmatter",
    "decode_head",
    "extract_tags",
    "first_heading",
    "parse_frontmatter",
]
