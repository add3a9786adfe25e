"""Title, content, and tag search over archive notes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from kiroku.archive.errors import ArchiveIOError
from kiroku.archive.models import NoteEntry

from .fuzzy import fuzzy_match
from .text import normalize_query

LOGGER = logging.getLogger(__name__)

BodyLoader = Callable[[NoteEntry], str]


class SearchMode(str, Enum):
    """Which facet of a note a query is matched against."""

    TITLE = "title"
    CONTENT = "content"
    TAG = "tag"


@dataclass(frozen=True, slots=True)
class SearchHit:
    """A note matching a query.

    Attributes:
        note: The matching note.
        score: Fuzzy score for title search; 0 for the other modes.
        position: Offset of the first content match, or of the first matching
            tag for tag search; ``None`` for title search.
        exact: Whether a tag matched the query exactly.
        matched: Title character positions (title) or the matching tag (tag).
    """

    note: NoteEntry
    score: int = 0
    position: Optional[int] = None
    exact: bool = False
    matched: tuple[str | int, ...] = ()


def _load_body(note: NoteEntry) -> str:
    return note.load_body()


class SearchEngine:
    """Rank notes for a query in one of the three search modes.

    Every call is a pure function of the notes, mode, and query; the engine
    holds no state besides the body loader.
    """

    def __init__(self, body_loader: Optional[BodyLoader] = None) -> None:
        self._body_loader = body_loader or _load_body

    def search(self, notes: Iterable[NoteEntry], mode: SearchMode, query: str) -> list[SearchHit]:
        """Return the notes matching ``query`` in ranked order.

        Args:
            notes: Candidate notes (normally every note in the archive).
            mode: Facet to match against.
            query: Raw query text; empty or whitespace-only matches everything.

        Returns:
            list[SearchHit]: Ranked hits. With an empty query every note is
            returned in path order.
        """
        mode = SearchMode(mode)
        literal = mode is SearchMode.CONTENT
        cleaned = normalize_query(query, collapse_whitespace=not literal, strip=not literal)
        candidates = sorted(notes, key=lambda note: note.path)
        if not cleaned.strip():
            return [SearchHit(note=note) for note in candidates]
        if mode is SearchMode.TITLE:
            return self._search_titles(candidates, cleaned)
        if mode is SearchMode.CONTENT:
            return self._search_content(candidates, cleaned)
        return self._search_tags(candidates, cleaned)

    def _search_titles(self, notes: list[NoteEntry], query: str) -> list[SearchHit]:
        hits: list[SearchHit] = []
        for note in notes:
            match = fuzzy_match(query, note.title)
            if match is not None:
                hits.append(SearchHit(note=note, score=match.score, matched=match.positions))
        hits.sort(key=lambda hit: (-hit.score, len(hit.note.title), hit.note.path))
        return hits

    def _search_content(self, notes: list[NoteEntry], query: str) -> list[SearchHit]:
        needle = query.casefold()
        hits: list[SearchHit] = []
        for note in notes:
            try:
                body = self._body_loader(note)
            except ArchiveIOError as exc:
                LOGGER.warning("Skipping %s in content search: %s", note.path, exc)
                continue
            position = body.casefold().find(needle)
            if position >= 0:
                hits.append(SearchHit(note=note, position=position))
        hits.sort(key=lambda hit: (hit.position, -hit.note.modified_ns, hit.note.path))
        return hits

    def _search_tags(self, notes: list[NoteEntry], query: str) -> list[SearchHit]:
        needle = query.casefold()
        hits: list[SearchHit] = []
        for note in notes:
            exact_tag = None
            partial_tag = None
            for tag in note.tags:
                folded = tag.casefold()
                if folded == needle:
                    exact_tag = tag
                    break
                if partial_tag is None and needle in folded:
                    partial_tag = tag
            tag = exact_tag or partial_tag
            if tag is not None:
                hits.append(
                    SearchHit(
                        note=note,
                        position=note.tags.index(tag),
                        exact=exact_tag is not None,
                        matched=(tag,),
                    )
                )
        hits.sort(key=lambda hit: (not hit.exact, -hit.note.modified_ns, hit.note.path))
        return hits


__all__ = ["BodyLoader", "SearchEngine", "SearchHit", "SearchMode"]
