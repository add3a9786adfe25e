"""Ordering of notes and folder listings."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from kiroku.archive.models import Folder, NoteEntry


class SortMode(str, Enum):
    """Order applied to notes when browsing."""

    DATE = "date"
    NAME = "name"
    SIZE = "size"

    def next(self) -> "SortMode":
        """Return the mode that follows this one (date, name, size, date...)."""
        members = list(SortMode)
        return members[(members.index(self) + 1) % len(members)]

    @property
    def label(self) -> str:
        return self.value.capitalize()


def sort_notes(notes: Iterable["NoteEntry"], mode: SortMode) -> list["NoteEntry"]:
    """Return ``notes`` ordered by ``mode``.

    Ties are always broken by path so the result is deterministic.

    Args:
        notes: Notes to order; the input is not modified.
        mode: Date (newest first), Name (case-insensitive title), or Size
            (largest first).

    Returns:
        list[NoteEntry]: A new, sorted list.
    """
    ordered = sorted(notes, key=lambda note: note.path)
    if mode is SortMode.DATE:
        ordered.sort(key=lambda note: note.modified_ns, reverse=True)
    elif mode is SortMode.NAME:
        ordered.sort(key=lambda note: note.title.casefold())
    elif mode is SortMode.SIZE:
        ordered.sort(key=lambda note: note.size, reverse=True)
    else:  # pragma: no cover - exhaustive enum
        raise ValueError(f"Unknown sort mode: {mode!r}")
    return ordered


def sort_children(
    folders: Iterable["Folder"], notes: Iterable["NoteEntry"], mode: SortMode
) -> tuple[list["Folder"], list["NoteEntry"]]:
    """Return folders by name followed by notes in ``mode`` order."""
    ordered_folders = sorted(folders, key=lambda folder: (folder.name.casefold(), folder.path))
    return ordered_folders, sort_notes(notes, mode)


__all__ = ["SortMode", "sort_children", "sort_notes"]
