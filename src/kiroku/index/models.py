"""Change events and the snapshot handed to renderers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from kiroku.archive.models import Folder, NoteEntry
from kiroku.search.engine import SearchMode
from kiroku.sorting import SortMode


class ChangeKind(str, Enum):
    """Kind of filesystem change reported by the watcher."""

    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED_TO = "renamed_to"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A single filesystem change below the archive root."""

    kind: ChangeKind
    path: Path
    is_directory: bool = False


@dataclass(slots=True)
class ChildListing:
    """Ordered contents of a folder: folders first, then notes."""

    folders: list[Folder] = field(default_factory=list)
    notes: list[NoteEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.folders) + len(self.notes)


class EntryView(BaseModel):
    """Renderer-facing description of one visible entry."""

    kind: Literal["folder", "note"]
    title: str
    relative_path: str
    modified: Optional[datetime] = None
    size: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    score: Optional[int] = None

    @classmethod
    def from_folder(cls, folder: Folder) -> "EntryView":
        return cls(kind="folder", title=folder.name, relative_path=folder.relative_path)

    @classmethod
    def from_note(cls, note: NoteEntry, *, score: Optional[int] = None) -> "EntryView":
        return cls(
            kind="note",
            title=note.title,
            relative_path=note.relative_path,
            modified=note.modified,
            size=note.size,
            tags=list(note.tags),
            score=score,
        )


class SyncStatusView(BaseModel):
    """Last known synchronization state shown alongside the listing."""

    phase: str
    outcome: Optional[str] = None
    message: str = ""
    in_progress: bool = False


class IndexSnapshot(BaseModel):
    """Everything a renderer needs to draw the current view.

    Attributes:
        root: Archive root.
        folder: Cursor folder relative to the root ("." for the root).
        entries: Visible entries in display order.
        search_mode: Active search mode.
        query: Active query; empty in browse mode.
        sort_mode: Active sort mode.
        note_count: Number of notes in the whole archive.
        sync: Synchronization status, when known.
    """

    root: str
    folder: str
    entries: List[EntryView] = Field(default_factory=list)
    search_mode: SearchMode = SearchMode.TITLE
    query: str = ""
    sort_mode: SortMode = SortMode.DATE
    note_count: int = 0
    sync: Optional[SyncStatusView] = None

    @property
    def searching(self) -> bool:
        return bool(self.query.strip())


__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "ChildListing",
    "EntryView",
    "IndexSnapshot",
    "SyncStatusView",
]
