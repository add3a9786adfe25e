"""Path-keyed arena holding the folders and notes of an archive."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from .models import Folder, NoteEntry, relative_key

Entry = Union[Folder, NoteEntry]


@dataclass(slots=True)
class ReconcileStats:
    """Counts describing how a subtree replacement changed the tree.

    Attributes:
        added: Notes that did not exist before.
        removed: Notes that no longer exist.
        updated: Notes whose filesystem state changed.
        unchanged: Notes kept as-is.
    """

    added: int = 0
    removed: int = 0
    updated: int = 0
    unchanged: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed or self.updated)

    def merge(self, other: "ReconcileStats") -> None:
        self.added += other.added
        self.removed += other.removed
        self.updated += other.updated
        self.unchanged += other.unchanged


class ArchiveTree:
    """Folders and notes keyed by absolute path, with explicit parent/child links."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._folders: dict[Path, Folder] = {root: Folder(path=root, relative_path=".")}
        self._notes: dict[Path, NoteEntry] = {}

    @property
    def root(self) -> Path:
        return self._root

    @property
    def root_folder(self) -> Folder:
        return self._folders[self._root]

    def __contains__(self, path: object) -> bool:
        return path in self._folders or path in self._notes

    def __len__(self) -> int:
        return len(self._notes)

    def folder(self, path: Path) -> Optional[Folder]:
        return self._folders.get(path)

    def note(self, path: Path) -> Optional[NoteEntry]:
        return self._notes.get(path)

    def get(self, path: Path) -> Optional[Entry]:
        return self._folders.get(path) or self._notes.get(path)

    def notes(self) -> list[NoteEntry]:
        """Return every note in path order."""
        return [self._notes[path] for path in sorted(self._notes)]

    def folders(self) -> list[Folder]:
        return [self._folders[path] for path in sorted(self._folders)]

    def children(self, path: Path) -> tuple[list[Folder], list[NoteEntry]]:
        """Return the direct child folders and notes of ``path`` (unordered)."""
        folder = self._folders[path]
        folders: list[Folder] = []
        notes: list[NoteEntry] = []
        for child in folder.children:
            if child in self._folders:
                folders.append(self._folders[child])
            else:
                notes.append(self._notes[child])
        return folders, notes

    def iter_notes_under(self, path: Path) -> Iterator[NoteEntry]:
        """Yield notes contained (recursively) in the folder at ``path``."""
        stack = [path]
        while stack:
            current = stack.pop()
            for child in self._folders[current].children:
                if child in self._folders:
                    stack.append(child)
                else:
                    yield self._notes[child]

    def nearest_folder(self, path: Path) -> Path:
        """Return ``path`` or its closest ancestor that is a tracked folder."""
        for candidate in (path, *path.parents):
            if candidate in self._folders:
                return candidate
            if candidate == self._root:
                break
        return self._root

    def add_folder(self, folder: Folder) -> Folder:
        """Insert ``folder`` below its parent, keeping children of an existing entry."""
        if folder.path in self._notes:
            raise ValueError(f"{folder.path} is already tracked as a note")
        existing = self._folders.get(folder.path)
        if existing is not None:
            existing.link_target = folder.link_target
            return existing
        parent = self._require_parent(folder.path)
        folder.parent = parent.path
        folder.children = set()
        self._folders[folder.path] = folder
        parent.children.add(folder.path)
        return folder

    def ensure_folders(self, path: Path) -> list[Folder]:
        """Create untracked folders between the root and ``path`` (inclusive)."""
        missing: list[Path] = []
        for candidate in (path, *path.parents):
            if candidate in self._folders:
                break
            if self._root not in candidate.parents:
                raise ValueError(f"{path} is outside the archive root {self._root}")
            missing.append(candidate)
        created: list[Folder] = []
        for candidate in reversed(missing):
            created.append(
                self.add_folder(
                    Folder(path=candidate, relative_path=relative_key(candidate, self._root))
                )
            )
        return created

    def add_note(self, note: NoteEntry) -> NoteEntry:
        """Insert or replace the note at ``note.path``."""
        if note.path in self._folders:
            raise ValueError(f"{note.path} is already tracked as a folder")
        parent = self._require_parent(note.path)
        self._notes[note.path] = note
        parent.children.add(note.path)
        return note

    def move_note(self, old: Path, new: Path) -> NoteEntry:
        """Re-key the note at ``old`` to ``new``; the new parent folder must exist."""
        if new in self:
            raise ValueError(f"{new} is already tracked")
        note = self._notes[old]
        new_parent = self._require_parent(new)
        self._folders[old.parent].children.discard(old)
        del self._notes[old]
        note.moved_to(new, self._root)
        self._notes[new] = note
        new_parent.children.add(new)
        return note

    def remove(self, path: Path) -> list[NoteEntry]:
        """Remove the entry at ``path`` (a whole subtree for folders).

        Returns:
            list[NoteEntry]: Notes dropped from the tree.
        """
        if path == self._root:
            raise ValueError("The archive root cannot be removed")
        if path in self._notes:
            note = self._notes.pop(path)
            self._folders[path.parent].children.discard(path)
            return [note]
        folder = self._folders.get(path)
        if folder is None:
            return []
        removed = list(self.iter_notes_under(path))
        self._clear_children(folder)
        del self._folders[path]
        if folder.parent is not None and folder.parent in self._folders:
            self._folders[folder.parent].children.discard(path)
        return removed

    def replace_subtree(self, fragment: "ArchiveTree") -> ReconcileStats:
        """Replace the folder at ``fragment.root`` with the contents of ``fragment``.

        Notes whose filesystem state is unchanged keep their existing entry so
        memoized tags and text survive a refresh.
        """
        path = fragment.root
        stats = ReconcileStats()
        previous: dict[Path, NoteEntry] = {}
        if path in self._folders:
            previous = {note.path: note for note in self.iter_notes_under(path)}
            target = self._folders[path]
            target.link_target = fragment.root_folder.link_target
            self._clear_children(target)
        else:
            self.ensure_folders(path.parent)
            self.add_folder(
                Folder(
                    path=path,
                    relative_path=relative_key(path, self._root),
                    link_target=fragment.root_folder.link_target,
                )
            )

        for folder in fragment.folders():
            if folder.path == path:
                continue
            self.add_folder(
                Folder(
                    path=folder.path,
                    relative_path=relative_key(folder.path, self._root),
                    link_target=folder.link_target,
                )
            )
        for note in fragment.notes():
            old = previous.pop(note.path, None)
            if old is not None and old.matches_stat(note):
                self.add_note(old)
                stats.unchanged += 1
            else:
                self.add_note(note)
                if old is None:
                    stats.added += 1
                else:
                    stats.updated += 1
        stats.removed += len(previous)
        return stats

    def signature(self) -> tuple[tuple[tuple[str, str], ...], tuple[tuple[str, int, int, str], ...]]:
        """Return a hashable description of the whole tree for equality checks."""
        folders = tuple(sorted(folder.signature() for folder in self._folders.values()))
        notes = tuple(sorted(note.signature() for note in self._notes.values()))
        return folders, notes

    def _require_parent(self, path: Path) -> Folder:
        parent = self._folders.get(path.parent)
        if parent is None:
            raise KeyError(f"Parent folder of {path} is not tracked")
        return parent

    def _clear_children(self, folder: Folder) -> None:
        for child in list(folder.children):
            if child in self._notes:
                del self._notes[child]
            else:
                sub = self._folders.pop(child, None)
                if sub is not None:
                    self._clear_children(sub)
        folder.children.clear()


__all__ = ["ArchiveTree", "Entry", "ReconcileStats"]
