"""The note index: navigation, search, sorting, refresh, and mutations."""

from __future__ import annotations

import logging
import os
from collections import OrderedDict
from pathlib import Path
from typing import Iterable, Optional, Union

from kiroku.archive.builder import SkippedEntry, TreeBuilder
from kiroku.archive.errors import ArchiveIOError, EntryNotFound, InvalidName, NameCollision
from kiroku.archive.models import Folder, NoteEntry
from kiroku.archive.tree import ArchiveTree, Entry, ReconcileStats
from kiroku.config.models import KirokuConfig
from kiroku.search.engine import SearchEngine, SearchHit, SearchMode
from kiroku.sorting import SortMode, sort_children, sort_notes

from . import operations
from .models import ChangeEvent, ChangeKind, ChildListing, EntryView, IndexSnapshot, SyncStatusView

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


class NoteIndex:
    """In-memory model of an archive with a folder cursor.

    The index is the single owner of the archive tree. Filesystem mutations
    go through the index so the tree is only changed after the filesystem
    call succeeded.
    """

    def __init__(self, root: Path, config: Optional[KirokuConfig] = None) -> None:
        """Create an empty index; call :meth:`refresh` (or use :meth:`load`) to populate it.

        Args:
            root: Archive root directory.
            config: Resolved configuration; defaults are used when omitted.
        """
        self._config = config or KirokuConfig()
        self._root = Path(os.path.abspath(Path(root).expanduser()))
        self._builder = TreeBuilder.from_settings(self._root, self._config.archive)
        self._tree = ArchiveTree(self._root)
        self._cursor = self._root
        self._search_mode = SearchMode.TITLE
        self._query = ""
        self._sort_mode = SortMode(self._config.sort_mode)
        self._resident: OrderedDict[Path, NoteEntry] = OrderedDict()
        self._engine = SearchEngine(body_loader=self._body_for)
        self._skipped: list[SkippedEntry] = []

    @classmethod
    def load(cls, root: Path, config: Optional[KirokuConfig] = None) -> "NoteIndex":
        """Create an index and walk the archive immediately."""
        index = cls(root, config)
        index.refresh()
        return index

    @property
    def root(self) -> Path:
        return self._root

    @property
    def tree(self) -> ArchiveTree:
        return self._tree

    @property
    def config(self) -> KirokuConfig:
        return self._config

    @property
    def cursor(self) -> Path:
        return self._cursor

    @property
    def search_mode(self) -> SearchMode:
        return self._search_mode

    @property
    def query(self) -> str:
        return self._query

    @property
    def sort_mode(self) -> SortMode:
        return self._sort_mode

    @property
    def skipped(self) -> list[SkippedEntry]:
        """Entries left out by the most recent walk."""
        return list(self._skipped)

    @property
    def resident_bodies(self) -> int:
        return len(self._resident)

    # Lookup and navigation

    def resolve(self, path: PathLike) -> Path:
        """Return ``path`` as an absolute path; relative paths are taken from the root."""
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self._root / candidate
        return Path(os.path.normpath(candidate))

    def get(self, path: PathLike) -> Optional[Entry]:
        return self._tree.get(self.resolve(path))

    def notes(self) -> list[NoteEntry]:
        return self._tree.notes()

    def enter(self, folder: PathLike) -> Path:
        """Move the cursor into ``folder``.

        Raises:
            EntryNotFound: If ``folder`` is not a tracked folder.
        """
        path = self.resolve(folder)
        if self._tree.folder(path) is None:
            raise EntryNotFound(f"No folder at {path}")
        self._cursor = path
        return path

    def leave_up(self) -> bool:
        """Move the cursor to its parent; return False when already at the root."""
        if self._cursor == self._root:
            return False
        self._cursor = self._tree.nearest_folder(self._cursor.parent)
        return True

    def current_children(self) -> ChildListing:
        """Return the cursor folder's contents in display order."""
        folders, notes = self._tree.children(self._cursor)
        ordered_folders, ordered_notes = sort_children(folders, notes, self._sort_mode)
        return ChildListing(folders=ordered_folders, notes=ordered_notes)

    # Search and sort

    def search(self, mode: SearchMode, query: str) -> list[SearchHit]:
        """Make ``mode``/``query`` the active search and return its ranked hits."""
        self._search_mode = SearchMode(mode)
        self._query = query
        return self.results()

    def results(self) -> list[SearchHit]:
        """Return hits for the active search over every note in the archive.

        A non-empty query is ordered by search ranking alone; an empty query
        lists every note in the active sort order.
        """
        hits = self._engine.search(self._tree.notes(), self._search_mode, self._query)
        if self._query.strip():
            return hits
        by_path = {hit.note.path: hit for hit in hits}
        ordered = sort_notes((hit.note for hit in hits), self._sort_mode)
        return [by_path[note.path] for note in ordered]

    def clear_search(self) -> None:
        self._query = ""

    def set_sort_mode(self, mode: SortMode) -> SortMode:
        self._sort_mode = SortMode(mode)
        return self._sort_mode

    def cycle_sort_mode(self) -> SortMode:
        """Advance to the next sort mode (date, name, size, date...)."""
        self._sort_mode = self._sort_mode.next()
        return self._sort_mode

    # Content

    def read_body(self, path: PathLike) -> str:
        """Return the body of the note at ``path``, keeping it in the LRU cache.

        Raises:
            EntryNotFound: If ``path`` is not a tracked note.
            ArchiveIOError: If the file cannot be read.
        """
        return self._body_for(self._require_note(self.resolve(path)))

    def _body_for(self, note: NoteEntry) -> str:
        body = note.load_body()
        self._resident[note.path] = note
        self._resident.move_to_end(note.path)
        while len(self._resident) > self._config.archive.body_cache_size:
            _, evicted = self._resident.popitem(last=False)
            evicted.release_body()
        return body

    # Refresh

    def refresh(self, changed_path: Optional[PathLike] = None) -> ReconcileStats:
        """Re-walk the directory containing ``changed_path`` (the whole archive when omitted).

        Unchanged notes keep their entry objects, so repeated refreshes over
        an unchanged filesystem leave the tree identical.

        Raises:
            ArchiveIOError: If the archive root itself cannot be read.
        """
        if changed_path is None:
            target = self._root
        else:
            target = self._refresh_target(self.resolve(changed_path))
        return self._rebuild(target)

    def apply_changes(self, events: Iterable[ChangeEvent]) -> ReconcileStats:
        """Absorb watcher events, refreshing the fewest directories possible."""
        stats = ReconcileStats()
        directories: set[Path] = set()
        files: set[Path] = set()
        for event in events:
            path = self.resolve(event.path)
            if path == self._root:
                directories.add(self._root)
                continue
            if self._root not in path.parents:
                continue
            if any(part.startswith(".") for part in path.relative_to(self._root).parts):
                continue
            is_directory = event.is_directory or self._tree.folder(path) is not None
            if is_directory:
                if event.kind is ChangeKind.MODIFIED:
                    continue
                directories.add(self._refresh_target(path.parent))
            elif self._builder.is_note_path(path):
                files.add(path)

        collapsed = _collapse(directories)
        for directory in collapsed:
            stats.merge(self._rebuild(directory))
        for path in sorted(files):
            if any(directory in path.parents for directory in collapsed):
                continue
            stats.merge(self._refresh_note(path))
        if stats.changed:
            self._drop_stale_bodies()
            self._repair_cursor()
        return stats

    def _refresh_target(self, path: Path) -> Path:
        if path != self._root and self._root not in path.parents:
            return self._root
        target = self._tree.nearest_folder(path)
        while target != self._root and not os.path.isdir(target):
            target = self._tree.nearest_folder(target.parent)
        return target

    def _rebuild(self, target: Path) -> ReconcileStats:
        result = self._builder.build_subtree(target)
        stats = self._tree.replace_subtree(result.tree)
        if target == self._root:
            self._skipped = list(result.skipped)
        else:
            self._skipped = [
                entry for entry in self._skipped if target not in entry.path.parents
            ] + list(result.skipped)
        self._drop_stale_bodies()
        self._repair_cursor()
        LOGGER.debug(
            "Refreshed %s: %d added, %d removed, %d updated",
            target,
            stats.added,
            stats.removed,
            stats.updated,
        )
        return stats

    def _refresh_note(self, path: Path) -> ReconcileStats:
        stats = ReconcileStats()
        parent = self._tree.folder(path.parent)
        if parent is None or os.path.islink(path):
            return self._rebuild(self._refresh_target(path.parent))
        existing = self._tree.note(path)
        try:
            info = os.stat(path)
        except FileNotFoundError:
            if existing is not None:
                self._tree.remove(path)
                stats.removed += 1
            return stats
        except OSError as exc:
            LOGGER.warning("Unable to stat %s: %s", path, exc)
            return stats
        if not os.path.isfile(path):
            return stats
        fresh = NoteEntry.from_stat(
            path,
            self._root,
            info,
            scan_bytes=self._builder.frontmatter_scan_bytes,
            title_from_heading=self._builder.title_from_heading,
        )
        if existing is not None and existing.matches_stat(fresh):
            stats.unchanged += 1
            return stats
        self._tree.add_note(fresh)
        if existing is None:
            stats.added += 1
        else:
            stats.updated += 1
        return stats

    # Mutations

    def rename(self, path: PathLike, new_name: str) -> Path:
        """Rename the note or folder at ``path``.

        ``new_name`` is taken relative to the entry's folder and may contain
        sub-paths, including ``..``, as long as the target stays in the
        archive.

        Returns:
            Path: The entry's new absolute path.

        Raises:
            EntryNotFound: If ``path`` is not tracked.
            InvalidName: If the name is empty or escapes the root.
            NameCollision: If the target already exists.
            ArchiveIOError: If the filesystem rename fails, or a renamed folder cannot
                be walked (the move is undone first).
        """
        entry = self._require(self.resolve(path))
        if entry.path == self._root:
            raise InvalidName("The archive root cannot be renamed")
        is_note = isinstance(entry, NoteEntry)
        name = operations.sanitize_name(
            new_name, note=is_note, extensions=self._config.archive.extensions
        )
        source = entry.path
        target = operations.resolve_target(source.parent, name, self._root)
        if target == source:
            return target
        if target in self._tree:
            raise NameCollision(target)

        created = operations.move_entry(source, target)
        if isinstance(entry, NoteEntry):
            self._tree.ensure_folders(target.parent)
            self._tree.move_note(source, target)
            if self._resident.pop(source, None) is not None:
                self._resident[target] = entry
        else:
            try:
                fragment = self._builder.build_subtree(target).tree
            except ArchiveIOError:
                LOGGER.warning("Unable to index renamed folder %s; moving it back", target)
                operations.undo_move(source, target, created)
                raise
            self._tree.ensure_folders(target.parent)
            for note in self._tree.remove(source):
                self._forget(note)
            self._tree.replace_subtree(fragment)
            if self._cursor == source or source in self._cursor.parents:
                self._cursor = target / self._cursor.relative_to(source)
        self._repair_cursor()
        LOGGER.info("Renamed %s to %s", source, target)
        return target

    def delete(self, path: PathLike) -> list[NoteEntry]:
        """Delete a note, or a folder with everything inside it.

        Returns:
            list[NoteEntry]: Notes removed from the index.
        """
        entry = self._require(self.resolve(path))
        if entry.path == self._root:
            raise InvalidName("The archive root cannot be deleted")
        operations.delete_entry(entry.path)
        removed = self._tree.remove(entry.path)
        for note in removed:
            self._forget(note)
        self._repair_cursor()
        LOGGER.info("Deleted %s", entry.path)
        return removed

    def create_note(self, folder: Optional[PathLike], name: str) -> NoteEntry:
        """Create an empty note named ``name`` in ``folder`` (the cursor when ``None``).

        Raises:
            NameCollision: If a file already exists at the target.
        """
        base = self._require_folder(folder)
        target = operations.resolve_target(
            base.path,
            operations.sanitize_name(name, note=True, extensions=self._config.archive.extensions),
            self._root,
        )
        if target in self._tree:
            raise NameCollision(target)
        operations.create_note_file(target)
        self._tree.ensure_folders(target.parent)
        try:
            info = os.stat(target)
        except OSError as exc:
            raise ArchiveIOError.from_os_error("stat", target, exc) from exc
        note = self._tree.add_note(
            NoteEntry.from_stat(
                target,
                self._root,
                info,
                scan_bytes=self._builder.frontmatter_scan_bytes,
                title_from_heading=self._builder.title_from_heading,
            )
        )
        LOGGER.info("Created note %s", target)
        return note

    def create_folder(self, parent: Optional[PathLike], name: str) -> Folder:
        """Create a folder named ``name`` below ``parent`` (the cursor when ``None``)."""
        base = self._require_folder(parent)
        target = operations.resolve_target(
            base.path, operations.sanitize_name(name, note=False), self._root
        )
        if target in self._tree:
            raise NameCollision(target)
        operations.create_directory(target)
        created = self._tree.ensure_folders(target)
        LOGGER.info("Created folder %s", target)
        return created[-1]

    # Rendering

    def snapshot(self, sync_status: Optional[SyncStatusView] = None) -> IndexSnapshot:
        """Return the current view for a renderer."""
        entries: list[EntryView] = []
        if self._query.strip():
            for hit in self.results():
                score = hit.score if self._search_mode is SearchMode.TITLE else None
                entries.append(EntryView.from_note(hit.note, score=score))
        else:
            listing = self.current_children()
            entries.extend(EntryView.from_folder(folder) for folder in listing.folders)
            entries.extend(EntryView.from_note(note) for note in listing.notes)
        folder = self._tree.folder(self._cursor)
        return IndexSnapshot(
            root=str(self._root),
            folder=folder.relative_path if folder is not None else ".",
            entries=entries,
            search_mode=self._search_mode,
            query=self._query,
            sort_mode=self._sort_mode,
            note_count=len(self._tree),
            sync=sync_status,
        )

    # Internals

    def _require(self, path: Path) -> Entry:
        entry = self._tree.get(path)
        if entry is None:
            raise EntryNotFound(f"Nothing tracked at {path}")
        return entry

    def _require_note(self, path: Path) -> NoteEntry:
        note = self._tree.note(path)
        if note is None:
            raise EntryNotFound(f"No note at {path}")
        return note

    def _require_folder(self, path: Optional[PathLike]) -> Folder:
        resolved = self._cursor if path is None else self.resolve(path)
        folder = self._tree.folder(resolved)
        if folder is None:
            raise EntryNotFound(f"No folder at {resolved}")
        return folder

    def _forget(self, note: NoteEntry) -> None:
        if self._resident.get(note.path) is note:
            del self._resident[note.path]
        note.release_body()

    def _drop_stale_bodies(self) -> None:
        for path, note in list(self._resident.items()):
            if self._tree.note(path) is not note:
                del self._resident[path]
                note.release_body()

    def _repair_cursor(self) -> None:
        if self._tree.folder(self._cursor) is None:
            self._cursor = self._tree.nearest_folder(self._cursor)


def _collapse(directories: set[Path]) -> list[Path]:
    """Drop directories already covered by an ancestor in the set."""
    ordered = sorted(directories, key=lambda path: len(path.parts))
    kept: list[Path] = []
    for directory in ordered:
        if any(parent == directory or parent in directory.parents for parent in kept):
            continue
        kept.append(directory)
    return kept


__all__ = ["NoteIndex"]
