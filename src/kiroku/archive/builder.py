"""Filesystem walker that builds archive trees."""

from __future__ import annotations

import errno
import logging
import os
import stat as stat_module
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from kiroku.config.models import ArchiveSettings

from .errors import ArchiveIOError, SymlinkCycleBounded
from .frontmatter import DEFAULT_SCAN_BYTES
from .models import Folder, NoteEntry, relative_key
from .tree import ArchiveTree

LOGGER = logging.getLogger(__name__)

VCS_DIRNAMES = frozenset({".git"})


def _is_hidden(name: str) -> bool:
    return name.startswith(".") or name in VCS_DIRNAMES


@dataclass(slots=True)
class SkippedEntry:
    """A path the walk could not index, with the reason."""

    path: Path
    reason: str


@dataclass(slots=True)
class BuildResult:
    """Outcome of walking a directory.

    Attributes:
        tree: Tree fragment rooted at the walked directory.
        skipped: Entries left out because of errors or cycle bounds.
    """

    tree: ArchiveTree
    skipped: list[SkippedEntry] = field(default_factory=list)


@dataclass(slots=True)
class _Pending:
    path: Path
    depth: int
    via_link: bool


class TreeBuilder:
    """Walk an archive root, producing folders and markdown note entries."""

    def __init__(
        self,
        root: Path,
        *,
        extensions: Iterable[str] = (".md",),
        max_depth: int = 64,
        frontmatter_scan_bytes: int = DEFAULT_SCAN_BYTES,
        title_from_heading: bool = False,
    ) -> None:
        self.root = Path(os.path.abspath(root.expanduser()))
        self.extensions = frozenset(suffix.lower() for suffix in extensions)
        self.max_depth = max_depth
        self.frontmatter_scan_bytes = frontmatter_scan_bytes
        self.title_from_heading = title_from_heading

    @classmethod
    def from_settings(cls, root: Path, settings: ArchiveSettings) -> "TreeBuilder":
        """Create a builder configured from archive settings."""
        return cls(
            root,
            extensions=settings.extensions,
            max_depth=settings.max_depth,
            frontmatter_scan_bytes=settings.frontmatter_scan_kb * 1024,
            title_from_heading=settings.title_from_heading,
        )

    def is_note_path(self, path: Path) -> bool:
        """Return True when ``path`` has a note extension and no hidden component."""
        if path.suffix.lower() not in self.extensions:
            return False
        try:
            relative = path.relative_to(self.root)
        except ValueError:
            return False
        return not any(_is_hidden(part) for part in relative.parts)

    def build(self) -> BuildResult:
        """Walk the whole archive."""
        return self.build_subtree(self.root)

    def build_subtree(self, path: Path) -> BuildResult:
        """Walk the directory at ``path``, which must lie within the root.

        Raises:
            ArchiveIOError: If ``path`` itself cannot be read as a directory.
        """
        try:
            start_stat = os.stat(path)
        except OSError as exc:
            raise ArchiveIOError.from_os_error("read directory", path, exc) from exc
        if not stat_module.S_ISDIR(start_stat.st_mode):
            raise ArchiveIOError(
                f"Unable to read directory {path}: not a directory",
                path=path,
                errno=errno.ENOTDIR,
            )

        tree = ArchiveTree(path)
        if path.is_symlink():
            tree.root_folder.link_target = Path(os.path.realpath(path))
        result = BuildResult(tree=tree)
        visited = self._seed_visited(path)
        depth = 0 if path == self.root else len(path.relative_to(self.root).parts)
        stack = [_Pending(path=path, depth=depth, via_link=tree.root_folder.link_target is not None)]

        while stack:
            pending = stack.pop()
            try:
                entries = sorted(os.scandir(pending.path), key=lambda item: item.name)
            except OSError as exc:
                if pending.path == path:
                    raise ArchiveIOError.from_os_error("read directory", path, exc) from exc
                self._skip(result, pending.path, f"unreadable directory: {exc}")
                continue

            for entry in entries:
                if _is_hidden(entry.name):
                    continue
                entry_path = Path(entry.path)
                try:
                    self._visit(entry, entry_path, pending, tree, visited, stack)
                except SymlinkCycleBounded as exc:
                    LOGGER.warning("Not descending into %s: %s", entry_path, exc)
                    result.skipped.append(SkippedEntry(path=entry_path, reason=str(exc)))
                except OSError as exc:
                    self._skip(result, entry_path, str(exc))

        return result

    def _visit(
        self,
        entry: os.DirEntry[str],
        entry_path: Path,
        pending: _Pending,
        tree: ArchiveTree,
        visited: set[tuple[int, int]],
        stack: list[_Pending],
    ) -> None:
        link_target = None
        if entry.is_symlink():
            if pending.via_link:
                LOGGER.debug("Ignoring nested symlink %s", entry_path)
                return
            link_target = Path(os.path.realpath(entry_path))
        info = entry.stat(follow_symlinks=True)

        if stat_module.S_ISDIR(info.st_mode):
            identity = (info.st_dev, info.st_ino)
            if identity in visited:
                raise SymlinkCycleBounded(f"directory already visited ({link_target or entry_path})")
            if pending.depth + 1 > self.max_depth:
                raise SymlinkCycleBounded(f"maximum depth {self.max_depth} reached")
            visited.add(identity)
            tree.add_folder(
                Folder(
                    path=entry_path,
                    relative_path=relative_key(entry_path, self.root),
                    link_target=link_target,
                )
            )
            stack.append(
                _Pending(
                    path=entry_path,
                    depth=pending.depth + 1,
                    via_link=pending.via_link or link_target is not None,
                )
            )
            return

        if not stat_module.S_ISREG(info.st_mode):
            return
        if entry_path.suffix.lower() not in self.extensions:
            return
        tree.add_note(
            NoteEntry.from_stat(
                entry_path,
                self.root,
                info,
                link_target=link_target,
                scan_bytes=self.frontmatter_scan_bytes,
                title_from_heading=self.title_from_heading,
            )
        )

    def _seed_visited(self, path: Path) -> set[tuple[int, int]]:
        visited: set[tuple[int, int]] = set()
        for candidate in (path, *path.parents):
            try:
                info = os.stat(candidate)
            except OSError:
                break
            visited.add((info.st_dev, info.st_ino))
            if candidate == self.root:
                break
        return visited

    def _skip(self, result: BuildResult, path: Path, reason: str) -> None:
        LOGGER.warning("Skipping %s: %s", path, reason)
        result.skipped.append(SkippedEntry(path=path, reason=reason))


__all__ = ["BuildResult", "SkippedEntry", "TreeBuilder", "VCS_DIRNAMES"]
