"""Note and folder entities tracked by the archive tree."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .errors import ArchiveIOError
from .frontmatter import (
    DEFAULT_SCAN_BYTES,
    Frontmatter,
    decode_head,
    first_heading,
    parse_frontmatter,
)

LOGGER = logging.getLogger(__name__)


def relative_key(path: Path, root: Path) -> str:
    """Return ``path`` relative to ``root`` using forward slashes ("." for the root)."""
    try:
        relative = path.relative_to(root)
    except ValueError:
        return path.as_posix()
    text = relative.as_posix()
    return text or "."


@dataclass(eq=False)
class NoteEntry:
    """A markdown file in the archive.

    Tags, the first heading and the text are read lazily on first access and
    memoized; the filesystem metadata is captured when the entry is built.

    Attributes:
        path: Absolute path of the note; its identity within the index.
        relative_path: Path relative to the archive root, with forward slashes.
        modified_ns: Modification time in nanoseconds since the epoch.
        size: Size in bytes.
        link_target: Resolved target when the note was reached through a symlink.
        scan_bytes: Size of the window read when looking for frontmatter.
        title_from_heading: Whether ``title`` prefers the first heading.
    """

    path: Path
    relative_path: str
    modified_ns: int
    size: int
    link_target: Optional[Path] = None
    scan_bytes: int = DEFAULT_SCAN_BYTES
    title_from_heading: bool = False
    _head: Optional[Frontmatter] = field(default=None, init=False, repr=False)
    _heading: Optional[str] = field(default=None, init=False, repr=False)
    _text: Optional[str] = field(default=None, init=False, repr=False)

    @classmethod
    def from_stat(
        cls,
        path: Path,
        root: Path,
        stat: os.stat_result,
        *,
        link_target: Optional[Path] = None,
        scan_bytes: int = DEFAULT_SCAN_BYTES,
        title_from_heading: bool = False,
    ) -> "NoteEntry":
        """Build an entry from an ``os.stat`` result."""
        return cls(
            path=path,
            relative_path=relative_key(path, root),
            modified_ns=stat.st_mtime_ns,
            size=stat.st_size,
            link_target=link_target,
            scan_bytes=scan_bytes,
            title_from_heading=title_from_heading,
        )

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def stem(self) -> str:
        return self.path.stem

    @property
    def title(self) -> str:
        """Display title: the first heading when enabled and present, else the file stem."""
        if self.title_from_heading:
            heading = self.heading
            if heading:
                return heading
        return self.stem

    @property
    def modified(self) -> datetime:
        return datetime.fromtimestamp(self.modified_ns / 1_000_000_000, tz=timezone.utc)

    @property
    def tags(self) -> tuple[str, ...]:
        return self._load_head().tags

    @property
    def heading(self) -> Optional[str]:
        self._load_head()
        return self._heading

    @property
    def is_text_loaded(self) -> bool:
        return self._text is not None

    def load_text(self) -> str:
        """Return the full note text, reading it on first use.

        Raises:
            ArchiveIOError: If the file cannot be read.
        """
        if self._text is None:
            try:
                # Line endings are kept as written so frontmatter offsets stay valid.
                with open(self.path, encoding="utf-8", errors="replace", newline="") as handle:
                    self._text = handle.read()
            except OSError as exc:
                raise ArchiveIOError.from_os_error("read", self.path, exc) from exc
        return self._text

    def load_body(self) -> str:
        """Return the note text following its frontmatter block."""
        text = self.load_text()
        if text.startswith("\ufeff"):
            text = text[1:]
        offset = self._load_head().body_offset
        return text[offset:]

    def release_body(self) -> None:
        """Drop the memoized text; it is re-read on next access."""
        self._text = None

    def signature(self) -> tuple[str, int, int, str]:
        """Return the filesystem facts that identify this entry's state."""
        target = self.link_target.as_posix() if self.link_target else ""
        return (self.relative_path, self.modified_ns, self.size, target)

    def matches_stat(self, other: "NoteEntry") -> bool:
        """Return True when ``other`` describes the same file state."""
        return self.signature() == other.signature() and self.path == other.path

    def moved_to(self, path: Path, root: Path) -> None:
        """Re-key the entry after a rename, keeping memoized content."""
        self.path = path
        self.relative_path = relative_key(path, root)

    def _load_head(self) -> Frontmatter:
        if self._head is not None:
            return self._head
        try:
            with self.path.open("rb") as handle:
                raw = handle.read(self.scan_bytes)
        except OSError as exc:
            LOGGER.warning("Unable to read frontmatter of %s: %s", self.path, exc)
            # Not memoized so a later access can succeed once the file is readable.
            return Frontmatter()
        head = parse_frontmatter(raw, max_scan_bytes=self.scan_bytes)
        text = decode_head(raw, self.scan_bytes)
        self._heading = first_heading(text, head.body_offset)
        self._head = head
        return head


@dataclass(eq=False)
class Folder:
    """A directory under the archive root.

    Children are stored as paths; their display order is decided when queried.
    """

    path: Path
    relative_path: str
    parent: Optional[Path] = None
    children: set[Path] = field(default_factory=set)
    link_target: Optional[Path] = None

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def signature(self) -> tuple[str, str]:
        target = self.link_target.as_posix() if self.link_target else ""
        return (self.relative_path, target)


__all__ = ["Folder", "NoteEntry", "relative_key"]
