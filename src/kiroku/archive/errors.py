"""Archive errors raised while indexing and mutating notes."""

from __future__ import annotations

from pathlib import Path


class ArchiveError(Exception):
    """Base exception for archive operations."""


class ArchiveIOError(ArchiveError):
    """Raised when a filesystem call on an archive entry fails.

    Attributes:
        path: Path the failing call targeted.
        errno: Error number reported by the operating system, if any.
    """

    def __init__(self, message: str, *, path: Path, errno: int | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.errno = errno

    @classmethod
    def from_os_error(cls, action: str, path: Path, exc: OSError) -> "ArchiveIOError":
        """Wrap ``exc`` raised while performing ``action`` on ``path``."""
        reason = exc.strerror or str(exc)
        return cls(f"Unable to {action} {path}: {reason}", path=path, errno=exc.errno)


class NameCollision(ArchiveError):
    """Raised when a create or rename target already exists."""

    def __init__(self, target: Path) -> None:
        super().__init__(f"{target} already exists")
        self.target = target


class EntryNotFound(ArchiveError):
    """Raised when a path is not tracked by the index."""


class InvalidName(ArchiveError):
    """Raised when a requested name is empty or resolves outside the archive root."""


class ParseDegradation(ArchiveError):
    """Signals malformed frontmatter; callers fall back to an empty tag set."""


class SymlinkCycleBounded(ArchiveError):
    """Signals that a walk stopped at a directory it had already visited."""


__all__ = [
    "ArchiveError",
    "ArchiveIOError",
    "NameCollision",
    "EntryNotFound",
    "InvalidName",
    "ParseDegradation",
    "SymlinkCycleBounded",
]
