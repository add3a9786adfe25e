"""Archive model: frontmatter scanning, note entities, and the tree builder."""

from .builder import BuildResult, SkippedEntry, TreeBuilder
from .errors import (
    ArchiveError,
    ArchiveIOError,
    EntryNotFound,
    InvalidName,
    NameCollision,
    ParseDegradation,
    SymlinkCycleBounded,
)
from .frontmatter import Frontmatter, extract_tags, first_heading, parse_frontmatter
from .models import Folder, NoteEntry, relative_key
from .tree import ArchiveTree, Entry, ReconcileStats

__all__ = [
    "ArchiveError",
    "ArchiveIOError",
    "ArchiveTree",
    "BuildResult",
    "Entry",
    "EntryNotFound",
    "Folder",
    "Frontmatter",
    "InvalidName",
    "NameCollision",
    "NoteEntry",
    "ParseDegradation",
    "ReconcileStats",
    "SkippedEntry",
    "SymlinkCycleBounded",
    "TreeBuilder",
    "extract_tags",
    "first_heading",
    "parse_frontmatter",
    "relative_key",
]
