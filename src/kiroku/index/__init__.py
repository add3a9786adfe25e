"""Note index orchestrating the archive tree, search, and sorting."""

from .index import NoteIndex
from .models import (
    ChangeEvent,
    ChangeKind,
    ChildListing,
    EntryView,
    IndexSnapshot,
    SyncStatusView,
)

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "ChildListing",
    "EntryView",
    "IndexSnapshot",
    "NoteIndex",
    "SyncStatusView",
]
