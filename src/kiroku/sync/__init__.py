"""Git synchronization for Kiroku archives."""

from .controller import Clock, GitPrimitives, SyncController
from .errors import CheckFailed, CommitFailed, GitCommandError, PushFailed, SyncError
from .git import GitRepository
from .models import SyncOutcome, SyncPhase, SyncReport, WorkingTreeStatus

__all__ = [
    "CheckFailed",
    "Clock",
    "CommitFailed",
    "GitCommandError",
    "GitPrimitives",
    "GitRepository",
    "PushFailed",
    "SyncController",
    "SyncError",
    "SyncOutcome",
    "SyncPhase",
    "SyncReport",
    "WorkingTreeStatus",
]
