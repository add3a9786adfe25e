"""Phases and reports of a synchronization run."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .errors import SyncError


class SyncPhase(str, Enum):
    """States of the synchronization state machine."""

    IDLE = "idle"
    CHECKING_STATUS = "checking_status"
    NOTHING_TO_SYNC = "nothing_to_sync"
    COMMITTING = "committing"
    PUSHING = "pushing"
    SUCCESS = "success"
    PUSH_FAILED = "push_failed"
    CHECK_FAILED = "check_failed"
    COMMIT_FAILED = "commit_failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_PHASES

    @property
    def is_failure(self) -> bool:
        return self in _FAILED_PHASES


_FAILED_PHASES = frozenset({SyncPhase.PUSH_FAILED, SyncPhase.CHECK_FAILED, SyncPhase.COMMIT_FAILED})
_TERMINAL_PHASES = _FAILED_PHASES | {SyncPhase.NOTHING_TO_SYNC, SyncPhase.SUCCESS}


class SyncOutcome(str, Enum):
    """Summary of how a run ended."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class WorkingTreeStatus(str, Enum):
    """Whether the working tree has uncommitted changes."""

    CLEAN = "clean"
    DIRTY = "dirty"


@dataclass(slots=True)
class SyncReport:
    """Result of one synchronization run.

    Attributes:
        phase: Terminal phase the run reached.
        outcome: Success, skipped (nothing to do), or failed.
        message: Human-readable summary.
        dirty: Whether uncommitted changes were found.
        ahead: Local commits not on the upstream, when known.
        behind: Upstream commits not merged locally, when known.
        committed: Whether a commit was created.
        pushed: Whether a push completed.
        transitions: Phases visited, in order.
        error: The stage error when the run failed.
        started_at: When the run began.
        finished_at: When the run reached its terminal phase.
    """

    phase: SyncPhase = SyncPhase.IDLE
    outcome: Optional[SyncOutcome] = None
    message: str = ""
    dirty: bool = False
    ahead: Optional[int] = None
    behind: Optional[int] = None
    committed: bool = False
    pushed: bool = False
    transitions: list[SyncPhase] = field(default_factory=list)
    error: Optional[SyncError] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def failed(self) -> bool:
        return self.outcome is SyncOutcome.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable view of the report."""
        return {
            "phase": self.phase.value,
            "outcome": self.outcome.value if self.outcome else None,
            "message": self.message,
            "dirty": self.dirty,
            "ahead": self.ahead,
            "behind": self.behind,
            "committed": self.committed,
            "pushed": self.pushed,
            "transitions": [phase.value for phase in self.transitions],
            "error": (
                {"stage": self.error.stage, "message": str(self.error)} if self.error else None
            ),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


__all__ = ["SyncOutcome", "SyncPhase", "SyncReport", "WorkingTreeStatus"]
