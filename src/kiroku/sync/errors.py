"""Errors raised by git synchronization."""

from __future__ import annotations

from typing import Optional, Sequence


class GitCommandError(Exception):
    """Raised when a git subprocess fails, times out, or cannot be started.

    Attributes:
        message: Human-readable error message.
        command: The git command that failed, if one was run.
        returncode: Exit status from git, if it exited.
        stderr: Error output from git, if captured.
    """

    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ) -> None:
        self.message = message
        self.command = list(command) if command is not None else None
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.returncode is not None:
            parts.append(f"exit status {self.returncode}")
        if self.stderr:
            parts.append(self.stderr[:200])
        return ": ".join(parts)


class SyncError(Exception):
    """Base class for a failed synchronization stage.

    Stage errors are recorded on ``SyncReport.error`` rather than raised.

    Attributes:
        stage: Name of the stage that failed (``check``, ``commit``, ``push``).
    """

    stage = "sync"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class CheckFailed(SyncError):
    """Recorded when the working tree or upstream state cannot be inspected."""

    stage = "check"


class CommitFailed(SyncError):
    """Recorded when staging or committing changes fails."""

    stage = "commit"


class PushFailed(SyncError):
    """Recorded when pushing to the remote fails."""

    stage = "push"


__all__ = ["CheckFailed", "CommitFailed", "GitCommandError", "PushFailed", "SyncError"]
