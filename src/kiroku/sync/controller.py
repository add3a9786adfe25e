"""State machine deciding whether a git add/commit/push cycle is needed."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Tuple

from kiroku.config.models import SyncSettings

from .errors import CheckFailed, CommitFailed, GitCommandError, PushFailed, SyncError
from .models import SyncOutcome, SyncPhase, SyncReport, WorkingTreeStatus

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class GitPrimitives(Protocol):
    """Git operations the controller drives."""

    def status(self) -> WorkingTreeStatus: ...

    def commit_all(self, message: str) -> None: ...

    def push(self) -> None: ...

    def ahead_behind(self) -> Optional[Tuple[int, int]]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncController:
    """Run one synchronization cycle at a time.

    Each call to :meth:`run` starts from ``CHECKING_STATUS`` and walks::

        CHECKING_STATUS -> NOTHING_TO_SYNC
        CHECKING_STATUS -> COMMITTING -> PUSHING -> SUCCESS | PUSH_FAILED
        CHECKING_STATUS -> PUSHING (clean tree with unpushed commits)

    before returning to ``IDLE``. Git failures never escape :meth:`run`; they
    are recorded on the returned report. A failed push keeps the commit.
    """

    def __init__(
        self,
        git: GitPrimitives,
        settings: Optional[SyncSettings] = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._git = git
        self._settings = settings or SyncSettings()
        self._clock = clock
        self._phase = SyncPhase.IDLE
        self._report: Optional[SyncReport] = None

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    def commit_message(self) -> str:
        """Return the commit message for a run starting now."""
        timestamp = self._clock().strftime("%Y-%m-%d %H:%M:%S UTC")
        return self._settings.commit_message.replace("{timestamp}", timestamp)

    def run(self) -> SyncReport:
        """Synchronize the archive with its remote.

        Returns:
            SyncReport: Terminal phase, outcome, and what was done.
        """
        report = SyncReport(started_at=self._clock())
        self._report = report
        try:
            self._run(report)
        finally:
            report.finished_at = self._clock()
            self._phase = SyncPhase.IDLE
            self._report = None
        LOGGER.info("Sync finished in %s: %s", report.phase.value, report.message)
        return report

    def _run(self, report: SyncReport) -> None:
        self._enter(SyncPhase.CHECKING_STATUS)
        try:
            status = self._git.status()
        except GitCommandError as exc:
            error = CheckFailed(f"status check failed: {exc}", cause=exc)
            self._fail(report, SyncPhase.CHECK_FAILED, error)
            return
        report.dirty = status is WorkingTreeStatus.DIRTY
        self._record_ahead_behind(report)

        if not report.dirty:
            if not report.ahead:
                self._finish(
                    report, SyncPhase.NOTHING_TO_SYNC, SyncOutcome.SKIPPED, "already up to date"
                )
                return
            LOGGER.debug("Working tree clean with %d unpushed commits", report.ahead)
        else:
            self._enter(SyncPhase.COMMITTING)
            try:
                self._git.commit_all(self.commit_message())
            except GitCommandError as exc:
                error = CommitFailed(f"commit failed: {exc}", cause=exc)
                self._fail(report, SyncPhase.COMMIT_FAILED, error)
                return
            report.committed = True
            self._record_ahead_behind(report)
            if report.ahead == 0:
                self._finish(
                    report,
                    SyncPhase.SUCCESS,
                    SyncOutcome.SUCCESS,
                    "committed locally; upstream already up to date",
                )
                return

        self._enter(SyncPhase.PUSHING)
        try:
            self._git.push()
        except GitCommandError as exc:
            self._fail(report, SyncPhase.PUSH_FAILED, PushFailed(f"push failed: {exc}", cause=exc))
            return
        report.pushed = True
        self._finish(report, SyncPhase.SUCCESS, SyncOutcome.SUCCESS, "synced")

    def _record_ahead_behind(self, report: SyncReport) -> None:
        try:
            counts = self._git.ahead_behind()
        except GitCommandError as exc:
            LOGGER.debug("Unable to compare with upstream: %s", exc)
            counts = None
        if counts is None:
            report.ahead = report.behind = None
        else:
            report.ahead, report.behind = counts

    def _enter(self, phase: SyncPhase) -> None:
        self._phase = phase
        if self._report is not None:
            self._report.transitions.append(phase)
        LOGGER.debug("Sync phase: %s", phase.value)

    def _finish(
        self, report: SyncReport, phase: SyncPhase, outcome: SyncOutcome, message: str
    ) -> None:
        self._enter(phase)
        report.phase = phase
        report.outcome = outcome
        report.message = message

    def _fail(self, report: SyncReport, phase: SyncPhase, error: SyncError) -> None:
        LOGGER.warning("Sync %s stage failed: %s", error.stage, error)
        report.error = error
        self._finish(report, phase, SyncOutcome.FAILED, str(error))


__all__ = ["Clock", "GitPrimitives", "SyncController"]
