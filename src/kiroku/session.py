"""Turn-based event loop owning the note index."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from kiroku.archive.tree import ReconcileStats
from kiroku.config.models import KirokuConfig
from kiroku.index import ChangeEvent, IndexSnapshot, NoteIndex, SyncStatusView
from kiroku.sync import GitPrimitives, SyncController, SyncOutcome, SyncPhase, SyncReport
from kiroku.watch import WatchService

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChangesObserved:
    """A debounced batch of filesystem changes from the watcher."""

    events: tuple[ChangeEvent, ...]


@dataclass(frozen=True, slots=True)
class SyncFinished:
    """Posted by the sync worker once a run concluded."""

    report: SyncReport


@dataclass(frozen=True, slots=True)
class UserAction:
    """A callable run against the index on the session's turn."""

    action: Callable[[NoteIndex], Any]
    name: str = "action"


SessionEvent = Union[ChangesObserved, SyncFinished, UserAction]


@dataclass(slots=True)
class Processed:
    """What handling one session event produced."""

    event: SessionEvent
    stats: ReconcileStats = field(default_factory=ReconcileStats)
    report: Optional[SyncReport] = None
    result: Any = None


class SyncWorker(threading.Thread):
    """Run one sync in the background and post the report back to the session."""

    def __init__(self, controller: SyncController, post: Callable[[SessionEvent], None]) -> None:
        super().__init__(name="kiroku-sync", daemon=True)
        self._controller = controller
        self._post = post

    def run(self) -> None:
        try:
            report = self._controller.run()
        except Exception as exc:
            LOGGER.exception("Sync worker crashed")
            report = SyncReport(
                phase=SyncPhase.CHECK_FAILED,
                outcome=SyncOutcome.FAILED,
                message=f"sync crashed: {exc}",
            )
        self._post(SyncFinished(report))


class Session:
    """Single owner of a :class:`NoteIndex`.

    Watch batches, user actions, and sync completions all arrive on one
    queue and :meth:`process_next` handles exactly one of them to
    completion, so the index never sees concurrent mutation. Git runs on a
    :class:`SyncWorker` thread; at most one sync is in flight.
    """

    def __init__(
        self,
        index: NoteIndex,
        git: Optional[GitPrimitives] = None,
        *,
        config: Optional[KirokuConfig] = None,
    ) -> None:
        self._index = index
        self._git = git
        self._config = config or index.config
        self._queue: queue.Queue[SessionEvent] = queue.Queue()
        self._worker: Optional[SyncWorker] = None
        self._watcher: Optional[WatchService] = None
        self._last_report: Optional[SyncReport] = None

    @property
    def index(self) -> NoteIndex:
        return self._index

    @property
    def last_report(self) -> Optional[SyncReport]:
        return self._last_report

    @property
    def sync_in_progress(self) -> bool:
        return self._worker is not None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # Inbound events

    def post(self, event: SessionEvent) -> None:
        """Queue ``event``; safe to call from any thread."""
        self._queue.put(event)

    def post_changes(self, events: Iterable[ChangeEvent]) -> None:
        self.post(ChangesObserved(tuple(events)))

    def start_watching(self) -> WatchService:
        """Start a watcher that posts change batches to this session."""
        if self._watcher is None:
            self._watcher = WatchService(self._index.root, self.post_changes, self._config.watch)
            self._watcher.start()
        return self._watcher

    def stop_watching(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    # Processing

    def process_next(self, timeout: Optional[float] = None) -> Optional[Processed]:
        """Handle the next queued event.

        Args:
            timeout: Seconds to wait for an event; ``None`` blocks, ``0`` polls.

        Returns:
            Processed | None: The handled event, or ``None`` when none arrived.
        """
        try:
            if timeout == 0:
                event = self._queue.get_nowait()
            else:
                event = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        return self._dispatch(event)

    def drain(self) -> list[Processed]:
        """Handle every event queued right now."""
        handled: list[Processed] = []
        while True:
            processed = self.process_next(timeout=0)
            if processed is None:
                return handled
            handled.append(processed)

    def _dispatch(self, event: SessionEvent) -> Processed:
        if isinstance(event, ChangesObserved):
            stats = self._index.apply_changes(event.events)
            return Processed(event=event, stats=stats)
        if isinstance(event, SyncFinished):
            self._worker = None
            self._last_report = event.report
            stats = self._index.refresh()
            return Processed(event=event, stats=stats, report=event.report)
        return Processed(event=event, result=event.action(self._index))

    # Sync

    def request_sync(self) -> bool:
        """Start a background sync; return False when one is running or git is unavailable."""
        if self._git is None:
            LOGGER.warning("Sync requested without a git repository")
            return False
        if self._worker is not None:
            LOGGER.info("Sync already in progress; ignoring request")
            return False
        self._worker = SyncWorker(SyncController(self._git, self._config.sync), self.post)
        self._worker.start()
        return True

    def sync_status(self) -> Optional[SyncStatusView]:
        if self._worker is not None:
            return SyncStatusView(phase="running", in_progress=True, message="syncing...")
        if self._last_report is None:
            return None
        report = self._last_report
        return SyncStatusView(
            phase=report.phase.value,
            outcome=report.outcome.value if report.outcome else None,
            message=report.message,
        )

    def snapshot(self) -> IndexSnapshot:
        return self._index.snapshot(self.sync_status())

    def shutdown(self) -> Optional[SyncReport]:
        """Stop watching, wait for an in-flight sync, then auto-sync if configured.

        Returns:
            SyncReport | None: Report of the exit sync, when one ran.
        """
        self.stop_watching()
        worker = self._worker
        if worker is not None:
            LOGGER.info("Waiting for the running sync to finish before exiting")
            worker.join()
        self.drain()
        if not self._config.auto_sync or self._git is None:
            return None
        report = SyncController(self._git, self._config.sync).run()
        self._last_report = report
        return report


__all__ = [
    "ChangesObserved",
    "Processed",
    "Session",
    "SessionEvent",
    "SyncFinished",
    "SyncWorker",
    "UserAction",
]
