"""Filesystem watch service feeding archive change events to the index."""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from kiroku.config.models import WatchSettings
from kiroku.index.models import ChangeEvent, ChangeKind

LOGGER = logging.getLogger(__name__)

ChangeSink = Callable[[list[ChangeEvent]], None]

_STOP = object()


class WatchService:
    """Watch an archive root and deliver debounced batches of change events.

    Raw watchdog events are translated into :class:`ChangeEvent` objects,
    coalesced per path, and handed to ``sink`` once no new event arrived for
    ``debounce_seconds``. A batch is delivered early once it is
    ``max_batch_seconds`` old or holds ``max_batch_items`` paths. The sink runs
    on the service's own thread, so it should only post the batch somewhere
    (for example ``Session.post``).
    """

    def __init__(
        self,
        root: Path,
        sink: ChangeSink,
        settings: Optional[WatchSettings] = None,
    ) -> None:
        """Initialize the watch service.

        Args:
            root: Archive root to monitor.
            sink: Callable receiving each batch of coalesced events.
            settings: Debounce and recursion settings.
        """
        self._root = Path(os.path.abspath(Path(root).expanduser()))
        self._sink = sink
        self._settings = settings or WatchSettings()
        self._debounce_seconds = max(0.0, self._settings.debounce_seconds)
        self._queue: queue.Queue[object] = queue.Queue()
        self._stop_event = threading.Event()
        self._observer: Optional[Observer] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Start the observer and the debounce thread."""
        if self._observer is not None:
            raise RuntimeError("WatchService is already running.")
        self._stop_event.clear()
        observer = Observer()
        handler = _WatchEventHandler(self._root, self.enqueue)
        observer.schedule(handler, str(self._root), recursive=self._settings.recursive)
        observer.start()
        self._observer = observer
        self._thread = threading.Thread(target=self._run_loop, name="kiroku-watch", daemon=True)
        self._thread.start()
        LOGGER.debug("Watching %s", self._root)

    def stop(self) -> None:
        """Stop watching and flush nothing further."""
        self._stop_event.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._queue.put(_STOP)
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def enqueue(self, event: ChangeEvent) -> None:
        """Queue a change event for the next batch."""
        self._queue.put(event)

    def __enter__(self) -> "WatchService":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _run_loop(self) -> None:
        pending: dict[Path, ChangeEvent] = {}
        flush_deadline: Optional[float] = None
        batch_started_at: Optional[float] = None
        max_age = self._settings.max_batch_seconds

        while not self._stop_event.is_set():
            timeout: Optional[float] = None
            if flush_deadline is not None:
                timeout = max(0.0, flush_deadline - time.monotonic())

            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                if pending:
                    self._flush(pending)
                    pending = {}
                flush_deadline = None
                batch_started_at = None
                continue

            if item is _STOP:
                break
            assert isinstance(item, ChangeEvent)
            previous = pending.get(item.path)
            pending[item.path] = _coalesce(previous, item)
            now = time.monotonic()
            if batch_started_at is None:
                batch_started_at = now
            flush_deadline = now + self._debounce_seconds
            if max_age is not None:
                flush_deadline = min(flush_deadline, batch_started_at + max_age)

            overdue = max_age is not None and now - batch_started_at >= max_age
            if overdue or len(pending) >= self._settings.max_batch_items:
                self._flush(pending)
                pending = {}
                flush_deadline = None
                batch_started_at = None

    def _flush(self, pending: dict[Path, ChangeEvent]) -> None:
        batch = [pending[path] for path in sorted(pending)]
        try:
            self._sink(batch)
        except Exception:  # pragma: no cover
            LOGGER.exception("Failed to deliver %d change events", len(batch))


def _coalesce(previous: Optional[ChangeEvent], current: ChangeEvent) -> ChangeEvent:
    """Merge two events for the same path into the one worth reporting."""
    if previous is None:
        return current
    if previous.kind in (ChangeKind.CREATED, ChangeKind.RENAMED_TO) and current.kind is ChangeKind.MODIFIED:
        return previous
    return current


def _event_path(raw: object) -> Path:
    return Path(os.fsdecode(raw))  # type: ignore[arg-type]


class _WatchEventHandler(FileSystemEventHandler):
    """Translate watchdog events into archive change events."""

    def __init__(self, root: Path, emit: Callable[[ChangeEvent], None]) -> None:
        self._root = root
        self._emit = emit

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(ChangeKind.CREATED, event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(ChangeKind.MODIFIED, event.src_path, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward(ChangeKind.REMOVED, event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._forward(ChangeKind.REMOVED, event.src_path, event.is_directory)
        self._forward(ChangeKind.RENAMED_TO, event.dest_path, event.is_directory)

    def _forward(self, kind: ChangeKind, raw_path: object, is_directory: bool) -> None:
        path = _event_path(raw_path)
        try:
            relative = path.relative_to(self._root)
        except ValueError:
            return
        if any(part.startswith(".") for part in relative.parts):
            return
        self._emit(ChangeEvent(kind=kind, path=path, is_directory=is_directory))


__all__ = ["ChangeSink", "WatchService"]
