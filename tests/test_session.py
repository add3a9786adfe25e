"""Tests for the session event loop and background sync."""

from __future__ import annotations

from pathlib import Path

import pytest

from kiroku.config import KirokuConfig
from kiroku.index import ChangeEvent, ChangeKind, NoteIndex
from kiroku.session import ChangesObserved, Session, SyncFinished, UserAction
from kiroku.sync import SyncOutcome, SyncPhase

from tests.fakes import FakeGit, write_note


@pytest.fixture()
def index(tmp_path: Path) -> NoteIndex:
    root = tmp_path / "notes"
    write_note(root, "a.md", "alpha")
    return NoteIndex.load(root)


def test_process_next_polls_an_empty_queue(index: NoteIndex) -> None:
    session = Session(index)

    assert session.process_next(timeout=0) is None
    assert session.process_next(timeout=0.01) is None


def test_change_batches_are_applied_on_the_session_turn(index: NoteIndex) -> None:
    session = Session(index)
    created = write_note(index.root, "b.md", "beta")
    session.post_changes([ChangeEvent(ChangeKind.CREATED, created)])

    assert index.get("b.md") is None
    processed = session.process_next(timeout=0)

    assert isinstance(processed.event, ChangesObserved)
    assert processed.stats.added == 1
    assert index.get("b.md") is not None


def test_user_actions_run_in_order(index: NoteIndex) -> None:
    session = Session(index)
    session.post(UserAction(lambda idx: idx.create_note(None, "first"), name="create"))
    session.post(UserAction(lambda idx: len(idx.notes()), name="count"))

    handled = session.drain()

    assert [item.event.name for item in handled] == ["create", "count"]
    assert handled[1].result == 2
    assert session.pending == 0


def test_request_sync_without_git_is_refused(index: NoteIndex) -> None:
    session = Session(index)

    assert session.request_sync() is False
    assert session.sync_status() is None


def test_background_sync_reports_back(index: NoteIndex) -> None:
    git = FakeGit(dirty=True)
    session = Session(index, git)

    assert session.request_sync() is True
    assert session.sync_in_progress is True
    assert session.request_sync() is False
    assert session.sync_status().in_progress is True

    processed = session.process_next(timeout=5)

    assert isinstance(processed.event, SyncFinished)
    assert processed.report.phase is SyncPhase.SUCCESS
    assert session.sync_in_progress is False
    assert session.last_report is processed.report
    status = session.snapshot().sync
    assert status.phase == "success"
    assert status.outcome == "success"
    assert git.pushes == 1


def test_failed_sync_is_surfaced(index: NoteIndex) -> None:
    session = Session(index, FakeGit(dirty=True, fail_push=True))
    session.request_sync()

    processed = session.process_next(timeout=5)

    assert processed.report.outcome is SyncOutcome.FAILED
    assert session.sync_status().phase == "push_failed"


def test_shutdown_waits_for_running_sync(index: NoteIndex) -> None:
    session = Session(index, FakeGit(dirty=True))
    session.request_sync()

    assert session.shutdown() is None
    assert session.last_report is not None
    assert session.sync_in_progress is False


def test_shutdown_runs_auto_sync(index: NoteIndex) -> None:
    git = FakeGit(dirty=True)
    session = Session(index, git, config=KirokuConfig(auto_sync=True))

    report = session.shutdown()

    assert report is not None
    assert report.phase is SyncPhase.SUCCESS
    assert len(git.commits) == 1
    assert session.last_report is report


def test_shutdown_without_auto_sync_does_nothing(index: NoteIndex) -> None:
    git = FakeGit(dirty=True)

    assert Session(index, git).shutdown() is None
    assert git.calls == []
