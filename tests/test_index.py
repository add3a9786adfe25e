"""Tests for the note index: navigation, refresh, search, and mutations."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from kiroku.archive import ArchiveIOError, EntryNotFound, InvalidName, NameCollision
from kiroku.config import ArchiveSettings, KirokuConfig
from kiroku.index import ChangeEvent, ChangeKind, NoteIndex
from kiroku.search import SearchMode
from kiroku.sorting import SortMode

from tests.fakes import write_note


@pytest.fixture()
def archive(tmp_path: Path) -> Path:
    root = tmp_path / "notes"
    write_note(root, "inbox.md", "---\ntags: [todo]\n---\ninbox body\n", mtime=1_700_000_300)
    write_note(root, "work/plan.md", "the plan", mtime=1_700_000_200)
    write_note(root, "work/planning.md", "a much longer planning note", mtime=1_700_000_100)
    write_note(root, "work/deep/nested.md", "nested", mtime=1_700_000_000)
    return root


def test_load_walks_the_archive(archive: Path) -> None:
    index = NoteIndex.load(archive)

    assert index.cursor == archive
    assert [note.relative_path for note in index.notes()] == [
        "inbox.md",
        "work/deep/nested.md",
        "work/plan.md",
        "work/planning.md",
    ]
    assert index.get("work/plan.md") is not None
    assert index.get("missing.md") is None


def test_enter_and_leave_up(archive: Path) -> None:
    index = NoteIndex.load(archive)

    assert index.enter("work/deep") == archive / "work" / "deep"
    assert index.leave_up() is True
    assert index.cursor == archive / "work"
    assert index.leave_up() is True
    assert index.leave_up() is False
    assert index.cursor == archive
    with pytest.raises(EntryNotFound):
        index.enter("work/plan.md")


def test_current_children_lists_folders_then_sorted_notes(archive: Path) -> None:
    index = NoteIndex.load(archive)
    index.enter("work")

    listing = index.current_children()

    assert [folder.name for folder in listing.folders] == ["deep"]
    assert [note.name for note in listing.notes] == ["plan.md", "planning.md"]
    index.set_sort_mode(SortMode.SIZE)
    assert [note.name for note in index.current_children().notes] == ["planning.md", "plan.md"]


def test_refresh_is_idempotent_and_keeps_entries(archive: Path) -> None:
    index = NoteIndex.load(archive)
    before = index.tree.signature()
    note = index.get("inbox.md")

    stats = index.refresh()

    assert stats.changed is False
    assert stats.unchanged == 4
    assert index.tree.signature() == before
    assert index.get("inbox.md") is note


def test_refresh_of_a_folder_picks_up_new_notes(archive: Path) -> None:
    index = NoteIndex.load(archive)
    write_note(archive, "work/new.md", "fresh")

    stats = index.refresh(archive / "work" / "new.md")

    assert stats.added == 1
    assert index.get("work/new.md") is not None


def test_refresh_after_external_delete_repairs_cursor(archive: Path) -> None:
    index = NoteIndex.load(archive)
    index.enter("work/deep")
    shutil.rmtree(archive / "work")

    stats = index.refresh("work/deep")

    assert stats.removed == 3
    assert index.cursor == archive
    assert index.get("work") is None


def test_apply_changes_uses_note_fast_path(archive: Path) -> None:
    index = NoteIndex.load(archive)
    created = write_note(archive, "work/idea.md", "idea")
    (archive / "inbox.md").unlink()
    write_note(archive, "work/plan.md", "the plan, now with more detail")

    stats = index.apply_changes(
        [
            ChangeEvent(ChangeKind.CREATED, created),
            ChangeEvent(ChangeKind.MODIFIED, created),
            ChangeEvent(ChangeKind.REMOVED, archive / "inbox.md"),
            ChangeEvent(ChangeKind.MODIFIED, archive / "work" / "plan.md"),
            ChangeEvent(ChangeKind.CREATED, archive / ".git" / "index.md"),
        ]
    )

    assert (stats.added, stats.removed, stats.updated) == (1, 1, 1)
    assert index.get("work/idea.md") is not None
    assert index.get("inbox.md") is None
    assert index.get("work/plan.md").size == len("the plan, now with more detail")


def test_apply_changes_rebuilds_new_directories(archive: Path) -> None:
    index = NoteIndex.load(archive)
    write_note(archive, "journal/2024/day.md", "day")

    stats = index.apply_changes(
        [
            ChangeEvent(ChangeKind.CREATED, archive / "journal", is_directory=True),
            ChangeEvent(ChangeKind.CREATED, archive / "journal" / "2024" / "day.md"),
        ]
    )

    assert stats.added == 1
    assert index.tree.folder(archive / "journal" / "2024") is not None


def test_hidden_changes_are_ignored(archive: Path) -> None:
    index = NoteIndex.load(archive)

    stats = index.apply_changes([ChangeEvent(ChangeKind.CREATED, archive / ".obsidian" / "x.md")])

    assert stats.changed is False


def test_rename_note_in_place(archive: Path) -> None:
    index = NoteIndex.load(archive)

    target = index.rename("work/plan.md", " final plan ")

    assert target == archive / "work" / "final_plan.md"
    assert target.read_text(encoding="utf-8") == "the plan"
    assert not (archive / "work" / "plan.md").exists()
    assert index.get("work/final_plan.md").relative_path == "work/final_plan.md"
    assert index.get("work/plan.md") is None


def test_rename_into_sub_path_and_parent(archive: Path) -> None:
    index = NoteIndex.load(archive)

    moved = index.rename("work/plan.md", "archive/old plan")
    lifted = index.rename("work/planning.md", "../planning")

    assert moved == archive / "work" / "archive" / "old_plan.md"
    assert index.tree.folder(archive / "work" / "archive") is not None
    assert lifted == archive / "planning.md"
    assert lifted.exists()


def test_rename_collision_leaves_everything_untouched(archive: Path) -> None:
    index = NoteIndex.load(archive)
    before = index.tree.signature()

    with pytest.raises(NameCollision):
        index.rename("work/plan.md", "planning")

    assert index.tree.signature() == before
    assert (archive / "work" / "plan.md").read_text(encoding="utf-8") == "the plan"
    assert (archive / "work" / "planning.md").exists()


@pytest.mark.parametrize("name", ["", "   ", "../../escape", "/absolute", ".hidden"])
def test_rename_rejects_invalid_names(archive: Path, name: str) -> None:
    index = NoteIndex.load(archive)

    with pytest.raises(InvalidName):
        index.rename("inbox.md", name)

    assert (archive / "inbox.md").exists()


def test_rename_folder_moves_its_notes_and_cursor(archive: Path) -> None:
    index = NoteIndex.load(archive)
    index.enter("work/deep")

    target = index.rename("work", "jobs")

    assert target == archive / "jobs"
    assert index.get("work") is None
    assert index.get("jobs/deep/nested.md") is not None
    assert index.cursor == archive / "jobs" / "deep"


def test_folder_rename_is_undone_when_the_new_folder_cannot_be_walked(
    archive: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    index = NoteIndex.load(archive)
    before = [note.relative_path for note in index.notes()]

    def unreadable(path: Path) -> None:
        raise ArchiveIOError("unreadable", path=path)

    monkeypatch.setattr(index._builder, "build_subtree", unreadable)

    with pytest.raises(ArchiveIOError):
        index.rename("work", "archive/jobs")

    assert (archive / "work" / "plan.md").exists()
    assert not (archive / "archive").exists()
    assert [note.relative_path for note in index.notes()] == before
    assert index.get("work/deep") is not None


def test_delete_note_and_folder(archive: Path) -> None:
    index = NoteIndex.load(archive)

    removed_note = index.delete("inbox.md")
    removed_folder = index.delete("work")

    assert [note.name for note in removed_note] == ["inbox.md"]
    assert sorted(note.name for note in removed_folder) == ["nested.md", "plan.md", "planning.md"]
    assert not (archive / "work").exists()
    assert index.notes() == []
    with pytest.raises(EntryNotFound):
        index.delete("inbox.md")


def test_create_note_creates_nested_folders(archive: Path) -> None:
    index = NoteIndex.load(archive)

    note = index.create_note(None, "ideas/new idea")

    assert note.path == archive / "ideas" / "new_idea.md"
    assert note.path.read_text(encoding="utf-8") == ""
    assert index.tree.folder(archive / "ideas") is not None
    with pytest.raises(NameCollision):
        index.create_note("ideas", "new idea.md")


def test_create_note_defaults_to_the_cursor(archive: Path) -> None:
    index = NoteIndex.load(archive)
    index.enter("work")

    note = index.create_note(None, "todo")

    assert note.relative_path == "work/todo.md"


def test_create_folder_and_collision(archive: Path) -> None:
    index = NoteIndex.load(archive)

    folder = index.create_folder(None, "drafts")

    assert folder.path == archive / "drafts"
    assert (archive / "drafts").is_dir()
    with pytest.raises(NameCollision):
        index.create_folder(None, "drafts")
    with pytest.raises(NameCollision):
        index.create_folder(None, "work")


def test_body_cache_is_bounded(archive: Path) -> None:
    config = KirokuConfig(archive=ArchiveSettings(body_cache_size=2))
    index = NoteIndex.load(archive, config)

    assert index.read_body("inbox.md") == "inbox body\n"
    index.read_body("work/plan.md")
    index.read_body("work/planning.md")

    assert index.resident_bodies == 2
    assert index.get("inbox.md").is_text_loaded is False
    assert index.get("work/planning.md").is_text_loaded is True


def test_read_body_of_unknown_note_raises(archive: Path) -> None:
    index = NoteIndex.load(archive)

    with pytest.raises(EntryNotFound):
        index.read_body("nope.md")


def test_search_ranking_ignores_sort_mode(archive: Path) -> None:
    index = NoteIndex.load(archive)
    index.set_sort_mode(SortMode.SIZE)

    hits = index.search(SearchMode.TITLE, "plan")

    assert [hit.note.name for hit in hits] == ["plan.md", "planning.md"]


def test_empty_query_lists_every_note_in_sort_order(archive: Path) -> None:
    index = NoteIndex.load(archive)
    index.search(SearchMode.TITLE, "")

    assert [hit.note.name for hit in index.results()] == [
        "inbox.md",
        "plan.md",
        "planning.md",
        "nested.md",
    ]
    assert index.cycle_sort_mode() is SortMode.NAME
    assert [hit.note.name for hit in index.results()][0] == "inbox.md"


def test_tag_and_content_search_through_the_index(archive: Path) -> None:
    index = NoteIndex.load(archive)

    assert [hit.note.name for hit in index.search(SearchMode.TAG, "todo")] == ["inbox.md"]
    assert [hit.note.name for hit in index.search(SearchMode.CONTENT, "longer")] == [
        "planning.md"
    ]
    index.clear_search()
    assert index.query == ""
    assert index.search_mode is SearchMode.CONTENT


def test_snapshot_in_browse_and_search_mode(archive: Path) -> None:
    index = NoteIndex.load(archive)

    browse = index.snapshot()

    assert browse.folder == "."
    assert [(entry.kind, entry.title) for entry in browse.entries] == [
        ("folder", "work"),
        ("note", "inbox"),
    ]
    assert browse.entries[1].tags == ["todo"]
    assert browse.note_count == 4
    assert browse.searching is False

    index.search(SearchMode.TITLE, "nest")
    found = index.snapshot().model_dump(mode="json")

    assert found["query"] == "nest"
    assert found["search_mode"] == "title"
    assert found["sort_mode"] == "date"
    assert [entry["relative_path"] for entry in found["entries"]] == ["work/deep/nested.md"]
    assert found["entries"][0]["score"] > 0
