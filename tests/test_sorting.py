"""Tests for note ordering."""

from pathlib import Path

from kiroku.archive import Folder, NoteEntry
from kiroku.sorting import SortMode, sort_children, sort_notes


def _note(name: str, *, modified: int = 0, size: int = 0) -> NoteEntry:
    return NoteEntry(
        path=Path("/archive") / name,
        relative_path=name,
        modified_ns=modified,
        size=size,
    )


def test_date_sorts_newest_first_with_path_tiebreak() -> None:
    notes = [_note("b.md", modified=5), _note("c.md", modified=9), _note("a.md", modified=5)]

    ordered = sort_notes(notes, SortMode.DATE)

    assert [note.name for note in ordered] == ["c.md", "a.md", "b.md"]


def test_name_sort_is_case_insensitive() -> None:
    notes = [_note("beta.md"), _note("Alpha.md"), _note("alpha2.md")]

    ordered = sort_notes(notes, SortMode.NAME)

    assert [note.name for note in ordered] == ["Alpha.md", "alpha2.md", "beta.md"]


def test_size_sorts_largest_first() -> None:
    notes = [_note("small.md", size=1), _note("big.md", size=100), _note("mid.md", size=10)]

    assert [note.name for note in sort_notes(notes, SortMode.SIZE)] == [
        "big.md",
        "mid.md",
        "small.md",
    ]


def test_sorting_does_not_mutate_input() -> None:
    notes = [_note("b.md", size=1), _note("a.md", size=2)]

    sort_notes(notes, SortMode.SIZE)

    assert [note.name for note in notes] == ["b.md", "a.md"]


def test_sort_is_deterministic_regardless_of_input_order() -> None:
    notes = [_note(f"{index}.md", modified=7) for index in range(5)]

    forward = sort_notes(notes, SortMode.DATE)
    backward = sort_notes(list(reversed(notes)), SortMode.DATE)

    assert forward == backward


def test_cycle_order_wraps_around() -> None:
    assert SortMode.DATE.next() is SortMode.NAME
    assert SortMode.NAME.next() is SortMode.SIZE
    assert SortMode.SIZE.next() is SortMode.DATE
    assert SortMode.SIZE.label == "Size"


def test_children_put_folders_first_by_name() -> None:
    folders = [
        Folder(path=Path("/archive/zeta"), relative_path="zeta"),
        Folder(path=Path("/archive/Alpha"), relative_path="Alpha"),
    ]
    notes = [_note("x.md", modified=1), _note("y.md", modified=2)]

    ordered_folders, ordered_notes = sort_children(folders, notes, SortMode.DATE)

    assert [folder.name for folder in ordered_folders] == ["Alpha", "zeta"]
    assert [note.name for note in ordered_notes] == ["y.md", "x.md"]
