"""Filesystem mutations applied to the archive before the tree is updated."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Iterable

from kiroku.archive.errors import ArchiveIOError, InvalidName, NameCollision

LOGGER = logging.getLogger(__name__)

DEFAULT_NOTE_SUFFIX = ".md"


def sanitize_name(name: str, *, note: bool, extensions: Iterable[str] = (DEFAULT_NOTE_SUFFIX,)) -> str:
    """Normalise a user-supplied note or folder name.

    Surrounding whitespace is trimmed, inner spaces become underscores, and
    notes without a known markdown suffix get the first configured suffix.
    Slash-separated sub-paths (including ``..``) are kept.

    Raises:
        InvalidName: If nothing usable remains after trimming.
    """
    cleaned = name.strip().replace(" ", "_").rstrip("/")
    if not cleaned or cleaned in {".", ".."}:
        raise InvalidName(f"Invalid name: {name!r}")
    if Path(cleaned).is_absolute():
        raise InvalidName(f"Names must be relative: {name!r}")
    suffixes = [suffix.lower() for suffix in extensions] or [DEFAULT_NOTE_SUFFIX]
    if note and Path(cleaned).suffix.lower() not in suffixes:
        cleaned = f"{cleaned}{suffixes[0]}"
    return cleaned


def resolve_target(base: Path, name: str, root: Path) -> Path:
    """Join ``name`` onto ``base`` and check the result stays under ``root``.

    Raises:
        InvalidName: If the target escapes the root, is the root itself, or
            passes through a hidden path component.
    """
    target = Path(os.path.normpath(base / name))
    if root not in target.parents:
        raise InvalidName(f"{name!r} resolves outside the archive root {root}")
    if any(part.startswith(".") for part in target.relative_to(root).parts):
        raise InvalidName(f"{name!r} would create a hidden entry")
    return target


def create_note_file(path: Path) -> list[Path]:
    """Create an empty note at ``path``, adding missing parent folders.

    Returns:
        list[Path]: Folders created for the note, outermost first.

    Raises:
        NameCollision: If ``path`` already exists.
        ArchiveIOError: If the filesystem refuses the operation.
    """
    created = _make_parents(path)
    try:
        with open(path, "x", encoding="utf-8"):
            pass
    except FileExistsError as exc:
        _remove_created(created)
        raise NameCollision(path) from exc
    except OSError as exc:
        _remove_created(created)
        raise ArchiveIOError.from_os_error("create", path, exc) from exc
    return created


def create_directory(path: Path) -> list[Path]:
    """Create the folder at ``path`` (and missing parents).

    Returns:
        list[Path]: Every folder created, outermost first.
    """
    if os.path.lexists(path):
        raise NameCollision(path)
    created = _make_parents(path)
    try:
        os.mkdir(path)
    except FileExistsError as exc:
        _remove_created(created)
        raise NameCollision(path) from exc
    except OSError as exc:
        _remove_created(created)
        raise ArchiveIOError.from_os_error("create folder", path, exc) from exc
    created.append(path)
    return created


def move_entry(source: Path, target: Path) -> list[Path]:
    """Rename ``source`` to ``target`` without overwriting anything.

    Parent folders of ``target`` are created when missing and removed again
    if the rename fails.

    Returns:
        list[Path]: Folders created for the target, outermost first.
    """
    if os.path.lexists(target):
        raise NameCollision(target)
    if source in target.parents:
        raise InvalidName(f"Cannot move {source} into itself")
    created = _make_parents(target)
    try:
        os.rename(source, target)
    except OSError as exc:
        _remove_created(created)
        raise ArchiveIOError.from_os_error("rename", source, exc) from exc
    return created


def undo_move(source: Path, target: Path, created: list[Path]) -> None:
    """Move ``target`` back to ``source`` and drop the folders ``move_entry`` created."""
    try:
        os.rename(target, source)
    except OSError as exc:
        raise ArchiveIOError.from_os_error("rename", target, exc) from exc
    _remove_created(created)


def delete_entry(path: Path) -> None:
    """Unlink a note or remove a folder with everything below it."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as exc:
        raise ArchiveIOError.from_os_error("delete", path, exc) from exc


def _make_parents(path: Path) -> list[Path]:
    missing: list[Path] = []
    for parent in path.parents:
        if parent.exists():
            break
        missing.append(parent)
    created: list[Path] = []
    for folder in reversed(missing):
        try:
            os.mkdir(folder)
        except OSError as exc:
            _remove_created(created)
            raise ArchiveIOError.from_os_error("create folder", folder, exc) from exc
        created.append(folder)
    return created


def _remove_created(folders: list[Path]) -> None:
    for folder in reversed(folders):
        try:
            os.rmdir(folder)
        except OSError as exc:
            LOGGER.debug("Could not remove %s after a failed operation: %s", folder, exc)


__all__ = [
    "DEFAULT_NOTE_SUFFIX",
    "create_directory",
    "create_note_file",
    "delete_entry",
    "move_entry",
    "resolve_target",
    "sanitize_name",
    "undo_move",
]
