"""CLI tests for browsing, searching, and editing an archive."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from kiroku.cli import cli

from tests.fakes import write_note


def _env_with_home(tmp_path: Path) -> dict[str, str]:
    """Return environment variables pointing HOME to a temp directory."""

    env = dict(os.environ)
    env["HOME"] = str(tmp_path / "home")
    return env


def _archive(tmp_path: Path) -> Path:
    root = tmp_path / "notes"
    write_note(root, "inbox.md", "---\ntags: [todo]\n---\n# Inbox\n\ncall the bank\n", mtime=1_700_000_200)
    write_note(root, "work/plan.md", "quarterly plan", mtime=1_700_000_100)
    return root


def _invoke(tmp_path: Path, root: Path, *args: str, **kwargs: Any):
    return CliRunner().invoke(cli, ["--root", str(root), *args], env=_env_with_home(tmp_path), **kwargs)


def test_cli_help_displays_commands() -> None:
    result = CliRunner().invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "Kiroku keeps a folder of markdown notes" in result.output
    for command in ("ls", "search", "new", "sync", "watch", "config"):
        assert command in result.output


def test_ls_lists_folders_and_notes(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "ls")

    assert result.exit_code == 0
    assert "work/" in result.output
    assert "inbox" in result.output
    assert "todo" in result.output


def test_ls_json_and_sort(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "ls", "work", "--sort", "size", "--json")

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["folder"] == "work"
    assert payload["sort_mode"] == "size"
    assert payload["note_count"] == 2
    assert [entry["relative_path"] for entry in payload["entries"]] == ["work/plan.md"]


def test_ls_save_sort_updates_config(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "ls", "--sort", "name", "--save-sort")

    assert result.exit_code == 0
    config_text = (tmp_path / "home" / ".kiroku" / "config.yaml").read_text(encoding="utf-8")
    assert "sort_mode: name" in config_text


def test_ls_unknown_folder_reports_json_error(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "ls", "missing", "--json")

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["error"]["code"] == "not_found"


def test_ls_empty_archive(tmp_path: Path) -> None:
    result = _invoke(tmp_path, tmp_path / "empty", "ls")

    assert result.exit_code == 0
    assert "No notes here yet." in result.output
    assert (tmp_path / "empty").is_dir()


def test_search_modes_json(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    title = json.loads(_invoke(tmp_path, root, "search", "pln", "--json").output)
    content = json.loads(
        _invoke(tmp_path, root, "search", "BANK", "--mode", "content", "--json").output
    )
    tag = json.loads(_invoke(tmp_path, root, "search", "todo", "--mode", "tag", "--json").output)

    assert title["mode"] == "title"
    assert [hit["relative_path"] for hit in title["results"]] == ["work/plan.md"]
    assert title["results"][0]["score"] > 0
    assert [hit["relative_path"] for hit in content["results"]] == ["inbox.md"]
    assert tag["results"][0]["exact"] is True


def test_search_without_hits(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "search", "zzz")

    assert result.exit_code == 0
    assert "No notes match 'zzz'" in result.output


def test_search_limit(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "search", "", "--json", "--limit", "1")

    assert len(json.loads(result.output)["results"]) == 1


def test_show_raw_prints_body(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "show", "inbox", "--raw")

    assert result.exit_code == 0
    assert result.output == "# Inbox\n\ncall the bank\n"


def test_show_renders_markdown(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "show", "work/plan.md")

    assert result.exit_code == 0
    assert "quarterly plan" in result.output


def test_show_missing_note_fails(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "show", "nope")

    assert result.exit_code == 1
    assert "No note at nope" in result.output


def test_new_creates_nested_note(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "new", "ideas/big idea", "--no-edit")

    assert result.exit_code == 0
    assert "Created ideas/big_idea.md." in result.output
    assert (root / "ideas" / "big_idea.md").is_file()


def test_new_json_and_collision(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    created = _invoke(tmp_path, root, "new", "todo", "--folder", "work", "--no-edit", "--json")
    again = _invoke(tmp_path, root, "new", "todo", "--folder", "work", "--no-edit", "--json")

    assert created.exit_code == 0
    assert json.loads(created.output)["created"]["relative_path"] == "work/todo.md"
    assert again.exit_code == 1
    assert json.loads(again.output)["error"]["code"] == "name_collision"


def test_new_opens_editor(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    root = _archive(tmp_path)
    opened: list[str] = []

    def _mock_edit(*_: Any, filename: str | None = None, **__: Any) -> None:
        opened.append(filename)

    monkeypatch.setattr("kiroku.cli.click.edit", _mock_edit)

    result = _invoke(tmp_path, root, "new", "draft")

    assert result.exit_code == 0
    assert opened == [str(root / "draft.md")]


def test_mkdir_and_mv(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    made = _invoke(tmp_path, root, "mkdir", "archive")
    moved = _invoke(tmp_path, root, "mv", "work/plan", "../archive/old plan")

    assert made.exit_code == 0
    assert "Created folder archive/." in made.output
    assert moved.exit_code == 0
    assert "Renamed work/plan to archive/old_plan.md." in moved.output
    assert (root / "archive" / "old_plan.md").read_text(encoding="utf-8") == "quarterly plan"


def test_mv_collision_fails(tmp_path: Path) -> None:
    root = _archive(tmp_path)
    write_note(root, "work/other.md", "other")

    result = _invoke(tmp_path, root, "mv", "work/plan.md", "other")

    assert result.exit_code == 1
    assert "already exists" in result.output
    assert (root / "work" / "plan.md").exists()


def test_rm_confirms_before_deleting(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    declined = _invoke(tmp_path, root, "rm", "work", input="n\n")
    assert declined.exit_code == 0
    assert "Nothing deleted." in declined.output
    assert (root / "work").exists()

    removed = _invoke(tmp_path, root, "rm", "work", "--yes")
    assert removed.exit_code == 0
    assert "Deleted work (1 note(s))." in removed.output
    assert not (root / "work").exists()


def test_edit_uses_configured_editor(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    root = _archive(tmp_path)
    calls: list[dict[str, Any]] = []

    def _mock_edit(*_: Any, **kwargs: Any) -> None:
        calls.append(kwargs)

    monkeypatch.setattr("kiroku.cli.click.edit", _mock_edit)
    env = _env_with_home(tmp_path)
    env["KIROKU__EDITOR_CMD"] = "nano"

    result = CliRunner().invoke(cli, ["--root", str(root), "edit", "inbox"], env=env)

    assert result.exit_code == 0
    assert calls == [{"filename": str(root / "inbox.md"), "editor": "nano"}]


def test_sync_outside_a_repository_fails(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "sync", "--json")

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["sync"]["phase"] == "check_failed"
    assert payload["sync"]["error"]["stage"] == "check"


def test_watch_with_timeout_exits_cleanly(tmp_path: Path) -> None:
    root = _archive(tmp_path)

    result = _invoke(tmp_path, root, "watch", "--timeout", "0.2")

    assert result.exit_code == 0
    assert "Watching" in result.output
