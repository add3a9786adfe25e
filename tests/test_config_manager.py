"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from kiroku.config import (
    ConfigError,
    ConfigManager,
    KirokuConfig,
    flatten_for_env,
    resolve_with_precedence,
)
from kiroku.sorting import SortMode


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".kiroku" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "Kiroku configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, KirokuConfig)
    assert config.sort_mode is SortMode.DATE


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.save({"sync": {"remote": "origin"}, "archive": {"max_depth": 8}})

    env = {"KIROKU__SYNC__BRANCH": "notes", "KIROKU__ARCHIVE__MAX_DEPTH": "16"}
    cli = {"archive.max_depth": 4}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.sync.remote == "origin"
    assert config.sync.branch == "notes"
    # CLI overrides take precedence over environment
    assert config.archive.max_depth == 4


def test_environment_is_read_from_the_manager_mapping(tmp_path: Path) -> None:
    manager = ConfigManager(
        config_path=tmp_path / "config.yaml",
        env={"KIROKU__AUTO_SYNC": "true", "OTHER": "ignored"},
    )

    config = manager.load()

    assert config.auto_sync is True


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(KirokuConfig())

    assert flat["KIROKU__ARCHIVE__MAX_DEPTH"] == "64"
    assert flat["KIROKU__SORT_MODE"] == "date"
    assert flat["KIROKU__SYNC__REMOTE"] == "null"
    assert flat["KIROKU__AUTO_SYNC"] == "false"


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=KirokuConfig(),
            file_overrides={"archive": {"max_depth": "not-an-int"}},
        )


def test_unknown_keys_are_rejected() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(defaults=KirokuConfig(), file_overrides={"llm": {"model": "x"}})


def test_extensions_are_normalized() -> None:
    config = resolve_with_precedence(
        defaults=KirokuConfig(),
        file_overrides={"archive": {"extensions": ["MD", ".markdown", "md"]}},
    )

    assert config.archive.extensions == [".md", ".markdown"]


def test_theme_falls_back_for_malformed_colors() -> None:
    config = KirokuConfig(theme={"accent": "#ABCDEF", "dim": "grey"})

    assert config.theme["accent"] == "#abcdef"
    assert config.theme["dim"] == "#6c7086"
