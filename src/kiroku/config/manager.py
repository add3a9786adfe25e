"""Reading and writing the Kiroku configuration file."""

from __future__ import annotations

import os
import tempfile
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import KirokuConfig
from .resolver import assign_path, parse_env, resolve_with_precedence

DEFAULT_CONFIG_PATH = Path("~/.kiroku/config.yaml")
_CONFIG_HEADER = textwrap.dedent(
    """\
    # Kiroku configuration file
    # Edit with `kiroku config edit`, or change one value with `kiroku config set KEY --value V`.
    """
)


class ConfigManager:
    """Own the YAML configuration file and resolve it against other sources.

    The file holds only what the user persisted; defaults, ``KIROKU__``
    environment variables, and CLI overrides are layered over it on every
    :meth:`load`.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Create a manager.

        Args:
            config_path: Location of the YAML file; ``~/.kiroku/config.yaml`` by default.
            env: Environment mapping to read overrides from; ``os.environ`` by default.
        """
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = os.environ if env is None else env

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> KirokuConfig:
        """Return the effective configuration.

        Args:
            cli_overrides: Highest-precedence values, keyed by dotted path.
            include_env: Whether ``KIROKU__`` variables participate.
            ensure_file: Write a default file first when none exists.
            env_overrides: Environment mapping used instead of the manager's own.

        Raises:
            ConfigError: If the file or any override is invalid.
        """
        if ensure_file:
            self.ensure_exists()
        environment = None
        if include_env:
            environment = parse_env(self._env if env_overrides is None else env_overrides)
        return resolve_with_precedence(
            defaults=KirokuConfig(),
            file_overrides=self._read_file(),
            env_overrides=environment or None,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return the mapping stored in the file (empty when there is no file)."""
        return self._read_file()

    def update(self, key: str, value: Any) -> KirokuConfig:
        """Persist ``value`` at the dotted ``key`` after validating the result.

        Returns:
            KirokuConfig: The file-level configuration after the update.

        Raises:
            ConfigError: If ``key`` is empty or the new value fails validation.
        """
        segments = [segment.strip() for segment in key.split(".") if segment.strip()]
        if not segments:
            raise ConfigError("KEY must be a dotted path such as 'sync.remote'.")
        data = self._read_file()
        assign_path(data, segments, value, source="file")
        resolved = resolve_with_precedence(defaults=KirokuConfig(), file_overrides=data)
        self.save(data)
        return resolved

    def save_text(self, text: str) -> KirokuConfig:
        """Validate YAML ``text`` as a whole configuration file and persist it.

        Raises:
            ConfigError: If the text is not a YAML mapping or fails validation.
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML: {exc}") from exc
        data = {} if data is None else data
        if not isinstance(data, dict):
            raise ConfigError("Configuration file must contain a top-level mapping.")
        resolved = resolve_with_precedence(defaults=KirokuConfig(), file_overrides=data)
        self.save(data)
        return resolved

    def save(self, config: KirokuConfig | Mapping[str, Any]) -> None:
        """Write ``config`` to the file, replacing it atomically."""
        if isinstance(config, KirokuConfig):
            data: dict[str, Any] = config.model_dump(mode="json")
        else:
            data = dict(config)
        self._write_file(data)

    def ensure_exists(self) -> Path:
        """Write the default configuration when the file is missing."""
        if not self._config_path.exists():
            self.save(KirokuConfig())
        return self._config_path

    def read_text(self) -> str:
        """Return the raw file contents ("" when the file is missing)."""
        try:
            return self._config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def _read_file(self) -> dict[str, Any]:
        text = self.read_text()
        try:
            data = yaml.safe_load(text) if text else None
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {self._config_path}: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"{self._config_path} must contain a mapping at the top level.")
        return data

    def _write_file(self, data: Mapping[str, Any]) -> None:
        directory = self._config_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        document = (
            _CONFIG_HEADER
            + f"# Last updated: {stamp}\n"
            + yaml.safe_dump(dict(data), sort_keys=False)
        )
        # Write beside the target and swap it in.
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=directory,
            prefix=f".{self._config_path.name}.",
            delete=False,
        )
        try:
            with handle:
                handle.write(document)
            os.replace(handle.name, self._config_path)
        except BaseException:
            Path(handle.name).unlink(missing_ok=True)
            raise


__all__ = ["ConfigManager", "DEFAULT_CONFIG_PATH"]
