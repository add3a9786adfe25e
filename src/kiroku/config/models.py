"""Configuration models describing Kiroku settings."""

from __future__ import annotations

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kiroku.sorting import SortMode

_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")

DEFAULT_THEME: Dict[str, str] = {
    "accent": "#89dceb",
    "selection": "#bb9af7",
    "header": "#89b4fa",
    "dim": "#6c7086",
    "bold": "#f38ba8",
}


class KirokuBaseModel(BaseModel):
    """Shared configuration for Kiroku Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class ArchiveSettings(KirokuBaseModel):
    """Settings that govern how the archive is walked and indexed.

    Attributes:
        root: Default archive root used when the CLI receives no path.
        extensions: File suffixes treated as markdown notes.
        max_depth: Maximum directory nesting followed during a walk.
        frontmatter_scan_kb: Size of the window scanned for a frontmatter block.
        title_from_heading: Whether a note's first heading replaces its file stem as title.
        body_cache_size: Number of note bodies kept resident at once.
    """

    root: str = "~/kiroku"
    extensions: List[str] = Field(default_factory=lambda: [".md"])
    max_depth: int = Field(default=64, ge=1)
    frontmatter_scan_kb: int = Field(default=64, ge=1)
    title_from_heading: bool = False
    body_cache_size: int = Field(default=256, ge=1)

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        normalized: List[str] = []
        for suffix in value:
            suffix = suffix.strip().lower()
            if not suffix:
                continue
            if not suffix.startswith("."):
                suffix = f".{suffix}"
            if suffix not in normalized:
                normalized.append(suffix)
        if not normalized:
            raise ValueError("at least one note extension is required")
        return normalized


class SyncSettings(KirokuBaseModel):
    """Git synchronization options.

    Attributes:
        remote: Remote passed to ``git push``; the upstream is used when unset.
        branch: Branch passed to ``git push`` alongside ``remote``.
        commit_message: Commit message template; ``{timestamp}`` is replaced.
        git_timeout_seconds: Time limit for local git commands.
        push_timeout_seconds: Time limit for ``git push``.
    """

    remote: Optional[str] = None
    branch: Optional[str] = None
    commit_message: str = "auto-sync from kiroku ({timestamp})"
    git_timeout_seconds: float = Field(default=30.0, gt=0)
    push_timeout_seconds: float = Field(default=300.0, gt=0)


class WatchSettings(KirokuBaseModel):
    """Filesystem watch configuration.

    Attributes:
        debounce_seconds: Quiet period before queued change events are delivered.
        max_batch_seconds: Longest a batch may keep growing before it is delivered.
        max_batch_items: Number of distinct paths that forces an early delivery.
        recursive: Whether subdirectories are monitored.
    """

    debounce_seconds: float = Field(default=0.25, ge=0)
    max_batch_seconds: Optional[float] = Field(default=2.0, gt=0)
    max_batch_items: int = Field(default=500, ge=1)
    recursive: bool = True


class LoggingSettings(KirokuBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Log file location.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: str = "~/.kiroku/kiroku.log"
    max_size_mb: int = 10
    backup_count: int = 3


class KirokuConfig(KirokuBaseModel):
    """Top-level configuration struct for Kiroku.

    Attributes:
        editor_cmd: Editor command; ``$EDITOR`` is used when unset.
        auto_sync: Whether to synchronize with git before exiting the watch loop.
        sort_mode: Default ordering of notes in browse mode.
        theme: Mapping of theme slots to ``#rrggbb`` colors.
        archive: Archive walking settings.
        sync: Git synchronization settings.
        watch: Filesystem watch settings.
        logging: Logging configuration.
    """

    editor_cmd: Optional[str] = None
    auto_sync: bool = False
    sort_mode: SortMode = SortMode.DATE
    theme: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_THEME))
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("theme")
    @classmethod
    def _merge_theme(cls, value: Dict[str, str]) -> Dict[str, str]:
        # Unknown or malformed colors fall back to the default palette entry.
        merged = dict(DEFAULT_THEME)
        for key, color in value.items():
            if isinstance(color, str) and _HEX_COLOR.match(color):
                merged[key] = color.lower()
        return merged


__all__ = [
    "DEFAULT_THEME",
    "KirokuBaseModel",
    "ArchiveSettings",
    "SyncSettings",
    "WatchSettings",
    "LoggingSettings",
    "KirokuConfig",
]
