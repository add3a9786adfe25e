"""Subprocess-backed git primitives for archive synchronization."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Tuple

from kiroku.config.models import SyncSettings

from .errors import GitCommandError
from .models import WorkingTreeStatus

LOGGER = logging.getLogger(__name__)


class GitRepository:
    """Run git commands against the archive root.

    All commands use ``git -C <root>`` with a time limit, and credential
    prompts are disabled so a missing credential fails instead of blocking.
    """

    def __init__(self, root: Path, settings: Optional[SyncSettings] = None) -> None:
        self.root = Path(root).expanduser()
        self.settings = settings or SyncSettings()

    def is_repository(self) -> bool:
        return (self.root / ".git").exists()

    def status(self) -> WorkingTreeStatus:
        """Return whether the working tree has uncommitted changes.

        Raises:
            GitCommandError: If the root is not a repository or git fails.
        """
        if not self.is_repository():
            raise GitCommandError(f"not a git repository (run 'git init' in {self.root})")
        result = self._run_git(["status", "--porcelain"])
        return WorkingTreeStatus.DIRTY if result.stdout.strip() else WorkingTreeStatus.CLEAN

    def ahead_behind(self) -> Optional[Tuple[int, int]]:
        """Return ``(ahead, behind)`` relative to the upstream, or ``None`` without one."""
        result = self._run_git(
            ["rev-list", "--left-right", "--count", "@{upstream}...HEAD"], check=False
        )
        if result.returncode != 0:
            LOGGER.debug("No upstream for %s: %s", self.root, result.stderr.strip())
            return None
        fields = result.stdout.split()
        if len(fields) != 2:
            return None
        behind, ahead = (int(value) for value in fields)
        return ahead, behind

    def commit_all(self, message: str) -> None:
        """Stage every change in the archive and commit it."""
        self._run_git(["add", "--all"])
        self._run_git(["commit", "-m", message])

    def push(self) -> None:
        """Push to the configured remote (the upstream when none is configured)."""
        args = ["push"]
        if self.settings.remote:
            args.append(self.settings.remote)
            if self.settings.branch:
                args.append(self.settings.branch)
        self._run_git(args, timeout=self.settings.push_timeout_seconds)

    def _run_git(
        self,
        args: List[str],
        *,
        check: bool = True,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """Run a git command in the archive root.

        Args:
            args: Git arguments without the ``git`` prefix.
            check: Raise when git exits with a non-zero status.
            timeout: Time limit in seconds; ``sync.git_timeout_seconds`` by default.

        Raises:
            GitCommandError: On failure, timeout, or a missing git binary.
        """
        cmd = ["git", "-C", str(self.root), *args]
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        limit = timeout if timeout is not None else self.settings.git_timeout_seconds
        LOGGER.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=limit,
                env=env,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(
                f"git {args[0]} timed out after {limit:g}s", command=cmd
            ) from exc
        except FileNotFoundError as exc:
            raise GitCommandError("git is not installed or not on PATH", command=cmd) from exc

        if check and result.returncode != 0:
            raise GitCommandError(
                f"git {args[0]} failed",
                command=cmd,
                returncode=result.returncode,
                stderr=(result.stderr or result.stdout).strip() or None,
            )
        return result


__all__ = ["GitRepository"]
