"""Test doubles and archive builders shared by the test suite.

FakeGit records every primitive call and can be told to fail at any stage,
so sync tests can assert exactly which git operations ran.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

from kiroku.sync import GitCommandError, WorkingTreeStatus


class FakeGit:
    """In-memory stand-in for :class:`kiroku.sync.GitRepository`."""

    def __init__(
        self,
        *,
        dirty: bool = False,
        ahead: Optional[int] = 0,
        behind: int = 0,
        fail_status: bool = False,
        fail_commit: bool = False,
        fail_push: bool = False,
    ) -> None:
        self.dirty = dirty
        self.ahead = ahead
        self.behind = behind
        self.fail_status = fail_status
        self.fail_commit = fail_commit
        self.fail_push = fail_push
        self.calls: list[str] = []
        self.commits: list[str] = []
        self.pushes = 0

    def status(self) -> WorkingTreeStatus:
        self.calls.append("status")
        if self.fail_status:
            raise GitCommandError("git status failed", returncode=128, stderr="not a git repository")
        return WorkingTreeStatus.DIRTY if self.dirty else WorkingTreeStatus.CLEAN

    def ahead_behind(self) -> Optional[Tuple[int, int]]:
        self.calls.append("ahead_behind")
        if self.ahead is None:
            return None
        return self.ahead, self.behind

    def commit_all(self, message: str) -> None:
        self.calls.append("commit_all")
        if self.fail_commit:
            raise GitCommandError("git commit failed", returncode=1, stderr="nothing to commit")
        self.commits.append(message)
        self.dirty = False
        if self.ahead is not None:
            self.ahead += 1

    def push(self) -> None:
        self.calls.append("push")
        if self.fail_push:
            raise GitCommandError("git push failed", returncode=1, stderr="rejected (fetch first)")
        self.pushes += 1
        if self.ahead is not None:
            self.ahead = 0


def write_note(root: Path, relative: str, text: str = "", *, mtime: Optional[float] = None) -> Path:
    """Create ``relative`` under ``root`` with ``text``, optionally pinning its mtime."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path
