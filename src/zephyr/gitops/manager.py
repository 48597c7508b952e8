"""Thin wrapper around the `git` CLI for the local checkout."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from ..local.session import LocalCommandError, LocalSession

_AHEAD_RE = re.compile(r"ahead (\d+)")
_BEHIND_RE = re.compile(r"behind (\d+)")


class GitCommandError(RuntimeError):
    """Raised when a git command fails."""

    def __init__(self, command: List[str], exit_code: Optional[int], stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Git command {' '.join(command)} failed with code {exit_code}: {stderr}")


@dataclass
class BranchStatus:
    """Ahead/behind counts parsed from ``git status --short --branch``."""

    ahead: int = 0
    behind: int = 0


def has_staged_changes(status_output: str) -> bool:
    """True when any porcelain line has an index-side change.

    Untracked (``??``) and worktree-only (`` M``) entries do not count.
    """
    for line in status_output.splitlines():
        if not line.strip():
            continue
        if line[0] not in (" ", "?"):
            return True
    return False


def parse_branch_status(status_report: str) -> BranchStatus:
    first_line = status_report.splitlines()[0] if status_report else ""
    ahead = _AHEAD_RE.search(first_line)
    behind = _BEHIND_RE.search(first_line)
    return BranchStatus(
        ahead=int(ahead.group(1)) if ahead else 0,
        behind=int(behind.group(1)) if behind else 0,
    )


class GitRepositoryManager:
    """Wraps `git` CLI commands for one working tree."""

    def __init__(
        self,
        root_dir: Union[str, Path],
        *,
        session: Optional[LocalSession] = None,
        git_binary: str = "git",
    ) -> None:
        self.root_dir = Path(root_dir)
        self.session = session or LocalSession(self.root_dir)
        self.git_binary = git_binary

    def current_branch(self) -> Optional[str]:
        try:
            branch = self.run(["rev-parse", "--abbrev-ref", "HEAD"]).strip()
        except GitCommandError:
            return None
        return branch or None

    def status_porcelain(self) -> str:
        return self.run(["status", "--porcelain"]).rstrip()

    def branch_status(self) -> BranchStatus:
        return parse_branch_status(self.run(["status", "--short", "--branch"]))

    def upstream_ref(self) -> Optional[str]:
        try:
            ref = self.run(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"]).strip()
        except GitCommandError:
            return None
        return ref or None

    def remote_ref_exists(self, ref: str) -> bool:
        try:
            self.run(["show-ref", "--verify", "--quiet", f"refs/remotes/{ref}"])
        except GitCommandError:
            return False
        return True

    def rev_count(self, revision_range: str) -> int:
        output = self.run(["rev-list", "--count", revision_range]).strip()
        try:
            return int(output or "0")
        except ValueError:
            return 0

    def run(self, args: List[str]) -> str:
        command = [self.git_binary] + args
        try:
            result = self.session.run(command, cwd=self.root_dir, capture=True)
        except LocalCommandError as exc:
            raise GitCommandError(command, exc.exit_code, exc.stderr or str(exc)) from exc
        return result.stdout
