"""Bring the local checkout into a deployable state."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..interaction import (
    InputType,
    InteractionRequest,
    QuestionCategory,
    UserInteractionHandler,
)
from ..utils.logging import get_logger
from .manager import GitCommandError, GitRepositoryManager, has_staged_changes

logger = get_logger(__name__)

MAX_COMMIT_MESSAGE_ATTEMPTS = 3


class RepositoryStateError(RuntimeError):
    """Raised when the local repository cannot be made deployable automatically."""


@dataclass
class PushResult:
    pushed: bool
    upstream_ref: Optional[str] = None


def _plural(count: int, word: str = "commit") -> str:
    return f"{count} {word}" + ("" if count == 1 else "s")


def _require_message(value: str) -> Optional[str]:
    return None if value.strip() else "Commit message cannot be empty."


class LocalRepositoryReconciler:
    """Ensures the target branch is checked out, synced, committed and pushed.

    After `ensure_state()` returns, the working tree is on the target branch,
    is not behind its upstream, has no staged changes and has no local
    commits missing from the remote. Untracked and unstaged files are left
    alone and never block a deployment.
    """

    def __init__(
        self,
        root_dir: Union[str, Path],
        handler: UserInteractionHandler,
        *,
        git: Optional[GitRepositoryManager] = None,
    ) -> None:
        self.root_dir = Path(root_dir)
        self.handler = handler
        self.git = git or GitRepositoryManager(self.root_dir)

    def ensure_state(self, target_branch: str) -> None:
        if not target_branch:
            raise RepositoryStateError("Deployment branch is not defined in the release configuration.")

        current_branch = self.git.current_branch()
        if not current_branch:
            raise RepositoryStateError(
                "Unable to determine the current git branch. Ensure this is a git repository."
            )

        initial_status = self.git.status_porcelain()
        has_pending_changes = bool(initial_status)

        if self.git.upstream_ref() is None:
            self.handler.notify(
                f"Branch {current_branch} has no upstream configured; skipping ahead/behind checks.",
                "warning",
            )
        else:
            self._sync_with_upstream(current_branch)

        if current_branch != target_branch:
            if has_pending_changes:
                raise RepositoryStateError(
                    f"Local repository has uncommitted changes on {current_branch}. "
                    f"Commit or stash them before switching to {target_branch}."
                )
            self.handler.notify(
                f"Switching local repository from {current_branch} to {target_branch}...", "processing"
            )
            self._git_or_fail(["checkout", target_branch], f"Unable to check out {target_branch}")
            self.handler.notify(f"Checked out {target_branch} locally.", "success")
            status = self.git.status_porcelain()
        else:
            status = initial_status

        if not status:
            self.ensure_committed_changes_pushed(target_branch)
            self.handler.notify("Local repository is clean. Proceeding with deployment.", "processing")
            return

        if not has_staged_changes(status):
            self.ensure_committed_changes_pushed(target_branch)
            self.handler.notify(
                "No staged changes detected. Unstaged or untracked files will not affect deployment. "
                "Proceeding with deployment.",
                "processing",
            )
            return

        self.handler.notify(
            f"Staged changes detected on {target_branch}. A commit is required before deployment.",
            "warning",
        )
        message = self._prompt_commit_message()

        self.handler.notify("Committing staged changes before deployment...", "processing")
        self._git_or_fail(["commit", "-m", message], "Unable to commit staged changes")
        self._git_or_fail(["push", "origin", target_branch], f"Unable to push {target_branch}")
        self.handler.notify(f"Committed and pushed changes to origin/{target_branch}.", "success")

        if has_staged_changes(self.git.status_porcelain()):
            raise RepositoryStateError(
                "Local repository still has uncommitted changes after commit. Aborting deployment."
            )

        self.ensure_committed_changes_pushed(target_branch)
        self.handler.notify("Local repository is clean after committing pending changes.", "processing")

    def _sync_with_upstream(self, current_branch: str) -> None:
        status = self.git.branch_status()

        if status.ahead > 0:
            self.handler.notify(
                f"Local branch {current_branch} is ahead of upstream by {_plural(status.ahead)}.",
                "warning",
            )

        if status.behind > 0:
            self.handler.notify(
                f"Synchronizing local branch {current_branch} with its upstream...", "processing"
            )
            try:
                self.git.run(["pull", "--ff-only"])
            except GitCommandError as exc:
                raise RepositoryStateError(
                    f"Unable to fast-forward {current_branch} with upstream changes. "
                    f"Resolve conflicts manually, then rerun the deployment.\n{exc}"
                ) from exc
            self.handler.notify("Local branch fast-forwarded with upstream changes.", "success")

    def ensure_committed_changes_pushed(self, target_branch: str) -> PushResult:
        upstream_ref = self.git.upstream_ref()
        if not upstream_ref:
            self.handler.notify(
                f"Branch {target_branch} does not track a remote upstream; "
                "skipping automatic push of committed changes.",
                "warning",
            )
            return PushResult(pushed=False)

        remote_name, _, upstream_branch = upstream_ref.partition("/")
        if not remote_name or not upstream_branch:
            self.handler.notify(
                f"Unable to determine remote destination for {target_branch}. Skipping automatic push.",
                "warning",
            )
            return PushResult(pushed=False, upstream_ref=upstream_ref)

        try:
            self.git.run(["fetch", remote_name])
        except GitCommandError as exc:
            self.handler.notify(f"Unable to fetch from {remote_name} before push: {exc}", "warning")

        if self.git.remote_ref_exists(upstream_ref):
            ahead = self.git.rev_count(f"{upstream_ref}..HEAD")
            behind = self.git.rev_count(f"HEAD..{upstream_ref}")
        else:
            ahead, behind = 1, 0

        if behind > 0:
            raise RepositoryStateError(
                f"Local branch {target_branch} is behind {upstream_ref} by {_plural(behind)}. "
                "Pull or rebase before deployment."
            )

        if ahead <= 0:
            return PushResult(pushed=False, upstream_ref=upstream_ref)

        self.handler.notify(
            f"Found {_plural(ahead)} not yet pushed to {upstream_ref}. Pushing before deployment...",
            "processing",
        )
        self._git_or_fail(
            ["push", remote_name, f"{target_branch}:{upstream_branch}"],
            f"Unable to push {target_branch} to {upstream_ref}",
        )
        self.handler.notify(f"Pushed committed changes to {upstream_ref}.", "success")
        return PushResult(pushed=True, upstream_ref=upstream_ref)

    def _prompt_commit_message(self) -> str:
        request = InteractionRequest(
            question="Enter a commit message for pending changes before deployment",
            input_type=InputType.TEXT,
            category=QuestionCategory.COMMIT,
            validate=_require_message,
        )
        for _ in range(MAX_COMMIT_MESSAGE_ATTEMPTS):
            response = self.handler.ask(request)
            if response.cancelled:
                break
            message = response.value.strip()
            if message:
                return message
            self.handler.notify("Commit message cannot be empty.", "warning")
        raise RepositoryStateError("A commit message is required to deploy staged changes.")

    def _git_or_fail(self, args: list, message: str) -> None:
        try:
            self.git.run(args)
        except GitCommandError as exc:
            raise RepositoryStateError(f"{message}: {exc}") from exc


def ensure_local_repository_state(
    branch: str,
    root_dir: Union[str, Path],
    handler: UserInteractionHandler,
    *,
    git: Optional[GitRepositoryManager] = None,
) -> None:
    """Raise RepositoryStateError unless the checkout is ready to deploy ``branch``."""
    LocalRepositoryReconciler(root_dir, handler, git=git).ensure_state(branch)
