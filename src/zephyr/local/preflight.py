"""Local checks that run before any remote action."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from ..gitops.manager import GitRepositoryManager, has_staged_changes
from ..utils.logging import get_logger
from .probe import LocalProbe
from .session import LocalCommandError, LocalSession, command_exists

if TYPE_CHECKING:
    from ..interaction import UserInteractionHandler

logger = get_logger(__name__)

LINT_COMMIT_MESSAGE = "style: apply linting fixes"
GITIGNORE_COMMIT_MESSAGE = "chore: ignore zephyr config"


class PreflightError(RuntimeError):
    """Raised when local linting or tests fail."""


class PreflightRunner:
    """Runs project linters and tests locally before deploying."""

    def __init__(
        self,
        root_dir: Union[str, Path],
        handler: "UserInteractionHandler",
        *,
        session: Optional[LocalSession] = None,
        git: Optional[GitRepositoryManager] = None,
    ) -> None:
        self.root_dir = Path(root_dir)
        self.handler = handler
        self.session = session or LocalSession(self.root_dir)
        self.git = git or GitRepositoryManager(self.root_dir, session=self.session)
        self.probe = LocalProbe(self.root_dir)

    def run(self) -> None:
        """Lint (committing any fixes) and test, unless a pre-push hook does it."""
        if self.probe.has_pre_push_hook():
            self.handler.notify(
                "Pre-push git hook detected. Skipping local linting and test execution.",
                "processing",
            )
            return

        if self.run_linting() and self.git.status_porcelain():
            self.commit_linting_changes()

        if self.probe.is_laravel_project():
            self.run_local_tests()

    def run_linting(self) -> bool:
        if self.probe.has_lint_script():
            self.handler.notify("Running npm lint...", "processing")
            self._run(["npm", "run", "lint"], "Linting failed")
            self.handler.notify("Linting completed.", "success")
            return True

        if self.probe.has_pint():
            if not command_exists("php"):
                self.handler.notify(
                    "PHP is not available in PATH. Skipping Laravel Pint.\n"
                    "  To run Pint locally, ensure PHP is installed and added to your PATH.",
                    "warning",
                )
                return False
            self.handler.notify("Running Laravel Pint...", "processing")
            self._run(["php", "vendor/bin/pint"], "Linting failed")
            self.handler.notify("Linting completed.", "success")
            return True

        return False

    def commit_linting_changes(self) -> bool:
        if not has_staged_changes(self.git.status_porcelain()):
            self.git.run(["add", "-u"])
            if not has_staged_changes(self.git.status_porcelain()):
                return False

        self.handler.notify("Committing linting changes...", "processing")
        self.git.run(["commit", "-m", LINT_COMMIT_MESSAGE])
        self.handler.notify("Linting changes committed.", "success")
        return True

    def run_local_tests(self) -> bool:
        if not command_exists("php"):
            self.handler.notify(
                "PHP is not available in PATH. Skipping local Laravel tests.\n"
                "  To run tests locally, ensure PHP is installed and added to your PATH.",
                "warning",
            )
            return False

        self.handler.notify("Running Laravel tests locally...", "processing")
        self._run(
            ["php", "artisan", "test", "--compact"],
            "Local tests failed. Fix test failures before deploying.",
        )
        self.handler.notify("Local tests passed.", "success")
        return True

    def _run(self, args: list, failure_message: str) -> None:
        try:
            self.session.run(args, cwd=self.root_dir)
        except LocalCommandError as exc:
            raise PreflightError(f"{failure_message}\n{exc}") from exc


def ensure_gitignore_entry(
    root_dir: Union[str, Path],
    handler: "UserInteractionHandler",
    *,
    metadata_dir: str = ".zephyr",
    session: Optional[LocalSession] = None,
) -> bool:
    """Make sure the metadata directory is git-ignored; returns True if added."""
    root = Path(root_dir)
    gitignore = root / ".gitignore"
    entry = f"{metadata_dir}/"

    existing = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
    if any(line.strip() == entry for line in existing.splitlines()):
        return False

    content = f"{existing.rstrip()}\n{entry}\n" if existing.strip() else f"{entry}\n"
    gitignore.write_text(content, encoding="utf-8")
    handler.notify(f"Added {entry} to .gitignore", "success")

    session = session or LocalSession(root)
    try:
        session.run(["git", "rev-parse", "--is-inside-work-tree"], capture=True)
    except LocalCommandError:
        handler.notify("Not a git repository; skipping commit for .gitignore update.", "warning")
        return True

    session.run(["git", "add", ".gitignore"], capture=True)
    try:
        session.run(["git", "commit", "-m", GITIGNORE_COMMIT_MESSAGE], capture=True)
    except LocalCommandError as exc:
        if exc.exit_code != 1:
            raise
        handler.notify(
            "Git commit skipped: nothing to commit or pre-commit hook prevented commit.",
            "warning",
        )
    return True
