"""Deployment orchestrator: drives one deployment from local checks to cleanup."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Union, TYPE_CHECKING

from ..config import DeploymentSettings
from ..gitops import ensure_local_repository_state
from ..local.preflight import PreflightRunner
from ..local.probe import LocalProbe
from ..ssh import RemoteProbe, SSHCredentials, SSHSession
from ..utils.logging import get_logger
from ..utils.php_version import find_php_binary
from ..utils.remote_path import resolve_remote_path
from .locks import LockCoordinator
from .models import DeploymentState, PendingSnapshot, TaskStep
from .planner import BACKEND_EXTENSION, plan_deployment_tasks
from .remote_executor import RemoteExecutor
from .run_log import DeploymentLog, prune_old_logs
from .snapshots import SnapshotStore

if TYPE_CHECKING:
    from ..config import DeploymentTarget
    from ..interaction import UserInteractionHandler

logger = get_logger(__name__)

CHANGED_FILES_PREVIEW = 20

SessionFactory = Callable[[SSHCredentials], SSHSession]


class DeploymentError(RuntimeError):
    """Wraps any unrecovered failure of a deployment run."""

    def __init__(self, cause: BaseException, log_path: Optional[Path] = None) -> None:
        self.cause = cause
        self.log_path = log_path
        super().__init__(f"Deployment failed: {cause}")


def _default_session_factory(command_timeout: Optional[int]) -> SessionFactory:
    def factory(credentials: SSHCredentials) -> SSHSession:
        return SSHSession(credentials, command_timeout=command_timeout)

    return factory


class DeploymentOrchestrator:
    """
    Runs the deployment state machine.

    PRECHECK -> CONNECTING -> LOCKING -> PLANNING -> SNAPSHOTTING ->
    EXECUTING -> CLEANUP -> DONE, with FAILED reachable from every state.
    CLEANUP runs whether or not the earlier states succeeded.
    """

    def __init__(
        self,
        target: "DeploymentTarget",
        root_dir: Union[str, Path],
        handler: "UserInteractionHandler",
        *,
        settings: Optional[DeploymentSettings] = None,
        session_factory: Optional[SessionFactory] = None,
        reconcile: Optional[Callable[[str], None]] = None,
        preflight: Optional[Callable[[], None]] = None,
        remote_probe: Optional[RemoteProbe] = None,
    ) -> None:
        self.target = target
        self.root_dir = Path(root_dir)
        self.handler = handler
        self.settings = settings or DeploymentSettings()
        self.session_factory = session_factory or _default_session_factory(self.settings.command_timeout)
        self.reconcile = reconcile or (
            lambda branch: ensure_local_repository_state(branch, self.root_dir, self.handler)
        )
        self.preflight = preflight or self._run_preflight
        self.remote_probe = remote_probe or RemoteProbe()
        self.local_probe = LocalProbe(self.root_dir)
        self.snapshots = SnapshotStore(self.root_dir, self.settings.metadata_dir)

        self.history: List[DeploymentState] = []
        self.session: Optional[SSHSession] = None
        self.lock: Optional[LockCoordinator] = None
        self.log: Optional[DeploymentLog] = None
        self.remote_cwd: Optional[str] = None
        self.steps: List[TaskStep] = []
        self._state: Optional[DeploymentState] = None

    @property
    def state(self) -> Optional[DeploymentState]:
        return self._state

    def _enter(self, state: DeploymentState) -> None:
        logger.debug("Deployment state: %s", state.value)
        self._state = state
        self.history.append(state)

    def run(self, snapshot: Optional[PendingSnapshot] = None) -> List[TaskStep]:
        """
        Execute one deployment.

        Args:
            snapshot: A confirmed pending snapshot to resume; its change set
                replaces the remote diff

        Returns:
            The executed steps

        Raises:
            DeploymentError: Any unrecovered failure, wrapping the cause
        """
        self.log = DeploymentLog(self.root_dir, self.settings.metadata_dir)
        try:
            self._enter(DeploymentState.PRECHECK)
            self._precheck()

            self._enter(DeploymentState.CONNECTING)
            self._connect()

            self._enter(DeploymentState.LOCKING)
            self.handler.notify("Connection established. Acquiring deployment lock on server...", "processing")
            self.lock = LockCoordinator(
                self.session,
                self.root_dir,
                self.remote_cwd,
                self.handler,
                metadata_dir=self.settings.metadata_dir,
            )
            self.lock.acquire()
            self.handler.notify(f"Lock acquired. Running deployment commands in {self.remote_cwd}...", "processing")

            executor = RemoteExecutor(self.session, self.log, self.handler, self.remote_cwd)

            self._enter(DeploymentState.PLANNING)
            changed_files = self._plan(executor, snapshot)

            self._enter(DeploymentState.SNAPSHOTTING)
            pending = self._persist_snapshot(executor, snapshot, changed_files)

            self._enter(DeploymentState.EXECUTING)
            for step in self.steps:
                executor.execute(step.label, step.command)

            if pending is not None or snapshot is not None:
                self.snapshots.clear_remote(executor)
                self.snapshots.clear()
        except Exception as exc:
            log_path = self._log_path()
            if log_path is not None:
                self.handler.notify(f"\nTask output has been logged to: {log_path}", "error")
            self._cleanup()
            self._enter(DeploymentState.FAILED)
            raise DeploymentError(exc, log_path) from exc

        self.handler.notify("\nDeployment commands completed successfully.", "success")
        log_path = self._log_path()
        if log_path is not None:
            self.handler.notify(f"\nAll task output has been logged to: {log_path}", "success")
        self._cleanup()
        self._enter(DeploymentState.DONE)
        return self.steps

    # states

    def _precheck(self) -> None:
        prune_old_logs(self.root_dir, keep=self.settings.log_retention, metadata_dir=self.settings.metadata_dir)
        self.reconcile(self.target.branch)
        if self.settings.run_preflight:
            self.preflight()

    def _run_preflight(self) -> None:
        PreflightRunner(self.root_dir, self.handler).run()

    def _connect(self) -> None:
        credentials = SSHCredentials.from_target(self.target, timeout=self.settings.ssh_timeout)
        self.handler.notify(f"\nConnecting to {credentials.host} as {credentials.username}...", "processing")
        self.session = self.session_factory(credentials)
        self.session.connect()

        remote_home = self.remote_probe.home_directory(self.session, credentials.username)
        self.remote_cwd = resolve_remote_path(self.target.project_path, remote_home)

    def _plan(self, executor: RemoteExecutor, snapshot: Optional[PendingSnapshot]) -> List[str]:
        is_laravel = self.remote_probe.is_laravel_project(self.session, self.remote_cwd)
        if is_laravel:
            self.handler.notify("Laravel project detected.", "success")
        else:
            self.handler.notify(
                "Laravel project not detected; skipping Laravel-specific maintenance tasks.",
                "warning",
            )

        changed_files: List[str] = []
        if snapshot is not None:
            changed_files = list(snapshot.changed_files)
            self.handler.notify("Resuming deployment with saved task snapshot.", "processing")
        elif is_laravel:
            changed_files = self._fetch_changed_files(executor)

        has_php_changes = is_laravel and any(path.endswith(BACKEND_EXTENSION) for path in changed_files)
        horizon = has_php_changes and self.remote_probe.has_horizon(self.session, self.remote_cwd)

        self.steps = plan_deployment_tasks(
            self.target.branch,
            is_laravel,
            changed_files,
            queue_dashboard_configured=horizon,
            php_command=self._php_command(),
        )

        if len(self.steps) == 1:
            self.handler.notify("No additional maintenance tasks scheduled beyond git pull.", "processing")
        else:
            extra = ", ".join(step.label for step in self.steps[1:])
            self.handler.notify(f"Additional tasks scheduled: {extra}", "processing")
        return changed_files

    def _fetch_changed_files(self, executor: RemoteExecutor) -> List[str]:
        branch = self.target.branch
        executor.execute(f"Fetch latest changes for {branch}", f"git fetch origin {branch}")
        diff = executor.execute("Inspect pending changes", f"git diff --name-only HEAD..origin/{branch}")
        changed_files = [line.strip() for line in diff.stdout.splitlines() if line.strip()]

        if not changed_files:
            self.handler.notify("No upstream file changes detected.", "processing")
            return changed_files

        preview = "\n".join(f" - {path}" for path in changed_files[:CHANGED_FILES_PREVIEW])
        if len(changed_files) > CHANGED_FILES_PREVIEW:
            preview += "\n - ..."
        self.handler.notify(f"Detected {len(changed_files)} changed file(s):\n{preview}", "processing")
        return changed_files

    def _php_command(self) -> str:
        required = self.local_probe.php_version_requirement()
        if not required:
            return "php"
        php = find_php_binary(self.session, self.remote_cwd, required)
        if php != "php":
            self.handler.notify(f"Detected PHP requirement: {required}, using {php}", "processing")
        return php

    def _persist_snapshot(
        self,
        executor: RemoteExecutor,
        snapshot: Optional[PendingSnapshot],
        changed_files: List[str],
    ) -> Optional[PendingSnapshot]:
        if len(self.steps) <= 1:
            return None
        pending = snapshot or PendingSnapshot.for_plan(self.target, changed_files, self.steps)
        self.snapshots.save(pending)
        self.snapshots.save_remote(executor, pending)
        return pending

    def _cleanup(self) -> None:
        self._enter(DeploymentState.CLEANUP)
        if self.lock is not None:
            try:
                self.lock.release()
            except Exception as exc:
                self.handler.notify(f"Failed to release lock: {exc}", "warning")
        if self.log is not None:
            self.log.close()
        if self.session is not None:
            try:
                self.session.dispose()
            except Exception as exc:
                logger.warning("Failed to close SSH session: %s", exc)

    def _log_path(self) -> Optional[Path]:
        if self.log is None or not self.log.written:
            return None
        try:
            return self.log.path
        except OSError as exc:
            logger.warning("Run log path unavailable: %s", exc)
            return None


def run_remote_tasks(
    target: "DeploymentTarget",
    snapshot: Optional[PendingSnapshot] = None,
    *,
    root_dir: Union[str, Path],
    handler: "UserInteractionHandler",
    settings: Optional[DeploymentSettings] = None,
    session_factory: Optional[SessionFactory] = None,
) -> List[TaskStep]:
    """Deploy ``target`` from the checkout at ``root_dir``; raises DeploymentError."""
    orchestrator = DeploymentOrchestrator(
        target,
        root_dir,
        handler,
        settings=settings,
        session_factory=session_factory,
    )
    return orchestrator.run(snapshot)
