"""End-to-end tests for the deployment orchestrator."""

import json

import pytest
from fakes import FakeRemoteSession

from zephyr.config import DeploymentSettings, DeploymentTarget
from zephyr.gitops import RepositoryStateError
from zephyr.interaction import AutoResponseHandler
from zephyr.orchestrator import (
    DeploymentError,
    DeploymentOrchestrator,
    DeploymentState,
    LockConflictError,
    PendingSnapshot,
    RemoteCommandError,
    SnapshotStore,
)

CHANGED = "composer.json\ndatabase/migrations/2025_01_01_create_x.php\nresources/js/app.js\n"
REMOTE_LOCK = ".zephyr/deploy.lock"
REMOTE_SNAPSHOT = ".zephyr/pending-tasks.json"


@pytest.fixture
def target():
    return DeploymentTarget(
        server_name="production",
        server_host="203.0.113.10",
        project_path="~/app",
        branch="main",
        ssh_user="deployer",
    )


@pytest.fixture
def session():
    fake = FakeRemoteSession(home="/home/deployer")
    fake.respond("git diff --name-only", stdout=CHANGED)
    return fake


@pytest.fixture
def handler():
    return AutoResponseHandler()


@pytest.fixture
def reconciled():
    return []


@pytest.fixture
def orchestrator(tmp_path, target, session, handler, reconciled):
    return DeploymentOrchestrator(
        target,
        tmp_path,
        handler,
        settings=DeploymentSettings(run_preflight=False),
        session_factory=lambda credentials: session,
        reconcile=reconciled.append,
    )


class TestSuccessfulDeployment:
    def test_runs_full_plan_in_order(self, orchestrator, session, reconciled):
        steps = orchestrator.run()

        assert reconciled == ["main"]
        assert [step.label for step in steps] == [
            "Pull latest changes for main",
            "Install Composer dependencies",
            "Run database migrations",
            "Compile frontend assets",
            "Clear Laravel caches",
            "Restart queue workers",
        ]
        positions = [session.command_index(step.command) for step in steps]
        assert positions == sorted(positions)

    def test_resolves_remote_cwd_from_home(self, orchestrator, session):
        orchestrator.run()
        assert orchestrator.remote_cwd == "/home/deployer/app"
        assert session.ran("cd /home/deployer/app && git fetch origin main")

    def test_state_history(self, orchestrator):
        orchestrator.run()
        assert orchestrator.history == [
            DeploymentState.PRECHECK,
            DeploymentState.CONNECTING,
            DeploymentState.LOCKING,
            DeploymentState.PLANNING,
            DeploymentState.SNAPSHOTTING,
            DeploymentState.EXECUTING,
            DeploymentState.CLEANUP,
            DeploymentState.DONE,
        ]
        assert orchestrator.state == DeploymentState.DONE

    def test_lock_precedes_snapshot_precedes_steps(self, orchestrator, session):
        orchestrator.run()
        lock = session.command_index("set -C")
        snapshot = session.command_index(f"> {REMOTE_SNAPSHOT}")
        pull = session.command_index("git pull origin main")
        assert lock < snapshot < pull

    def test_cleanup_removes_lock_and_snapshots(self, orchestrator, session, tmp_path):
        orchestrator.run()

        assert REMOTE_LOCK not in session.files
        assert REMOTE_SNAPSHOT not in session.files
        assert not (tmp_path / ".zephyr" / "deploy.lock").exists()
        assert not SnapshotStore(tmp_path).path.exists()
        assert session.disposed
        assert orchestrator.log.closed

    def test_log_path_is_reported(self, orchestrator, handler):
        orchestrator.run()
        log_path = orchestrator.log.path
        assert ("success", f"\nAll task output has been logged to: {log_path}") in handler.messages
        assert "[Inspect pending changes] STDOUT:" in log_path.read_text(encoding="utf-8")

    def test_pull_only_plan_skips_snapshot(self, orchestrator, session):
        session.rules.clear()
        session.respond("git diff --name-only", stdout="README.md\n")

        steps = orchestrator.run()

        assert len(steps) == 1
        assert not session.writes or all(path != REMOTE_SNAPSHOT for path, _ in session.writes)

    def test_non_laravel_project_skips_diff(self, tmp_path, target, handler):
        session = FakeRemoteSession(laravel=False)
        orchestrator = DeploymentOrchestrator(
            target,
            tmp_path,
            handler,
            settings=DeploymentSettings(run_preflight=False),
            session_factory=lambda credentials: session,
            reconcile=lambda branch: None,
        )

        steps = orchestrator.run()

        assert [step.command for step in steps] == ["git pull origin main"]
        assert not session.ran("git diff")

    def test_horizon_detected_only_for_php_changes(self, tmp_path, target, handler):
        session = FakeRemoteSession(horizon=True)
        session.respond("git diff --name-only", stdout="app/Jobs/Report.php\n")
        orchestrator = DeploymentOrchestrator(
            target,
            tmp_path,
            handler,
            settings=DeploymentSettings(run_preflight=False),
            session_factory=lambda credentials: session,
            reconcile=lambda branch: None,
        )

        steps = orchestrator.run()

        assert steps[-1].label == "Restart Horizon workers"


class TestResume:
    def test_snapshot_replaces_remote_diff(self, orchestrator, session, tmp_path):
        snapshot = PendingSnapshot(
            server_name="production",
            branch="main",
            project_path="~/app",
            ssh_user="deployer",
            created_at="2026-02-02T02:02:02.000Z",
            changed_files=["composer.json"],
            task_labels=["Pull latest changes for main", "Install Composer dependencies"],
        )

        steps = orchestrator.run(snapshot)

        assert [step.label for step in steps] == [
            "Pull latest changes for main",
            "Install Composer dependencies",
        ]
        assert not session.ran("git diff")
        recorded = [json.loads(content) for path, content in session.writes if path == REMOTE_SNAPSHOT]
        assert recorded == [snapshot.to_dict()]

    def test_resumed_snapshot_cleared_when_plan_shrinks_to_pull(self, tmp_path, target, handler):
        snapshot = PendingSnapshot(
            server_name="production",
            branch="main",
            project_path="~/app",
            ssh_user="deployer",
            created_at="2026-02-02T02:02:02.000Z",
            changed_files=["composer.json"],
            task_labels=["Pull latest changes for main", "Install Composer dependencies"],
        )
        store = SnapshotStore(tmp_path)
        store.save(snapshot)
        session = FakeRemoteSession(laravel=False)
        orchestrator = DeploymentOrchestrator(
            target,
            tmp_path,
            handler,
            settings=DeploymentSettings(run_preflight=False),
            session_factory=lambda credentials: session,
            reconcile=lambda branch: None,
        )

        steps = orchestrator.run(snapshot)

        assert [step.command for step in steps] == ["git pull origin main"]
        assert store.load() is None
        assert session.ran(f"rm -f {REMOTE_SNAPSHOT}")


class TestFailedDeployment:
    def test_step_failure_is_wrapped_and_cleaned_up(self, orchestrator, session, handler, tmp_path):
        session.respond("artisan migrate", stderr="SQLSTATE[HY000] connection refused", exit_status=1)

        with pytest.raises(DeploymentError) as excinfo:
            orchestrator.run()

        error = excinfo.value
        assert str(error).startswith("Deployment failed: [Run database migrations] Command failed")
        assert isinstance(error.__cause__, RemoteCommandError)
        assert error.log_path == orchestrator.log.path
        assert ("error", f"\nTask output has been logged to: {error.log_path}") in handler.messages

        assert orchestrator.history[-2:] == [DeploymentState.CLEANUP, DeploymentState.FAILED]
        assert not session.ran("npm run build")
        assert REMOTE_LOCK not in session.files
        assert not (tmp_path / ".zephyr" / "deploy.lock").exists()
        assert session.disposed
        # the plan stays behind so the next run can resume it
        assert SnapshotStore(tmp_path).load().changed_files == CHANGED.split()
        assert REMOTE_SNAPSHOT in session.files

    def test_lock_conflict_leaves_foreign_lock(self, orchestrator, session):
        foreign = {"user": "alice", "pid": 7, "hostname": "ci", "startedAt": "2026-01-01T00:00:00.000Z"}
        session.files[REMOTE_LOCK] = json.dumps(foreign)

        with pytest.raises(DeploymentError) as excinfo:
            orchestrator.run()

        assert isinstance(excinfo.value.__cause__, LockConflictError)
        assert json.loads(session.files[REMOTE_LOCK]) == foreign
        assert not session.ran("git pull")

    def test_precheck_failure_never_connects(self, tmp_path, target, handler):
        def refuse(branch):
            raise RepositoryStateError("Local repository has uncommitted changes")

        created = []
        orchestrator = DeploymentOrchestrator(
            target,
            tmp_path,
            handler,
            settings=DeploymentSettings(run_preflight=False),
            session_factory=lambda credentials: created.append(credentials),
            reconcile=refuse,
        )

        with pytest.raises(DeploymentError) as excinfo:
            orchestrator.run()

        assert str(excinfo.value) == "Deployment failed: Local repository has uncommitted changes"
        assert created == []
        # nothing reached the run log, so no log file is advertised
        assert excinfo.value.log_path is None
        assert not any("logged to" in message for _, message in handler.messages)
        assert not list(tmp_path.glob(".zephyr/*.log"))
        assert orchestrator.history == [
            DeploymentState.PRECHECK,
            DeploymentState.CLEANUP,
            DeploymentState.FAILED,
        ]

    def test_preflight_runs_when_enabled(self, tmp_path, target, handler, session):
        calls = []
        orchestrator = DeploymentOrchestrator(
            target,
            tmp_path,
            handler,
            session_factory=lambda credentials: session,
            reconcile=lambda branch: calls.append("reconcile"),
            preflight=lambda: calls.append("preflight"),
        )
        orchestrator.run()
        assert calls == ["reconcile", "preflight"]
