"""Orchestrator module for lock-guarded, resumable deployments.

- DeploymentOrchestrator: Runs the deployment state machine
- LockCoordinator: Dual-sided (local + remote) deployment lock
- plan_deployment_tasks: Maps a change set to ordered TaskSteps
- SnapshotStore: Persists the pending plan so interrupted runs can resume
- RemoteExecutor: Runs labeled remote commands with a bootstrapped environment
"""

from .models import (
    DeploymentState,
    LockPayload,
    LockState,
    PendingSnapshot,
    TaskStep,
)
from .locks import LockConflictError, LockCoordinator
from .planner import TASK_RULES, TaskRule, plan_deployment_tasks
from .remote_executor import RemoteCommandError, RemoteExecutor, build_profile_bootstrap
from .run_log import DeploymentLog, prune_old_logs
from .snapshots import SnapshotStore, resolve_pending_snapshot
from .orchestrator import DeploymentError, DeploymentOrchestrator, run_remote_tasks

__all__ = [
    "DeploymentState",
    "LockPayload",
    "LockState",
    "PendingSnapshot",
    "TaskStep",
    "LockConflictError",
    "LockCoordinator",
    "TASK_RULES",
    "TaskRule",
    "plan_deployment_tasks",
    "RemoteCommandError",
    "RemoteExecutor",
    "build_profile_bootstrap",
    "DeploymentLog",
    "prune_old_logs",
    "SnapshotStore",
    "resolve_pending_snapshot",
    "DeploymentError",
    "DeploymentOrchestrator",
    "run_remote_tasks",
]
