"""Data models for the orchestrator module."""

from __future__ import annotations

import getpass
import os
import socket
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import DeploymentTarget


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2026-01-01T00:00:00.000Z."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


class DeploymentState(Enum):
    """Orchestrator states"""
    PRECHECK = "precheck"
    CONNECTING = "connecting"
    LOCKING = "locking"
    PLANNING = "planning"
    SNAPSHOTTING = "snapshotting"
    EXECUTING = "executing"
    CLEANUP = "cleanup"
    DONE = "done"
    FAILED = "failed"


class LockState(Enum):
    """Lock coordinator states"""
    UNLOCKED = "unlocked"
    CHECKING = "checking"
    LOCKED = "locked"
    CONFLICT = "conflict"
    RELEASED = "released"


@dataclass(frozen=True)
class TaskStep:
    """One labeled remote command in a deployment plan."""
    label: str
    command: str


@dataclass(frozen=True)
class LockPayload:
    """Identity of a deployment attempt, written to both lock markers."""
    user: str
    pid: int
    hostname: str
    started_at: str
    run_id: Optional[str] = None

    @classmethod
    def create(cls) -> "LockPayload":
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = "unknown"
        return cls(
            user=user,
            pid=os.getpid(),
            hostname=socket.gethostname(),
            started_at=utc_timestamp(),
            run_id=uuid.uuid4().hex,
        )

    def same_instance(self, other: "LockPayload") -> bool:
        """True when both payloads were written by the same attempt.

        The run id only takes part when both sides carry one, so markers
        written without it still compare on the four identity fields.
        """
        if (self.user, self.pid, self.hostname, self.started_at) != (
            other.user,
            other.pid,
            other.hostname,
            other.started_at,
        ):
            return False
        if self.run_id and other.run_id:
            return self.run_id == other.run_id
        return True

    def describe(self) -> str:
        started_by = f"{self.user}@{self.hostname or 'unknown'}" if self.user else "unknown user"
        started_at = f" at {self.started_at}" if self.started_at else ""
        return f"started by {started_by}{started_at}"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "user": self.user,
            "pid": self.pid,
            "hostname": self.hostname,
            "startedAt": self.started_at,
        }
        if self.run_id:
            payload["runId"] = self.run_id
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LockPayload":
        return cls(
            user=str(data.get("user") or ""),
            pid=data.get("pid") if isinstance(data.get("pid"), int) else -1,
            hostname=str(data.get("hostname") or ""),
            started_at=str(data.get("startedAt") or ""),
            run_id=data.get("runId"),
        )


@dataclass
class PendingSnapshot:
    """Persisted plan of a deployment that has not finished yet."""
    server_name: str
    branch: str
    project_path: str
    ssh_user: str
    created_at: str
    changed_files: List[str] = field(default_factory=list)
    task_labels: List[str] = field(default_factory=list)

    @classmethod
    def for_plan(
        cls,
        target: "DeploymentTarget",
        changed_files: List[str],
        steps: List[TaskStep],
    ) -> "PendingSnapshot":
        return cls(
            server_name=target.server_name,
            branch=target.branch,
            project_path=target.project_path,
            ssh_user=target.ssh_user,
            created_at=utc_timestamp(),
            changed_files=list(changed_files),
            task_labels=[step.label for step in steps],
        )

    def matches(self, target: "DeploymentTarget") -> bool:
        return self.server_name == target.server_name and self.branch == target.branch

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serverName": self.server_name,
            "branch": self.branch,
            "projectPath": self.project_path,
            "sshUser": self.ssh_user,
            "createdAt": self.created_at,
            "changedFiles": list(self.changed_files),
            "taskLabels": list(self.task_labels),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingSnapshot":
        if not isinstance(data, dict):
            raise ValueError("Pending snapshot must be a JSON object")
        return cls(
            server_name=data.get("serverName") or "",
            branch=data.get("branch") or "",
            project_path=data.get("projectPath") or "",
            ssh_user=data.get("sshUser") or "",
            created_at=data.get("createdAt") or "",
            changed_files=list(data.get("changedFiles") or []),
            task_labels=list(data.get("taskLabels") or []),
        )
