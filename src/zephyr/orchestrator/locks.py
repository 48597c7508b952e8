"""Dual-sided (local + remote) deployment lock."""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any, Dict, Optional, TYPE_CHECKING, Union

from ..interaction import Decision, QuestionCategory
from ..paths import (
    PROJECT_CONFIG_DIR,
    PROJECT_LOCK_FILE,
    ensure_project_config_dir,
    get_lock_file_path,
    remote_metadata_path,
)
from ..utils.logging import get_logger
from .models import LockPayload, LockState

if TYPE_CHECKING:
    from ..interaction import UserInteractionHandler
    from ..ssh import SSHSession

logger = get_logger(__name__)

LOCK_NOT_FOUND = "LOCK_NOT_FOUND"
LOCK_CREATED = "LOCK_CREATED"
LOCK_EXISTS = "LOCK_EXISTS"


def _single_quote(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"


class LockConflictError(RuntimeError):
    """Raised when another deployment holds the remote lock."""

    def __init__(self, remote_lock: Dict[str, Any], lock_path: str) -> None:
        self.remote_lock = remote_lock
        self.lock_path = lock_path
        if "raw" in remote_lock:
            identity = f"unreadable lock contents: {remote_lock['raw']}"
        else:
            identity = LockPayload.from_dict(remote_lock).describe()
        super().__init__(
            f"Another deployment is currently in progress on the server ({identity}). "
            f"Remove {lock_path} if you are sure it is stale."
        )


class LockCoordinator:
    """Acquires and releases the deployment lock on both machines.

    The remote marker gates every writer of the remote project; the local
    marker records which attempt on this machine wrote it, so a lock left by
    a crashed local run can be recognised and cleared with the operator's
    consent. The lock is advisory: cooperating runs respect it, nothing
    enforces it.
    """

    def __init__(
        self,
        session: "SSHSession",
        root_dir: Union[str, Path],
        remote_cwd: str,
        handler: "UserInteractionHandler",
        *,
        metadata_dir: str = PROJECT_CONFIG_DIR,
    ) -> None:
        self.session = session
        self.root_dir = Path(root_dir)
        self.remote_cwd = remote_cwd
        self.handler = handler
        self.metadata_dir = metadata_dir
        self.state = LockState.UNLOCKED
        self.payload: Optional[LockPayload] = None

    @property
    def local_path(self) -> Path:
        return get_lock_file_path(self.root_dir, self.metadata_dir)

    @property
    def remote_path(self) -> str:
        return remote_metadata_path(PROJECT_LOCK_FILE, self.metadata_dir)

    @property
    def remote_display_path(self) -> str:
        return f"{self.remote_cwd.rstrip('/')}/{self.remote_path}"

    # local marker

    def read_local(self) -> Optional[LockPayload]:
        try:
            raw = self.local_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable local lock file %s", self.local_path)
            return None
        return LockPayload.from_dict(data) if isinstance(data, dict) else None

    def write_local(self, payload: LockPayload) -> None:
        ensure_project_config_dir(self.root_dir, self.metadata_dir)
        self.local_path.write_text(json.dumps(payload.to_dict(), indent=2), encoding="utf-8")

    def remove_local(self) -> None:
        try:
            self.local_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.handler.notify(f"Failed to remove local lock file: {exc}", "warning")

    # remote marker

    def read_remote(self) -> Optional[Dict[str, Any]]:
        path = _single_quote(self.remote_path)
        command = (
            f"mkdir -p {self.metadata_dir} && "
            f'if [ -f {path} ]; then cat {path}; else echo "{LOCK_NOT_FOUND}"; fi'
        )
        result = self.session.exec_command(command, cwd=self.remote_cwd)
        content = result.stdout.strip()
        if not content or content == LOCK_NOT_FOUND:
            return None
        try:
            data = json.loads(content)
        except ValueError:
            return {"raw": content}
        return data if isinstance(data, dict) else {"raw": content}

    def create_remote(self, payload: LockPayload) -> bool:
        """Exclusively create the remote marker; False when one already exists."""
        encoded = base64.b64encode(json.dumps(payload.to_dict(), indent=2).encode("utf-8")).decode("ascii")
        path = _single_quote(self.remote_path)
        command = (
            f"mkdir -p {self.metadata_dir} && "
            f"if ( set -C; echo '{encoded}' | base64 --decode > {path} ); then echo {LOCK_CREATED}; "
            f"elif [ -f {path} ]; then echo {LOCK_EXISTS}; else exit 1; fi"
        )
        result = self.session.exec_command(command, cwd=self.remote_cwd)
        marker = result.stdout.strip()
        if result.exit_status == 0 and marker == LOCK_CREATED:
            return True
        if result.exit_status == 0 and marker == LOCK_EXISTS:
            return False
        raise RuntimeError(f"Failed to create lock file on server: {result.stderr.strip()}")

    def remove_remote(self) -> None:
        result = self.session.exec_command(f"rm -f {_single_quote(self.remote_path)}", cwd=self.remote_cwd)
        if result.exit_status not in (0, 1):
            self.handler.notify(f"Failed to remove lock file: {result.stderr.strip()}", "warning")

    # protocol

    def acquire(self) -> LockPayload:
        """Take the lock or raise LockConflictError.

        A remote marker identical to the local one was left by an earlier
        run on this machine; with the operator's consent both are removed
        and acquisition is retried once.
        """
        self.state = LockState.CHECKING
        stale_cleared = False

        while True:
            remote = self.read_remote()
            if remote is None:
                payload = LockPayload.create()
                if self.create_remote(payload):
                    self.payload = payload
                    self.state = LockState.LOCKED
                    try:
                        self.write_local(payload)
                    except OSError:
                        self.release()
                        raise
                    logger.info("Deployment lock acquired: %s", payload.describe())
                    return payload
                remote = self.read_remote()
                if remote is None:
                    continue

            if not stale_cleared and self.resolve_stale_lock(remote) is Decision.PROCEED:
                stale_cleared = True
                continue

            self.state = LockState.CONFLICT
            raise LockConflictError(remote, self.remote_display_path)

    def resolve_stale_lock(self, remote: Dict[str, Any]) -> Decision:
        """Offer to remove a remote lock written by this machine's last run."""
        if "raw" in remote:
            return Decision.ABORT
        local = self.read_local()
        if local is None:
            return Decision.ABORT

        remote_payload = LockPayload.from_dict(remote)
        if not local.same_instance(remote_payload):
            return Decision.ABORT

        decision = self.handler.decide(
            f"Stale lock detected on server ({remote_payload.describe()}). "
            "This appears to be from a failed deployment. Remove it?",
            default=True,
            category=QuestionCategory.STALE_LOCK,
        )
        if decision is Decision.PROCEED:
            self.remove_remote()
            self.remove_local()
            self.handler.notify("Removed stale deployment lock.", "warning")
        return decision

    def release(self) -> None:
        """Remove both markers. Never raises; problems are reported as warnings."""
        if self.state is not LockState.LOCKED:
            return
        try:
            self.remove_remote()
        except Exception as exc:
            self.handler.notify(f"Failed to release lock: {exc}", "warning")
        self.remove_local()
        self.state = LockState.RELEASED
        self.payload = None
