"""Persistence of in-flight deployment plans."""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Optional, TYPE_CHECKING, Union

from ..interaction import Decision, QuestionCategory
from ..paths import (
    PENDING_TASKS_FILE,
    PROJECT_CONFIG_DIR,
    ensure_project_config_dir,
    get_pending_tasks_path,
    remote_metadata_path,
)
from ..utils.logging import get_logger
from .models import PendingSnapshot

if TYPE_CHECKING:
    from ..config import DeploymentTarget
    from ..interaction import UserInteractionHandler
    from .remote_executor import RemoteExecutor

logger = get_logger(__name__)


class SnapshotStore:
    """Reads and writes the pending-tasks snapshot.

    The local copy lives in the checkout's metadata directory; `save_remote`
    and `clear_remote` mirror it into the remote project directory.
    """

    def __init__(self, root_dir: Union[str, Path], metadata_dir: str = PROJECT_CONFIG_DIR) -> None:
        self.root_dir = Path(root_dir)
        self.metadata_dir = metadata_dir

    @property
    def path(self) -> Path:
        return get_pending_tasks_path(self.root_dir, self.metadata_dir)

    @property
    def remote_path(self) -> str:
        return remote_metadata_path(PENDING_TASKS_FILE, self.metadata_dir)

    def load(self) -> Optional[PendingSnapshot]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return PendingSnapshot.from_dict(json.loads(raw))
        except ValueError as exc:
            raise ValueError(f"Pending snapshot at {self.path} is not valid: {exc}") from exc

    def save(self, snapshot: PendingSnapshot) -> Path:
        ensure_project_config_dir(self.root_dir, self.metadata_dir)
        payload = json.dumps(snapshot.to_dict(), indent=2) + "\n"
        self.path.write_text(payload, encoding="utf-8")
        return self.path

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def save_remote(self, executor: "RemoteExecutor", snapshot: PendingSnapshot) -> None:
        encoded = base64.b64encode(json.dumps(snapshot.to_dict()).encode("utf-8")).decode("ascii")
        executor.execute(
            "Record pending deployment tasks",
            f"mkdir -p {self.metadata_dir} && echo '{encoded}' | base64 --decode > {self.remote_path}",
        )

    def clear_remote(self, executor: "RemoteExecutor") -> None:
        executor.execute(
            "Clear pending deployment snapshot",
            f"rm -f {self.remote_path}",
            allow_failure=True,
        )


def resolve_pending_snapshot(
    store: SnapshotStore,
    target: "DeploymentTarget",
    handler: "UserInteractionHandler",
) -> Optional[PendingSnapshot]:
    """Offer to resume a snapshot left by an interrupted run.

    The default answer is to resume only when the snapshot was taken for the
    same server and branch. Declining deletes the local snapshot.
    """
    snapshot = store.load()
    if snapshot is None:
        return None

    parts = [
        "Pending deployment tasks were detected from a previous run.",
        f"Server: {snapshot.server_name}",
        f"Branch: {snapshot.branch}",
    ]
    if snapshot.task_labels:
        parts.append(f"Tasks: {', '.join(snapshot.task_labels)}")

    decision = handler.decide(
        f"{' | '.join(parts)}. Resume using this plan?",
        default=snapshot.matches(target),
        category=QuestionCategory.RESUME,
        on_yes=Decision.RESUME,
    )

    if decision is Decision.RESUME:
        handler.notify("Resuming deployment using saved task snapshot...", "processing")
        return snapshot

    store.clear()
    handler.notify("Discarded pending deployment snapshot.", "warning")
    return None
