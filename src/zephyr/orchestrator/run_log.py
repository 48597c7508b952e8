"""Per-run task output log."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ..paths import PROJECT_CONFIG_DIR, ensure_project_config_dir, get_project_config_dir
from ..utils.logging import get_logger
from .models import utc_timestamp

logger = get_logger(__name__)


class DeploymentLog:
    """Append-only log file scoped to one orchestrator run.

    Lifecycle is ``open -> append* -> close``. The file is created on first
    use under the metadata directory and its path stays stable for the run.
    """

    def __init__(self, root_dir: Union[str, Path], metadata_dir: str = PROJECT_CONFIG_DIR) -> None:
        self.root_dir = Path(root_dir)
        self.metadata_dir = metadata_dir
        self._path: Optional[Path] = None
        self._closed = False
        self._written = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def written(self) -> bool:
        """True once at least one entry reached the file."""
        return self._written

    @property
    def path(self) -> Path:
        """Path of the log file, allocating it on first access."""
        if self._path is None:
            config_dir = ensure_project_config_dir(self.root_dir, self.metadata_dir)
            stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
            self._path = config_dir / f"{stamp}.log"
        return self._path

    def open(self) -> "DeploymentLog":
        if self._closed:
            raise RuntimeError("Deployment log is closed")
        _ = self.path
        return self

    def append(self, message: str) -> None:
        if self._closed:
            raise RuntimeError("Deployment log is closed")
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(f"{utc_timestamp()} - {message}\n")
        self._written = True

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> "DeploymentLog":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def prune_old_logs(
    root_dir: Union[str, Path],
    keep: int = 3,
    metadata_dir: str = PROJECT_CONFIG_DIR,
) -> int:
    """Delete all but the ``keep`` most recent run logs; returns how many were removed."""
    config_dir = get_project_config_dir(root_dir, metadata_dir)
    if not config_dir.is_dir():
        return 0

    logs = sorted(config_dir.glob("*.log"), key=lambda p: p.stat().st_mtime, reverse=True)
    removed = 0
    for stale in logs[keep:]:
        try:
            stale.unlink()
            removed += 1
        except OSError as exc:
            logger.debug("Could not remove old log %s: %s", stale, exc)
    return removed
