"""Unified path constants for Zephyr.

All per-project state is stored under the ``.zephyr`` directory, both in the
local checkout and in the remote project directory:
- .zephyr/deploy.json          # deployment target configuration
- .zephyr/deploy.lock          # lock marker for the running deployment
- .zephyr/pending-tasks.json   # plan of an unfinished deployment
- .zephyr/<timestamp>.log      # per-run task output
"""

from pathlib import Path
from typing import Union

PROJECT_CONFIG_DIR = ".zephyr"
PROJECT_CONFIG_FILE = "deploy.json"
PROJECT_LOCK_FILE = "deploy.lock"
PENDING_TASKS_FILE = "pending-tasks.json"

PathLike = Union[str, Path]


def get_project_config_dir(root_dir: PathLike, metadata_dir: str = PROJECT_CONFIG_DIR) -> Path:
    return Path(root_dir) / metadata_dir


def ensure_project_config_dir(root_dir: PathLike, metadata_dir: str = PROJECT_CONFIG_DIR) -> Path:
    """Create the metadata directory if needed and return it."""
    config_dir = get_project_config_dir(root_dir, metadata_dir)
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_lock_file_path(root_dir: PathLike, metadata_dir: str = PROJECT_CONFIG_DIR) -> Path:
    return get_project_config_dir(root_dir, metadata_dir) / PROJECT_LOCK_FILE


def get_pending_tasks_path(root_dir: PathLike, metadata_dir: str = PROJECT_CONFIG_DIR) -> Path:
    return get_project_config_dir(root_dir, metadata_dir) / PENDING_TASKS_FILE


def remote_metadata_path(filename: str, metadata_dir: str = PROJECT_CONFIG_DIR) -> str:
    """Path of a metadata file relative to the remote project directory."""
    return f"{metadata_dir}/{filename}"
