"""Configuration loading utilities for Zephyr."""

from __future__ import annotations

import getpass
import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .paths import PROJECT_CONFIG_DIR, PROJECT_CONFIG_FILE

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path(PROJECT_CONFIG_DIR) / PROJECT_CONFIG_FILE

# Environment variable -> DeploymentTarget field
_TARGET_ENV_OVERRIDES = {
    "ZEPHYR_SERVER_NAME": "server_name",
    "ZEPHYR_SSH_HOST": "server_host",
    "ZEPHYR_SSH_PORT": "ssh_port",
    "ZEPHYR_SSH_USER": "ssh_user",
    "ZEPHYR_SSH_KEY_PATH": "ssh_key_path",
    "ZEPHYR_PROJECT_PATH": "project_path",
    "ZEPHYR_BRANCH": "branch",
}


def _default_ssh_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):  # pragma: no cover - no login name in some containers
        return "root"


@dataclass(frozen=True)
class DeploymentTarget:
    """Identifies one deployment. Read-only for the duration of a run."""

    server_name: str
    server_host: str
    project_path: str
    branch: str
    ssh_user: str = ""
    ssh_key_path: str = "~/.ssh/id_rsa"
    ssh_port: int = 22

    def validate(self) -> None:
        missing = [
            name
            for name in ("server_host", "project_path", "branch")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"Deployment target is missing: {', '.join(missing)}")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DeploymentTarget":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in payload.items() if k in known}
        values.setdefault("server_name", values.get("server_host", ""))
        values.setdefault("server_host", "")
        values.setdefault("project_path", "")
        values.setdefault("branch", "")
        if not values.get("ssh_user"):
            values["ssh_user"] = _default_ssh_user()
        if "ssh_port" in values:
            values["ssh_port"] = int(values["ssh_port"])
        return cls(**values)


@dataclass
class DeploymentSettings:
    """Settings related to deployment execution."""

    metadata_dir: str = PROJECT_CONFIG_DIR
    ssh_timeout: int = 20                 # connect timeout (seconds)
    command_timeout: Optional[int] = None  # per remote command, None waits forever
    run_preflight: bool = True            # local lint/tests before connecting
    log_retention: int = 3                # run logs kept in the metadata dir


@dataclass
class InteractionConfig:
    """Configuration for operator interaction."""

    mode: str = "cli"  # "cli" | "auto"


@dataclass
class AppConfig:
    """Top-level configuration."""

    target: DeploymentTarget
    deployment: DeploymentSettings = field(default_factory=DeploymentSettings)
    interaction: InteractionConfig = field(default_factory=InteractionConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        target_payload = _strip_comments(payload.get("target", {}) or {})
        deployment_payload = _strip_comments(payload.get("deployment", {}) or {})
        interaction_payload = _strip_comments(payload.get("interaction", {}) or {})

        return cls(
            target=DeploymentTarget.from_dict(target_payload),
            deployment=DeploymentSettings(
                **{**DeploymentSettings().__dict__, **deployment_payload}
            ),
            interaction=InteractionConfig(
                **{**InteractionConfig().__dict__, **interaction_payload}
            ),
        )


def _strip_comments(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in payload.items() if not k.startswith("_")}


def load_config(path: Optional[str] = None, *, root_dir: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or `.zephyr/deploy.json` under `root_dir`.

    Environment variables (higher priority than the config file):
    - ZEPHYR_SERVER_NAME: Display name of the server
    - ZEPHYR_SSH_HOST: Server host or IP
    - ZEPHYR_SSH_PORT: SSH port
    - ZEPHYR_SSH_USER: SSH username
    - ZEPHYR_SSH_KEY_PATH: Path to SSH private key
    - ZEPHYR_PROJECT_PATH: Project directory on the server
    - ZEPHYR_BRANCH: Branch to deploy
    """

    candidate_paths = []
    if path:
        candidate_paths.append(Path(path))
    base = Path(root_dir) if root_dir else Path.cwd()
    candidate_paths.append(base / _DEFAULT_CONFIG_PATH)

    for candidate in candidate_paths:
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle)

            target_payload = dict(data.get("target", {}) or {})
            for env_name, field_name in _TARGET_ENV_OVERRIDES.items():
                env_value = os.getenv(env_name)
                if env_value:
                    target_payload[field_name] = env_value
            data["target"] = target_payload

            config = AppConfig.from_dict(data)
            config.target.validate()
            return config

    raise FileNotFoundError(
        f"Could not find configuration file. Looked in: {', '.join(str(p) for p in candidate_paths)}"
    )
