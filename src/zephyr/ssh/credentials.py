"""SSH credential helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..config import DeploymentTarget


@dataclass
class SSHCredentials:
    """Normalized key-based credentials for one host."""

    host: str
    username: str
    key_path: str
    port: int = 22
    passphrase: Optional[str] = None
    timeout: int = 20

    def validate(self) -> None:
        if not self.host:
            raise ValueError("SSH host is required")
        if not self.key_path:
            raise ValueError("Key authentication selected but no key_path provided")
        if not os.path.isfile(self.key_path):
            raise ValueError(f"SSH private key not found: {self.key_path}")

    @classmethod
    def from_target(cls, target: "DeploymentTarget", *, timeout: int = 20) -> "SSHCredentials":
        return cls(
            host=target.server_host,
            username=target.ssh_user,
            key_path=os.path.expanduser(target.ssh_key_path),
            port=target.ssh_port,
            timeout=timeout,
        )
