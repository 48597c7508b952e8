"""SSH utilities for Zephyr."""

from .credentials import SSHCredentials
from .session import SSHCommandResult, SSHConnectionError, SSHSession
from .probe import RemoteProbe

__all__ = [
    "SSHCredentials",
    "SSHCommandResult",
    "SSHConnectionError",
    "SSHSession",
    "RemoteProbe",
]
