"""Local command execution and project checks."""

from .session import LocalSession, LocalCommandResult, LocalCommandError, command_exists
from .probe import LocalProbe

__all__ = [
    "LocalSession",
    "LocalCommandResult",
    "LocalCommandError",
    "command_exists",
    "LocalProbe",
]
