"""Local command execution session."""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..utils.logging import get_logger

logger = get_logger(__name__)


class LocalCommandError(RuntimeError):
    """Raised when a local command fails or cannot be started."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: Optional[int],
        stderr: str = "",
        *,
        not_found: bool = False,
    ) -> None:
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        self.not_found = not_found
        executable = self.command[0] if self.command else ""
        if not_found:
            message = (
                f'Command not found: "{executable}". '
                f'Make sure "{executable}" is installed and available in your PATH.'
            )
        else:
            message = f"{' '.join(self.command)} exited with code {exit_code}"
            if stderr:
                message += f": {stderr}"
        super().__init__(message)


@dataclass
class LocalCommandResult:
    """Result of executing a local command."""
    command: List[str]
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


def command_exists(name: str) -> bool:
    """Return True when ``name`` resolves to an executable on PATH."""
    return shutil.which(name) is not None


class LocalSession:
    """
    Runs local subprocesses for git and project tooling.

    Commands are argv lists, never shell strings. Without ``capture`` the
    child inherits the terminal so the operator sees tool output live.
    """

    def __init__(self, working_dir: Optional[Union[str, Path]] = None) -> None:
        self.working_dir = str(working_dir or os.getcwd())

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: Optional[Union[str, Path]] = None,
        capture: bool = False,
        check: bool = True,
        quiet: bool = False,
    ) -> LocalCommandResult:
        """
        Execute a command locally.

        Args:
            args: Executable followed by its arguments
            cwd: Working directory, defaults to the session directory
            capture: Capture stdout/stderr instead of inheriting the terminal
            check: Raise LocalCommandError on non-zero exit
            quiet: Discard output when not capturing

        Returns:
            LocalCommandResult with stdout, stderr and exit status
        """
        command = [str(arg) for arg in args]
        workdir = str(cwd) if cwd else self.working_dir
        logger.debug("Running %s in %s", " ".join(command), workdir)

        if capture:
            stdout_target = subprocess.PIPE
            stderr_target = subprocess.PIPE
        elif quiet:
            stdout_target = subprocess.DEVNULL
            stderr_target = subprocess.DEVNULL
        else:
            stdout_target = None
            stderr_target = None

        try:
            process = subprocess.run(
                command,
                cwd=workdir,
                stdout=stdout_target,
                stderr=stderr_target,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise LocalCommandError(command, None, str(exc), not_found=True) from exc

        result = LocalCommandResult(
            command=command,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
            exit_status=process.returncode,
        )
        if check and not result.ok:
            raise LocalCommandError(command, result.exit_status, result.stderr.strip())
        return result
