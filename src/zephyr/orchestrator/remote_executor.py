"""Runs labeled commands in the remote project with a bootstrapped environment."""

from __future__ import annotations

import re
import shlex
from typing import Dict, Optional, Tuple, TYPE_CHECKING

from ..utils.logging import get_logger

if TYPE_CHECKING:
    from ..interaction import UserInteractionHandler
    from ..ssh import SSHCommandResult, SSHSession
    from .run_log import DeploymentLog

logger = get_logger(__name__)

MISSING_EXECUTABLE_RE = re.compile(r"command not found|is not recognized")
MISSING_EXECUTABLE_EXIT_CODE = 127
_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

PROFILE_SCRIPTS = (".profile", ".bash_profile", ".bashrc", ".zprofile", ".zshrc")
NVM_SCRIPTS = ("$HOME/.nvm/nvm.sh", "$HOME/.config/nvm/nvm.sh", "/usr/local/opt/nvm/nvm.sh")


def build_profile_bootstrap() -> str:
    """Shell prelude that approximates a login environment.

    Non-interactive SSH shells skip most profile files, so tools installed
    through nvm or into non-default prefixes are often missing from PATH.
    """
    parts = [f'if [ -f "$HOME/{name}" ]; then . "$HOME/{name}"; fi' for name in PROFILE_SCRIPTS]
    parts += [f'if [ -s "{script}" ]; then . "{script}"; fi' for script in NVM_SCRIPTS]
    parts += [
        "if command -v npm >/dev/null 2>&1; then :",
        'elif [ -d "$HOME/.nvm/versions/node" ]; then '
        'NODE_VERSION=$(ls -1 "$HOME/.nvm/versions/node" | tail -1) && '
        'export PATH="$HOME/.nvm/versions/node/$NODE_VERSION/bin:$PATH"',
        'elif [ -d "/usr/local/lib/node_modules/npm/bin" ]; then '
        'export PATH="/usr/local/lib/node_modules/npm/bin:$PATH"',
        'elif [ -d "/opt/homebrew/bin" ] && [ -f "/opt/homebrew/bin/npm" ]; then '
        'export PATH="/opt/homebrew/bin:$PATH"',
        'elif [ -d "/usr/local/bin" ] && [ -f "/usr/local/bin/npm" ]; then '
        'export PATH="/usr/local/bin:$PATH"',
        'elif [ -d "$HOME/.local/bin" ] && [ -f "$HOME/.local/bin/npm" ]; then '
        'export PATH="$HOME/.local/bin:$PATH"',
        "fi",
    ]
    return "; ".join(parts)


def build_env_exports(env: Optional[Dict[str, str]]) -> str:
    if not env:
        return ""
    exports = []
    for key, value in env.items():
        if not _ENV_NAME_RE.match(key):
            raise ValueError(f"Invalid environment variable name: {key!r}")
        exports.append(f"{key}={shlex.quote(str(value))}")
    return f"export {' '.join(exports)} && "


class RemoteCommandError(RuntimeError):
    """Raised when a remote step exits non-zero."""

    def __init__(
        self,
        label: str,
        command: str,
        exit_code: int,
        stderr: str = "",
        *,
        missing_executable: bool = False,
    ) -> None:
        self.label = label
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        self.missing_executable = missing_executable
        if missing_executable:
            message = (
                f"[{label}] Command failed: {command}. Ensure the remote environment loads required "
                "tools for non-interactive shells (e.g. export PATH in profile scripts)."
            )
        else:
            message = f"[{label}] Command failed: {command}"
        if stderr:
            message += f"\n{stderr}"
        super().__init__(message)


class RemoteExecutor:
    """Wraps an SSH session with environment bootstrapping, logging and failure classification."""

    def __init__(
        self,
        session: "SSHSession",
        log: "DeploymentLog",
        handler: "UserInteractionHandler",
        remote_cwd: str,
    ) -> None:
        self.session = session
        self.log = log
        self.handler = handler
        self.remote_cwd = remote_cwd
        self._bootstrap = build_profile_bootstrap()

    def wrap(
        self,
        command: str,
        *,
        cwd: Optional[str],
        bootstrap_env: bool,
        env: Optional[Dict[str, str]],
    ) -> Tuple[str, Optional[str]]:
        """Return the command line to send and the cwd to pass to the session."""
        exports = build_env_exports(env)
        if bootstrap_env and cwd:
            return f"{self._bootstrap}; cd {shlex.quote(cwd)} && {exports}{command}", None
        return f"{exports}{command}", cwd

    def execute(
        self,
        label: str,
        command: str,
        *,
        cwd: Optional[str] = None,
        allow_failure: bool = False,
        bootstrap_env: bool = True,
        env: Optional[Dict[str, str]] = None,
    ) -> "SSHCommandResult":
        """
        Run one labeled remote command.

        Args:
            label: Human-readable step name used in logs and errors
            command: Shell command to run
            cwd: Remote working directory, defaults to the project directory
            allow_failure: Return non-zero results instead of raising
            bootstrap_env: Source profile scripts and fix PATH first
            env: Variables exported ahead of the command

        Returns:
            The SSH command result

        Raises:
            RemoteCommandError: Non-zero exit without allow_failure
        """
        workdir = cwd if cwd is not None else self.remote_cwd
        self.handler.notify(f"\n→ {label}", "processing")

        wrapped, session_cwd = self.wrap(command, cwd=workdir, bootstrap_env=bootstrap_env, env=env)
        result = self.session.exec_command(wrapped, cwd=session_cwd)

        stdout = result.stdout.strip()
        stderr = result.stderr.strip()
        if stdout:
            self.log.append(f"[{label}] STDOUT:\n{stdout}")
        if stderr:
            self.log.append(f"[{label}] STDERR:\n{stderr}")

        if result.exit_status != 0:
            if stdout:
                self.handler.notify(f"\n[{label}] Output:\n{stdout}", "error")
            if stderr:
                self.handler.notify(f"\n[{label}] Error:\n{stderr}", "error")

            if not allow_failure:
                missing = (
                    result.exit_status == MISSING_EXECUTABLE_EXIT_CODE
                    or bool(MISSING_EXECUTABLE_RE.search(stderr))
                )
                raise RemoteCommandError(
                    label,
                    command,
                    result.exit_status,
                    stderr,
                    missing_executable=missing,
                )
            logger.info("Ignoring failure of advisory step %s (exit %s)", label, result.exit_status)
            return result

        self.handler.notify(f"✓ {label}", "success")
        return result
