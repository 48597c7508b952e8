"""Test doubles for SSH sessions and remote project state."""

import base64
import re
from typing import Callable, Dict, List, Optional, Tuple

from zephyr.ssh import SSHCommandResult

_WRITE_RE = re.compile(r"echo '([A-Za-z0-9+/=]+)' \| base64 --decode > '?([\w./-]+)'?")
_READ_RE = re.compile(r"then cat '?([\w./-]+)'?;")
_REMOVE_RE = re.compile(r"rm -f '?([\w./-]+)'?")

Rule = Tuple[str, Callable[[str], SSHCommandResult]]


def result(command: str = "", stdout: str = "", stderr: str = "", exit_status: int = 0) -> SSHCommandResult:
    return SSHCommandResult(command=command, stdout=stdout, stderr=stderr, exit_status=exit_status)


class FakeRemoteSession:
    """In-memory stand-in for SSHSession.

    Metadata files written through base64 transport land in ``files``;
    ``rules`` map a command substring to a canned result.
    """

    def __init__(
        self,
        *,
        home: str = "/home/deployer",
        laravel: bool = True,
        horizon: bool = False,
        files: Optional[Dict[str, str]] = None,
    ) -> None:
        self.home = home
        self.laravel = laravel
        self.horizon = horizon
        self.files: Dict[str, str] = dict(files or {})
        self.writes: List[Tuple[str, str]] = []
        self.commands: List[Tuple[str, Optional[str]]] = []
        self.rules: List[Rule] = []
        self.connected = False
        self.disposed = False

    def respond(self, fragment: str, stdout: str = "", stderr: str = "", exit_status: int = 0) -> None:
        self.rules.append(
            (fragment, lambda command: result(command, stdout, stderr, exit_status))
        )

    def connect(self) -> None:
        self.connected = True

    def dispose(self) -> None:
        self.disposed = True
        self.connected = False

    close = dispose

    def command_index(self, fragment: str) -> int:
        for index, (command, _) in enumerate(self.commands):
            if fragment in command:
                return index
        raise AssertionError(f"No command containing {fragment!r} was run")

    def ran(self, fragment: str) -> bool:
        return any(fragment in command for command, _ in self.commands)

    def exec_command(self, command: str, *, cwd: Optional[str] = None) -> SSHCommandResult:
        self.commands.append((command, cwd))

        for fragment, build in self.rules:
            if fragment in command:
                return build(command)

        if command == 'printf "%s" "$HOME"':
            return result(command, stdout=self.home)
        if "laravel/framework" in command:
            return result(command, stdout="yes\n" if self.laravel else "no\n")
        if "config/horizon.php" in command:
            return result(command, stdout="yes\n" if self.horizon else "no\n")

        if "LOCK_NOT_FOUND" in command:
            match = _READ_RE.search(command)
            path = match.group(1) if match else ""
            return result(command, stdout=self.files.get(path, "LOCK_NOT_FOUND") + "\n")

        write = _WRITE_RE.search(command)
        if write:
            path = write.group(2)
            if "set -C" in command and path in self.files:
                return result(command, stdout="LOCK_EXISTS\n", stderr="cannot overwrite existing file")
            content = base64.b64decode(write.group(1)).decode("utf-8")
            self.files[path] = content
            self.writes.append((path, content))
            return result(command, stdout="LOCK_CREATED\n" if "set -C" in command else "")

        remove = _REMOVE_RE.search(command)
        if remove:
            self.files.pop(remove.group(1), None)
            return result(command)

        return result(command)
