"""SSH session management built on Paramiko."""

from __future__ import annotations

import shlex
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import paramiko

from ..utils.logging import get_logger
from .credentials import SSHCredentials

logger = get_logger(__name__)

READ_CHUNK_SIZE = 32768
POLL_INTERVAL = 0.1


class SSHConnectionError(RuntimeError):
    """Raised when an SSH connection cannot be established."""

    pass


@dataclass
class SSHCommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class SSHSession:
    """High-level wrapper around paramiko.SSHClient.

    Commands run in a fresh non-interactive shell each time; nothing (cwd,
    exported variables) carries over between calls.
    """

    def __init__(
        self,
        credentials: SSHCredentials,
        *,
        client_factory: Optional[Callable[[], paramiko.SSHClient]] = None,
        command_timeout: Optional[int] = None,
    ) -> None:
        self.credentials = credentials
        self.command_timeout = command_timeout
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    def __enter__(self) -> "SSHSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def connect(self) -> None:
        if self._client:
            return
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            connect_kwargs = {
                "hostname": self.credentials.host,
                "port": self.credentials.port,
                "username": self.credentials.username,
                "timeout": self.credentials.timeout,
                "key_filename": self.credentials.key_path,
                "look_for_keys": False,
                "allow_agent": False,
            }
            if self.credentials.passphrase:
                connect_kwargs["passphrase"] = self.credentials.passphrase
            client.connect(**connect_kwargs)
        except Exception as exc:
            client.close()
            raise SSHConnectionError(
                f"Unable to connect to {self.credentials.username}@{self.credentials.host}: {exc}"
            ) from exc
        self._client = client
        logger.debug("Connected to %s@%s", self.credentials.username, self.credentials.host)

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    dispose = close

    def exec_command(self, command: str, *, cwd: Optional[str] = None) -> SSHCommandResult:
        """
        Execute a command on the remote server and wait for it to finish.

        Both output streams are drained while the command runs so a full
        channel window never stalls it.

        Args:
            command: Shell command line
            cwd: Directory to `cd` into before running the command

        Returns:
            SSHCommandResult with decoded output and exit status
        """
        if not self._client:
            raise SSHConnectionError("SSH session is not connected")

        actual_command = f"cd {shlex.quote(cwd)} && {command}" if cwd else command
        _, stdout, _ = self._client.exec_command(actual_command, timeout=self.command_timeout)
        channel = stdout.channel

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []
        start_time = time.monotonic()

        while True:
            has_activity = self._drain(channel, stdout_chunks, stderr_chunks)
            if channel.exit_status_ready():
                break
            if self.command_timeout and time.monotonic() - start_time > self.command_timeout:
                channel.close()
                return SSHCommandResult(
                    command=command,
                    stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace"),
                    stderr=f"TIMEOUT: Command did not complete within {self.command_timeout} seconds.",
                    exit_status=-1,
                )
            if not has_activity:
                time.sleep(POLL_INTERVAL)

        # output that arrived together with the exit status
        self._drain(channel, stdout_chunks, stderr_chunks)
        exit_status = channel.recv_exit_status()

        return SSHCommandResult(
            command=command,
            stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace"),
            stderr=b"".join(stderr_chunks).decode("utf-8", errors="replace"),
            exit_status=exit_status,
        )

    @staticmethod
    def _drain(channel, stdout_chunks: List[bytes], stderr_chunks: List[bytes]) -> bool:
        has_activity = False
        while channel.recv_ready():
            stdout_chunks.append(channel.recv(READ_CHUNK_SIZE))
            has_activity = True
        while channel.recv_stderr_ready():
            stderr_chunks.append(channel.recv_stderr(READ_CHUNK_SIZE))
            has_activity = True
        return has_activity

    def get_file(
        self,
        local_path: str,
        remote_path: str,
        progress: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        """Download ``remote_path`` to ``local_path`` over SFTP."""
        if not self._client:
            raise SSHConnectionError("SSH session is not connected")
        sftp = self._client.open_sftp()
        try:
            sftp.get(remote_path, local_path, callback=progress)
        finally:
            sftp.close()
