"""Remote project probing utilities."""

from __future__ import annotations

from .session import SSHSession

LARAVEL_CHECK = (
    'if [ -f artisan ] && [ -f composer.json ] && grep -q "laravel/framework" composer.json; '
    'then echo "yes"; else echo "no"; fi'
)
HORIZON_CHECK = 'if [ -f config/horizon.php ]; then echo "yes"; else echo "no"; fi'


class RemoteProbe:
    """Collects facts about the remote host and project by running simple commands."""

    def home_directory(self, session: SSHSession, username: str) -> str:
        result = session.exec_command('printf "%s" "$HOME"')
        return result.stdout.strip() or f"/home/{username}"

    def is_laravel_project(self, session: SSHSession, project_dir: str) -> bool:
        return self._yes(session, LARAVEL_CHECK, project_dir)

    def has_horizon(self, session: SSHSession, project_dir: str) -> bool:
        return self._yes(session, HORIZON_CHECK, project_dir)

    def _yes(self, session: SSHSession, command: str, cwd: str) -> bool:
        result = session.exec_command(command, cwd=cwd)
        return result.stdout.strip() == "yes"
