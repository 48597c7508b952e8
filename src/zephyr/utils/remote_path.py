"""Remote path helpers."""

from __future__ import annotations


def resolve_remote_path(project_path: str, remote_home: str) -> str:
    """Expand a home-relative project path against the remote ``$HOME``.

    ``~`` and ``~/app`` resolve under the home directory, relative paths are
    treated as home-relative, absolute paths are returned unchanged.
    """
    if not project_path:
        return project_path

    home = remote_home.rstrip("/")

    if project_path == "~":
        return home
    if project_path.startswith("~/"):
        remainder = project_path[2:]
        return f"{home}/{remainder}" if remainder else home
    if project_path.startswith("/"):
        return project_path
    return f"{home}/{project_path}"
