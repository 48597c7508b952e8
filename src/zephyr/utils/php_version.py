"""PHP version detection for remote hosts."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from .logging import get_logger

if TYPE_CHECKING:
    from ..ssh import SSHSession

logger = get_logger(__name__)

RUNCLOUD_PACKAGES = "/RunCloud/Packages"

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")
_RUNCLOUD_DIR_RE = re.compile(r"^php\d+rc$")


def parse_version(value: str) -> Optional[Tuple[int, int, int]]:
    """Coerce the first ``major.minor[.patch]`` found in ``value``."""
    match = _VERSION_RE.search(value or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)


def parse_php_version_requirement(composer: Dict[str, Any]) -> Optional[str]:
    """Extract the minimum PHP version from a parsed composer.json.

    Handles constraints such as ``^8.4``, ``>=8.4.0``, ``8.4.*`` and ``~8.4.0``
    and returns a normalised ``major.minor.patch`` string.
    """
    requirement = None
    for section in ("require", "require-dev"):
        block = composer.get(section)
        if isinstance(block, dict) and block.get("php"):
            requirement = block["php"]
            break
    if not isinstance(requirement, str):
        return None

    version = parse_version(requirement)
    if version is None:
        return None
    return "%d.%d.%d" % version


def satisfies_version(actual: str, required: str) -> bool:
    actual_version = parse_version(actual)
    required_version = parse_version(required)
    if actual_version is None or required_version is None:
        return False
    return actual_version >= required_version


def _try_php(session: "SSHSession", cwd: str, binary: str) -> Optional[str]:
    result = session.exec_command(f'{binary} -r "echo PHP_VERSION;"', cwd=cwd)
    return result.stdout.strip() if result.exit_status == 0 else None


def _find_runcloud_php(session: "SSHSession", cwd: str, required: str) -> Optional[str]:
    listing = session.exec_command(f"ls -1 {RUNCLOUD_PACKAGES} 2>/dev/null || true", cwd=cwd)
    if listing.exit_status != 0 or not listing.stdout.strip():
        return None

    entries = [line.strip() for line in listing.stdout.splitlines() if line.strip()]
    php_dirs = [entry for entry in entries if _RUNCLOUD_DIR_RE.match(entry)]
    major, minor, _ = parse_version(required) or (0, 0, 0)
    preferred = f"php{major}{minor}rc"
    ordered = [d for d in php_dirs if d == preferred] + [d for d in php_dirs if d != preferred]

    for directory in ordered:
        binary = f"{RUNCLOUD_PACKAGES}/{directory}/bin/php"
        actual = _try_php(session, cwd, binary)
        if actual and satisfies_version(actual, required):
            return binary
    return None


def _resolve_via_login_shell(
    session: "SSHSession", cwd: str, name: str, required: str
) -> Optional[str]:
    which = session.exec_command(f"bash -lc 'command -v {name}' 2>/dev/null || true", cwd=cwd)
    resolved = which.stdout.strip()
    if which.exit_status != 0 or not resolved:
        return None
    actual = _try_php(session, cwd, resolved)
    if actual and satisfies_version(actual, required):
        return resolved
    return None


def find_php_binary(session: "SSHSession", cwd: str, required: Optional[str]) -> str:
    """Find the PHP command on the remote host that satisfies ``required``.

    Tries RunCloud package binaries, login-shell aliases (``php84``,
    ``php8.4``), the same names on the non-login PATH, and finally ``php``.
    Falls back to ``php`` when nothing matches.
    """
    if not required:
        return "php"

    major, minor, _ = parse_version(required) or (0, 0, 0)
    dotted = f"php{major}.{minor}"
    compact = f"php{major}{minor}"

    try:
        binary = _find_runcloud_php(session, cwd, required)
        if binary:
            return binary
        for name in (compact, dotted):
            binary = _resolve_via_login_shell(session, cwd, name, required)
            if binary:
                return binary
        for name in (dotted, compact):
            lookup = session.exec_command(f"command -v {name}", cwd=cwd)
            if lookup.exit_status == 0 and lookup.stdout.strip():
                actual = _try_php(session, cwd, name)
                if actual and satisfies_version(actual, required):
                    return name
    except Exception as exc:
        logger.debug("PHP binary probe failed: %s", exc)

    return "php"
