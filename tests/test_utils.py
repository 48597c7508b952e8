"""Tests for remote path resolution and PHP binary discovery."""

import pytest

from zephyr.ssh import SSHCommandResult
from zephyr.utils import resolve_remote_path
from zephyr.utils.php_version import (
    find_php_binary,
    parse_php_version_requirement,
    satisfies_version,
)


class TestResolveRemotePath:
    @pytest.mark.parametrize(
        "project_path, expected",
        [
            ("~", "/home/deployer"),
            ("~/", "/home/deployer"),
            ("~/webapps/shop", "/home/deployer/webapps/shop"),
            ("webapps/shop", "/home/deployer/webapps/shop"),
            ("/var/www/shop", "/var/www/shop"),
            ("", ""),
        ],
    )
    def test_resolution(self, project_path, expected):
        assert resolve_remote_path(project_path, "/home/deployer/") == expected


class TestPhpVersionRequirement:
    @pytest.mark.parametrize(
        "constraint, expected",
        [("^8.4", "8.4.0"), (">=8.2.1", "8.2.1"), ("8.3.*", "8.3.0"), ("~8.1.0", "8.1.0")],
    )
    def test_constraints(self, constraint, expected):
        assert parse_php_version_requirement({"require": {"php": constraint}}) == expected

    def test_require_dev_fallback(self):
        assert parse_php_version_requirement({"require-dev": {"php": "^8.0"}}) == "8.0.0"

    def test_no_requirement(self):
        assert parse_php_version_requirement({"require": {"laravel/framework": "^11.0"}}) is None

    def test_satisfies_version(self):
        assert satisfies_version("8.4.3", "8.4.0")
        assert not satisfies_version("8.3.12", "8.4.0")
        assert not satisfies_version("unknown", "8.4.0")


class ScriptedSession:
    def __init__(self, responses):
        self.responses = responses
        self.commands = []

    def exec_command(self, command, *, cwd=None):
        self.commands.append(command)
        for fragment, stdout, status in self.responses:
            if fragment in command:
                return SSHCommandResult(command, stdout, "", status)
        return SSHCommandResult(command, "", "", 1)


class TestFindPhpBinary:
    def test_no_requirement_uses_default(self):
        session = ScriptedSession([])
        assert find_php_binary(session, "/srv/app", None) == "php"
        assert session.commands == []

    def test_prefers_runcloud_package(self):
        session = ScriptedSession(
            [
                ("ls -1 /RunCloud/Packages", "php83rc\nphp84rc\nnginx-rc\n", 0),
                ("/RunCloud/Packages/php84rc/bin/php -r", "8.4.2", 0),
                ("/RunCloud/Packages/php83rc/bin/php -r", "8.3.9", 0),
            ]
        )
        assert find_php_binary(session, "/srv/app", "8.4.0") == "/RunCloud/Packages/php84rc/bin/php"

    def test_login_shell_alias(self):
        session = ScriptedSession(
            [
                ("ls -1 /RunCloud/Packages", "", 0),
                ("command -v php84'", "/usr/bin/php8.4\n", 0),
                ("/usr/bin/php8.4 -r", "8.4.1", 0),
            ]
        )
        assert find_php_binary(session, "/srv/app", "8.4.0") == "/usr/bin/php8.4"

    def test_falls_back_to_php(self):
        session = ScriptedSession([("ls -1 /RunCloud/Packages", "", 0)])
        assert find_php_binary(session, "/srv/app", "8.4.0") == "php"

    def test_probe_errors_fall_back_to_php(self):
        class BrokenSession:
            def exec_command(self, command, *, cwd=None):
                raise OSError("channel closed")

        assert find_php_binary(BrokenSession(), "/srv/app", "8.4.0") == "php"
