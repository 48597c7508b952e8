import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from zephyr.config import AppConfig, DeploymentTarget, load_config

_ZEPHYR_ENV = {key: value for key, value in os.environ.items() if not key.startswith("ZEPHYR_")}


def _write_config(root: Path, payload: dict) -> Path:
    config_dir = root / ".zephyr"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "deploy.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


PAYLOAD = {
    "target": {
        "_comment": "production web node",
        "server_name": "production",
        "server_host": "203.0.113.10",
        "project_path": "~/webapps/shop",
        "branch": "main",
        "ssh_user": "deployer",
    },
    "deployment": {"ssh_timeout": 5, "run_preflight": False},
}


@mock.patch.dict(os.environ, _ZEPHYR_ENV, clear=True)
class ConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_loads_project_config(self) -> None:
        _write_config(self.root, PAYLOAD)

        config = load_config(root_dir=str(self.root))

        self.assertIsInstance(config, AppConfig)
        self.assertEqual(config.target.server_host, "203.0.113.10")
        self.assertEqual(config.target.ssh_port, 22)
        self.assertEqual(config.deployment.ssh_timeout, 5)
        self.assertFalse(config.deployment.run_preflight)
        self.assertEqual(config.deployment.metadata_dir, ".zephyr")
        self.assertEqual(config.deployment.log_retention, 3)
        self.assertEqual(config.interaction.mode, "cli")

    def test_explicit_path_wins(self) -> None:
        _write_config(self.root, PAYLOAD)
        other = self.root / "staging.json"
        other.write_text(
            json.dumps({"target": {**PAYLOAD["target"], "server_name": "staging", "branch": "develop"}}),
            encoding="utf-8",
        )

        config = load_config(str(other), root_dir=str(self.root))

        self.assertEqual(config.target.server_name, "staging")
        self.assertEqual(config.target.branch, "develop")

    def test_environment_overrides_target(self) -> None:
        _write_config(self.root, PAYLOAD)
        with mock.patch.dict(os.environ, {"ZEPHYR_BRANCH": "hotfix", "ZEPHYR_SSH_PORT": "2222"}):
            config = load_config(root_dir=str(self.root))
        self.assertEqual(config.target.branch, "hotfix")
        self.assertEqual(config.target.ssh_port, 2222)

    def test_missing_file_raises(self) -> None:
        with self.assertRaises(FileNotFoundError) as ctx:
            load_config(root_dir=str(self.root))
        self.assertIn("deploy.json", str(ctx.exception))

    def test_incomplete_target_raises(self) -> None:
        _write_config(self.root, {"target": {"server_host": "203.0.113.10"}})
        with self.assertRaises(ValueError) as ctx:
            load_config(root_dir=str(self.root))
        self.assertIn("project_path", str(ctx.exception))
        self.assertIn("branch", str(ctx.exception))


class DeploymentTargetTests(unittest.TestCase):
    def test_defaults(self) -> None:
        target = DeploymentTarget.from_dict(
            {"server_host": "example.com", "project_path": "/srv/app", "branch": "main"}
        )
        self.assertEqual(target.server_name, "example.com")
        self.assertTrue(target.ssh_user)
        self.assertEqual(target.ssh_key_path, "~/.ssh/id_rsa")

    def test_target_is_read_only(self) -> None:
        target = DeploymentTarget("prod", "example.com", "/srv/app", "main", "deployer")
        with self.assertRaises(Exception):
            target.branch = "develop"  # type: ignore[misc]


if __name__ == "__main__":
    unittest.main()
