"""Local project probe for collecting facts about the checkout."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..utils.php_version import parse_php_version_requirement

PRE_PUSH_HOOK_PATHS = (
    (".git", "hooks", "pre-push"),
    (".husky", "pre-push"),
    (".githooks", "pre-push"),
)


class LocalProbe:
    """Collects information about the local project."""

    def __init__(self, root_dir: Union[str, Path]) -> None:
        self.root_dir = Path(root_dir)

    def has_pre_push_hook(self) -> bool:
        return any(self.root_dir.joinpath(*parts).is_file() for parts in PRE_PUSH_HOOK_PATHS)

    def has_lint_script(self) -> bool:
        package_json = self._read_json("package.json")
        if not package_json:
            return False
        scripts = package_json.get("scripts")
        return isinstance(scripts, dict) and isinstance(scripts.get("lint"), str)

    def has_pint(self) -> bool:
        return (self.root_dir / "vendor" / "bin" / "pint").is_file()

    def is_laravel_project(self) -> bool:
        if not (self.root_dir / "artisan").exists():
            return False
        composer = self._read_json("composer.json")
        if not composer:
            return False
        requires = composer.get("require")
        return isinstance(requires, dict) and "laravel/framework" in requires

    def php_version_requirement(self) -> Optional[str]:
        composer = self._read_json("composer.json")
        if not composer:
            return None
        return parse_php_version_requirement(composer)

    def _read_json(self, name: str) -> Optional[Dict[str, Any]]:
        path = self.root_dir / name
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, ValueError):
            return None
        return data if isinstance(data, dict) else None
