"""Maps a change set to the ordered maintenance steps of a deployment.

The plan is data: each `TaskRule` pairs a rank with a predicate over the
change set and a step builder. Rules are evaluated once and the selected
steps are sorted by rank, so ordering never depends on source order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from .models import TaskStep

FRONTEND_EXTENSIONS = (".vue", ".css", ".scss", ".js", ".ts", ".tsx", ".less")
BACKEND_EXTENSION = ".php"
MIGRATIONS_DIR = "database/migrations/"


def _matches_filename(path: str, names: Iterable[str]) -> bool:
    return any(path == name or path.endswith("/" + name) for name in names)


@dataclass(frozen=True)
class PlanContext:
    """Inputs shared by every rule."""

    branch: str
    changed_files: Sequence[str]
    queue_dashboard_configured: bool
    php: str

    def any_file(self, predicate: Callable[[str], bool]) -> bool:
        return any(predicate(path) for path in self.changed_files)

    @property
    def composer_changed(self) -> bool:
        return self.any_file(lambda p: _matches_filename(p, ("composer.json", "composer.lock")))

    @property
    def npm_changed(self) -> bool:
        return self.any_file(lambda p: _matches_filename(p, ("package.json", "package-lock.json")))

    @property
    def migrations_changed(self) -> bool:
        return self.any_file(lambda p: p.startswith(MIGRATIONS_DIR) and p.endswith(BACKEND_EXTENSION))

    @property
    def frontend_changed(self) -> bool:
        return self.any_file(lambda p: p.endswith(FRONTEND_EXTENSIONS))

    @property
    def backend_changed(self) -> bool:
        return self.any_file(lambda p: p.endswith(BACKEND_EXTENSION))


@dataclass(frozen=True)
class TaskRule:
    rank: int
    predicate: Callable[[PlanContext], bool]
    build: Callable[[PlanContext], TaskStep]
    framework_only: bool = True


def _composer_command(ctx: PlanContext) -> str:
    args = "install --no-dev --no-interaction --prefer-dist --optimize-autoloader"
    if ctx.php == "php":
        return f"composer {args}"
    return f"{ctx.php} $(command -v composer) {args}"


def _queue_restart(ctx: PlanContext) -> TaskStep:
    if ctx.queue_dashboard_configured:
        return TaskStep("Restart Horizon workers", f"{ctx.php} artisan horizon:terminate")
    return TaskStep("Restart queue workers", f"{ctx.php} artisan queue:restart")


TASK_RULES: List[TaskRule] = [
    TaskRule(
        rank=0,
        predicate=lambda ctx: True,
        build=lambda ctx: TaskStep(f"Pull latest changes for {ctx.branch}", f"git pull origin {ctx.branch}"),
        framework_only=False,
    ),
    TaskRule(
        rank=10,
        predicate=lambda ctx: ctx.composer_changed,
        build=lambda ctx: TaskStep("Install Composer dependencies", _composer_command(ctx)),
    ),
    TaskRule(
        rank=20,
        predicate=lambda ctx: ctx.migrations_changed,
        build=lambda ctx: TaskStep("Run database migrations", f"{ctx.php} artisan migrate --force"),
    ),
    TaskRule(
        rank=30,
        predicate=lambda ctx: ctx.npm_changed,
        build=lambda ctx: TaskStep("Install Node dependencies", "npm install"),
    ),
    TaskRule(
        rank=40,
        # Installing JS dependencies always implies a rebuild.
        predicate=lambda ctx: ctx.npm_changed or ctx.frontend_changed,
        build=lambda ctx: TaskStep("Compile frontend assets", "npm run build"),
    ),
    TaskRule(
        rank=50,
        predicate=lambda ctx: ctx.backend_changed,
        build=lambda ctx: TaskStep(
            "Clear Laravel caches",
            f"{ctx.php} artisan cache:clear && {ctx.php} artisan config:clear && {ctx.php} artisan view:clear",
        ),
    ),
    TaskRule(
        rank=60,
        predicate=lambda ctx: ctx.backend_changed,
        build=_queue_restart,
    ),
]


def plan_deployment_tasks(
    branch: str,
    is_laravel: bool,
    changed_files: Optional[Sequence[str]],
    queue_dashboard_configured: bool = False,
    php_command: str = "php",
    *,
    rules: Sequence[TaskRule] = TASK_RULES,
) -> List[TaskStep]:
    """Return the ordered steps for a deployment.

    The pull step is always first. Every other step requires a Laravel
    project and a matching file in ``changed_files``.
    """
    ctx = PlanContext(
        branch=branch,
        changed_files=tuple(changed_files or ()),
        queue_dashboard_configured=queue_dashboard_configured,
        php=php_command or "php",
    )

    selected = [
        rule
        for rule in rules
        if (is_laravel or not rule.framework_only) and rule.predicate(ctx)
    ]
    selected.sort(key=lambda rule: rule.rank)
    return [rule.build(ctx) for rule in selected]
