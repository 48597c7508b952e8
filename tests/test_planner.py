"""Tests for the deployment task planner."""

import pytest

from zephyr.orchestrator import TaskStep, plan_deployment_tasks
from zephyr.orchestrator.planner import TASK_RULES, PlanContext


def labels(steps):
    return [step.label for step in steps]


class TestPlanDeploymentTasks:
    def test_pull_is_always_first(self):
        steps = plan_deployment_tasks("main", True, ["composer.json", "app/Models/User.php"])
        assert steps[0] == TaskStep("Pull latest changes for main", "git pull origin main")

    @pytest.mark.parametrize(
        "changed",
        [
            [],
            None,
            ["README.md"],
            ["docs/guide.md", "storage/logs/.gitignore", "public/robots.txt"],
        ],
    )
    def test_no_framework_paths_plans_only_pull(self, changed):
        steps = plan_deployment_tasks("main", True, changed)
        assert labels(steps) == ["Pull latest changes for main"]

    def test_non_laravel_project_only_pulls(self):
        steps = plan_deployment_tasks(
            "release",
            False,
            ["composer.json", "package.json", "database/migrations/x.php", "app/Foo.php"],
        )
        assert labels(steps) == ["Pull latest changes for release"]

    def test_end_to_end_scenario(self):
        steps = plan_deployment_tasks(
            "main",
            True,
            ["composer.json", "database/migrations/2025_01_01_create_x.php", "resources/js/app.js"],
            queue_dashboard_configured=False,
        )

        assert labels(steps) == [
            "Pull latest changes for main",
            "Install Composer dependencies",
            "Run database migrations",
            "Compile frontend assets",
            "Clear Laravel caches",
            "Restart queue workers",
        ]
        assert steps[1].command == (
            "composer install --no-dev --no-interaction --prefer-dist --optimize-autoloader"
        )
        assert steps[2].command == "php artisan migrate --force"
        assert steps[3].command == "npm run build"
        assert steps[4].command == (
            "php artisan cache:clear && php artisan config:clear && php artisan view:clear"
        )
        assert steps[5].command == "php artisan queue:restart"

    def test_migrations_follow_dependency_install(self):
        steps = plan_deployment_tasks(
            "main", True, ["database/migrations/2024_02_02_add_y.php", "composer.lock"]
        )
        order = labels(steps)
        assert order.index("Run database migrations") > order.index("Install Composer dependencies")
        assert order.index("Run database migrations") > order.index("Pull latest changes for main")

    def test_migration_directory_requires_php_file(self):
        steps = plan_deployment_tasks("main", True, ["database/migrations/.gitkeep"])
        assert "Run database migrations" not in labels(steps)

    def test_node_install_implies_build(self):
        steps = plan_deployment_tasks("main", True, ["package-lock.json"])
        assert labels(steps) == [
            "Pull latest changes for main",
            "Install Node dependencies",
            "Compile frontend assets",
        ]

    @pytest.mark.parametrize("path", ["resources/css/app.css", "resources/js/Pages/Home.vue", "a.tsx", "b.less"])
    def test_frontend_change_builds_without_install(self, path):
        steps = plan_deployment_tasks("main", True, [path])
        assert labels(steps) == ["Pull latest changes for main", "Compile frontend assets"]

    def test_nested_manifest_names_match(self):
        steps = plan_deployment_tasks("main", True, ["packages/tool/composer.json"])
        assert "Install Composer dependencies" in labels(steps)

    def test_horizon_restart_variant(self):
        steps = plan_deployment_tasks(
            "main", True, ["app/Jobs/SendMail.php"], queue_dashboard_configured=True
        )
        assert steps[-1] == TaskStep("Restart Horizon workers", "php artisan horizon:terminate")

    def test_php_command_prefix_is_used(self):
        steps = plan_deployment_tasks(
            "main",
            True,
            ["composer.json", "database/migrations/x.php"],
            php_command="/RunCloud/Packages/php84rc/bin/php",
        )
        commands = {step.label: step.command for step in steps}
        php = "/RunCloud/Packages/php84rc/bin/php"
        assert commands["Install Composer dependencies"].startswith(f"{php} $(command -v composer) install")
        assert commands["Run database migrations"] == f"{php} artisan migrate --force"
        assert commands["Restart queue workers"] == f"{php} artisan queue:restart"

    def test_ordering_comes_from_rank_not_table_order(self):
        shuffled = list(reversed(TASK_RULES))
        changed = ["composer.json", "package.json", "database/migrations/x.php", "app/A.php"]
        assert plan_deployment_tasks("main", True, changed, rules=shuffled) == plan_deployment_tasks(
            "main", True, changed
        )


class TestPlanContext:
    def test_backend_and_frontend_flags(self):
        ctx = PlanContext(
            branch="main",
            changed_files=("app/Http/Kernel.php", "resources/css/app.scss"),
            queue_dashboard_configured=False,
            php="php",
        )
        assert ctx.backend_changed
        assert ctx.frontend_changed
        assert not ctx.composer_changed
        assert not ctx.npm_changed
        assert not ctx.migrations_changed
