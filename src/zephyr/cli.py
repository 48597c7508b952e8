"""Command-line interface for Zephyr."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from .config import AppConfig, load_config
from .interaction import AutoResponseHandler, CLIInteractionHandler, UserInteractionHandler
from .local.preflight import ensure_gitignore_entry
from .local.session import LocalCommandError
from .orchestrator import DeploymentError, SnapshotStore, resolve_pending_snapshot, run_remote_tasks
from .paths import PROJECT_CONFIG_DIR, get_project_config_dir

console = Console(highlight=False)
error_console = Console(stderr=True, highlight=False)


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    config: AppConfig
    root_dir: Path
    handler: UserInteractionHandler


def _add_root_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        type=str,
        default=None,
        help="Project checkout to work in (default: current directory).",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zephyr",
        description="Deploy a Laravel project to a remote server over SSH.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy_parser = subparsers.add_parser("deploy", help="Deploy the configured branch")
    _add_root_argument(deploy_parser)
    deploy_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file (default: .zephyr/deploy.json).",
    )
    deploy_parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Answer every prompt with its default (non-interactive).",
    )
    deploy_parser.add_argument(
        "--skip-preflight",
        action="store_true",
        help="Skip local linting and tests.",
    )

    logs_parser = subparsers.add_parser("logs", help="View deployment run logs")
    _add_root_argument(logs_parser)
    logs_parser.add_argument(
        "--list", "-l", action="store_true", dest="list_logs",
        help="List available run logs",
    )
    logs_parser.add_argument(
        "--file", "-f", type=str,
        help="Show a specific log file",
    )
    logs_parser.add_argument(
        "--metadata-dir", type=str, default=PROJECT_CONFIG_DIR,
        help="Metadata directory holding the logs",
    )
    return parser


def _root_dir(args: argparse.Namespace) -> Path:
    return Path(args.root).resolve() if args.root else Path.cwd()


def _build_handler(args: argparse.Namespace, config: AppConfig) -> UserInteractionHandler:
    if getattr(args, "yes", False) or config.interaction.mode == "auto":
        return AutoResponseHandler(console=console, error_console=error_console)
    return CLIInteractionHandler(console=console, error_console=error_console)


def _build_context(args: argparse.Namespace) -> CLIContext:
    root_dir = _root_dir(args)
    config = load_config(args.config, root_dir=str(root_dir))
    if args.skip_preflight:
        config.deployment.run_preflight = False
    return CLIContext(
        config=config,
        root_dir=root_dir,
        handler=_build_handler(args, config),
    )


def handle_deploy_command(args: argparse.Namespace) -> int:
    context = _build_context(args)
    config = context.config
    metadata_dir = config.deployment.metadata_dir

    ensure_gitignore_entry(context.root_dir, context.handler, metadata_dir=metadata_dir)
    snapshot = resolve_pending_snapshot(
        SnapshotStore(context.root_dir, metadata_dir),
        config.target,
        context.handler,
    )
    run_remote_tasks(
        config.target,
        snapshot,
        root_dir=context.root_dir,
        handler=context.handler,
        settings=config.deployment,
    )
    return 0


def handle_logs_command(args: argparse.Namespace) -> int:
    """Handle the logs subcommand."""
    log_dir = get_project_config_dir(_root_dir(args), args.metadata_dir)
    log_files = sorted(log_dir.glob("*.log"), key=lambda p: p.stat().st_mtime, reverse=True) if log_dir.is_dir() else []

    if args.file:
        target_file = Path(args.file)
        if not target_file.exists():
            target_file = log_dir / args.file
        if not target_file.exists():
            error_console.print(f"Log file not found: {args.file}", style="red")
            return 1
        console.print(target_file.read_text(encoding="utf-8"), markup=False)
        return 0

    if not log_files:
        console.print("No deployment logs found. Run a deployment first.")
        return 0

    if args.list_logs:
        table = Table(title=f"Run logs in {log_dir}")
        table.add_column("#", justify="right")
        table.add_column("Modified")
        table.add_column("Size", justify="right")
        table.add_column("File")
        for index, log_file in enumerate(log_files, 1):
            stat = log_file.stat()
            modified = datetime.fromtimestamp(stat.st_mtime).strftime("%Y-%m-%d %H:%M:%S")
            table.add_row(str(index), modified, f"{stat.st_size} B", log_file.name)
        console.print(table)
        return 0

    console.print(f"Latest log: {log_files[0]}", style="cyan")
    console.print(log_files[0].read_text(encoding="utf-8"), markup=False)
    return 0


def dispatch_command(args: argparse.Namespace) -> int:
    if args.command == "logs":
        return handle_logs_command(args)
    if args.command == "deploy":
        return handle_deploy_command(args)
    raise ValueError(f"Unsupported command: {args.command}")


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return dispatch_command(args)
    except DeploymentError as exc:
        error_console.print(str(exc), style="red", markup=False)
        return 1
    except (FileNotFoundError, ValueError, LocalCommandError) as exc:
        error_console.print(f"Error: {exc}", style="red", markup=False)
        return 1


def app_main() -> None:
    sys.exit(run_cli())
