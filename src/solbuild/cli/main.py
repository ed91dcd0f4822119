"""Solbuild CLI: main entry point and shared utilities."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console

console = Console()

# Color per unit status
STATUS_STYLES = {
    "done": "green",
    "failed": "red",
    "skipped": "dim",
    "pending": "yellow",
}


def get_status_style(status: str) -> str:
    """Return Rich style string for a unit status."""
    return STATUS_STYLES.get(status, "white")


def setup_logging(verbose: int) -> None:
    """Configure module loggers: warnings by default, -vv for debug."""
    level = logging.DEBUG if verbose >= 2 else logging.INFO if verbose == 1 else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _resolve_solution_path(
    ctx: click.Context, param: click.Parameter, value: str | None,
) -> str:
    """Click callback: default to ./solution.py when no argument is given."""
    if value is not None:
        return value
    default = str(Path.cwd() / "solution.py")
    if not Path(default).exists():
        console.print(
            "[red]Error:[/red] No solution file specified and "
            "[bold]solution.py[/bold] not found in the current directory."
        )
        sys.exit(1)
    return default


def solution_argument(fn):
    """Shared Click argument decorator for SOLUTION_PATH with ./solution.py default."""
    return click.argument(
        "solution_path",
        required=False,
        default=None,
        callback=_resolve_solution_path,
        is_eager=False,
    )(fn)


@click.group()
@click.version_option(package_name="solbuild")
def main():
    """Solbuild: dependency resolution and scheduling for multi-project builds."""
    pass


def cli():
    """Entrypoint that loads .env before running the CLI."""
    from dotenv import load_dotenv

    load_dotenv()
    main()


# Import subcommand modules to register commands
from solbuild.cli.build_commands import build, plan  # noqa: E402
from solbuild.cli.resolve_commands import resolve  # noqa: E402

# Register commands
main.add_command(build)
main.add_command(plan)
main.add_command(resolve)
