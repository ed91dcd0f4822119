"""Build commands: solbuild build, solbuild plan."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich import box
from rich.panel import Panel
from rich.table import Table

from solbuild.cli.main import console, get_status_style, setup_logging, solution_argument
from solbuild.core.config import Settings, get_settings
from solbuild.core.errors import SolbuildError, atomic_write
from solbuild.core.logging import BuildLogger, Verbosity
from solbuild.core.models import ConfigurationKey

SUMMARY_FILE = "last_pass.json"


def _effective_settings(
    output_dir: str | None, reference_path: tuple[str, ...], build_dir: str | None,
) -> Settings:
    return get_settings().with_overrides(
        output_dir=Path(output_dir) if output_dir else None,
        reference_paths=[Path(p) for p in reference_path] or None,
        build_dir=Path(build_dir) if build_dir else None,
    )


def _load(solution_path: str, configuration: str, settings: Settings):
    """Load the solution into a graph; exits with a red message on any failure."""
    from solbuild.build.resolver import ReferenceResolver
    from solbuild.build.solution import load_solution

    try:
        requested = ConfigurationKey.parse(configuration)
        solution = load_solution(solution_path)
        resolver = ReferenceResolver.from_settings(settings)
        graph = solution.load_graph(output_dir=settings.output_dir, resolver=resolver)
    except Exception as e:
        console.print(f"[red]Error loading solution:[/red] {e}")
        sys.exit(1)
    return solution, graph, requested


def _common_options(fn):
    fn = click.option("--build-dir", default=None, help="Override build directory (logs, summary)")(fn)
    fn = click.option(
        "--reference-path", multiple=True, help="Extra directory searched for references (repeatable)"
    )(fn)
    fn = click.option("--output-dir", default=None, help="Put every unit's output in this directory")(fn)
    fn = click.option(
        "--config", "-c", "configuration", default="Debug", help="Configuration as Name|Platform"
    )(fn)
    return fn


@click.command()
@solution_argument
@_common_options
@click.option("--toolchain", "toolchain_name", default="command", help="Toolchain used to compile units")
@click.option("--verbose", "-v", count=True, help="Verbosity level: -v per-unit progress, -vv debug details")
def build(
    solution_path: str,
    configuration: str,
    output_dir: str | None,
    reference_path: tuple[str, ...],
    build_dir: str | None,
    toolchain_name: str,
    verbose: int,
):
    """Build every unit of a solution for one configuration.

    SOLUTION_PATH defaults to solution.py in the current directory.
    """
    from solbuild.build.orchestrator import BuildOrchestrator
    from solbuild.build.toolchain import get_toolchain

    setup_logging(verbose)
    settings = _effective_settings(output_dir, reference_path, build_dir)
    solution, graph, requested = _load(solution_path, configuration, settings)

    try:
        if toolchain_name == "command":
            toolchain = get_toolchain(toolchain_name, timeout=settings.tool_timeout)
        else:
            toolchain = get_toolchain(toolchain_name)
    except SolbuildError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(
        Panel(
            f"[bold]Solution:[/bold] {solution.name}\n"
            f"[bold]Configuration:[/bold] {requested}\n"
            f"[bold]Units:[/bold] {len(graph)}\n"
            f"[bold]Build:[/bold] {settings.build_dir}",
            title="[bold cyan]Solbuild[/bold cyan]",
            border_style="cyan",
        )
    )

    build_logger = BuildLogger(
        verbosity=Verbosity(min(verbose, Verbosity.DEBUG)),
        build_dir=settings.build_dir,
        console=console,
    )
    try:
        result = BuildOrchestrator(toolchain, build_logger).build_pass(graph, requested)
    except SolbuildError as e:
        console.print(f"\n[red]Build failed:[/red] {e}")
        sys.exit(1)

    table = Table(title="Build Summary", box=box.ROUNDED)
    table.add_column("Unit", style="bold", no_wrap=True)
    table.add_column("Configuration")
    table.add_column("Status", justify="center")
    table.add_column("Detail")

    for name, status in result.statuses.items():
        style = get_status_style(status.value)
        if name in result.errors:
            detail = result.errors[name]
        elif name in result.up_to_date:
            detail = "up-to-date"
        elif name in result.results:
            detail = result.results[name].value
        else:
            detail = ""
        table.add_row(
            name,
            result.configurations.get(name) or "[dim]-[/dim]",
            f"[{style}]{status.value}[/{style}]",
            detail,
        )

    console.print()
    console.print(table)

    built = len(result.order) - len(result.up_to_date)
    console.print(
        f"\n[bold]Total:[/bold] {built} built, {len(result.up_to_date)} up-to-date, "
        f"{len(result.all_failed)} failed"
    )

    settings.build_dir.mkdir(parents=True, exist_ok=True)
    atomic_write(settings.build_dir / SUMMARY_FILE, json.dumps(result.to_dict(), indent=2))

    if not result.success:
        sys.exit(1)


@click.command()
@solution_argument
@_common_options
def plan(
    solution_path: str,
    configuration: str,
    output_dir: str | None,
    reference_path: tuple[str, ...],
    build_dir: str | None,
):
    """Show the build order for a configuration without compiling anything.

    SOLUTION_PATH defaults to solution.py in the current directory.
    """
    from solbuild.build.orchestrator import BuildOrchestrator

    settings = _effective_settings(output_dir, reference_path, build_dir)
    solution, graph, requested = _load(solution_path, configuration, settings)

    build_logger = BuildLogger(verbosity=Verbosity.DEFAULT, console=console)
    try:
        result = BuildOrchestrator(build_logger=build_logger).build_pass(graph, requested, dry_run=True)
    except SolbuildError as e:
        console.print(f"[red]Cannot plan build:[/red] {e}")
        sys.exit(1)

    table = Table(title=f"Build Plan: {solution.name} ({requested})", box=box.ROUNDED)
    table.add_column("#", justify="right")
    table.add_column("Unit", style="bold")
    table.add_column("Configuration")
    table.add_column("Depends on")

    names = {key: unit.name for key, unit in graph.items()}
    for position, name in enumerate(result.order, start=1):
        key = graph.find_by_name(name)
        depends = sorted(names[dep] for dep in graph.edges(key))
        table.add_row(str(position), name, result.configurations.get(name) or "", ", ".join(depends))

    console.print(table)

    skipped = [name for name, config in result.configurations.items() if config is None]
    if skipped:
        console.print(f"[dim]Skipped (no matching configuration): {', '.join(skipped)}[/dim]")
    reference_only = [names[key] for key in graph.reference_only]
    if reference_only:
        console.print(f"[dim]Reference only: {', '.join(reference_only)}[/dim]")
