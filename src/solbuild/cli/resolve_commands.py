"""Resolve command: run the reference resolver on its own."""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich import box
from rich.table import Table

from solbuild.cli.main import console, setup_logging
from solbuild.core.config import get_settings
from solbuild.core.errors import SolbuildError


@click.command()
@click.argument("name")
@click.option("--file-name", default=None, help="File to look for (default NAME.dll)")
@click.option("--hint-path", default=None, help="Hint path, relative to --unit-dir")
@click.option("--folder-key", default=None, help="Assembly folder key to search first")
@click.option("--unit-dir", default=".", help="Directory of the referencing unit")
@click.option("--reference-path", multiple=True, help="Extra directory to search (repeatable)")
@click.option("--verbose", "-v", count=True, help="-vv shows every search step")
def resolve(
    name: str,
    file_name: str | None,
    hint_path: str | None,
    folder_key: str | None,
    unit_dir: str,
    reference_path: tuple[str, ...],
    verbose: int,
):
    """Resolve a reference NAME and show where it was found."""
    from solbuild.build.resolver import ReferenceDescriptor, ReferenceResolver, SearchContext

    setup_logging(verbose)
    resolver = ReferenceResolver.from_settings(get_settings())
    descriptor = ReferenceDescriptor(
        name=name,
        file_name=file_name,
        hint_path=hint_path,
        assembly_folder_key=folder_key,
    )
    context = SearchContext(
        unit_dir=Path(unit_dir).resolve(),
        reference_paths=[Path(p) for p in reference_path],
    )

    try:
        resolved = resolver.resolve(descriptor, context)
    except SolbuildError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    table = Table(title=f"Reference: {name}", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Path", str(resolved.path))
    table.add_row("Provenance", resolved.provenance.value)
    table.add_row("Exists", "yes" if resolved.exists else "[yellow]no[/yellow]")
    table.add_row("Copy local", "yes" if resolver.is_copy_local(resolved) else "no")
    table.add_row("System library", "yes" if resolver.is_system_library(resolved.path) else "no")
    console.print(table)
