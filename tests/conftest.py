"""Shared test fixtures for Solbuild."""

from __future__ import annotations

import io
import os

import pytest
from rich.console import Console

from solbuild.build.graph import load_graph
from solbuild.build.resolver import ReferenceResolver
from solbuild.build.units import BuildUnit
from solbuild.core.config import reset_settings
from solbuild.core.logging import BuildLogger, Verbosity
from tests.helpers.builders import FakeToolchain, make_entries


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch, tmp_path):
    """Isolate every test from ambient SOLBUILD_ variables and .env files."""
    for name in list(os.environ):
        if name.startswith("SOLBUILD_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def resolver():
    """Resolver with no search roots and in-process inspection."""
    return ReferenceResolver(isolate_inspection=False)


@pytest.fixture
def toolchain():
    return FakeToolchain()


@pytest.fixture
def quiet_logger():
    """BuildLogger writing to an in-memory console."""
    return BuildLogger(verbosity=Verbosity.DEBUG, console=Console(file=io.StringIO(), width=200))


@pytest.fixture
def workspace(tmp_path):
    """Root directory holding unit directories."""
    root = tmp_path / "src"
    root.mkdir()
    return root


@pytest.fixture
def make_unit(workspace):
    """Factory for units living in ``workspace/<name>/`` with Debug and Release configurations."""

    def _make(name, output_file=None, configurations=("Debug|AnyCPU", "Release|AnyCPU"), **kwargs):
        unit_dir = workspace / name
        unit_dir.mkdir(exist_ok=True)
        return BuildUnit(
            name,
            output_file or f"{name}.dll",
            path=unit_dir / f"{name}.proj",
            configurations=configurations,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_graph(resolver):
    """Load units into a graph with the in-process resolver."""

    def _make(*units, depends=None, reference_only=(), output_dir=None):
        entries = make_entries(*units, depends=depends, reference_only=reference_only)
        return load_graph(entries, output_dir=output_dir, resolver=resolver)

    return _make
