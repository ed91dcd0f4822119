"""Solbuild - dependency resolution and scheduling for multi-project builds.

Usage:
    from solbuild import BuildUnit, Solution

    lib = BuildUnit("Lib", "Lib.dll", path="Lib/Lib.proj", configurations=["Release|AnyCPU"])
    app = BuildUnit("App", "App.exe", path="App/App.proj", configurations=["Release|AnyCPU"])
    app.add_assembly_reference("Lib", hint_path="../Lib/bin/Release/Lib.dll")

    solution = Solution("demo")
    solution.add_unit(lib)
    solution.add_unit(app)
"""

from solbuild.build.graph import DependencyGraph, UnitEntry, load_graph
from solbuild.build.orchestrator import BuildOrchestrator, PassResult, build_pass
from solbuild.build.references import (
    AssemblyReference,
    ProjectReference,
    ReferenceKind,
    WrapperReference,
)
from solbuild.build.resolver import ReferenceDescriptor, ReferenceResolver, SearchContext
from solbuild.build.solution import Solution, load_solution
from solbuild.build.toolchain import Toolchain, get_toolchain, register_toolchain
from solbuild.build.units import BuildUnit
from solbuild.core.models import (
    MAX_TIMESTAMP,
    CompileResult,
    ConfigurationKey,
    UnitConfiguration,
    UnitStatus,
)

__version__ = "0.1.0"

__all__ = [
    "MAX_TIMESTAMP",
    "AssemblyReference",
    "BuildOrchestrator",
    "BuildUnit",
    "CompileResult",
    "ConfigurationKey",
    "DependencyGraph",
    "PassResult",
    "ProjectReference",
    "ReferenceDescriptor",
    "ReferenceKind",
    "ReferenceResolver",
    "SearchContext",
    "Solution",
    "Toolchain",
    "UnitConfiguration",
    "UnitEntry",
    "UnitStatus",
    "WrapperReference",
    "build_pass",
    "get_toolchain",
    "load_graph",
    "load_solution",
    "register_toolchain",
]
