# solution.py: demo solution (three units built with plain copy commands)
# Run: solbuild build -c Debug -v

from solbuild import BuildUnit, Solution

solution = Solution("demo")

CONFIGURATIONS = ["Debug|AnyCPU", "Release|AnyCPU"]


def copy_unit(name: str, output_file: str, source: str) -> BuildUnit:
    unit = BuildUnit(name, output_file, path=f"demo/{name}/{name}.proj", sources=[source])
    for key in CONFIGURATIONS:
        unit.add_configuration(key, command=["cp", source, "$(TargetPath)"])
    return unit


# --- Units ---

# Library with no dependencies
lib = copy_unit("Lib", "Lib.dll", "lib.src")

# Application referencing the library's output by path; the build turns
# this into a dependency on Lib.
app = copy_unit("App", "App.exe", "app.src")
app.add_assembly_reference("Lib", hint_path="../Lib/bin/Debug/Lib.dll")

# Tests run after the application
tests = copy_unit("Tests", "Tests.dll", "tests.src")

solution.add_unit(tests, depends_on=[app])
solution.add_unit(app)
solution.add_unit(lib)
