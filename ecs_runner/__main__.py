"""
Generate the non-async modules with 'python -m ecs_runner'
"""
import os
import pathlib
import importlib
import ecs_runner
from ecs_runner._async_tools import _generate_sync_module


package_path = pathlib.Path(ecs_runner.__file__).parent

for name in sorted(os.listdir(package_path / "asynchrone")):
    if not name.endswith(".py") or name.startswith("_"):
        continue
    name = name[:-3]
    module = importlib.import_module(f"{ecs_runner.__name__}.asynchrone.{name}")
    output_filename = package_path / "synchrone" / (name+".py")
    with open(output_filename, "w") as f:
        f.write(_generate_sync_module(module))
