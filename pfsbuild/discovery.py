"""
discovery.py

Responsibility: Read-only scans of a module's source tree.

- package exclusions (unit tests and namespace placeholder packages)
- Jupyter notebooks to ship as data files
- command-line entrypoints under the namespace's `scripts` package

Results are sorted so that generated files are stable between runs.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from pfsbuild.registry import ModuleSpec

logger = logging.getLogger(__name__)

TEST_EXCLUDE = "test*"
NOTEBOOK_PATTERN = "*.ipynb"
SCRIPTS_FOLDER = "scripts"

# First line of a standalone executable Python script.
_SCRIPT_MARKER = re.compile(r"^#!\s*/usr/bin/env\s+python3?\s*$")


class DiscoveryError(ValueError):
    pass


@dataclass(frozen=True)
class Entrypoint:
    command: str
    target: str

    def __str__(self) -> str:
        return f"{self.command} = {self.target}"


def get_excludes(namespace: str) -> list[str]:
    """
    Packages excluded from `find_packages`: unit tests and every proper prefix
    of the namespace, so that namespace directories never ship an __init__.py.
    """
    excl = [TEST_EXCLUDE]
    parts = namespace.strip("/").split("/")[:-1]
    for i in range(len(parts)):
        excl.append("/".join(parts[: i + 1]))
    return excl


def _manifest_path(path: Path, module: ModuleSpec) -> str:
    # Source folders outside the module root keep their absolute path.
    if path.is_relative_to(module.path):
        return path.relative_to(module.path).as_posix()
    return path.as_posix()


def find_notebooks(module: ModuleSpec) -> list[str]:
    """Notebooks under the module namespace, relative to the module root."""
    root = module.namespace_folder
    if not root.is_dir():
        return []
    nbs = [_manifest_path(p, module) for p in root.rglob(NOTEBOOK_PATTERN) if p.is_file()]
    return sorted(nbs)


def _is_script(path: Path) -> bool:
    with path.open(encoding="utf-8", errors="replace") as f:
        return bool(_SCRIPT_MARKER.match(f.readline().rstrip("\r\n")))


def command_name(stem: str, prefix: str = "") -> str:
    cmd = stem.replace("_", "")
    return f"{prefix}-{cmd}" if prefix else cmd


def find_entrypoints(module: ModuleSpec) -> list[Entrypoint]:
    scripts = module.namespace_folder / SCRIPTS_FOLDER
    entrypoints: list[Entrypoint] = []
    seen: dict[str, str] = {}
    if scripts.is_dir():
        for fn in sorted(scripts.rglob("*.py"), key=lambda p: p.relative_to(scripts).as_posix()):
            if not fn.is_file() or not _is_script(fn):
                continue
            rel = fn.relative_to(scripts).with_suffix("")
            target = ".".join([module.dotted_namespace, SCRIPTS_FOLDER, *rel.parts])
            command = command_name(fn.stem, module.entrypoint_prefix)
            if command in seen:
                raise DiscoveryError(
                    f"Scripts `{seen[command]}` and `{target}` both map to command `{command}`."
                )
            seen[command] = target
            entrypoints.append(Entrypoint(command, f"{target}:main"))
            logger.info("Found entrypoint `%s`.", fn.stem)

    if not entrypoints:
        logger.info("No command-line entrypoints found.")
    return entrypoints
