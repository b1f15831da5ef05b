"""
pfsbuild package

This package generates packaging files for the modules of the pfsspec
meta-repository and delegates their builds to external tools. CLI-first.

Key responsibilities are split across modules:
- `registry.py`: load the module registry (YAML) into typed records
- `versioning.py`: next version from git tags, commit count and dirty state
- `discovery.py`: excluded packages, notebooks and script entrypoints
- `renderer.py`: `%%token%%` template rendering into packaging files
- `shell.py`: subprocesses, environment overrides, working directory stack
- `configurator.py`: per-module operations (discover, configure, clean, builds)
- `cli.py`: CLI entrypoint and multi-module orchestration
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
