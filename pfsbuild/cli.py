"""
cli.py

Responsibility: CLI entrypoint for pfsbuild.

High-level flow (one subcommand per invocation):
1) Load the module registry -> `Registry`
2) Select modules (`--module`, default all, in registry order)
3) For each module, change into its root and run the operation on a
   `PackageConfigurator`; the previous working directory is always restored
4) Print the report (`discover`) and map failures to an exit code

Runs are fail-fast: the first failing module aborts the run unless
`--keep-going` is given, in which case the error is logged and the next
module is processed.

Concerns stay isolated:
- Registry: `registry.py`
- Versioning: `versioning.py`
- Discovery / rendering: `discovery.py`, `renderer.py`
- Processes, environment, working directory: `shell.py`
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import yaml

from pfsbuild.configurator import ConfiguratorError, Options, PackageConfigurator
from pfsbuild.discovery import DiscoveryError
from pfsbuild.registry import Registry, RegistryError, load_registry
from pfsbuild.renderer import RenderError
from pfsbuild.shell import CommandError, pushd
from pfsbuild.versioning import GitError, VersionError

logger = logging.getLogger("pfsbuild")

ERRORS = (
    CommandError,
    ConfiguratorError,
    DiscoveryError,
    GitError,
    NotImplementedError,
    OSError,
    RegistryError,
    RenderError,
    VersionError,
)

# subcommand -> (PackageConfigurator method, accepts passthrough args, help)
COMMANDS: dict[str, tuple[str, bool, str]] = {
    "discover": ("discover", False, "Discover and print package information (dry run)"),
    "configure": ("configure", False, "Generate the setup configuration files"),
    "clean": ("clean", False, "Remove files generated by the build process"),
    "python-build": ("python_build", True, "Build with `python setup.py build`"),
    "pip-install": ("pip_install", True, "Install with `pip install .`"),
    "conda-build": ("conda_build", True, "Build the conda package with conda-build"),
    "scons": ("scons_build", True, "Build with scons"),
    "eups-create": ("eups_create", False, "Create an EUPS package (reserved)"),
    "conda-install": ("conda_install", True, "Install the locally built conda package"),
}

_FOLDER_COMMANDS = ("clean", "conda-build", "conda-install")


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def _absolute(value: str | None) -> str | None:
    # Resolved before the working directory moves into a module.
    return str(Path(value).resolve()) if value else None


def _options(args: argparse.Namespace, extra: list[str]) -> Options:
    return Options(
        next_version=args.next_version,
        build_number=args.build_number,
        package_folder=_absolute(getattr(args, "package_folder", None)),
        output_folder=_absolute(getattr(args, "output_folder", None)),
        extra_args=tuple(extra),
    )


def run_modules(
    registry: Registry,
    command: str,
    options: Options,
    *,
    modules: list[str] | None = None,
    keep_going: bool = False,
) -> tuple[list[Any], int]:
    """
    Execute `command` for each selected module, sequentially.

    Returns the per-module results of successful modules and the exit code:
    0 when everything succeeded, otherwise the code of the last failure.
    """
    method, _passthrough, _help = COMMANDS[command]
    selected = registry.select(modules)

    results: list[Any] = []
    exit_code = 0
    for module in selected:
        pc = PackageConfigurator(module=module, folders=registry.folders)
        logger.info("Processing package `%s`.", pc.name)
        try:
            with pushd(module.path):
                results.append(getattr(pc, method)(options))
        except ERRORS as ex:
            if not keep_going:
                raise
            logger.error("Package `%s` failed: %s", pc.name, ex)
            exit_code = getattr(ex, "returncode", 1)
    return results, exit_code


def modules_cmd(args: argparse.Namespace, extra: list[str]) -> int:
    registry = load_registry(args.config, root=args.root, assets=args.assets_folder)
    results, exit_code = run_modules(
        registry,
        args.command,
        _options(args, extra),
        modules=args.module,
        keep_going=bool(args.keep_going),
    )
    if args.command == "discover" and results:
        sys.stdout.write(yaml.safe_dump(results, sort_keys=False))
    return exit_code


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--module", nargs="+", default=None, help="Optional list of modules, default is all")
    common.add_argument("--next-version", default=None, help="Override next version (vX.Y.Z)")
    common.add_argument("--build-number", type=int, default=None, help="Override build number")
    common.add_argument("--root", default=".", help="Meta-repository root (default: current directory)")
    common.add_argument("--config", default=None, help="Module registry YAML (default: bundled modules.yaml)")
    common.add_argument("--assets-folder", default=None, help="Folder of packaging templates (overrides registry)")
    common.add_argument("--keep-going", action="store_true", help="Log failures and continue with the next module")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    common.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")

    p = argparse.ArgumentParser(prog="pfsbuild", description="Package configuration and build tool for pfsspec modules")
    sub = p.add_subparsers(dest="command", required=True)

    for command, (_method, passthrough, help_text) in COMMANDS.items():
        c = sub.add_parser(command, parents=[common], help=help_text)
        if command in _FOLDER_COMMANDS:
            c.add_argument("--package-folder", default=None, help="Override package folder")
            c.add_argument("--output-folder", default=None, help="Override output folder")
        c.set_defaults(func=modules_cmd, passthrough=passthrough)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args, extra = parser.parse_known_args(argv)
    if extra and not args.passthrough:
        parser.error(f"unrecognized arguments: {' '.join(extra)}")

    _configure_logging(bool(args.verbose), bool(args.quiet))
    try:
        return int(args.func(args, extra))
    except ERRORS as ex:
        logger.error("%s", ex)
        return int(getattr(ex, "returncode", 1))


if __name__ == "__main__":
    raise SystemExit(main())
