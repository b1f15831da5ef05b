"""
configurator.py

Responsibility: The per-module operations behind each CLI command.

A `PackageConfigurator` combines one `ModuleSpec` with the registry folders
and exposes discover / configure / clean plus thin delegations to external
build tools. Build tools are run in the module root with a copied environment;
their output is not interpreted.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pfsbuild import discovery, renderer, shell
from pfsbuild.registry import Folders, ModuleSpec
from pfsbuild.versioning import GitRepository, Repository, ResolvedVersion, resolve_version

logger = logging.getLogger(__name__)

ENV_CONDA_PKGS_DIRS = "CONDA_PKGS_DIRS"


class ConfiguratorError(RuntimeError):
    pass


@dataclass(frozen=True)
class Options:
    """Command-line values that influence a single operation."""

    next_version: str | None = None
    build_number: int | None = None
    package_folder: str | None = None
    output_folder: str | None = None
    extra_args: tuple[str, ...] = ()


@dataclass
class PackageConfigurator:
    module: ModuleSpec
    folders: Folders
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)

    @property
    def name(self) -> str:
        return self.module.name

    def repository(self) -> Repository:
        return GitRepository(self.module.path)

    # -- helpers -----------------------------------------------------------

    def get_versions(self, options: Options) -> ResolvedVersion:
        return resolve_version(
            self.repository(),
            next_version=options.next_version,
            build_number=options.build_number,
        )

    def package_folder(self, options: Options) -> Path:
        """Conda package cache: command line, then $CONDA_PKGS_DIRS, then registry."""
        value = options.package_folder or self.environ.get(ENV_CONDA_PKGS_DIRS)
        return Path(value).resolve() if value else self.folders.conda_packages

    def output_folder(self, options: Options) -> Path:
        if options.output_folder:
            return Path(options.output_folder).resolve()
        return Path(str(self.folders.build_output).format(name=self.module.key))

    def _run(self, cmd: Sequence[str], env: Mapping[str, str] | None = None) -> None:
        shell.run(cmd, cwd=self.module.path, env=env)

    def _conda_env(self, package_folder: Path) -> dict[str, str]:
        return shell.override_env({ENV_CONDA_PKGS_DIRS: str(package_folder)}, base=self.environ)

    # -- operations --------------------------------------------------------

    def discover(self, options: Options) -> dict[str, Any]:
        """
        Dry run: resolve the version and list what `configure` would use.
        """
        logger.info("Executing setup command `discover` for package `%s`.", self.name)

        resolved = self.get_versions(options)
        return {
            "package": self.name,
            "path": str(self.module.path),
            "tag": resolved.tag,
            "next_version": resolved.version.tag,
            "build": resolved.build,
            "excludes": discovery.get_excludes(self.module.namespace),
            "notebooks": discovery.find_notebooks(self.module),
            "entrypoints": [str(e) for e in discovery.find_entrypoints(self.module)],
        }

    def configure(self, options: Options) -> renderer.RenderResult:
        """Generate the setup configuration files for the package."""
        logger.info("Executing setup command `configure` for package `%s`.", self.name)

        resolved = self.get_versions(options)
        return self.generate_config(resolved)

    def generate_config(self, resolved: ResolvedVersion) -> renderer.RenderResult:
        if not self.module.source_folder.is_dir():
            raise ConfiguratorError(f"Source folder not found: {self.module.source_folder}")

        context = renderer.build_context(
            self.module,
            version=str(resolved.version),
            build=resolved.build,
            excludes=discovery.get_excludes(self.module.namespace),
            notebooks=discovery.find_notebooks(self.module),
            entrypoints=discovery.find_entrypoints(self.module),
        )

        logger.info("Generating setup configuration files.")
        return renderer.render_files(
            assets_folder=self.folders.assets,
            files=renderer.template_files(self.module, self.folders),
            context=context,
        )

    def clean(self, options: Options) -> list[Path]:
        """
        Remove files generated by the build process, but not the configuration.
        Package and output folders are only removed when given explicitly.
        Returns the directories actually removed.
        """
        logger.info("Executing setup command `clean` for package `%s`.", self.name)

        path = self.module.path
        egg_info = f"{self.name.replace('-', '_')}.egg-info"
        targets = [
            path / ".eggs",
            self.module.source_folder / egg_info,
            path / "build",
            path / "dist",
        ]
        if options.package_folder:
            targets.append(Path(options.package_folder))
        if options.output_folder:
            targets.append(Path(options.output_folder))

        return [t for t in targets if shell.rmdir(t)]

    def python_build(self, options: Options) -> None:
        logger.info("Executing setup command `python setup.py build` for package `%s`.", self.name)
        self._run([sys.executable, "setup.py", "build", "-v", *options.extra_args])

    def pip_install(self, options: Options) -> None:
        logger.info("Executing setup command `pip install` for package `%s`.", self.name)
        self._run([sys.executable, "-m", "pip", "install", *options.extra_args, "."])

    def conda_build(self, options: Options) -> None:
        logger.info("Executing setup command `conda-build` for package `%s`.", self.name)

        package_folder = shell.mkdir(self.package_folder(options))
        output_folder = shell.mkdir(self.output_folder(options))

        cmd = ["conda", "build", "--output-folder", str(output_folder), *options.extra_args, self.folders.conda_recipe]
        self._run(cmd, env=self._conda_env(package_folder))

    def scons_build(self, options: Options) -> None:
        logger.info("Executing setup command `scons` for package `%s`.", self.name)
        self._run(["scons", *options.extra_args])

    def eups_create(self, options: Options) -> None:
        # eups distrib create -v -s build/eups -d tarball -j pfsspec_core v0.1.1
        raise NotImplementedError("Command `eups-create` is not implemented.")

    def conda_install(self, options: Options) -> None:
        """Install the locally built conda package of the module."""
        logger.info("Executing setup command `conda install` for package `%s`.", self.name)

        package_folder = self.package_folder(options)
        output_folder = self.output_folder(options)

        cmd = ["conda", "install", "--use-local", "--channel", str(output_folder), *options.extra_args, self.name]
        self._run(cmd, env=self._conda_env(package_folder))
