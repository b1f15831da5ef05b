"""
renderer.py

Responsibility: Turn a module's computed configuration into packaging files.

Rules:
- Templates mark placeholders as `%%token%%`; every token must have a value
  in the context, otherwise rendering fails.
- Files that are not templated are copied byte-for-byte.
- Rendered output is written with `\\n` newlines, so re-rendering the same
  context yields identical bytes. Existing files are overwritten.

The same dependency and console-script lists are consumed by several tools,
hence the separate formatters for plain text, YAML and INI (setup.cfg).

This module intentionally does NOT know about git or CLI parsing.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, StrictUndefined, TemplateError

from pfsbuild.registry import Dependency, Folders, ModuleSpec

logger = logging.getLogger(__name__)

VERSION_FILE = "_version.py"

YAML_INDENT = "        - "
CFG_INDENT = "    "


class RenderError(RuntimeError):
    pass


@dataclass(frozen=True)
class TemplateFile:
    source: str
    destination: Path
    render: bool = True


@dataclass(frozen=True)
class RenderResult:
    rendered_files: int
    copied_files: int


def format_excludes_cfg(excl: Iterable[str]) -> str:
    return "".join(f"{CFG_INDENT}{e}\n" for e in excl)


def format_dependencies(deps: Iterable[Dependency], indent: str = "") -> str:
    return "".join(f"{indent}{d}\n" for d in deps)


def format_includes_manifest_in(includes: Iterable[str]) -> str:
    return "".join(f"include {i}\n" for i in includes)


def format_console_scripts_yaml(console_scripts: Iterable[object]) -> str:
    return "".join(f"{YAML_INDENT}{s}\n" for s in console_scripts)


def format_console_scripts_cfg(console_scripts: Iterable[object]) -> str:
    return "".join(f"{CFG_INDENT}{s}\n" for s in console_scripts)


def version_file(module: ModuleSpec) -> Path:
    return module.namespace_folder / VERSION_FILE


def build_context(
    module: ModuleSpec,
    *,
    version: str,
    build: int,
    excludes: Sequence[str],
    notebooks: Sequence[str],
    entrypoints: Sequence[object],
) -> dict[str, str]:
    """Placeholder values for one module. Paths are module relative, posix style."""
    if module.source_folder.is_relative_to(module.path):
        src = module.source_folder.relative_to(module.path).as_posix()
    else:
        src = module.source_folder.as_posix()
    return {
        "package_name": module.name,
        "package_url": module.url,
        "package_description": module.description,
        "version": version,
        "version_file": f"{src}/{module.namespace}/{VERSION_FILE}",
        "build": str(build),
        "package_dir_cfg": src,
        "excludes_cfg": format_excludes_cfg(excludes),
        "data_files": format_includes_manifest_in(notebooks),
        "requirements_txt": format_dependencies(module.dependencies),
        "requirements_yaml": format_dependencies(module.dependencies, indent=YAML_INDENT),
        "requirements_cfg": format_dependencies(module.dependencies, indent=CFG_INDENT),
        "console_scripts_yaml": format_console_scripts_yaml(entrypoints),
        "console_scripts_cfg": format_console_scripts_cfg(entrypoints),
    }


def template_files(module: ModuleSpec, folders: Folders) -> list[TemplateFile]:
    """The fixed set of packaging files generated for every module."""
    recipe = module.path / folders.conda_recipe
    ups = module.path / folders.ups
    return [
        TemplateFile("_version.py", version_file(module)),
        TemplateFile("_meta.yaml", recipe / "meta.yaml"),
        TemplateFile("_conda_build_config.yaml", recipe / "conda_build_config.yaml", render=False),
        TemplateFile("_setup.cfg", module.path / "setup.cfg"),
        TemplateFile("_setup.py", module.path / "setup.py"),
        TemplateFile("_requirements.txt", module.path / "requirements.txt"),
        TemplateFile("_MANIFEST.in", module.path / "MANIFEST.in"),
        # EUPS
        TemplateFile("_SConstruct", module.path / "SConstruct"),
        TemplateFile("_eupspkg.cfg.sh", ups / "eupspkg.cfg.sh", render=False),
        TemplateFile("_scons.table", ups / f"{module.name}.table", render=False),
        TemplateFile("_scons.cfg", ups / f"{module.name}.cfg", render=False),
    ]


def _environment() -> Environment:
    # Only `%%token%%` is special; `{{ }}` is left alone for conda-build's own jinja.
    return Environment(
        variable_start_string="%%",
        variable_end_string="%%",
        block_start_string="<%",
        block_end_string="%>",
        comment_start_string="<#",
        comment_end_string="#>",
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )


def render_text(text: str, context: dict[str, str], env: Environment | None = None) -> str:
    env = env or _environment()
    return env.from_string(text).render(**context)


def render_files(
    *,
    assets_folder: str | Path,
    files: Sequence[TemplateFile],
    context: dict[str, str],
) -> RenderResult:
    """
    Render or copy each template into its destination, creating parent
    directories as needed.
    """
    assets = Path(assets_folder)
    if not assets.is_dir():
        raise RenderError(f"Template directory not found: {assets}")

    env = _environment()
    rendered = 0
    copied = 0

    for tf in files:
        src_path = assets / tf.source
        if not src_path.is_file():
            raise RenderError(f"Template file not found: {src_path}")
        dst_path = Path(tf.destination)
        dst_path.parent.mkdir(parents=True, exist_ok=True)

        if not tf.render:
            shutil.copy2(src_path, dst_path)
            logger.info("Copied %s", dst_path)
            copied += 1
            continue

        try:
            out = render_text(src_path.read_text(encoding="utf-8"), context, env)
        except (TemplateError, UnicodeDecodeError) as e:
            raise RenderError(f"Failed rendering template file {tf.source}: {e}") from e
        dst_path.write_text(out, encoding="utf-8", newline="\n")
        logger.info("Generated %s", dst_path)
        rendered += 1

    return RenderResult(rendered_files=rendered, copied_files=copied)
