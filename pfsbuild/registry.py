"""
registry.py

Responsibility: Load the module registry (YAML) into immutable, typed records.

The registry lists every buildable unit of the meta-repository. A `package`
section holds defaults shared by all modules, where `{name}` is replaced with
the module key; each entry under `modules` may override any of them. Module
level `dependencies` are appended to the shared list, in order.

Everything downstream (versioning, discovery, rendering) treats the loaded
`Registry` as the single source of truth.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_REGISTRY = Path(__file__).with_name("modules.yaml")
DEFAULT_ASSETS = Path(__file__).with_name("templates")

_PACKAGE_FIELDS = ("name", "path", "url", "namespace", "source_folder", "entrypoint_prefix")


class RegistryError(ValueError):
    pass


@dataclass(frozen=True)
class Dependency:
    """A requirement: package name plus zero or more version constraints."""

    name: str
    constraints: tuple[str, ...] = ()

    def __str__(self) -> str:
        if not self.constraints:
            return self.name
        return f"{self.name} {','.join(self.constraints)}"


@dataclass(frozen=True)
class ModuleSpec:
    """
    One buildable unit of the library.

    `path` is the git repository root of the module, `source_folder` the
    directory that holds the namespace tree. `namespace` is slash separated.
    """

    key: str
    name: str
    path: Path
    url: str
    namespace: str
    source_folder: Path
    entrypoint_prefix: str = ""
    dependencies: tuple[Dependency, ...] = ()
    description: str = ""

    @property
    def dotted_namespace(self) -> str:
        return self.namespace.replace("/", ".")

    @property
    def namespace_folder(self) -> Path:
        return self.source_folder.joinpath(*self.namespace.split("/"))


@dataclass(frozen=True)
class Folders:
    """Folder conventions shared by all modules."""

    conda_packages: Path
    build_output: Path
    assets: Path
    conda_recipe: str = "recipe"
    ups: str = "ups"


@dataclass(frozen=True)
class Registry:
    root: Path
    folders: Folders
    modules: dict[str, ModuleSpec] = field(default_factory=dict)

    def select(self, keys: list[str] | None = None) -> list[ModuleSpec]:
        """
        Return the requested modules in the given order, or all modules in
        registry order. Unknown keys are rejected before anything runs.
        """
        if not keys:
            return list(self.modules.values())
        unknown = [k for k in keys if k not in self.modules]
        if unknown:
            known = ", ".join(self.modules)
            raise RegistryError(f"Unknown module(s): {', '.join(unknown)} (known: {known})")
        return [self.modules[k] for k in keys]


def _parse_dependencies(raw: Any, where: str) -> tuple[Dependency, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise RegistryError(f"`{where}.dependencies` must be a list.")
    deps: list[Dependency] = []
    for item in raw:
        if isinstance(item, str):
            parts = item.split(None, 1)
            name, constraints = parts[0], tuple(parts[1:])
        elif isinstance(item, list) and item and all(isinstance(p, str) for p in item):
            name, constraints = item[0], tuple(item[1:])
        else:
            raise RegistryError(f"Invalid dependency in `{where}`: {item!r}")
        deps.append(Dependency(name=name.strip(), constraints=tuple(c.strip() for c in constraints)))
    return tuple(deps)


def _mapping(data: dict[str, Any], key: str) -> dict[str, Any]:
    raw = data.get(key) or {}
    if not isinstance(raw, dict):
        raise RegistryError(f"`{key}` must be an object/mapping when provided.")
    return raw


def _resolve(root: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else (root / path).resolve()


def _build_module(key: str, defaults: dict[str, Any], raw: dict[str, Any], root: Path) -> ModuleSpec:
    values: dict[str, str] = {}
    for name in _PACKAGE_FIELDS:
        value = raw.get(name, defaults.get(name))
        if value is None:
            if name == "entrypoint_prefix":
                value = ""
            else:
                raise RegistryError(f"Module `{key}` does not define `{name}`.")
        values[name] = str(value).format(name=key).strip()

    namespace = values["namespace"].strip("/")
    if not namespace:
        raise RegistryError(f"Module `{key}` has an empty namespace.")

    dependencies = _parse_dependencies(defaults.get("dependencies"), "package")
    dependencies += _parse_dependencies(raw.get("dependencies"), f"modules.{key}")

    return ModuleSpec(
        key=key,
        name=values["name"],
        path=_resolve(root, values["path"]),
        url=values["url"],
        namespace=namespace,
        source_folder=_resolve(root, values["source_folder"]),
        entrypoint_prefix=values["entrypoint_prefix"],
        dependencies=dependencies,
        description=str(raw.get("description") or "").strip(),
    )


def parse_registry(data: dict[str, Any], root: str | Path, assets: str | Path | None = None) -> Registry:
    """
    Build a `Registry` from already-parsed YAML data.

    Relative paths are resolved against `root`. `assets` overrides the
    templates folder named in the data; without either, the templates shipped
    with this package are used.
    """
    if not isinstance(data, dict):
        raise RegistryError("Registry must be a mapping/object at the top level.")
    root_path = Path(root).resolve()

    defaults = _mapping(data, "package")
    folders_raw = _mapping(data, "folders")
    modules_raw = _mapping(data, "modules")
    if not modules_raw:
        raise RegistryError("Registry must define at least one entry under `modules`.")

    assets_value = assets if assets is not None else folders_raw.get("assets")
    folders = Folders(
        conda_packages=_resolve(root_path, str(folders_raw.get("conda_packages") or "./build/pkgs")),
        build_output=_resolve(root_path, str(folders_raw.get("build_output") or "./build/modules")),
        assets=_resolve(root_path, str(assets_value)) if assets_value else DEFAULT_ASSETS,
        conda_recipe=str(folders_raw.get("conda_recipe") or "recipe"),
        ups=str(folders_raw.get("ups") or "ups"),
    )

    modules: dict[str, ModuleSpec] = {}
    for key, raw in modules_raw.items():
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise RegistryError(f"`modules.{key}` must be an object/mapping.")
        modules[str(key)] = _build_module(str(key), defaults, raw, root_path)

    return Registry(root=root_path, folders=folders, modules=modules)


def load_registry(
    config_path: str | Path | None = None,
    *,
    root: str | Path = ".",
    assets: str | Path | None = None,
) -> Registry:
    """Load a registry YAML file, defaulting to the one shipped with the package."""
    path = Path(config_path) if config_path is not None else DEFAULT_REGISTRY
    if not path.exists():
        raise RegistryError(f"Registry file does not exist: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise RegistryError(f"Registry file is not valid YAML: {path}") from e
    return parse_registry(data, root, assets)
