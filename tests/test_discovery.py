from __future__ import annotations

from pathlib import Path

import pytest

from conftest import SCRIPT
from pfsbuild.discovery import (
    DiscoveryError,
    Entrypoint,
    command_name,
    find_entrypoints,
    find_notebooks,
    get_excludes,
)
from pfsbuild.registry import ModuleSpec


def _module(tmp_path: Path, prefix: str = "pfsspec") -> ModuleSpec:
    path = tmp_path / "modules" / "core"
    return ModuleSpec(
        key="core",
        name="pfsspec-core",
        path=path,
        url="https://example.invalid/core",
        namespace="pfs/ga/pfsspec/core",
        source_folder=path / "python",
        entrypoint_prefix=prefix,
    )


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


@pytest.mark.parametrize(
    ("namespace", "expected"),
    [
        ("pfs/ga/pfsspec/core", ["test*", "pfs", "pfs/ga", "pfs/ga/pfsspec"]),
        ("pfs/core", ["test*", "pfs"]),
        ("core", ["test*"]),
    ],
)
def test_excludes_are_test_marker_plus_proper_prefixes(namespace: str, expected: list[str]) -> None:
    excl = get_excludes(namespace)
    assert excl == expected
    assert namespace not in excl


def test_command_name_strips_underscores() -> None:
    assert command_name("run_model", "pfsspec") == "pfsspec-runmodel"
    assert command_name("run_model") == "runmodel"


def test_one_marked_script_one_plain_file(tmp_path: Path) -> None:
    module = _module(tmp_path)
    scripts = module.namespace_folder / "scripts"
    _write(scripts / "fit_spectrum.py", SCRIPT)
    _write(scripts / "common.py", "import os\n")

    eps = find_entrypoints(module)

    assert eps == [Entrypoint("pfsspec-fitspectrum", "pfs.ga.pfsspec.core.scripts.fit_spectrum:main")]
    assert str(eps[0]) == "pfsspec-fitspectrum = pfs.ga.pfsspec.core.scripts.fit_spectrum:main"


def test_python_shebang_also_marks_script(tmp_path: Path) -> None:
    module = _module(tmp_path)
    _write(module.namespace_folder / "scripts" / "train.py", "#!/usr/bin/env python\n")
    assert [e.command for e in find_entrypoints(module)] == ["pfsspec-train"]


def test_entrypoints_without_prefix(tmp_path: Path) -> None:
    module = _module(tmp_path, prefix="")
    _write(module.namespace_folder / "scripts" / "import_grid.py", SCRIPT)
    assert [e.command for e in find_entrypoints(module)] == ["importgrid"]


def test_entrypoints_in_nested_script_packages(tmp_path: Path) -> None:
    module = _module(tmp_path)
    scripts = module.namespace_folder / "scripts"
    _write(scripts / "b_tool.py", SCRIPT)
    _write(scripts / "grid" / "a_tool.py", SCRIPT)

    targets = [e.target for e in find_entrypoints(module)]

    assert targets == [
        "pfs.ga.pfsspec.core.scripts.b_tool:main",
        "pfs.ga.pfsspec.core.scripts.grid.a_tool:main",
    ]


def test_no_scripts_folder(tmp_path: Path) -> None:
    module = _module(tmp_path)
    module.namespace_folder.mkdir(parents=True)
    assert find_entrypoints(module) == []


def test_notebooks_found_recursively_relative_to_module(tmp_path: Path) -> None:
    module = _module(tmp_path)
    _write(module.namespace_folder / "notebooks" / "b.ipynb", "{}")
    _write(module.namespace_folder / "notebooks" / "deep" / "a.ipynb", "{}")
    _write(module.namespace_folder / "notebooks" / "readme.md", "")
    _write(module.path / "python" / "other" / "outside.ipynb", "{}")

    assert find_notebooks(module) == [
        "python/pfs/ga/pfsspec/core/notebooks/b.ipynb",
        "python/pfs/ga/pfsspec/core/notebooks/deep/a.ipynb",
    ]


def test_notebooks_missing_namespace(tmp_path: Path) -> None:
    assert find_notebooks(_module(tmp_path)) == []


def test_notebooks_in_source_folder_outside_module(tmp_path: Path) -> None:
    path = tmp_path / "modules" / "core"
    module = ModuleSpec(
        key="core",
        name="pfsspec-core",
        path=path,
        url="https://example.invalid/core",
        namespace="pfs/ga/pfsspec/core",
        source_folder=tmp_path / "shared" / "python",
    )
    nb = module.namespace_folder / "notebooks" / "intro.ipynb"
    _write(nb, "{}")

    assert find_notebooks(module) == [nb.as_posix()]


def test_scripts_with_same_command_name_are_rejected(tmp_path: Path) -> None:
    module = _module(tmp_path)
    scripts = module.namespace_folder / "scripts"
    _write(scripts / "a" / "run.py", SCRIPT)
    _write(scripts / "b" / "run.py", SCRIPT)

    with pytest.raises(DiscoveryError, match="pfsspec-run"):
        find_entrypoints(module)


def test_underscores_can_collide(tmp_path: Path) -> None:
    module = _module(tmp_path)
    scripts = module.namespace_folder / "scripts"
    _write(scripts / "fit_model.py", SCRIPT)
    _write(scripts / "fitmodel.py", SCRIPT)

    with pytest.raises(DiscoveryError):
        find_entrypoints(module)
