from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

REGISTRY_YAML = """\
package:
  name: pfsspec-{name}
  path: ./modules/{name}
  url: https://github.com/Subaru-PFS-GA/ga_pfsspec_{name}
  namespace: pfs/ga/pfsspec/{name}
  source_folder: ./modules/{name}/python
  entrypoint_prefix: pfsspec
  dependencies:
    - [python, ">=3.10"]
    - [numpy, ">=1.24"]
    - [pyyaml, ">=6.0"]
folders:
  conda_packages: ./build/pkgs
  build_output: ./build/modules
modules:
  core:
    description: Core functionality for the PFSSPEC packages.
  sim:
    description: Spectrum simulation library.
    dependencies:
      - [scipy, ">=1.10"]
"""

SCRIPT = "#!/usr/bin/env python3\n\ndef main():\n    pass\n"


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    env.update(
        {
            "GIT_AUTHOR_NAME": "pfsbuild-tests",
            "GIT_AUTHOR_EMAIL": "tests@example.invalid",
            "GIT_COMMITTER_NAME": "pfsbuild-tests",
            "GIT_COMMITTER_EMAIL": "tests@example.invalid",
            "GIT_AUTHOR_DATE": "2020-01-01T00:00:00Z",
            "GIT_COMMITTER_DATE": "2020-01-01T00:00:00Z",
        }
    )
    return env


def git(repo: Path, *args: str) -> str:
    cmd = ["git", "-c", "commit.gpgsign=false", "-c", "tag.gpgsign=false", *args]
    proc = subprocess.run(cmd, cwd=str(repo), env=_git_env(), check=True, capture_output=True, text=True)
    return proc.stdout


def commit(repo: Path, filename: str, content: str, message: str = "change") -> None:
    path = repo / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    git(repo, "add", filename)
    git(repo, "commit", "-q", "-m", message)


def init_repo(repo: Path) -> Path:
    repo.mkdir(parents=True, exist_ok=True)
    git(repo, "init", "-q")
    return repo


def make_module(root: Path, name: str, *, tag: str | None = "v1.2.0", commits_after_tag: int = 3) -> Path:
    """A module repository laid out like the pfsspec submodules."""
    repo = init_repo(root / "modules" / name)
    ns = f"python/pfs/ga/pfsspec/{name}"
    commit(repo, f"{ns}/__init__.py", "", "initial")
    commit(repo, f"{ns}/scripts/__init__.py", "")
    commit(repo, f"{ns}/scripts/run_model.py", SCRIPT)
    commit(repo, f"{ns}/scripts/helpers.py", "def helper():\n    pass\n")
    commit(repo, f"{ns}/notebooks/intro.ipynb", "{}\n")
    if tag is not None:
        git(repo, "tag", "-a", tag, "-m", f"release {tag}")
    for i in range(commits_after_tag):
        commit(repo, "CHANGES.txt", f"change {i}\n", f"change {i}")
    return repo


@pytest.fixture
def meta_root(tmp_path: Path) -> Path:
    """Meta-repository with modules `core` and `sim`, both at v1.2.0 + 3 commits."""
    root = tmp_path / "meta"
    root.mkdir()
    (root / "modules.yaml").write_text(REGISTRY_YAML, encoding="utf-8")
    make_module(root, "core")
    make_module(root, "sim")
    return root


@pytest.fixture
def untagged_root(tmp_path: Path) -> Path:
    root = tmp_path / "meta"
    root.mkdir()
    (root / "modules.yaml").write_text(REGISTRY_YAML, encoding="utf-8")
    make_module(root, "core", tag=None)
    make_module(root, "sim", tag=None)
    return root


@pytest.fixture(autouse=True)
def _restore_cwd():
    cwd = Path.cwd()
    yield
    os.chdir(cwd)
