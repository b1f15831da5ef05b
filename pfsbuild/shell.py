"""
shell.py

Responsibility: Everything that touches process-wide state or external programs.

- `run` executes a program synchronously; a non-zero exit becomes `CommandError`.
- `override_env` copies the ambient environment and applies overrides for a
  child process; `os.environ` itself is never modified.
- `DirectoryStack` / `pushd` change the working directory and always restore
  the previous one, whether the scoped block returns or raises.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)


class CommandError(RuntimeError):
    def __init__(self, message: str, returncode: int = 1) -> None:
        super().__init__(message)
        self.returncode = returncode


def run(
    cmd: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    capture: bool = False,
) -> str:
    """
    Run a program and wait for it. With `capture`, stdout is returned and
    stderr is attached to the error message on failure; otherwise both stream
    to the terminal and an empty string is returned.
    """
    cmd = [str(c) for c in cmd]
    log = logger.debug if capture else logger.info
    log("Running command `%s`", " ".join(cmd))
    try:
        proc = subprocess.run(
            cmd,
            cwd=None if cwd is None else str(cwd),
            env=None if env is None else dict(env),
            check=True,
            stdout=subprocess.PIPE if capture else None,
            stderr=subprocess.PIPE if capture else None,
            text=True,
        )
    except FileNotFoundError as e:
        raise CommandError(f"Program not found: {cmd[0]}", returncode=127) from e
    except subprocess.CalledProcessError as e:
        details = f"\n\n{e.stderr.strip()}" if capture and e.stderr else ""
        raise CommandError(
            f"Command failed with exit code {e.returncode}: {' '.join(cmd)}{details}",
            returncode=e.returncode,
        ) from e
    return proc.stdout if capture else ""


def override_env(overrides: Mapping[str, str], base: Mapping[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    env.update({k: str(v) for k, v in overrides.items()})
    return env


class DirectoryStack:
    """Explicit push/pop of the process working directory."""

    def __init__(self) -> None:
        self._stack: list[Path] = []

    def __len__(self) -> int:
        return len(self._stack)

    def push(self, path: str | Path) -> Path:
        target = Path(path).resolve()
        if not target.is_dir():
            raise NotADirectoryError(f"Cannot change working directory to `{target}`: not a directory.")
        previous = Path.cwd()
        os.chdir(target)
        self._stack.append(previous)
        logger.info("Changed working directory to `%s`", target)
        return previous

    def pop(self) -> Path:
        if not self._stack:
            raise RuntimeError("Directory stack is empty.")
        previous = self._stack.pop()
        os.chdir(previous)
        logger.info("Changed working directory to `%s`", previous)
        return previous


dirstack = DirectoryStack()


@contextmanager
def pushd(path: str | Path, stack: DirectoryStack | None = None) -> Iterator[Path]:
    stack = dirstack if stack is None else stack
    stack.push(path)
    try:
        yield Path.cwd()
    finally:
        stack.pop()


def mkdir(path: str | Path) -> Path:
    path = Path(path)
    if path.is_dir():
        logger.info("Directory `%s` already exists", path)
    else:
        path.mkdir(parents=True, exist_ok=True)
        logger.info("Created directory `%s`", path)
    return path


def rmdir(path: str | Path, *, continue_on_error: bool = True) -> bool:
    """
    Delete a directory tree. Failures (including a missing directory) are
    logged and reported through the return value unless `continue_on_error`
    is False.
    """
    path = Path(path).resolve()
    try:
        shutil.rmtree(path)
    except OSError as e:
        if not continue_on_error:
            raise
        logger.warning("Failed to remove directory `%s`: %s", path, e.strerror or e)
        return False
    logger.info("Removed directory `%s`", path)
    return True
