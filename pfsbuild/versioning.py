"""
versioning.py

Responsibility: Derive a module's next version from its git history.

Versions are `vMAJOR.MINOR.BUILD`. Major and minor come from the most recent
tag matching `v*.*.*`; the build number is the number of commits since the
minor release tag `vMAJOR.MINOR.0` (or since the most recent tag when that one
does not exist), plus one when tracked files have uncommitted changes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple, Protocol

from pfsbuild.shell import CommandError, run

logger = logging.getLogger(__name__)

TAG_PATTERN = "v*.*.*"
_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")
_RELEASE_TAG_RE = re.compile(r"^v\d+\.\d+\.\d+$")


class VersionError(ValueError):
    pass


class NoTagFound(VersionError):
    pass


class GitError(RuntimeError):
    pass


class Version(NamedTuple):
    major: int
    minor: int
    build: int

    @classmethod
    def parse(cls, text: str) -> "Version":
        m = _VERSION_RE.match(text.strip())
        if m is None:
            raise VersionError(f"Not a version of the form vX.Y.Z: {text!r}")
        return cls(*(int(p) for p in m.groups()))

    @property
    def tag(self) -> str:
        return f"v{self}"

    def __str__(self) -> str:
        return ".".join(str(p) for p in self)


class Repository(Protocol):
    def latest_tag(self) -> str: ...

    def has_tag(self, tag: str) -> bool: ...

    def commits_since(self, tag: str) -> int: ...

    def is_dirty(self) -> bool: ...


class GitRepository:
    """Thin query wrapper around the git CLI for one working tree."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _git(self, *args: str) -> str:
        try:
            return run(["git", *args], cwd=self.path, capture=True)
        except CommandError as e:
            raise GitError(f"git query failed in `{self.path}`: {e}") from e

    def latest_tag(self) -> str:
        """
        Nearest tag of the form `vX.Y.Z`. Tags that match the glob but carry
        a suffix (`v1.3.0-rc1`) are skipped in favour of older release tags.
        """
        excluded: list[str] = []
        while True:
            args = ["describe", "--abbrev=0", "--tags", "--match", TAG_PATTERN]
            for skip in excluded:
                args += ["--exclude", skip]
            try:
                tag = self._git(*args).strip()
            except GitError as e:
                msg = str(e)
                if "No names found" in msg or "No tags can describe" in msg or "cannot describe" in msg:
                    raise NoTagFound(f"No git tag matching `{TAG_PATTERN}` found in `{self.path}`.") from e
                raise
            if not tag:
                raise NoTagFound(f"No git tag matching `{TAG_PATTERN}` found in `{self.path}`.")
            if _RELEASE_TAG_RE.match(tag):
                return tag
            logger.debug("Skipping tag `%s`, not a release version.", tag)
            excluded.append(tag)

    def has_tag(self, tag: str) -> bool:
        return bool(self._git("tag", "--list", tag).strip())

    def commits_since(self, tag: str) -> int:
        out = self._git("rev-list", f"{tag}..HEAD", "--count").strip()
        try:
            return int(out)
        except ValueError as e:
            raise GitError(f"Unexpected output from git rev-list: {out!r}") from e

    def is_dirty(self) -> bool:
        # NOTE: git status runs clean filters (e.g. notebook output stripping)
        return self._git("status", "--porcelain", "--untracked-files=no").strip() != ""


@dataclass(frozen=True)
class ResolvedVersion:
    """Result of version resolution: the baseline tag and the next version."""

    tag: str | None
    version: Version
    build: int
    dirty: bool = False


def resolve_version(
    repo: Repository,
    *,
    next_version: str | None = None,
    build_number: int | None = None,
) -> ResolvedVersion:
    """
    Compute the next version of a repository.

    `next_version` replaces the computed version entirely and git is not
    queried; its build number is `build_number` if given, else its third
    component. `build_number` alone replaces only the computed build.
    """
    if build_number is not None and build_number < 0:
        raise VersionError(f"Build number must not be negative: {build_number}")

    if next_version is not None:
        version = Version.parse(next_version)
        build = version.build if build_number is None else build_number
        logger.info("Next version: %s (override)", version.tag)
        logger.info("Build number: %d", build)
        return ResolvedVersion(tag=None, version=version, build=build)

    tag = repo.latest_tag()
    current = Version.parse(tag)

    baseline = Version(current.major, current.minor, 0).tag
    if not repo.has_tag(baseline):
        baseline = tag
    build = repo.commits_since(baseline)

    dirty = repo.is_dirty()
    if dirty:
        build += 1
        logger.info("Git repo is dirty, bumping build number by one to %d.", build)

    if build_number is not None:
        build = build_number

    version = Version(current.major, current.minor, build)
    logger.info("Current version: %s (from last git tag)", tag)
    logger.info("Next version: %s", version.tag)
    logger.info("Build number: %d", build)
    return ResolvedVersion(tag=tag, version=version, build=build, dirty=dirty)
