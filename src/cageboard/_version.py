"""Resolve and validate the cage-board release version."""

from __future__ import annotations

import os
import re
from importlib import metadata
from pathlib import Path
from typing import Iterator, Optional

from packaging.version import InvalidVersion, Version

_DISTRIBUTION = "cage-board"
_RELEASE_ENV_VAR = "PYTHON_SEMANTIC_RELEASE_VERSION"
_CHANGELOG_HEADING = re.compile(r"^## v(?P<version>\d+\.\d+\.\d+)\b")


def _changelog_candidates() -> Iterator[Path]:
    # src/cageboard/_version.py -> src/ and the repository root
    for parent in Path(__file__).resolve().parents[1:3]:
        yield parent / "CHANGELOG.md"


def _changelog_version() -> Optional[str]:
    """Return the newest ``## vX.Y.Z`` heading of a source checkout's changelog."""

    for changelog in _changelog_candidates():
        if not changelog.is_file():
            continue
        with changelog.open(encoding="utf-8") as handle:
            for line in handle:
                match = _CHANGELOG_HEADING.match(line)
                if match:
                    return match.group("version")
    return None


def _raw_version() -> str:
    pinned = os.environ.get(_RELEASE_ENV_VAR)
    if pinned:
        return pinned
    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        pass
    fallback = _changelog_version()
    if fallback is None:
        raise RuntimeError(
            "Unable to determine the cage-board version: the distribution is not "
            "installed and no CHANGELOG.md release heading was found."
        )
    return fallback


def _validated(raw_version: str) -> str:
    """Require ``raw_version`` to be a ``MAJOR.MINOR.PATCH`` release."""

    try:
        release = Version(raw_version).release
    except InvalidVersion as exc:
        raise RuntimeError(f"Invalid cage-board version {raw_version!r}.") from exc
    if len(release) != 3:
        raise RuntimeError(
            f"The cage-board version must have exactly three components, got {raw_version!r}."
        )
    return raw_version


__version__ = _validated(_raw_version())

__all__ = ["__version__"]
