"""Helpers to locate bundled cage-board resources."""

from __future__ import annotations

from importlib import resources
from pathlib import Path
from typing import Iterable

__all__ = [
    "codebooks_root",
    "data_root",
    "samples_root",
    "set_data_root_override",
]

_FALLBACK_DATA_ROOT = Path(__file__).resolve().parent / "data"
_PACKAGE = "cageboard.resources"

_DATA_ROOT: Path | None = None
_DATA_ROOT_OVERRIDE: Path | None = None


def _iter_candidate_roots() -> Iterable[Path]:
    if _DATA_ROOT_OVERRIDE is not None:
        yield _DATA_ROOT_OVERRIDE
        return

    try:
        package_path = Path(str(resources.files(_PACKAGE)))
    except ModuleNotFoundError:  # pragma: no cover - running from a bare checkout
        pass
    else:
        yield package_path / "data"

    yield _FALLBACK_DATA_ROOT


def set_data_root_override(path: Path | str | None) -> None:
    """Force :func:`data_root` to return ``path``; ``None`` restores the bundle."""

    global _DATA_ROOT_OVERRIDE, _DATA_ROOT

    _DATA_ROOT_OVERRIDE = Path(path).expanduser() if path is not None else None
    _DATA_ROOT = None


def data_root() -> Path:
    """Return the directory holding codebooks, grammar, surfaces and samples."""

    global _DATA_ROOT
    if _DATA_ROOT is None:
        for candidate in _iter_candidate_roots():
            if candidate.exists():
                _DATA_ROOT = candidate
                break
        else:
            _DATA_ROOT = _DATA_ROOT_OVERRIDE or _FALLBACK_DATA_ROOT
    return _DATA_ROOT


def codebooks_root() -> Path:
    return data_root() / "codebooks"


def samples_root() -> Path:
    return data_root() / "samples"
