"""Read the ``[tool.cageboard]`` table of a project's ``pyproject.toml``."""

from __future__ import annotations

from collections.abc import Mapping as ABCMapping
from pathlib import Path
from typing import Any

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11 fallback
    import tomli as tomllib  # type: ignore

__all__ = [
    "config_section",
    "load_project_config",
    "resolve_pyproject_path",
]

PYPROJECT = "pyproject.toml"
TOOL_TABLE = ("tool", "cageboard")


def _plain(value: Any) -> Any:
    """Convert nested TOML tables into ``dict`` and arrays into ``list``."""

    if isinstance(value, ABCMapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def resolve_pyproject_path(candidate: Path) -> Path | None:
    """Map a directory or ``pyproject.toml`` path onto the file to read.

    Other files (anything with a suffix) are rejected with ``None``.
    """

    candidate = candidate.expanduser()
    if candidate.name == PYPROJECT:
        return candidate
    if candidate.suffix:
        return None
    return candidate / PYPROJECT


def _tool_table(document: ABCMapping[str, Any]) -> ABCMapping[str, Any] | None:
    table: Any = document
    for key in TOOL_TABLE:
        if not isinstance(table, ABCMapping):
            return None
        table = table.get(key)
    return table if isinstance(table, ABCMapping) else None


def load_project_config(path: Path) -> tuple[dict[str, Any], Path] | None:
    """Return the ``[tool.cageboard]`` table and the file it came from.

    ``None`` means there is no ``pyproject.toml`` at ``path`` or it has no
    such table.
    """

    target = resolve_pyproject_path(path)
    if target is None:
        return None
    target = target.resolve(strict=False)
    if not target.is_file():
        return None

    with target.open("rb") as handle:
        document = tomllib.load(handle)

    table = _tool_table(document)
    if table is None:
        return None
    return _plain(table), target


def config_section(config: ABCMapping[str, Any], name: str) -> dict[str, Any]:
    """Return a copy of ``config[name]``, or ``{}`` when it is not a table."""

    section = config.get(name)
    if isinstance(section, ABCMapping):
        return dict(section)
    return {}
