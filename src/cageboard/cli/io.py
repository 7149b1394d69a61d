"""Table and configuration input helpers for the cage-board CLI."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from cageboard.cli.errors import CliError
from cageboard.configuration import load_project_config, resolve_pyproject_path
from cageboard.presets import get_preset

CONFIG_ENV_VAR = "CAGEBOARD_CONFIG"
STDIN_MARKER = "-"

__all__ = ["CONFIG_ENV_VAR", "load_cli_config", "load_table_text"]


def _unique(paths: List[Path]) -> List[Path]:
    seen: Dict[Path, None] = {}
    for path in paths:
        seen.setdefault(path.expanduser().resolve(strict=False), None)
    return list(seen)


def load_cli_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load CLI defaults from the ``[tool.cageboard]`` table of ``pyproject.toml``.

    An explicit ``path`` wins over ``CAGEBOARD_CONFIG``, which wins over the
    current directory. The resolved file is recorded under ``_config_path``.
    """

    bases: List[Path] = []
    if path is not None:
        bases.append(Path(path))
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        bases.append(Path(env_config))
    bases.append(Path.cwd())

    candidates: List[Path] = []
    for base in bases:
        resolved = resolve_pyproject_path(base)
        if resolved is not None:
            candidates.append(resolved)

    for candidate in _unique(candidates):
        loaded = load_project_config(candidate)
        if not loaded:
            continue
        payload, source = loaded
        payload["_config_path"] = str(source)
        return payload

    return {"_config_path": None}


def load_table_text(table: Optional[str], entity: str) -> str:
    """Return the table text named by ``table``.

    ``-`` reads standard input and ``None`` falls back to the bundled sample
    of the entity preset.
    """

    if table == STDIN_MARKER:
        return sys.stdin.read()
    if table is None:
        preset = get_preset(entity)
        if preset is None:
            raise CliError(
                f"No table given and entity '{entity}' has no bundled sample.",
                category="usage",
                context={"entity": entity},
            )
        return preset.sample_text()

    source = Path(table).expanduser()
    if not source.is_file():
        raise CliError(
            f"Table '{table}' does not exist.",
            category="not_found",
            context={"table": table},
        )
    try:
        return source.read_text(encoding="utf-8")
    except OSError as exc:
        raise CliError(
            f"Unable to read table '{table}': {exc}",
            category="io",
            context={"table": table},
        ) from exc
