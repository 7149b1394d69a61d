"""CLI-related test helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

import pytest

from cageboard.cli import run_cli


def run_cli_in_tmp(
    args: Sequence[str] | Iterable[str],
    *,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> str:
    """Execute :func:`run_cli` with ``tmp_path`` as the working directory.

    Logging goes to a file inside ``tmp_path`` so stderr stays clean.
    """

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CAGEBOARD_CONFIG", raising=False)
    arguments = list(args)
    if not any(item.startswith("--log-output") for item in arguments):
        arguments = ["--log-output", str(tmp_path / "cageboard.log")] + arguments
    return run_cli(arguments)
