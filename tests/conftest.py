from __future__ import annotations

import logging
import sys
from pathlib import Path
from textwrap import dedent
from typing import Iterator

import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = ROOT / "src"
for _path in (SRC_ROOT, ROOT):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))


def write_pyproject(directory: Path, contents: str) -> Path:
    """Persist a ``pyproject.toml`` under ``directory`` and return its path."""

    payload = dedent(contents).lstrip()
    target = directory / "pyproject.toml"
    target.write_text(payload, encoding="utf8")
    return target


from cageboard import config_loader
from cageboard.config_loader import load_codebook, load_grammar, load_surfaces
from cageboard.resources import set_data_root_override


@pytest.fixture(autouse=True)
def _isolated_resources() -> Iterator[None]:
    """Reset the data root and document caches around every test."""

    set_data_root_override(None)
    config_loader.clear_caches()
    yield
    set_data_root_override(None)
    config_loader.clear_caches()


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def geology_codebook():
    return load_codebook("geology")


@pytest.fixture
def plant_codebook():
    return load_codebook("plant")


@pytest.fixture
def story_grammar():
    return load_grammar()


@pytest.fixture
def surface_library():
    return load_surfaces()
