"""Load codebooks, the story grammar and surface libraries from YAML documents."""

from __future__ import annotations

import logging
from collections.abc import Mapping as ABCMapping
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Tuple

import yaml

from cageboard.resources import codebooks_root, data_root
from cageboard.surfaces import SurfaceLibrary
from cageboard_core.codebook import Codebook
from cageboard_core.errors import ConfigurationError
from cageboard_core.grammar import StoryGrammar

__all__ = [
    "clear_caches",
    "list_entities",
    "load_codebook",
    "load_document",
    "load_grammar",
    "load_surfaces",
]

logger = logging.getLogger(__name__)

_DOCUMENT_SUFFIXES: Tuple[str, ...] = (".yaml", ".yml", ".json")
_GRAMMAR_NAME = "grammar.yaml"
_SURFACES_NAME = "surfaces.yaml"


def load_document(path: Path) -> Mapping[str, Any]:
    """Parse ``path`` with :func:`yaml.safe_load` and require a mapping."""

    if not path.is_file():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as buffer:
        text = buffer.read()
    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Unable to parse '{path}': {exc}") from exc
    if not isinstance(payload, ABCMapping):
        raise ConfigurationError(f"Document '{path}' must contain a mapping")
    return payload


def _looks_like_path(reference: str | Path) -> bool:
    if isinstance(reference, Path):
        return True
    candidate = Path(reference)
    return candidate.suffix in _DOCUMENT_SUFFIXES or len(candidate.parts) > 1


@lru_cache(maxsize=None)
def _cached_codebook(path: Path) -> Codebook:
    codebook = Codebook.from_mapping(load_document(path))
    logger.debug(
        "Loaded codebook",
        extra={"entity": codebook.entity, "path": str(path), "channels": list(codebook.channels)},
    )
    return codebook


@lru_cache(maxsize=None)
def _cached_grammar(path: Path) -> StoryGrammar:
    grammar = StoryGrammar.from_mapping(load_document(path))
    logger.debug(
        "Loaded story grammar",
        extra={"path": str(path), "regimes": list(grammar.regimes), "beats": len(grammar.beats)},
    )
    return grammar


@lru_cache(maxsize=None)
def _cached_surfaces(path: Path) -> SurfaceLibrary:
    return SurfaceLibrary.from_mapping(load_document(path))


def clear_caches() -> None:
    """Forget previously loaded documents."""

    _cached_codebook.cache_clear()
    _cached_grammar.cache_clear()
    _cached_surfaces.cache_clear()


def list_entities() -> Tuple[str, ...]:
    """Return the entity names of the codebooks under the data root."""

    root = codebooks_root()
    if not root.is_dir():
        return ()
    names = {
        candidate.stem
        for candidate in root.iterdir()
        if candidate.is_file() and candidate.suffix in _DOCUMENT_SUFFIXES
    }
    return tuple(sorted(names))


def _codebook_path(reference: str | Path) -> Path:
    if _looks_like_path(reference):
        return Path(reference).expanduser().resolve(strict=False)
    root = codebooks_root()
    for suffix in _DOCUMENT_SUFFIXES:
        candidate = root / f"{reference}{suffix}"
        if candidate.is_file():
            return candidate.resolve()
    raise FileNotFoundError(f"No codebook for entity '{reference}' under {root}")


def load_codebook(reference: str | Path) -> Codebook:
    """Load a codebook by bundled entity name or by document path."""

    return _cached_codebook(_codebook_path(reference))


def load_grammar(path: str | Path | None = None) -> StoryGrammar:
    target = Path(path).expanduser() if path is not None else data_root() / _GRAMMAR_NAME
    return _cached_grammar(target.resolve(strict=False))


def load_surfaces(path: str | Path | None = None) -> SurfaceLibrary:
    target = Path(path).expanduser() if path is not None else data_root() / _SURFACES_NAME
    return _cached_surfaces(target.resolve(strict=False))
