"""Convenience re-exports for test helpers."""

from __future__ import annotations

from tests.helpers.cli import run_cli_in_tmp
from tests.helpers.documents import (
    GEOLOGY_TABLE,
    build_codebook,
    build_codebook_payload,
    build_grammar,
    build_grammar_payload,
    build_state,
)

__all__ = [
    "GEOLOGY_TABLE",
    "build_codebook",
    "build_codebook_payload",
    "build_grammar",
    "build_grammar_payload",
    "build_state",
    "run_cli_in_tmp",
]
