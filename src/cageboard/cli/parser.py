"""Argument parsing for the cage-board CLI."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Mapping, Optional

from cageboard._version import __version__
from cageboard.configuration import config_section
from cageboard.exporters import exporters_registry
from cageboard.presets import DEFAULT_PRESET
from cageboard.cli.workflows import _handle_generate, _handle_presets, _handle_states

__all__ = ["add_global_arguments", "build_parser"]


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError("must not be negative")
    return number


def add_global_arguments(parser: argparse.ArgumentParser, config: Mapping[str, Any]) -> None:
    """Register the flags shared by the preliminary and the full parser."""

    logging_cfg = config_section(config, "logging")
    parser.add_argument(
        "--config",
        dest="config_path",
        type=Path,
        default=None,
        help="Path to the pyproject.toml holding a [tool.cageboard] table.",
    )
    parser.add_argument(
        "--data-root",
        dest="data_root",
        type=Path,
        default=None,
        help="Directory with codebooks/, samples/, grammar.yaml and surfaces.yaml.",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default=logging_cfg.get("level"),
        help="Logging level (default: info).",
    )
    parser.add_argument(
        "--log-output",
        dest="log_output",
        default=logging_cfg.get("output"),
        help="Logging destination (stdout, stderr or a file path).",
    )
    parser.add_argument(
        "--log-format",
        dest="log_format",
        choices=("json", "text"),
        default=logging_cfg.get("format"),
        help="Logging formatter (json or text).",
    )


def _add_table_arguments(parser: argparse.ArgumentParser, entity_default: str) -> None:
    parser.add_argument(
        "table",
        nargs="?",
        default=None,
        help="Comma separated table to read ('-' for stdin, default: the entity sample).",
    )
    parser.add_argument(
        "--entity",
        default=entity_default,
        help=f"Entity codebook to use (default: {entity_default}).",
    )
    parser.add_argument(
        "--codebook",
        default=None,
        help="Path to a codebook document overriding the bundled entity codebook.",
    )
    parser.add_argument(
        "--channels",
        default=None,
        help="Comma separated columns to engage (default: every column).",
    )


def build_parser(config: Optional[Mapping[str, Any]] = None) -> argparse.ArgumentParser:
    config = dict(config or {})
    narrative_cfg = config_section(config, "narrative")
    entity_default = str(narrative_cfg.get("entity") or DEFAULT_PRESET)

    parser = argparse.ArgumentParser(
        prog="cageboard",
        description="Cage-Board: deterministic narratives from sensor data.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    add_global_arguments(parser, config)

    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser(
        "generate",
        help="Compose a narrative from a sensor table.",
    )
    _add_table_arguments(generate_parser, entity_default)
    generate_parser.add_argument(
        "--grammar",
        default=None,
        help="Path to a story grammar document (default: bundled grammar).",
    )
    generate_parser.add_argument(
        "--surfaces",
        default=None,
        help="Path to a surface library document (default: bundled surfaces).",
    )
    generate_parser.add_argument(
        "--beats-per-step",
        dest="beats_per_step",
        type=_positive_int,
        default=None,
        help="Beats planned per step (default: grammar setting).",
    )
    generate_parser.add_argument(
        "--export",
        dest="exports",
        choices=sorted(exporters_registry),
        action="append",
        help="Output format. Repeat the flag to combine exporters.",
    )
    generate_parser.set_defaults(handler=_handle_generate, exports=None, export_default="text")

    states_parser = subparsers.add_parser(
        "states",
        help="Dump the derived per-step states and threshold functions as JSON.",
    )
    _add_table_arguments(states_parser, entity_default)
    states_parser.set_defaults(handler=_handle_states)

    presets_parser = subparsers.add_parser(
        "presets",
        help="List bundled entities with their channels.",
    )
    presets_parser.set_defaults(handler=_handle_presets)

    return parser
