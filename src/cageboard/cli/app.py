"""Command line application entry point for cage-board."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from cageboard.cli.errors import CliError, log_cli_error
from cageboard.cli.io import load_cli_config
from cageboard.cli.parser import add_global_arguments, build_parser
from cageboard.configuration import config_section
from cageboard.logging.config import setup_logging
from cageboard.resources import set_data_root_override

__all__ = ["main", "run_cli"]


def _resolve_data_root(namespace: argparse.Namespace, config: Mapping[str, Any]) -> Optional[Path]:
    if namespace.data_root is not None:
        return Path(namespace.data_root)
    raw = config_section(config, "paths").get("data_root")
    if isinstance(raw, str) and raw.strip():
        candidate = Path(raw).expanduser()
        source = config.get("_config_path")
        if not candidate.is_absolute() and source:
            candidate = Path(source).parent / candidate
        return candidate
    return None


def _write(text: str) -> None:
    sys.stdout.write(text)
    if not text.endswith("\n"):
        sys.stdout.write("\n")


def run_cli(args: Optional[Sequence[str]] = None) -> str:
    """Execute the cage-board command line interface and return its output."""

    config_parser = argparse.ArgumentParser(add_help=False)
    add_global_arguments(config_parser, {})
    preliminary, remaining = config_parser.parse_known_args(args)

    config = load_cli_config(preliminary.config_path)
    logging_config = config_section(config, "logging")
    if preliminary.log_level is not None:
        logging_config["level"] = preliminary.log_level
    if preliminary.log_output is not None:
        logging_config["output"] = preliminary.log_output
    if preliminary.log_format is not None:
        logging_config["format"] = preliminary.log_format
    logging_config.setdefault("level", "info")
    logging_config.setdefault("output", "stderr")
    logging_config.setdefault("format", "json")
    config["logging"] = logging_config
    try:
        setup_logging(config)
    except ValueError as exc:
        config_parser.error(str(exc))

    set_data_root_override(_resolve_data_root(preliminary, config))

    parser = build_parser(config)
    namespace = parser.parse_args(list(remaining), namespace=preliminary)
    namespace.config = config

    handler = getattr(namespace, "handler", None)
    if handler is None:
        raise CliError(
            f"Unknown command '{getattr(namespace, 'command', None)}'.",
            category="usage",
            context={"command": getattr(namespace, "command", None)},
        )

    try:
        result = handler(namespace, config=config)
    except CliError as exc:
        if not exc.logged:
            log_cli_error(exc.payload, exc_info=exc)
            exc.logged = True
        if exc.payload.message:
            _write(exc.payload.message)
        raise SystemExit(exc.status_code) from exc
    if result:
        _write(result)
    return result


def main() -> None:  # pragma: no cover - thin wrapper
    run_cli()


if __name__ == "__main__":  # pragma: no cover - CLI invocation guard
    main()
