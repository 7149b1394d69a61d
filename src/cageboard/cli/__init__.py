"""Command line utilities for cage-board."""

from cageboard.cli.app import main, run_cli

__all__ = ["main", "run_cli"]
