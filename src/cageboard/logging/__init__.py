"""Logging utilities for cage-board."""

from cageboard.logging.config import JsonFormatter, setup_logging

__all__ = ["JsonFormatter", "setup_logging"]
