"""Exception hierarchy shared by the narrative pipeline."""

from __future__ import annotations

__all__ = [
    "CageBoardError",
    "ConfigurationError",
    "ExpressionError",
    "NoDataError",
]


class CageBoardError(Exception):
    """Base class for errors raised by :mod:`cageboard_core`."""


class ConfigurationError(CageBoardError, ValueError):
    """Raised when a codebook or story grammar document is structurally invalid."""

    def __init__(self, message: str, *, section: str | None = None) -> None:
        super().__init__(message)
        self.section = section


class ExpressionError(CageBoardError, ValueError):
    """Raised when a threshold expression cannot be compiled or evaluated."""

    def __init__(self, message: str, *, source: str | None = None, position: int | None = None) -> None:
        super().__init__(message)
        self.source = source
        self.position = position


class NoDataError(CageBoardError, ValueError):
    """Raised when a run is requested over an empty table."""
