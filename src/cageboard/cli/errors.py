"""Structured errors for the cage-board command line."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from cageboard_core.errors import ConfigurationError, ExpressionError, NoDataError

__all__ = [
    "CliError",
    "ErrorPayload",
    "STATUS_CODES",
    "build_error_payload",
    "category_for_exception",
    "log_cli_error",
]

logger = logging.getLogger("cageboard.cli")

STATUS_CODES: Mapping[str, int] = {
    "runtime": 1,
    "usage": 2,
    "io": 3,
    "not_found": 4,
    "no_data": 5,
}

_DEFAULT_CATEGORY = "runtime"


@dataclass(frozen=True)
class ErrorPayload:
    """What the CLI reports when a command fails."""

    status_code: int
    category: str
    message: str
    context: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "status_code": self.status_code,
            "category": self.category,
            "message": self.message,
            "context": dict(self.context),
        }


def _scalar_context(context: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    scalars: dict[str, Any] = {}
    for key, value in (context or {}).items():
        if value is None or isinstance(value, (str, int, float, bool)):
            scalars[str(key)] = value
        else:
            scalars[str(key)] = str(value)
    return scalars


def build_error_payload(
    message: str,
    *,
    category: str = _DEFAULT_CATEGORY,
    status_code: Optional[int] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> ErrorPayload:
    category = category or _DEFAULT_CATEGORY
    if status_code is None:
        status_code = STATUS_CODES.get(category, STATUS_CODES[_DEFAULT_CATEGORY])
    return ErrorPayload(
        status_code=status_code,
        category=category,
        message=message,
        context=_scalar_context(context),
    )


def category_for_exception(exc: BaseException) -> str:
    """Map engine and filesystem failures onto CLI error categories."""

    if isinstance(exc, NoDataError):
        return "no_data"
    if isinstance(exc, (ConfigurationError, ExpressionError)):
        return "usage"
    if isinstance(exc, FileNotFoundError):
        return "not_found"
    if isinstance(exc, OSError):
        return "io"
    return _DEFAULT_CATEGORY


def log_cli_error(
    payload: ErrorPayload,
    *,
    target: Optional[logging.Logger] = None,
    exc_info: Optional[BaseException] = None,
) -> None:
    (target or logger).error(
        payload.message,
        extra={
            "event": "cli.error",
            "category": payload.category,
            "status_code": payload.status_code,
            "context": dict(payload.context),
        },
        exc_info=exc_info,
    )


class CliError(RuntimeError):
    """Error raised by CLI handlers; carries its exit status."""

    def __init__(
        self,
        message: str,
        *,
        category: str = _DEFAULT_CATEGORY,
        status_code: Optional[int] = None,
        context: Optional[Mapping[str, Any]] = None,
        logged: bool = False,
    ) -> None:
        super().__init__(message)
        self.payload = build_error_payload(
            message, category=category, status_code=status_code, context=context
        )
        self.category = self.payload.category
        self.status_code = self.payload.status_code
        self.context = dict(self.payload.context)
        self.logged = logged

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> "CliError":
        """Wrap ``exc`` and log it once."""

        error = cls(str(exc) or exc.__class__.__name__, category=category_for_exception(exc), context=context)
        log_cli_error(error.payload, exc_info=exc)
        error.logged = True
        return error
