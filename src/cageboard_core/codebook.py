"""Typed codebook configuration for a single sensing domain."""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping as MappingABC, Sequence as SequenceABC
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from cageboard_core.errors import ConfigurationError, ExpressionError
from cageboard_core.expressions import Expression, compile_expression

__all__ = [
    "Bin",
    "Codebook",
    "DEFAULT_WINDOW",
    "NCVRule",
    "ThresholdRule",
]

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 5


@dataclass(frozen=True)
class Bin:
    """A categorical bin applying to values ``<= max``."""

    id: str
    max: float


@dataclass(frozen=True)
class NCVRule:
    """Resolve a categorical tag from a source signal through ordered pairs."""

    name: str
    source: str
    pairs: Tuple[Tuple[str, str], ...] = ()

    def resolve(self, value: Optional[str]) -> Optional[str]:
        for match, label in self.pairs:
            if match == value:
                return label
        return value


@dataclass(frozen=True)
class ThresholdRule:
    """Boolean expression emitting function identifiers when it holds.

    ``expression`` is ``None`` when ``source`` failed to compile; such rules
    never fire.
    """

    source: str
    functions: Tuple[str, ...]
    expression: Optional[Expression] = None
    error: Optional[str] = None

    @classmethod
    def compile(cls, source: str, functions: Tuple[str, ...]) -> "ThresholdRule":
        try:
            expression = compile_expression(source)
        except ExpressionError as exc:
            logger.warning(
                "Disabling threshold rule with malformed expression",
                extra={"expression": source, "error": str(exc)},
            )
            return cls(source=source, functions=functions, expression=None, error=str(exc))
        return cls(source=source, functions=functions, expression=expression)


@dataclass(frozen=True)
class Codebook:
    """Static per-domain configuration consumed by the state deriver.

    ``variance_window`` is kept for completeness but the rolling computations
    use ``trend_window`` for both trend and variance.
    """

    entity: str
    channels: Tuple[str, ...]
    trend_window: int = DEFAULT_WINDOW
    variance_window: int = DEFAULT_WINDOW
    bins: Mapping[str, Tuple[Bin, ...]] = field(default_factory=dict)
    ncv: Mapping[str, NCVRule] = field(default_factory=dict)
    thresholds: Tuple[ThresholdRule, ...] = ()

    @property
    def window(self) -> int:
        return self.trend_window

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Codebook":
        if not isinstance(payload, MappingABC):
            raise ConfigurationError("Codebook document must be a mapping")
        entity = str(payload.get("entity", "") or "").strip()
        if not entity:
            raise ConfigurationError("Codebook is missing 'entity'", section="entity")

        channels = _string_tuple(payload.get("channels"), section="channels")

        windows = payload.get("windows") or {}
        if not isinstance(windows, MappingABC):
            raise ConfigurationError("'windows' must be a mapping", section="windows")
        trend_window = _coerce_window(windows.get("trend"), section="windows.trend")
        variance_window = _coerce_window(windows.get("variance"), section="windows.variance")

        return cls(
            entity=entity,
            channels=channels,
            trend_window=trend_window,
            variance_window=variance_window,
            bins=_parse_bins(payload.get("bins") or {}),
            ncv=_parse_ncv(payload.get("ncv") or {}),
            thresholds=_parse_thresholds(payload.get("functions") or {}),
        )


def _string_tuple(value: Any, *, section: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, SequenceABC):
        raise ConfigurationError(f"'{section}' must be a list of strings", section=section)
    return tuple(str(item) for item in value)


def _coerce_window(value: Any, *, section: str) -> int:
    if value is None:
        return DEFAULT_WINDOW
    try:
        window = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{section}' must be an integer", section=section) from None
    if window < 1:
        raise ConfigurationError(f"'{section}' must be positive", section=section)
    return window


def _parse_bins(payload: Any) -> Mapping[str, Tuple[Bin, ...]]:
    if not isinstance(payload, MappingABC):
        raise ConfigurationError("'bins' must be a mapping", section="bins")
    bins: dict[str, Tuple[Bin, ...]] = {}
    for channel, entries in payload.items():
        section = f"bins.{channel}"
        if isinstance(entries, str) or not isinstance(entries, SequenceABC):
            raise ConfigurationError(f"'{section}' must be a list", section=section)
        parsed = []
        for entry in entries:
            if not isinstance(entry, MappingABC) or "id" not in entry or "max" not in entry:
                raise ConfigurationError(
                    f"'{section}' entries need 'id' and 'max'", section=section
                )
            try:
                upper = float(entry["max"])
            except (TypeError, ValueError):
                raise ConfigurationError(
                    f"'{section}' max must be numeric", section=section
                ) from None
            if math.isnan(upper):
                raise ConfigurationError(f"'{section}' max must be numeric", section=section)
            parsed.append(Bin(id=str(entry["id"]), max=upper))
        bins[str(channel)] = tuple(parsed)
    return MappingProxyType(bins)


def _parse_ncv(payload: Any) -> Mapping[str, NCVRule]:
    if not isinstance(payload, MappingABC):
        raise ConfigurationError("'ncv' must be a mapping", section="ncv")
    rules: dict[str, NCVRule] = {}
    for name, definition in payload.items():
        section = f"ncv.{name}"
        if not isinstance(definition, MappingABC) or not isinstance(definition.get("from"), str):
            raise ConfigurationError(f"'{section}' needs a 'from' source", section=section)
        pairs = []
        for pair in definition.get("map") or ():
            if isinstance(pair, str) or not isinstance(pair, SequenceABC) or len(pair) != 2:
                raise ConfigurationError(
                    f"'{section}' map entries must be [match, label] pairs", section=section
                )
            pairs.append((str(pair[0]), str(pair[1])))
        rules[str(name)] = NCVRule(name=str(name), source=definition["from"], pairs=tuple(pairs))
    return MappingProxyType(rules)


def _parse_thresholds(payload: Any) -> Tuple[ThresholdRule, ...]:
    if not isinstance(payload, MappingABC):
        raise ConfigurationError("'functions' must be a mapping", section="functions")
    entries = payload.get("thresholds") or ()
    if isinstance(entries, str) or not isinstance(entries, SequenceABC):
        raise ConfigurationError(
            "'functions.thresholds' must be a list", section="functions.thresholds"
        )
    rules = []
    for entry in entries:
        if not isinstance(entry, MappingABC) or "if" not in entry:
            raise ConfigurationError(
                "threshold rules need an 'if' expression", section="functions.thresholds"
            )
        functions = _string_tuple(entry.get("then"), section="functions.thresholds.then")
        rules.append(ThresholdRule.compile(str(entry["if"]), functions))
    return tuple(rules)
