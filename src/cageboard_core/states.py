"""Derive per-step symbolic state from ordered sensor records."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, Mapping, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from cageboard_core.codebook import Bin, Codebook, NCVRule
from cageboard_core.errors import ExpressionError
from cageboard_core.expressions import evaluate_bool
from cageboard_core.table import FieldValue, Record

__all__ = [
    "DEFAULT_TERRAIN_LABELS",
    "RELATIVE_MARGIN",
    "RollingStats",
    "State",
    "bin_value",
    "coerce_numeric",
    "compute_states",
    "resolve_source",
    "rolling_stats",
    "select_functions",
    "signal_bindings",
    "terrain_for",
    "threshold_bindings",
    "time_of_day",
    "trend_tag",
    "variance_tag",
]

logger = logging.getLogger(__name__)

VARIANCE_LOW = 0.0001
VARIANCE_MED = 0.005
TREND_EPSILON = 0.01
RELATIVE_MARGIN = 0.1

SETPOINT_CHANNEL = "temp"
RELATIVE_PAIR = ("lum", "transpiration")
RELATIVE_KEY = "lum_vs_transpiration"

DEFAULT_TERRAIN_LABELS: Mapping[str, str] = MappingProxyType(
    {"low": "plain", "med": "foothills", "high": "broken"}
)

_TIME_BANDS: Tuple[str, ...] = (
    "morning",
    "morning",
    "morning",
    "day",
    "day",
    "day",
    "dusk",
    "dusk",
    "night",
    "night",
)

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class State:
    """Symbolic snapshot of one record."""

    index: int
    raw: Record
    bins: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    trend: Mapping[str, float] = field(default_factory=lambda: _EMPTY)
    variance: Mapping[str, float] = field(default_factory=lambda: _EMPTY)
    setpoint: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    relative: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    tags: Mapping[str, str] = field(default_factory=lambda: _EMPTY)

    def merge_tags(self, extra: Mapping[str, Optional[str]]) -> "State":
        """Return a copy with ``extra`` merged into :attr:`tags`."""

        merged = dict(self.tags)
        for key, value in extra.items():
            if value is not None:
                merged[key] = value
        return replace(self, tags=MappingProxyType(merged))


class RollingStats(NamedTuple):
    mean: float
    variance: float
    trend: float


def coerce_numeric(value: FieldValue | Any) -> float:
    """Coerce ``value`` to a finite float, defaulting to ``0.0``."""

    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def bin_value(bins: Sequence[Bin], value: float) -> str:
    """Return the first bin whose ``max`` is ``>= value``, else the last bin."""

    for entry in bins:
        if value <= entry.max:
            return entry.id
    return bins[-1].id


def rolling_stats(values: Sequence[float] | np.ndarray, index: int, window: int) -> RollingStats:
    """Population statistics over the trailing ``window`` ending at ``index``."""

    start = max(0, index - max(int(window), 1) + 1)
    sample = np.asarray(values[start : index + 1], dtype=float)
    if sample.size == 0:
        return RollingStats(0.0, 0.0, 0.0)
    mean = float(sample.mean())
    variance = float(np.mean((sample - mean) ** 2))
    trend = float(sample[-1] - sample[0]) if sample.size > 1 else 0.0
    return RollingStats(mean, variance, trend)


def variance_tag(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    if value < VARIANCE_LOW:
        return "low"
    if value < VARIANCE_MED:
        return "med"
    return "high"


def trend_tag(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    if value > TREND_EPSILON:
        return "up"
    if value < -TREND_EPSILON:
        return "down"
    return "flat"


def _relative_tag(record: Record) -> Optional[str]:
    first, second = RELATIVE_PAIR
    if first not in record or second not in record:
        return None
    lead = coerce_numeric(record[first])
    other = coerce_numeric(record[second])
    if lead - other > RELATIVE_MARGIN:
        return "lum_dominant"
    if other - lead > RELATIVE_MARGIN:
        return "transpiration_dominant"
    return "balanced"


def resolve_source(
    source: str,
    *,
    bins: Mapping[str, str],
    trend: Mapping[str, float],
    variance: Mapping[str, float],
    setpoint: Mapping[str, str],
    relative: Mapping[str, str],
) -> Optional[str]:
    """Resolve an NCV source path to its raw categorical value."""

    channel = source.split(".")[0]
    if source.endswith(".var"):
        return variance_tag(variance.get(channel))
    if source.endswith(".trend"):
        return trend_tag(trend.get(channel))
    if source.startswith("setpoint."):
        return setpoint.get(source.split(".")[1])
    if source.startswith("relative."):
        return relative.get(source.split(".")[1])
    if source.endswith(".bin"):
        return bins.get(channel)
    return "flat"


def _resolve_ncv(
    rules: Mapping[str, NCVRule],
    **signals: Mapping[str, Any],
) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    for name, rule in rules.items():
        label = rule.resolve(resolve_source(rule.source, **signals))
        if label is not None:
            tags[name] = label
    return tags


def compute_states(records: Sequence[Record], codebook: Codebook) -> Tuple[State, ...]:
    """Derive one :class:`State` per record.

    Never raises for a well-formed codebook: non-numeric inputs count as
    ``0`` and channels without bins simply carry no bin entry.
    """

    window = codebook.window
    columns = {
        channel: np.array([coerce_numeric(record.get(channel)) for record in records], dtype=float)
        for channel in codebook.channels
    }
    states = []
    for index, record in enumerate(records):
        bins: Dict[str, str] = {}
        trend: Dict[str, float] = {}
        variance: Dict[str, float] = {}
        for channel in codebook.channels:
            channel_bins = codebook.bins.get(channel)
            if channel_bins:
                bins[channel] = bin_value(channel_bins, float(columns[channel][index]))
            stats = rolling_stats(columns[channel], index, window)
            trend[channel] = stats.trend
            variance[channel] = stats.variance

        setpoint: Dict[str, str] = {}
        if SETPOINT_CHANNEL in bins:
            setpoint[SETPOINT_CHANNEL] = bins[SETPOINT_CHANNEL]
        relative: Dict[str, str] = {}
        relative_tag = _relative_tag(record)
        if relative_tag is not None:
            relative[RELATIVE_KEY] = relative_tag

        tags = _resolve_ncv(
            codebook.ncv,
            bins=bins,
            trend=trend,
            variance=variance,
            setpoint=setpoint,
            relative=relative,
        )
        states.append(
            State(
                index=index,
                raw=record,
                bins=MappingProxyType(bins),
                trend=MappingProxyType(trend),
                variance=MappingProxyType(variance),
                setpoint=MappingProxyType(setpoint),
                relative=MappingProxyType(relative),
                tags=MappingProxyType(tags),
            )
        )
    return tuple(states)


def threshold_bindings(state: State) -> Dict[str, Any]:
    """Signals visible to codebook threshold rules: bins and trends."""

    bindings: Dict[str, Any] = {}
    for channel, bin_id in state.bins.items():
        bindings[f"{channel}.bin"] = bin_id
    for channel, value in state.trend.items():
        bindings[f"{channel}.trend"] = value
    return bindings


def signal_bindings(state: State) -> Dict[str, Any]:
    """Signals visible to regime contributions and beat bonuses."""

    bindings = threshold_bindings(state)
    for channel, value in state.variance.items():
        bindings[f"{channel}.var"] = value
    for key, value in state.setpoint.items():
        bindings[f"setpoint.{key}"] = value
    for key, value in state.relative.items():
        bindings[f"relative.{key}"] = value
    for key, value in state.tags.items():
        bindings[f"ncv.{key}"] = value
    return bindings


def select_functions(state: State, codebook: Codebook) -> Tuple[str, ...]:
    """Return the function identifiers emitted by the codebook threshold rules."""

    bindings = threshold_bindings(state)
    emitted = []
    for rule in codebook.thresholds:
        if rule.expression is None:
            continue
        try:
            fired = evaluate_bool(rule.expression, bindings)
        except ExpressionError as exc:
            logger.debug(
                "Skipping threshold rule for step",
                extra={"step": state.index, "expression": rule.source, "error": str(exc)},
            )
            continue
        if fired:
            emitted.extend(rule.functions)
    return tuple(emitted)


def time_of_day(index: int) -> str:
    return _TIME_BANDS[index % len(_TIME_BANDS)]


def terrain_for(
    state: State,
    channel: str,
    labels: Mapping[str, str] = DEFAULT_TERRAIN_LABELS,
) -> Optional[str]:
    tag = variance_tag(state.variance.get(channel))
    if tag is None:
        return None
    return labels.get(tag, tag)
