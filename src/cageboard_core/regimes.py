"""Smoothed regime classification over derived states."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from cageboard_core.errors import ConfigurationError, ExpressionError
from cageboard_core.expressions import Expression, compile_expression, evaluate_bool
from cageboard_core.states import State, signal_bindings

__all__ = [
    "DEFAULT_SMOOTHING",
    "REFERENCE_REGIMES",
    "RegimeClassifier",
    "RegimeDecision",
    "RegimeRule",
    "blend_weights",
    "dominant_regime",
    "normalise_weights",
    "rules_from_payload",
    "uniform_weights",
]

logger = logging.getLogger(__name__)

REFERENCE_REGIMES: Tuple[str, ...] = ("fairytale", "heroic", "trickster", "shamanic", "elegiac")
DEFAULT_SMOOTHING = 0.7


@dataclass(frozen=True)
class RegimeRule:
    """Additive contribution of ``weight`` to ``regime`` while ``when`` holds."""

    regime: str
    when: str
    weight: float
    expression: Expression

    @classmethod
    def compile(cls, regime: str, when: str, weight: float) -> "RegimeRule":
        try:
            expression = compile_expression(when)
        except ExpressionError as exc:
            raise ConfigurationError(
                f"Invalid contribution for regime '{regime}': {exc}", section="regimes.rules"
            ) from exc
        return cls(regime=regime, when=when, weight=float(weight), expression=expression)


@dataclass(frozen=True)
class RegimeDecision:
    regime: str
    instantaneous: Mapping[str, float]
    running: Mapping[str, float]


def uniform_weights(regimes: Sequence[str]) -> Dict[str, float]:
    share = 1.0 / len(regimes)
    return {name: share for name in regimes}


def normalise_weights(regimes: Sequence[str], raw: Mapping[str, float]) -> Dict[str, float]:
    """Normalise ``raw`` over ``regimes``; zero or non-finite mass yields uniform weights."""

    values = {name: max(0.0, float(raw.get(name, 0.0))) for name in regimes}
    total = sum(values.values())
    if total <= 0.0 or not math.isfinite(total):
        return uniform_weights(regimes)
    return {name: value / total for name, value in values.items()}


def blend_weights(
    regimes: Sequence[str],
    previous: Mapping[str, float],
    current: Mapping[str, float],
    smoothing: float,
) -> Dict[str, float]:
    mixed = {
        name: smoothing * previous.get(name, 0.0) + (1.0 - smoothing) * current.get(name, 0.0)
        for name in regimes
    }
    return normalise_weights(regimes, mixed)


def dominant_regime(regimes: Sequence[str], weights: Mapping[str, float]) -> str:
    """Return the regime with the largest weight; ties go to the first declared."""

    best = regimes[0]
    best_weight = weights.get(best, 0.0)
    for name in regimes[1:]:
        weight = weights.get(name, 0.0)
        if weight > best_weight:
            best, best_weight = name, weight
    return best


class RegimeClassifier:
    """Classify each step with exponential-smoothing inertia.

    One classifier carries the running vector for a single run; call
    :meth:`reset` (or build a new instance) before reusing it.
    """

    def __init__(
        self,
        regimes: Sequence[str] = REFERENCE_REGIMES,
        rules: Iterable[RegimeRule] = (),
        *,
        smoothing: float = DEFAULT_SMOOTHING,
    ) -> None:
        self.regimes: Tuple[str, ...] = tuple(regimes)
        if not self.regimes:
            raise ConfigurationError("At least one regime is required", section="regimes")
        if len(set(self.regimes)) != len(self.regimes):
            raise ConfigurationError("Regime names must be unique", section="regimes")
        if not 0.0 <= smoothing < 1.0:
            raise ConfigurationError("Smoothing must lie in [0, 1)", section="regimes.smoothing")
        self.rules: Tuple[RegimeRule, ...] = tuple(rules)
        for rule in self.rules:
            if rule.regime not in self.regimes:
                raise ConfigurationError(
                    f"Contribution targets unknown regime '{rule.regime}'",
                    section="regimes.rules",
                )
        self.smoothing = float(smoothing)
        self._running: Dict[str, float] = uniform_weights(self.regimes)

    @property
    def running(self) -> Mapping[str, float]:
        return MappingProxyType(dict(self._running))

    def reset(self) -> None:
        self._running = uniform_weights(self.regimes)

    def instantaneous(self, state: State) -> Dict[str, float]:
        bindings = signal_bindings(state)
        raw: Dict[str, float] = {name: 0.0 for name in self.regimes}
        for rule in self.rules:
            try:
                fired = evaluate_bool(rule.expression, bindings)
            except ExpressionError as exc:
                logger.debug(
                    "Skipping regime contribution for step",
                    extra={"step": state.index, "regime": rule.regime, "error": str(exc)},
                )
                continue
            if fired:
                raw[rule.regime] += rule.weight
        return normalise_weights(self.regimes, raw)

    def classify(self, state: State) -> RegimeDecision:
        current = self.instantaneous(state)
        self._running = blend_weights(self.regimes, self._running, current, self.smoothing)
        regime = dominant_regime(self.regimes, self._running)
        return RegimeDecision(
            regime=regime,
            instantaneous=MappingProxyType(current),
            running=MappingProxyType(dict(self._running)),
        )

    def classify_all(self, states: Sequence[State]) -> Tuple[RegimeDecision, ...]:
        return tuple(self.classify(state) for state in states)


def rules_from_payload(entries: Optional[Iterable[Mapping[str, object]]]) -> Tuple[RegimeRule, ...]:
    rules = []
    for entry in entries or ():
        try:
            regime = str(entry["regime"])
            when = str(entry["when"])
            weight = float(entry.get("weight", 1.0))  # type: ignore[arg-type]
        except (KeyError, TypeError, ValueError, AttributeError):
            raise ConfigurationError(
                "Regime contributions need 'regime', 'when' and a numeric 'weight'",
                section="regimes.rules",
            ) from None
        rules.append(RegimeRule.compile(regime, when, weight))
    return tuple(rules)
