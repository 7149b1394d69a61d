"""Causally gated beat planning with repetition cooldown."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Deque, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from cageboard_core.errors import ConfigurationError, ExpressionError
from cageboard_core.expressions import Expression, compile_expression, evaluate_bool
from cageboard_core.states import State, signal_bindings

__all__ = [
    "Beat",
    "BeatBonus",
    "BeatHistory",
    "BeatPlanner",
    "HISTORY_LIMIT",
    "NarrativeMemory",
    "PALETTE_CATEGORIES",
    "Palette",
    "PlannedBeat",
    "TokenSet",
    "beats_from_payload",
    "bonuses_from_payload",
]

logger = logging.getLogger(__name__)

PALETTE_CATEGORIES: Tuple[str, ...] = (
    "movement",
    "environment",
    "challenge",
    "support",
    "maintenance",
    "reflection",
)

HISTORY_LIMIT = 16
NATIVE_SCORE = 1.0
FOREIGN_SCORE = 0.2
COOLDOWN_FACTOR = 0.4
COOLDOWN_WINDOW = 4
BEATS_PER_STEP = 3


@dataclass(frozen=True)
class Beat:
    """Atomic narrative unit gated by ``requires`` and granting ``grants``."""

    id: str
    requires: FrozenSet[str] = frozenset()
    grants: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class Palette:
    """Beat identifiers a regime offers, grouped by category."""

    regime: str
    categories: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def beats(self) -> Tuple[str, ...]:
        ordered: Dict[str, None] = {}
        for category in PALETTE_CATEGORIES:
            for beat_id in self.categories.get(category, ()):
                ordered.setdefault(beat_id, None)
        return tuple(ordered)

    @classmethod
    def from_mapping(cls, regime: str, payload: Mapping[str, Any]) -> "Palette":
        if not isinstance(payload, MappingABC):
            raise ConfigurationError(
                f"Palette for '{regime}' must be a mapping", section=f"palettes.{regime}"
            )
        unknown = set(payload) - set(PALETTE_CATEGORIES)
        if unknown:
            raise ConfigurationError(
                f"Palette for '{regime}' has unknown categories: {sorted(unknown)}",
                section=f"palettes.{regime}",
            )
        categories = {
            category: tuple(str(item) for item in payload.get(category) or ())
            for category in PALETTE_CATEGORIES
        }
        return cls(regime=regime, categories=MappingProxyType(categories))


@dataclass(frozen=True)
class BeatBonus:
    """Score increment for ``beat`` while ``when`` holds."""

    beat: str
    when: str
    increment: float
    expression: Expression

    @classmethod
    def compile(cls, beat: str, when: str, increment: float) -> "BeatBonus":
        try:
            expression = compile_expression(when)
        except ExpressionError as exc:
            raise ConfigurationError(
                f"Invalid bonus for beat '{beat}': {exc}", section="beats.bonuses"
            ) from exc
        return cls(beat=beat, when=when, increment=float(increment), expression=expression)


class TokenSet:
    """Add-only set of narrative facts owned by one run."""

    __slots__ = ("_tokens",)

    def __init__(self, initial: Iterable[str] = ()) -> None:
        self._tokens: set[str] = set(initial)

    def __contains__(self, token: object) -> bool:
        return token in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    def __iter__(self):
        return iter(sorted(self._tokens))

    def satisfies(self, requires: Iterable[str]) -> bool:
        return all(token in self._tokens for token in requires)

    def grant(self, tokens: Iterable[str]) -> None:
        self._tokens.update(tokens)

    def snapshot(self) -> FrozenSet[str]:
        return frozenset(self._tokens)


class BeatHistory:
    """Rolling buffer of the most recently emitted beat identifiers."""

    __slots__ = ("_items",)

    def __init__(self, limit: int = HISTORY_LIMIT) -> None:
        self._items: Deque[str] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._items)

    def append(self, beat_id: str) -> None:
        self._items.append(beat_id)

    def recent(self, count: int) -> Tuple[str, ...]:
        if count <= 0:
            return ()
        return tuple(self._items)[-count:]

    def as_tuple(self) -> Tuple[str, ...]:
        return tuple(self._items)


@dataclass
class NarrativeMemory:
    """Mutable per-run state threaded through :meth:`BeatPlanner.plan`."""

    tokens: TokenSet
    history: BeatHistory

    @classmethod
    def fresh(cls, initial_tokens: Iterable[str] = (), *, history_limit: int = HISTORY_LIMIT) -> "NarrativeMemory":
        return cls(tokens=TokenSet(initial_tokens), history=BeatHistory(history_limit))


@dataclass(frozen=True)
class PlannedBeat:
    beat: Beat
    score: float
    native: bool


class BeatPlanner:
    """Select up to ``beats_per_step`` feasible beats for a regime.

    The candidate pool lists the active palette first, then the beats of the
    remaining palettes in regime declaration order. Native beats score
    ``native_score`` and foreign ones ``foreign_score``; configured bonuses
    are added and beats among the last ``cooldown_window`` emissions are
    multiplied by ``cooldown_factor``. Each pick is re-scored after the
    previous pick has granted its tokens.
    """

    def __init__(
        self,
        beats: Mapping[str, Beat],
        palettes: Mapping[str, Palette],
        bonuses: Iterable[BeatBonus] = (),
        *,
        regimes: Optional[Sequence[str]] = None,
        beats_per_step: int = BEATS_PER_STEP,
        native_score: float = NATIVE_SCORE,
        foreign_score: float = FOREIGN_SCORE,
        cooldown_factor: float = COOLDOWN_FACTOR,
        cooldown_window: int = COOLDOWN_WINDOW,
    ) -> None:
        self.beats: Mapping[str, Beat] = MappingProxyType(dict(beats))
        self.palettes: Mapping[str, Palette] = MappingProxyType(dict(palettes))
        self.regimes: Tuple[str, ...] = tuple(regimes) if regimes is not None else tuple(self.palettes)
        for palette in self.palettes.values():
            missing = [beat_id for beat_id in palette.beats() if beat_id not in self.beats]
            if missing:
                raise ConfigurationError(
                    f"Palette '{palette.regime}' references unknown beats: {missing}",
                    section=f"palettes.{palette.regime}",
                )
        bonus_table: Dict[str, List[BeatBonus]] = {}
        for bonus in bonuses:
            bonus_table.setdefault(bonus.beat, []).append(bonus)
        self._bonuses: Mapping[str, Tuple[BeatBonus, ...]] = MappingProxyType(
            {key: tuple(value) for key, value in bonus_table.items()}
        )
        if beats_per_step < 0:
            raise ConfigurationError("beats_per_step must not be negative", section="planner")
        self.beats_per_step = int(beats_per_step)
        self.native_score = float(native_score)
        self.foreign_score = float(foreign_score)
        self.cooldown_factor = float(cooldown_factor)
        self.cooldown_window = int(cooldown_window)

    def candidate_pool(self, regime: str) -> Tuple[Tuple[str, bool], ...]:
        """Return ``(beat_id, native)`` pairs in scoring tie-break order."""

        pool: Dict[str, bool] = {}
        active = self.palettes.get(regime)
        if active is not None:
            for beat_id in active.beats():
                pool.setdefault(beat_id, True)
        for name in self.regimes:
            if name == regime:
                continue
            palette = self.palettes.get(name)
            if palette is None:
                continue
            for beat_id in palette.beats():
                pool.setdefault(beat_id, False)
        return tuple(pool.items())

    def score(
        self,
        beat_id: str,
        *,
        native: bool,
        bindings: Mapping[str, Any],
        history: BeatHistory,
        step: int = 0,
    ) -> float:
        value = self.native_score if native else self.foreign_score
        for bonus in self._bonuses.get(beat_id, ()):
            try:
                if evaluate_bool(bonus.expression, bindings):
                    value += bonus.increment
            except ExpressionError as exc:
                logger.debug(
                    "Skipping beat bonus for step",
                    extra={"step": step, "beat": beat_id, "error": str(exc)},
                )
        if beat_id in history.recent(self.cooldown_window):
            value *= self.cooldown_factor
        return value

    def plan(
        self,
        regime: str,
        state: State,
        memory: NarrativeMemory,
        *,
        count: Optional[int] = None,
    ) -> Tuple[PlannedBeat, ...]:
        """Plan beats for one step, mutating ``memory`` as beats are emitted."""

        limit = self.beats_per_step if count is None else int(count)
        bindings = signal_bindings(state)
        remaining = list(self.candidate_pool(regime))
        planned: List[PlannedBeat] = []
        while len(planned) < limit and remaining:
            best: Optional[Tuple[int, float]] = None
            for position, (beat_id, native) in enumerate(remaining):
                beat = self.beats[beat_id]
                if not memory.tokens.satisfies(beat.requires):
                    continue
                value = self.score(
                    beat_id,
                    native=native,
                    bindings=bindings,
                    history=memory.history,
                    step=state.index,
                )
                if best is None or value > best[1]:
                    best = (position, value)
            if best is None:
                break
            beat_id, native = remaining.pop(best[0])
            beat = self.beats[beat_id]
            memory.tokens.grant(beat.grants)
            memory.history.append(beat_id)
            planned.append(PlannedBeat(beat=beat, score=best[1], native=native))
        return tuple(planned)


def beats_from_payload(payload: Any) -> Mapping[str, Beat]:
    if not isinstance(payload, MappingABC):
        raise ConfigurationError("'beats' must be a mapping", section="beats")
    catalogue: Dict[str, Beat] = {}
    for raw_id, definition in payload.items():
        beat_id = str(raw_id)
        definition = definition or {}
        if not isinstance(definition, MappingABC):
            raise ConfigurationError(f"Beat '{beat_id}' must be a mapping", section=f"beats.{beat_id}")
        catalogue[beat_id] = Beat(
            id=beat_id,
            requires=frozenset(str(token) for token in definition.get("requires") or ()),
            grants=frozenset(str(token) for token in definition.get("grants") or ()),
        )
    return MappingProxyType(catalogue)


def bonuses_from_payload(entries: Any) -> Tuple[BeatBonus, ...]:
    bonuses = []
    for entry in entries or ():
        try:
            beat_id = str(entry["beat"])
            when = str(entry["when"])
            increment = float(entry.get("add", 0.0))
        except (KeyError, TypeError, ValueError, AttributeError):
            raise ConfigurationError(
                "Beat bonuses need 'beat', 'when' and a numeric 'add'", section="beats.bonuses"
            ) from None
        bonuses.append(BeatBonus.compile(beat_id, when, increment))
    return tuple(bonuses)
