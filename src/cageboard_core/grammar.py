"""Story grammar: regimes, palettes, beats, bridges, pacing and anchors."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple

from cageboard_core.beats import (
    BEATS_PER_STEP,
    COOLDOWN_FACTOR,
    COOLDOWN_WINDOW,
    FOREIGN_SCORE,
    HISTORY_LIMIT,
    NATIVE_SCORE,
    Beat,
    BeatBonus,
    BeatPlanner,
    Palette,
    beats_from_payload,
    bonuses_from_payload,
)
from cageboard_core.errors import ConfigurationError
from cageboard_core.pacing import BridgeTable, SideQuestGraph
from cageboard_core.regimes import (
    DEFAULT_SMOOTHING,
    RegimeClassifier,
    RegimeRule,
    rules_from_payload,
)
from cageboard_core.states import DEFAULT_TERRAIN_LABELS

__all__ = ["Anchors", "PlannerSettings", "StoryGrammar"]


@dataclass(frozen=True)
class Anchors:
    """Fixed lines framing every narrative."""

    opening: str = (
        "Opening: Two figures enter a field of signals. "
        "They agree on a destination they cannot yet name."
    )
    call: str = "A signal calls them forward; they answer and set out."
    return_: str = "The way home opens; they turn back carrying what they found."
    closing: str = "Closing: They reach the agreed place, carrying what changed them."


@dataclass(frozen=True)
class PlannerSettings:
    beats_per_step: int = BEATS_PER_STEP
    native_score: float = NATIVE_SCORE
    foreign_score: float = FOREIGN_SCORE
    cooldown_factor: float = COOLDOWN_FACTOR
    cooldown_window: int = COOLDOWN_WINDOW
    history_limit: int = HISTORY_LIMIT


def _section(payload: Mapping[str, Any], key: str, parent: Optional[str] = None) -> Mapping[str, Any]:
    value = payload.get(key) or {}
    if not isinstance(value, MappingABC):
        name = f"{parent}.{key}" if parent else key
        raise ConfigurationError(f"'{name}' must be a mapping", section=parent or key)
    return value


@dataclass(frozen=True)
class StoryGrammar:
    """Read-only narrative configuration shared across runs."""

    regimes: Tuple[str, ...]
    rules: Tuple[RegimeRule, ...]
    palettes: Mapping[str, Palette]
    beats: Mapping[str, Beat]
    bonuses: Tuple[BeatBonus, ...]
    bridges: BridgeTable
    sidequest: SideQuestGraph
    initial_tokens: Tuple[str, ...] = ("on_road",)
    smoothing: float = DEFAULT_SMOOTHING
    planner: PlannerSettings = field(default_factory=PlannerSettings)
    anchors: Anchors = field(default_factory=Anchors)
    terrain_labels: Mapping[str, str] = field(default_factory=lambda: DEFAULT_TERRAIN_LABELS)

    def __post_init__(self) -> None:
        known = set(self.regimes)
        for regime in self.palettes:
            if regime not in known:
                raise ConfigurationError(f"Palette for unknown regime '{regime}'", section="palettes")
            missing = [beat_id for beat_id in self.palettes[regime].beats() if beat_id not in self.beats]
            if missing:
                raise ConfigurationError(
                    f"Palette '{regime}' references unknown beats: {missing}",
                    section=f"palettes.{regime}",
                )
        for bonus in self.bonuses:
            if bonus.beat not in self.beats:
                raise ConfigurationError(f"Bonus for unknown beat '{bonus.beat}'", section="bonuses")
        for bridge in self.bridges:
            if bridge.source not in known or bridge.target not in known:
                raise ConfigurationError(
                    f"Bridge '{bridge.id}' joins unknown regimes", section="bridges"
                )
        for regime in (*self.sidequest.force.values(), *self.sidequest.swap_targets()):
            if regime not in known:
                raise ConfigurationError(
                    f"Side-quest override names unknown regime '{regime}'", section="sidequest"
                )

    def classifier(self) -> RegimeClassifier:
        return RegimeClassifier(self.regimes, self.rules, smoothing=self.smoothing)

    def planner_for(self, beats_per_step: Optional[int] = None) -> BeatPlanner:
        settings = self.planner
        return BeatPlanner(
            self.beats,
            self.palettes,
            self.bonuses,
            regimes=self.regimes,
            beats_per_step=settings.beats_per_step if beats_per_step is None else beats_per_step,
            native_score=settings.native_score,
            foreign_score=settings.foreign_score,
            cooldown_factor=settings.cooldown_factor,
            cooldown_window=settings.cooldown_window,
        )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "StoryGrammar":
        if not isinstance(payload, MappingABC):
            raise ConfigurationError("Story grammar document must be a mapping")

        regimes_section = payload.get("regimes") or {}
        if not isinstance(regimes_section, MappingABC):
            raise ConfigurationError("'regimes' must be a mapping", section="regimes")
        names = tuple(str(name) for name in regimes_section.get("names") or ())
        if not names:
            raise ConfigurationError("'regimes.names' must list at least one regime", section="regimes")

        palettes_section = payload.get("palettes") or {}
        if not isinstance(palettes_section, MappingABC):
            raise ConfigurationError("'palettes' must be a mapping", section="palettes")
        palettes = {
            str(regime): Palette.from_mapping(str(regime), definition or {})
            for regime, definition in palettes_section.items()
        }

        planner_section = _section(payload, "planner")
        anchors_section = _section(payload, "anchors")
        try:
            planner = PlannerSettings(
                beats_per_step=int(planner_section.get("beats_per_step", BEATS_PER_STEP)),
                native_score=float(planner_section.get("native_score", NATIVE_SCORE)),
                foreign_score=float(planner_section.get("foreign_score", FOREIGN_SCORE)),
                cooldown_factor=float(planner_section.get("cooldown_factor", COOLDOWN_FACTOR)),
                cooldown_window=int(planner_section.get("cooldown_window", COOLDOWN_WINDOW)),
                history_limit=int(planner_section.get("history_limit", HISTORY_LIMIT)),
            )
            smoothing = float(regimes_section.get("smoothing", DEFAULT_SMOOTHING))
        except (TypeError, ValueError, AttributeError):
            raise ConfigurationError("Planner and smoothing settings must be numeric", section="planner") from None

        defaults = Anchors()
        anchors = Anchors(
            opening=str(anchors_section.get("opening", defaults.opening)),
            call=str(anchors_section.get("call", defaults.call)),
            return_=str(anchors_section.get("return", defaults.return_)),
            closing=str(anchors_section.get("closing", defaults.closing)),
        )

        terrain = _section(payload, "terrain")
        labels = dict(DEFAULT_TERRAIN_LABELS)
        labels.update(
            {str(key): str(value) for key, value in _section(terrain, "labels", "terrain").items()}
        )

        return cls(
            regimes=names,
            rules=rules_from_payload(regimes_section.get("rules")),
            palettes=MappingProxyType(palettes),
            beats=beats_from_payload(payload.get("beats") or {}),
            bonuses=bonuses_from_payload(payload.get("bonuses")),
            bridges=BridgeTable.from_payload(payload.get("bridges")),
            sidequest=SideQuestGraph.from_mapping(payload.get("sidequest") or {}),
            initial_tokens=tuple(str(token) for token in payload.get("initial_tokens") or ()),
            smoothing=smoothing,
            planner=planner,
            anchors=anchors,
            terrain_labels=MappingProxyType(labels),
        )
