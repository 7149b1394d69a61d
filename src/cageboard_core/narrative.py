"""Assemble narrative lines from records, a codebook and a story grammar."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from time import monotonic
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from cageboard_core.beats import NarrativeMemory
from cageboard_core.codebook import Codebook
from cageboard_core.errors import NoDataError
from cageboard_core.grammar import StoryGrammar
from cageboard_core.pacing import compute_path, node_for_step, slice_bounds
from cageboard_core.states import (
    State,
    compute_states,
    select_functions,
    terrain_for,
    time_of_day,
)
from cageboard_core.table import Record, parse_table

__all__ = [
    "Narrative",
    "StepTrace",
    "SurfaceLookup",
    "generate_narrative",
    "surface_context",
]

logger = logging.getLogger(__name__)


class SurfaceLookup(Protocol):
    """Resolve a beat, bridge or function identifier to a literal line.

    Implementations return ``""`` when nothing resolves.
    """

    def __call__(self, identifier: str, context: Mapping[str, str]) -> str:  # pragma: no cover - interface only
        ...


@dataclass(frozen=True)
class StepTrace:
    """Decisions taken for a single step."""

    index: int
    classified: str
    regime: str
    node: Optional[str]
    bridge: Optional[str]
    beats: Tuple[str, ...]
    functions: Tuple[str, ...]
    tags: Mapping[str, str]
    weights: Mapping[str, float]


@dataclass(frozen=True)
class Narrative:
    lines: Tuple[str, ...]
    steps: Tuple[StepTrace, ...]
    entity: str = ""

    def text(self) -> str:
        return "\n".join(self.lines)


def _empty_lookup(identifier: str, context: Mapping[str, str]) -> str:
    return ""


def surface_context(state: State, regime: Optional[str] = None) -> Mapping[str, str]:
    context: Dict[str, str] = dict(state.tags)
    if regime is not None:
        context["regime"] = regime
    return MappingProxyType(context)


def _emit(lines: List[str], text: str) -> bool:
    if not text:
        return False
    lines.append(text)
    return True


def generate_narrative(
    source: Union[str, Sequence[Record]],
    codebook: Codebook,
    grammar: StoryGrammar,
    surfaces: Optional[SurfaceLookup] = None,
    *,
    beats_per_step: Optional[int] = None,
) -> Narrative:
    """Run the full pipeline over ``source`` and return the narrative.

    ``source`` is either raw table text or already parsed records. Raises
    :class:`NoDataError` when there is nothing to narrate.
    """

    started = monotonic()
    records = parse_table(source) if isinstance(source, str) else tuple(source)
    if not records:
        raise NoDataError("No data detected; provide a table with at least one row.")
    lookup = surfaces if surfaces is not None else _empty_lookup

    states = compute_states(records, codebook)
    classifier = grammar.classifier()
    planner = grammar.planner_for(beats_per_step)
    memory = NarrativeMemory.fresh(grammar.initial_tokens, history_limit=grammar.planner.history_limit)

    graph = grammar.sidequest
    start, end = slice_bounds(len(states), graph.start_fraction, graph.end_fraction)
    signals = [
        float(states[index].variance.get(graph.signal_channel, 0.0)) for index in range(start, end)
    ]
    path = compute_path(graph, signals)

    timed = [
        state.merge_tags(
            {
                "time": time_of_day(state.index),
                "terrain": terrain_for(state, graph.signal_channel, grammar.terrain_labels),
            }
        )
        for state in states
    ]

    anchors = grammar.anchors
    lines: List[str] = [anchors.opening]
    _emit(lines, lookup("call", surface_context(timed[0])) or anchors.call)

    traces: List[StepTrace] = []
    previous: Optional[str] = None
    for state in timed:
        decision = classifier.classify(state)
        classified = decision.regime

        bridge = grammar.bridges.lookup(previous, classified)
        previous = classified

        node = node_for_step(path, start, end, state.index)
        regime = graph.override(node, classified)
        context = surface_context(state, regime)

        if bridge is not None:
            _emit(lines, lookup(bridge.id, context) or bridge.text)

        planned = planner.plan(regime, state, memory)
        for item in planned:
            _emit(lines, lookup(item.beat.id, context))

        functions = select_functions(state, codebook)
        for function in functions:
            if _emit(lines, lookup(function, context)):
                break

        traces.append(
            StepTrace(
                index=state.index,
                classified=classified,
                regime=regime,
                node=node,
                bridge=bridge.id if bridge is not None else None,
                beats=tuple(item.beat.id for item in planned),
                functions=functions,
                tags=state.tags,
                weights=decision.running,
            )
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Planned narrative step",
                extra={
                    "step": state.index,
                    "regime": regime,
                    "node": node,
                    "beats": [item.beat.id for item in planned],
                },
            )

    _emit(lines, lookup("return", surface_context(timed[-1], previous)) or anchors.return_)
    lines.append(anchors.closing)

    logger.info(
        "Narrative generated",
        extra={
            "entity": codebook.entity,
            "steps": len(traces),
            "lines": len(lines),
            "duration": monotonic() - started,
        },
    )
    return Narrative(lines=tuple(lines), steps=tuple(traces), entity=codebook.entity)
