"""Regime transition bridges and the side-quest pacing graph."""

from __future__ import annotations

import math
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from cageboard_core.errors import ConfigurationError

__all__ = [
    "Bridge",
    "BridgeTable",
    "SideQuestGraph",
    "compute_path",
    "node_for_step",
    "slice_bounds",
]

SLICE_START = 0.15
SLICE_END = 0.85


@dataclass(frozen=True)
class Bridge:
    """Allow-listed transition from ``source`` to ``target`` regime."""

    source: str
    target: str
    id: str
    text: str = ""


class BridgeTable:
    """Ordered allow-list of regime transitions."""

    def __init__(self, bridges: Iterable[Bridge] = ()) -> None:
        table: Dict[Tuple[str, str], Bridge] = {}
        for bridge in bridges:
            table.setdefault((bridge.source, bridge.target), bridge)
        self._table: Mapping[Tuple[str, str], Bridge] = MappingProxyType(table)

    def __len__(self) -> int:
        return len(self._table)

    def __iter__(self):
        return iter(self._table.values())

    def lookup(self, previous: Optional[str], current: str) -> Optional[Bridge]:
        """Return the bridge for ``previous -> current`` or ``None``.

        The first step, self-transitions and unlisted pairs never bridge.
        """

        if previous is None or previous == current:
            return None
        return self._table.get((previous, current))

    @classmethod
    def from_payload(cls, entries: Any) -> "BridgeTable":
        bridges = []
        for entry in entries or ():
            if not isinstance(entry, MappingABC):
                raise ConfigurationError("Bridge entries must be mappings", section="bridges")
            try:
                source, target, bridge_id = str(entry["from"]), str(entry["to"]), str(entry["id"])
            except KeyError:
                raise ConfigurationError(
                    "Bridge entries need 'from', 'to' and 'id'", section="bridges"
                ) from None
            bridges.append(Bridge(source, target, bridge_id, str(entry.get("text", "") or "")))
        return cls(bridges)


def _optional_mapping(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key) or {}
    if not isinstance(value, MappingABC):
        raise ConfigurationError(f"'sidequest.{key}' must be a mapping", section=f"sidequest.{key}")
    return value


def _swap_table(node: Any, table: Any) -> Mapping[str, Any]:
    table = table or {}
    if not isinstance(table, MappingABC):
        raise ConfigurationError(
            f"'sidequest.swap.{node}' must map regimes to regimes", section="sidequest.swap"
        )
    return table


@dataclass(frozen=True)
class SideQuestGraph:
    """Small directed graph walked deterministically through the middle slice.

    ``surge`` names the edge taken from its source node whenever the step's
    signal exceeds ``threshold``. ``force`` pins a regime while the walk sits
    on a node and ``swap`` replaces specific regimes on a node.
    """

    edges: Mapping[str, Tuple[str, ...]]
    entry: str
    terminal: str
    signal: str
    threshold: float
    surge: Tuple[str, str] = ("trials", "inmost")
    force: Mapping[str, str] = field(default_factory=dict)
    swap: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    start_fraction: float = SLICE_START
    end_fraction: float = SLICE_END

    def __post_init__(self) -> None:
        nodes = set(self.edges)
        for targets in self.edges.values():
            nodes.update(targets)
        for name in (self.entry, self.terminal, *self.surge):
            if name not in nodes:
                raise ConfigurationError(f"Side-quest node '{name}' is not in the graph", section="sidequest")

    @property
    def signal_channel(self) -> str:
        return self.signal.split(".")[0]

    def next_node(self, current: str, signal: float) -> Optional[str]:
        source, target = self.surge
        if current == source and signal > self.threshold:
            return target
        targets = self.edges.get(current, ())
        return targets[0] if targets else None

    def swap_targets(self) -> Tuple[str, ...]:
        return tuple(target for table in self.swap.values() for target in table.values())

    def override(self, node: Optional[str], regime: str) -> str:
        if node is None:
            return regime
        forced = self.force.get(node)
        if forced is not None:
            return forced
        return self.swap.get(node, {}).get(regime, regime)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SideQuestGraph":
        if not isinstance(payload, MappingABC):
            raise ConfigurationError("'sidequest' must be a mapping", section="sidequest")
        raw_edges = payload.get("edges")
        if not isinstance(raw_edges, MappingABC) or not raw_edges:
            raise ConfigurationError("'sidequest.edges' must be a mapping", section="sidequest.edges")
        edges = {
            str(node): tuple(str(target) for target in targets or ())
            for node, targets in raw_edges.items()
        }
        surge_payload = _optional_mapping(payload, "surge")
        try:
            threshold = float(surge_payload.get("threshold", 0.0))
        except (TypeError, ValueError):
            raise ConfigurationError(
                "'sidequest.surge.threshold' must be numeric", section="sidequest.surge"
            ) from None
        swap = {
            str(node): MappingProxyType(
                {str(key): str(value) for key, value in _swap_table(node, table).items()}
            )
            for node, table in _optional_mapping(payload, "swap").items()
        }
        try:
            return cls(
                edges=MappingProxyType(edges),
                entry=str(payload["entry"]),
                terminal=str(payload["terminal"]),
                signal=str(payload.get("signal", "seismic.var")),
                threshold=threshold,
                surge=(
                    str(surge_payload.get("from", "trials")),
                    str(surge_payload.get("to", "inmost")),
                ),
                force=MappingProxyType(
                    {str(node): str(regime) for node, regime in _optional_mapping(payload, "force").items()}
                ),
                swap=MappingProxyType(swap),
                start_fraction=float(payload.get("start", SLICE_START)),
                end_fraction=float(payload.get("end", SLICE_END)),
            )
        except KeyError as exc:
            raise ConfigurationError(
                f"'sidequest' is missing {exc.args[0]!r}", section="sidequest"
            ) from None


def slice_bounds(
    total: int,
    start_fraction: float = SLICE_START,
    end_fraction: float = SLICE_END,
) -> Tuple[int, int]:
    """Return the ``[start, end)`` step range of the middle slice."""

    return math.floor(total * start_fraction), math.floor(total * end_fraction)


def compute_path(graph: SideQuestGraph, signals: Sequence[float]) -> Tuple[str, ...]:
    """Walk ``graph`` once per slice step.

    ``signals[k]`` decides the transition out of the node occupied at slice
    offset ``k``. The terminal node is appended when the walk ends anywhere
    else.
    """

    if not signals:
        return ()
    path = [graph.entry]
    current = graph.entry
    for offset in range(len(signals) - 1):
        if current == graph.terminal:
            break
        following = graph.next_node(current, float(signals[offset]))
        if following is None:
            break
        path.append(following)
        current = following
    if path[-1] != graph.terminal:
        path.append(graph.terminal)
    return tuple(path)


def node_for_step(path: Sequence[str], start: int, end: int, index: int) -> Optional[str]:
    if not start <= index < end:
        return None
    offset = index - start
    if offset >= len(path):
        return None
    return path[offset]
