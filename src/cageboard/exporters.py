"""Render generated narratives in the formats offered by the CLI."""

from __future__ import annotations

import json
from collections.abc import Mapping as ABCMapping
from typing import Any, Callable, Dict, List, Mapping, Union

from cageboard_core.narrative import Narrative, StepTrace

__all__ = [
    "Exporter",
    "annotated_exporter",
    "build_narrative_payload",
    "exporters_registry",
    "json_exporter",
    "markdown_exporter",
    "serialise_step",
    "text_exporter",
]

ExportPayload = Union[Narrative, Mapping[str, Any]]
Exporter = Callable[[ExportPayload], str]

_ANNOTATED_TAGS = ("mood", "pace", "pov", "symbolic")


def serialise_step(step: StepTrace) -> Dict[str, Any]:
    return {
        "index": step.index,
        "classified": step.classified,
        "regime": step.regime,
        "node": step.node,
        "bridge": step.bridge,
        "beats": list(step.beats),
        "functions": list(step.functions),
        "tags": dict(step.tags),
        "weights": {name: round(float(value), 6) for name, value in step.weights.items()},
    }


def build_narrative_payload(narrative: Narrative) -> Dict[str, Any]:
    """Return a JSON-serialisable mapping describing ``narrative``."""

    return {
        "entity": narrative.entity,
        "lines": list(narrative.lines),
        "steps": [serialise_step(step) for step in narrative.steps],
    }


def _normalise(payload: ExportPayload) -> Mapping[str, Any]:
    if isinstance(payload, Narrative):
        return build_narrative_payload(payload)
    if isinstance(payload, ABCMapping):
        return payload
    raise TypeError("Exporters expect a Narrative or a narrative payload mapping")


def text_exporter(payload: ExportPayload) -> str:
    return "\n".join(_normalise(payload).get("lines", []))


def markdown_exporter(payload: ExportPayload) -> str:
    data = _normalise(payload)
    entity = data.get("entity") or "narrative"
    lines: List[str] = [f"# Cage-Board: {entity}", ""]
    for line in data.get("lines", []):
        lines.append(line)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def json_exporter(payload: ExportPayload) -> str:
    return json.dumps(dict(_normalise(payload)), indent=2, sort_keys=True)


def annotated_exporter(payload: ExportPayload) -> str:
    """Render the control variables of each step as a Markdown table."""

    data = _normalise(payload)
    header = "| Step | " + " | ".join(_ANNOTATED_TAGS) + " | Regime | Node | Beats | Functions |"
    separator = "| " + " | ".join("---" for _ in range(len(_ANNOTATED_TAGS) + 5)) + " |"
    rows = [header, separator]
    for step in data.get("steps", []):
        tags = step.get("tags", {})
        regime = step.get("regime", "-")
        if step.get("classified") and step.get("classified") != regime:
            regime = f"{regime} ({step['classified']})"
        cells = [str(int(step.get("index", 0)) + 1)]
        cells.extend(str(tags.get(name, "-")) for name in _ANNOTATED_TAGS)
        cells.append(regime)
        cells.append(step.get("node") or "-")
        cells.append(", ".join(step.get("beats", [])) or "-")
        cells.append(", ".join(step.get("functions", [])) or "-")
        rows.append("| " + " | ".join(cells) + " |")
    return "\n".join(rows)


exporters_registry: Dict[str, Exporter] = {
    "text": text_exporter,
    "markdown": markdown_exporter,
    "json": json_exporter,
    "annotated": annotated_exporter,
}
