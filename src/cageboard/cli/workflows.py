"""Sub-command handlers for the cage-board CLI."""

from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional, TypeVar

from cageboard.cli.errors import CliError
from cageboard.cli.io import load_table_text
from cageboard.config_loader import list_entities
from cageboard.configuration import config_section
from cageboard.exporters import exporters_registry
from cageboard.presets import DEFAULT_PRESET, PRESETS
from cageboard.processing import compose_narrative, derive_states
from cageboard_core.errors import CageBoardError
from cageboard_core.states import select_functions

__all__ = [
    "_handle_generate",
    "_handle_presets",
    "_handle_states",
    "parse_channels",
    "resolve_entity",
    "resolve_exports",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_channels(raw: Optional[str]) -> Optional[List[str]]:
    """Split a ``a,b,c`` channel list; ``None`` or blank engages every column."""

    if raw is None:
        return None
    channels = [item.strip() for item in raw.split(",") if item.strip()]
    return channels or None


def resolve_entity(namespace: argparse.Namespace, config: Mapping[str, Any]) -> str:
    entity = getattr(namespace, "entity", None)
    if entity:
        return str(entity)
    configured = config_section(config, "narrative").get("entity")
    if isinstance(configured, str) and configured.strip():
        return configured.strip()
    return DEFAULT_PRESET


def resolve_exports(namespace: argparse.Namespace) -> List[str]:
    exports = getattr(namespace, "exports", None) or [getattr(namespace, "export_default", "text")]
    return list(dict.fromkeys(exports))


def _guarded(action: Callable[[], T], *, context: Mapping[str, Any]) -> T:
    try:
        return action()
    except CliError:
        raise
    except (CageBoardError, OSError) as exc:
        raise CliError.from_exception(exc, context=context) from exc


def _configured_number(config: Mapping[str, Any], key: str, cast: Callable[[Any], T]) -> Optional[T]:
    raw = config_section(config, "narrative").get(key)
    if raw is None:
        return None
    try:
        return cast(raw)
    except (TypeError, ValueError):
        raise CliError(
            f"Configuration value narrative.{key} is invalid: {raw!r}",
            category="usage",
            context={"key": f"narrative.{key}"},
        ) from None


def _handle_generate(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    entity = resolve_entity(namespace, config)
    text = load_table_text(namespace.table, entity)
    beats_per_step = namespace.beats_per_step
    if beats_per_step is None:
        beats_per_step = _configured_number(config, "beats_per_step", int)
    smoothing = _configured_number(config, "smoothing", float)
    context = {"entity": entity, "table": namespace.table or "<sample>"}

    narrative = _guarded(
        lambda: compose_narrative(
            text,
            entity=namespace.codebook or entity,
            channels=parse_channels(namespace.channels),
            grammar=namespace.grammar,
            surfaces=namespace.surfaces,
            beats_per_step=beats_per_step,
            smoothing=smoothing,
        ),
        context=context,
    )
    logger.info(
        "Generated narrative",
        extra={"entity": narrative.entity, "lines": len(narrative.lines), "steps": len(narrative.steps)},
    )
    rendered = [exporters_registry[name](narrative) for name in resolve_exports(namespace)]
    return "\n\n".join(rendered)


def _state_payload(states: Iterable[Any], codebook: Any) -> List[Mapping[str, Any]]:
    payload = []
    for state in states:
        payload.append(
            {
                "index": state.index,
                "raw": dict(state.raw),
                "bins": dict(state.bins),
                "trend": dict(state.trend),
                "variance": dict(state.variance),
                "setpoint": dict(state.setpoint),
                "relative": dict(state.relative),
                "tags": dict(state.tags),
                "functions": list(select_functions(state, codebook)),
            }
        )
    return payload


def _handle_states(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    entity = resolve_entity(namespace, config)
    text = load_table_text(namespace.table, entity)
    states, codebook = _guarded(
        lambda: derive_states(
            text,
            entity=namespace.codebook or entity,
            channels=parse_channels(namespace.channels),
        ),
        context={"entity": entity, "table": namespace.table or "<sample>"},
    )
    return json.dumps(
        {"entity": codebook.entity, "states": _state_payload(states, codebook)},
        indent=2,
        sort_keys=True,
    )


def _handle_presets(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    lines = []
    for entity in list_entities():
        preset = PRESETS.get(entity)
        if preset is None:
            lines.append(f"{entity}: (no bundled sample)")
            continue
        lines.append(f"{entity}: {preset.label}")
        lines.append(f"  channels: {', '.join(preset.channels)}")
        if preset.note:
            lines.append(f"  note: {preset.note}")
    if not lines:
        raise CliError("No codebooks found under the data root.", category="not_found")
    return "\n".join(lines)
