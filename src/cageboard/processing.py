"""High-level helpers turning a sensor table into a narrative."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from time import monotonic
from typing import Iterable, Optional

from cageboard.config_loader import load_codebook, load_grammar, load_surfaces
from cageboard.surfaces import SurfaceLibrary
from cageboard_core.codebook import Codebook
from cageboard_core.errors import NoDataError
from cageboard_core.grammar import StoryGrammar
from cageboard_core.narrative import Narrative, generate_narrative
from cageboard_core.states import State, compute_states
from cageboard_core.table import Record, engage_channels, parse_table

__all__ = ["compose_narrative", "derive_states", "prepare_records"]

logger = logging.getLogger(__name__)


def prepare_records(text: str, channels: Optional[Iterable[str]] = None) -> tuple[Record, ...]:
    """Parse ``text`` and keep only ``channels`` when given.

    Raises :class:`NoDataError` when the table has no rows.
    """

    records = parse_table(text)
    if not records:
        raise NoDataError("No data detected. Provide a table or use a preset.")
    if channels is not None:
        records = engage_channels(records, channels)
    return records


def derive_states(
    text: str,
    *,
    entity: str | Path,
    channels: Optional[Iterable[str]] = None,
) -> tuple[tuple[State, ...], Codebook]:
    codebook = load_codebook(entity)
    records = prepare_records(text, channels)
    return compute_states(records, codebook), codebook


def compose_narrative(
    text: str,
    *,
    entity: str | Path,
    channels: Optional[Iterable[str]] = None,
    grammar: StoryGrammar | str | Path | None = None,
    surfaces: SurfaceLibrary | str | Path | None = None,
    beats_per_step: Optional[int] = None,
    smoothing: Optional[float] = None,
) -> Narrative:
    """Load the configured documents and run the narrative pipeline over ``text``."""

    started = monotonic()
    codebook = load_codebook(entity)
    story = grammar if isinstance(grammar, StoryGrammar) else load_grammar(grammar)
    if smoothing is not None:
        story = replace(story, smoothing=float(smoothing))
    library = surfaces if isinstance(surfaces, SurfaceLibrary) else load_surfaces(surfaces)
    records = prepare_records(text, channels)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Composing narrative",
            extra={
                "entity": codebook.entity,
                "record_count": len(records),
                "beats_per_step": beats_per_step,
            },
        )
    narrative = generate_narrative(
        records, codebook, story, library, beats_per_step=beats_per_step
    )
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Narrative composed",
            extra={"entity": codebook.entity, "duration": monotonic() - started},
        )
    return narrative
