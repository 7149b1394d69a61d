from __future__ import annotations

import logging
from typing import Mapping

import pytest

from cageboard_core.errors import NoDataError
from cageboard_core.grammar import StoryGrammar
from cageboard_core.narrative import generate_narrative
from cageboard_core.table import parse_table
from tests.helpers import GEOLOGY_TABLE, build_codebook, build_grammar, build_grammar_payload

TABLE = "a,b\n1,0\n2,0\n8,0\n9,0\n"

TEXTS = {"walk": "W", "rest": "R", "sprint": "S", "shelter": "H", "climb": "CLIMB"}


def lookup(identifier: str, context: Mapping[str, str]) -> str:
    return TEXTS.get(identifier, "")


def test_assembles_lines_in_order() -> None:
    narrative = generate_narrative(TABLE, build_codebook(), build_grammar(), lookup)

    assert narrative.lines == (
        "BEGIN",
        "CALL",
        "W", "R", "S",
        "W", "R", "H",
        "Clouds gather.", "S", "H", "W", "CLIMB",
        "S", "H", "R", "CLIMB",
        "RETURN",
        "END",
    )


def test_step_trace_records_decisions() -> None:
    narrative = generate_narrative(TABLE, build_codebook(), build_grammar(), lookup)
    steps = narrative.steps

    assert [step.classified for step in steps] == ["calm", "calm", "storm", "storm"]
    assert [step.regime for step in steps] == ["calm", "calm", "storm", "storm"]
    assert [step.node for step in steps] == ["gate", "trial", "cave", None]
    assert [step.bridge for step in steps] == [None, None, "gathering", None]
    assert steps[0].beats == ("walk", "rest", "sprint")
    assert steps[2].functions == ("alarm", "climb", "echo")
    assert steps[0].tags["time"] == "morning"
    assert sum(steps[3].weights.values()) == pytest.approx(1.0)


def test_accepts_parsed_records() -> None:
    grammar = build_grammar()
    from_text = generate_narrative(TABLE, build_codebook(), grammar, lookup)
    from_records = generate_narrative(parse_table(TABLE), build_codebook(), grammar, lookup)

    assert from_text.lines == from_records.lines


def test_surface_lines_override_anchor_call_and_return() -> None:
    texts = dict(TEXTS, call="They hear it.", gathering="Thunder.")

    narrative = generate_narrative(
        TABLE, build_codebook(), build_grammar(), lambda identifier, context: texts.get(identifier, "")
    )

    assert narrative.lines[1] == "They hear it."
    assert "Thunder." in narrative.lines
    assert "CALL" not in narrative.lines


def test_without_surfaces_only_anchors_and_bridges_remain() -> None:
    narrative = generate_narrative(TABLE, build_codebook(), build_grammar())

    assert narrative.lines == ("BEGIN", "CALL", "Clouds gather.", "RETURN", "END")


def test_sidequest_force_overrides_classified_regime() -> None:
    payload = build_grammar_payload()
    payload["sidequest"]["force"] = {"trial": "storm"}

    narrative = generate_narrative(TABLE, build_codebook(), StoryGrammar.from_mapping(payload), lookup)

    assert narrative.steps[1].classified == "calm"
    assert narrative.steps[1].regime == "storm"
    assert narrative.steps[1].bridge is None
    assert narrative.steps[1].beats[0] == "shelter"


def test_beats_per_step_override() -> None:
    narrative = generate_narrative(TABLE, build_codebook(), build_grammar(), lookup, beats_per_step=1)

    assert all(len(step.beats) == 1 for step in narrative.steps)


@pytest.mark.parametrize("table", ["", "   \n", "a,b\n"])
def test_empty_input_raises_no_data(table: str) -> None:
    with pytest.raises(NoDataError):
        generate_narrative(table, build_codebook(), build_grammar(), lookup)


def test_logs_summary(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="cageboard_core.narrative"):
        generate_narrative(TABLE, build_codebook(), build_grammar(), lookup)

    (record,) = [item for item in caplog.records if item.getMessage() == "Narrative generated"]
    assert record.steps == 4
    assert record.entity == "test"


def test_geology_end_to_end(geology_codebook, story_grammar, surface_library) -> None:
    narrative = generate_narrative(GEOLOGY_TABLE, geology_codebook, story_grammar, surface_library)
    anchors = story_grammar.anchors

    assert narrative.lines[0] == anchors.opening
    assert narrative.lines[-1] == anchors.closing
    assert narrative.lines.count(anchors.call) == 1
    assert narrative.lines[-2] in {anchors.return_, surface_library("return", {"regime": "elegiac"})}
    assert len(narrative.steps) == 6
    assert all(line for line in narrative.lines)
    assert {"mood", "time"} <= set(narrative.steps[0].tags)


def test_generation_is_deterministic(geology_codebook, story_grammar, surface_library) -> None:
    first = generate_narrative(GEOLOGY_TABLE, geology_codebook, story_grammar, surface_library)
    second = generate_narrative(GEOLOGY_TABLE, geology_codebook, story_grammar, surface_library)

    assert first == second


def test_tokens_gate_bundled_beats(geology_codebook, story_grammar, surface_library) -> None:
    narrative = generate_narrative(GEOLOGY_TABLE, geology_codebook, story_grammar, surface_library)
    emitted: list[str] = []
    granted = set(story_grammar.initial_tokens)

    for step in narrative.steps:
        for beat_id in step.beats:
            beat = story_grammar.beats[beat_id]
            assert beat.requires <= granted
            granted |= beat.grants
            emitted.append(beat_id)

    assert emitted
