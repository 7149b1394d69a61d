from __future__ import annotations

import pytest

from cageboard_core.beats import BEATS_PER_STEP
from cageboard_core.errors import ConfigurationError
from cageboard_core.grammar import Anchors, StoryGrammar
from cageboard_core.regimes import REFERENCE_REGIMES
from cageboard_core.states import DEFAULT_TERRAIN_LABELS
from tests.helpers import build_grammar, build_grammar_payload


def test_from_mapping_builds_grammar() -> None:
    grammar = build_grammar()

    assert grammar.regimes == ("calm", "storm")
    assert grammar.smoothing == 0.0
    assert grammar.initial_tokens == ("start",)
    assert set(grammar.beats) == {"walk", "rest", "sprint", "shelter"}
    assert grammar.anchors == Anchors("BEGIN", "CALL", "RETURN", "END")
    assert grammar.planner.beats_per_step == BEATS_PER_STEP
    assert grammar.terrain_labels["high"] == "broken"


def test_classifier_and_planner_factories() -> None:
    grammar = build_grammar()

    first = grammar.classifier()
    second = grammar.classifier()

    assert first is not second
    assert first.smoothing == 0.0
    assert grammar.planner_for().beats_per_step == BEATS_PER_STEP
    assert grammar.planner_for(1).beats_per_step == 1


def test_anchor_defaults_when_section_missing() -> None:
    payload = build_grammar_payload()
    del payload["anchors"]

    grammar = StoryGrammar.from_mapping(payload)

    assert grammar.anchors == Anchors()
    assert grammar.anchors.opening.startswith("Opening:")
    assert grammar.anchors.closing.startswith("Closing:")


@pytest.mark.parametrize(
    ("changes", "section"),
    [
        ({"regimes": {"names": []}}, "regimes"),
        ({"palettes": {"fog": {"movement": ["walk"]}}}, "palettes"),
        ({"palettes": {"calm": {"movement": ["fly"]}}}, "palettes.calm"),
        ({"bonuses": [{"beat": "fly", "when": "true", "add": 1}]}, "bonuses"),
        ({"bridges": [{"from": "calm", "to": "fog", "id": "x"}]}, "bridges"),
        ({"planner": {"beats_per_step": "many"}}, "planner"),
        ({"planner": ["many"]}, "planner"),
        ({"anchors": "BEGIN"}, "anchors"),
        ({"terrain": ["plain"]}, "terrain"),
        ({"terrain": {"labels": ["broken"]}}, "terrain"),
    ],
)
def test_invalid_grammar_documents(changes: dict, section: str) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        build_grammar(**changes)

    assert excinfo.value.section == section


def test_terrain_labels_merge_over_defaults() -> None:
    grammar = build_grammar(terrain={"labels": {"high": "jagged"}})

    assert grammar.terrain_labels["high"] == "jagged"
    assert grammar.terrain_labels["low"] == DEFAULT_TERRAIN_LABELS["low"]


def test_direct_construction_uses_default_terrain_labels() -> None:
    source = build_grammar()

    grammar = StoryGrammar(
        regimes=source.regimes,
        rules=source.rules,
        palettes=source.palettes,
        beats=source.beats,
        bonuses=source.bonuses,
        bridges=source.bridges,
        sidequest=source.sidequest,
    )

    assert grammar.terrain_labels == DEFAULT_TERRAIN_LABELS
    assert grammar.anchors == Anchors()


def test_sidequest_override_regimes_must_be_declared() -> None:
    payload = build_grammar_payload()
    payload["sidequest"]["force"] = {"trial": "fog"}

    with pytest.raises(ConfigurationError) as excinfo:
        StoryGrammar.from_mapping(payload)

    assert excinfo.value.section == "sidequest"


def test_bundled_grammar(story_grammar) -> None:
    assert story_grammar.regimes == REFERENCE_REGIMES
    assert story_grammar.smoothing == pytest.approx(0.7)
    assert story_grammar.initial_tokens == ("on_road",)
    assert set(story_grammar.palettes) == set(REFERENCE_REGIMES)
    assert story_grammar.sidequest.force == {"inmost": "shamanic"}
    assert story_grammar.bridges.lookup("fairytale", "heroic") is not None
    wet_granting = [beat for beat in story_grammar.beats.values() if "wet" in beat.grants]
    wet_requiring = [beat for beat in story_grammar.beats.values() if "wet" in beat.requires]
    assert wet_granting and wet_requiring
