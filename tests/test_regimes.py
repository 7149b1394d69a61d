from __future__ import annotations

import pytest

from cageboard_core.errors import ConfigurationError
from cageboard_core.regimes import (
    REFERENCE_REGIMES,
    RegimeClassifier,
    RegimeRule,
    blend_weights,
    dominant_regime,
    normalise_weights,
    rules_from_payload,
)
from tests.helpers import build_state

REGIMES = ("calm", "storm")


def _classifier(smoothing: float = 0.7) -> RegimeClassifier:
    rules = (
        RegimeRule.compile("calm", "a.bin == 'low'", 1.0),
        RegimeRule.compile("storm", "a.bin == 'high'", 3.0),
    )
    return RegimeClassifier(REGIMES, rules, smoothing=smoothing)


def test_reference_regime_order() -> None:
    assert REFERENCE_REGIMES == ("fairytale", "heroic", "trickster", "shamanic", "elegiac")


def test_zero_mass_normalises_to_uniform() -> None:
    weights = normalise_weights(REFERENCE_REGIMES, {})

    assert len(weights) == 5
    assert all(value == pytest.approx(0.2) for value in weights.values())


def test_normalise_ignores_negative_contributions() -> None:
    assert normalise_weights(REGIMES, {"calm": 3.0, "storm": -1.0}) == {"calm": 1.0, "storm": 0.0}


def test_blend_weights_mixes_previous_and_current() -> None:
    blended = blend_weights(REGIMES, {"calm": 0.5, "storm": 0.5}, {"calm": 1.0, "storm": 0.0}, 0.7)

    assert blended["calm"] == pytest.approx(0.65)
    assert blended["storm"] == pytest.approx(0.35)


def test_dominant_regime_breaks_ties_by_declaration_order() -> None:
    assert dominant_regime(REGIMES, {"calm": 0.5, "storm": 0.5}) == "calm"
    assert dominant_regime(REGIMES, {"calm": 0.4, "storm": 0.6}) == "storm"


def test_instantaneous_weights_from_rules() -> None:
    classifier = _classifier()

    assert classifier.instantaneous(build_state(bins={"a": "high"})) == {"calm": 0.0, "storm": 1.0}
    assert classifier.instantaneous(build_state()) == {"calm": 0.5, "storm": 0.5}


def test_smoothing_gives_inertia() -> None:
    classifier = _classifier(smoothing=0.7)

    decisions = classifier.classify_all(
        [
            build_state(0, bins={"a": "low"}),
            build_state(1, bins={"a": "low"}),
            build_state(2, bins={"a": "high"}),
            build_state(3, bins={"a": "high"}),
        ]
    )

    assert decisions[0].running["calm"] == pytest.approx(0.65)
    assert decisions[1].running["calm"] == pytest.approx(0.755)
    assert decisions[2].instantaneous["storm"] == 1.0
    assert [decision.regime for decision in decisions] == ["calm", "calm", "calm", "storm"]


def test_zero_smoothing_follows_instantaneous() -> None:
    classifier = _classifier(smoothing=0.0)

    decisions = classifier.classify_all(
        [build_state(0, bins={"a": "low"}), build_state(1, bins={"a": "high"})]
    )

    assert [decision.regime for decision in decisions] == ["calm", "storm"]


def test_reset_restores_uniform_running_vector() -> None:
    classifier = _classifier()
    classifier.classify(build_state(bins={"a": "high"}))

    classifier.reset()

    assert classifier.running == {"calm": 0.5, "storm": 0.5}


def test_rules_failing_at_runtime_are_skipped() -> None:
    rules = (RegimeRule.compile("storm", "a.bin > 2", 1.0),)
    classifier = RegimeClassifier(REGIMES, rules, smoothing=0.0)

    decision = classifier.classify(build_state(bins={"a": "high"}))

    assert decision.instantaneous == {"calm": 0.5, "storm": 0.5}


@pytest.mark.parametrize(
    ("regimes", "rules", "smoothing"),
    [
        ((), (), 0.7),
        (("calm", "calm"), (), 0.7),
        (REGIMES, (), 1.0),
        (REGIMES, (), -0.1),
        (REGIMES, (RegimeRule.compile("fog", "true", 1.0),), 0.7),
    ],
)
def test_invalid_classifier_configuration(regimes, rules, smoothing) -> None:
    with pytest.raises(ConfigurationError):
        RegimeClassifier(regimes, rules, smoothing=smoothing)


def test_rules_from_payload() -> None:
    rules = rules_from_payload([{"regime": "calm", "when": "true"}, {"regime": "storm", "when": "x > 1", "weight": 2}])

    assert [(rule.regime, rule.weight) for rule in rules] == [("calm", 1.0), ("storm", 2.0)]
    assert rules_from_payload(None) == ()


@pytest.mark.parametrize(
    "entries",
    [[{"when": "true"}], [{"regime": "calm", "when": "true", "weight": "heavy"}], [{"regime": "calm", "when": "a =="}]],
)
def test_rules_from_payload_rejects_malformed_entries(entries) -> None:
    with pytest.raises(ConfigurationError):
        rules_from_payload(entries)


def test_property_running_weights_stay_normalised() -> None:
    hypothesis = pytest.importorskip("hypothesis")
    strategies = pytest.importorskip("hypothesis.strategies")

    @hypothesis.given(strategies.lists(strategies.sampled_from(["low", "high", "none"]), min_size=1, max_size=30))
    def check(sequence: list[str]) -> None:
        classifier = _classifier()
        for index, label in enumerate(sequence):
            bins = {} if label == "none" else {"a": label}
            decision = classifier.classify(build_state(index, bins=bins))
            assert sum(decision.running.values()) == pytest.approx(1.0)
            assert all(value >= 0.0 for value in decision.running.values())

    check()
