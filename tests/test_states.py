from __future__ import annotations

import numpy as np
import pytest

from cageboard_core.codebook import Bin
from cageboard_core.states import (
    bin_value,
    coerce_numeric,
    compute_states,
    resolve_source,
    rolling_stats,
    select_functions,
    signal_bindings,
    terrain_for,
    threshold_bindings,
    time_of_day,
    trend_tag,
    variance_tag,
)
from cageboard_core.table import parse_table
from tests.helpers import GEOLOGY_TABLE, build_codebook, build_state


@pytest.mark.parametrize(
    ("value", "expected"),
    [(5.0, "a"), (5.0001, "b"), (10.0, "b"), (1000.0, "b"), (-3.0, "a")],
)
def test_bin_value_boundaries(value: float, expected: str) -> None:
    bins = (Bin("a", 5.0), Bin("b", 10.0))

    assert bin_value(bins, value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [(3, 3.0), ("2.5", 2.5), ("", 0.0), ("abc", 0.0), (None, 0.0), (float("nan"), 0.0), (True, 1.0)],
)
def test_coerce_numeric(value: object, expected: float) -> None:
    assert coerce_numeric(value) == expected


def test_rolling_stats_at_index_zero() -> None:
    stats = rolling_stats([4.0, 8.0], 0, 5)

    assert stats.mean == 4.0
    assert stats.variance == 0.0
    assert stats.trend == 0.0


def test_rolling_stats_uses_population_variance_over_trailing_window() -> None:
    values = np.array([100.0, 1.0, 2.0, 3.0])

    stats = rolling_stats(values, 3, 3)

    assert stats.mean == pytest.approx(2.0)
    assert stats.variance == pytest.approx(2.0 / 3.0)
    assert stats.trend == pytest.approx(2.0)


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, None), (0.00005, "low"), (0.0001, "med"), (0.004, "med"), (0.005, "high")],
)
def test_variance_tag(value: float | None, expected: str | None) -> None:
    assert variance_tag(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [(None, None), (0.02, "up"), (-0.02, "down"), (0.01, "flat"), (-0.01, "flat")],
)
def test_trend_tag(value: float | None, expected: str | None) -> None:
    assert trend_tag(value) == expected


def test_resolve_source_dispatch() -> None:
    signals = {
        "bins": {"a": "high"},
        "trend": {"a": 0.5},
        "variance": {"a": 0.0},
        "setpoint": {"temp": "warm"},
        "relative": {"lum_vs_transpiration": "balanced"},
    }

    assert resolve_source("a.var", **signals) == "low"
    assert resolve_source("a.trend", **signals) == "up"
    assert resolve_source("setpoint.temp", **signals) == "warm"
    assert resolve_source("relative.lum_vs_transpiration", **signals) == "balanced"
    assert resolve_source("a.bin", **signals) == "high"
    assert resolve_source("b.var", **signals) is None
    assert resolve_source("a.level", **signals) == "flat"


def test_compute_states_derives_bins_trends_and_tags() -> None:
    codebook = build_codebook()
    records = parse_table("a,b\n1,0\n3,0\n8,0\n")

    states = compute_states(records, codebook)

    assert [state.index for state in states] == [0, 1, 2]
    assert [state.bins["a"] for state in states] == ["low", "low", "high"]
    assert "b" not in states[0].bins
    assert states[2].trend["a"] == pytest.approx(7.0)
    assert states[0].tags == {"mood": "calm", "pace": "flat"}
    assert states[2].tags["mood"] == "dread"
    assert states[2].tags["pace"] == "quick"


def test_compute_states_treats_non_numeric_as_zero() -> None:
    codebook = build_codebook()
    records = parse_table("a,b\noops,1\n")

    (state,) = compute_states(records, codebook)

    assert state.bins["a"] == "low"
    assert state.trend["a"] == 0.0


def test_compute_states_plant_relative_and_setpoint(plant_codebook) -> None:
    records = parse_table("lum,transpiration,bio_potential,temp\n150,0.018,0.24,82\n")

    (state,) = compute_states(records, plant_codebook)

    assert state.relative == {"lum_vs_transpiration": "lum_dominant"}
    assert state.setpoint == {"temp": "cool"}
    assert state.tags["mood"] == "eager"
    assert state.tags["pov"] == "close"


def test_geology_first_row(geology_codebook) -> None:
    states = compute_states(parse_table(GEOLOGY_TABLE), geology_codebook)

    first = states[0]
    expected = next(entry.id for entry in geology_codebook.bins["seismic"] if entry.max >= 0.005)
    assert first.bins["seismic"] == expected == "tremor"
    assert first.trend["seismic"] == 0.0
    assert states[4].bins["tilt"] == "steep"


def test_select_functions_in_rule_order() -> None:
    codebook = build_codebook()
    state = build_state(bins={"a": "high"}, trend={"a": 2.0})

    assert select_functions(state, codebook) == ("alarm", "climb", "echo")


def test_select_functions_skips_rules_that_fail_to_evaluate() -> None:
    codebook = build_codebook(functions={"thresholds": [{"if": "a.bin > 1", "then": ["bad"]}, {"if": "true", "then": ["ok"]}]})
    state = build_state(bins={"a": "high"})

    assert select_functions(state, codebook) == ("ok",)


def test_binding_tables() -> None:
    state = build_state(
        bins={"a": "low"}, trend={"a": 0.1}, variance={"a": 0.2}, tags={"mood": "calm"}
    )

    assert threshold_bindings(state) == {"a.bin": "low", "a.trend": 0.1}
    assert signal_bindings(state) == {
        "a.bin": "low",
        "a.trend": 0.1,
        "a.var": 0.2,
        "ncv.mood": "calm",
    }


@pytest.mark.parametrize(
    ("index", "expected"),
    [(0, "morning"), (2, "morning"), (3, "day"), (6, "dusk"), (8, "night"), (9, "night"), (10, "morning")],
)
def test_time_of_day(index: int, expected: str) -> None:
    assert time_of_day(index) == expected


def test_terrain_for_maps_variance_tag() -> None:
    state = build_state(variance={"seismic": 0.001})

    assert terrain_for(state, "seismic") == "foothills"
    assert terrain_for(state, "missing") is None


def test_merge_tags_skips_none() -> None:
    state = build_state(tags={"mood": "calm"})

    merged = state.merge_tags({"time": "dusk", "terrain": None})

    assert merged.tags == {"mood": "calm", "time": "dusk"}
    assert state.tags == {"mood": "calm"}
