"""Core narrative engine: records in, deterministic story lines out."""

from __future__ import annotations

from cageboard_core.beats import (
    Beat,
    BeatBonus,
    BeatHistory,
    BeatPlanner,
    NarrativeMemory,
    Palette,
    PlannedBeat,
    TokenSet,
)
from cageboard_core.codebook import Bin, Codebook, NCVRule, ThresholdRule
from cageboard_core.errors import (
    CageBoardError,
    ConfigurationError,
    ExpressionError,
    NoDataError,
)
from cageboard_core.expressions import compile_expression, evaluate, evaluate_bool
from cageboard_core.grammar import Anchors, PlannerSettings, StoryGrammar
from cageboard_core.narrative import Narrative, StepTrace, SurfaceLookup, generate_narrative
from cageboard_core.pacing import Bridge, BridgeTable, SideQuestGraph, compute_path, slice_bounds
from cageboard_core.regimes import REFERENCE_REGIMES, RegimeClassifier, RegimeDecision, RegimeRule
from cageboard_core.states import State, compute_states, select_functions
from cageboard_core.table import Record, engage_channels, parse_table

__all__ = [
    "Anchors",
    "Beat",
    "BeatBonus",
    "BeatHistory",
    "BeatPlanner",
    "Bin",
    "Bridge",
    "BridgeTable",
    "CageBoardError",
    "Codebook",
    "ConfigurationError",
    "ExpressionError",
    "NCVRule",
    "Narrative",
    "NarrativeMemory",
    "NoDataError",
    "Palette",
    "PlannedBeat",
    "PlannerSettings",
    "REFERENCE_REGIMES",
    "Record",
    "RegimeClassifier",
    "RegimeDecision",
    "RegimeRule",
    "SideQuestGraph",
    "State",
    "StepTrace",
    "StoryGrammar",
    "SurfaceLookup",
    "ThresholdRule",
    "TokenSet",
    "compile_expression",
    "compute_path",
    "compute_states",
    "engage_channels",
    "evaluate",
    "evaluate_bool",
    "generate_narrative",
    "parse_table",
    "select_functions",
    "slice_bounds",
]
