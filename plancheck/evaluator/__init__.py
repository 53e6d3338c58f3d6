"""Corpus evaluation and before/after comparison."""

from .corpus import (
    PlanSource,
    ComparisonCase,
    discover_plans,
    pair_plans,
    load_document,
    matches_mode,
    split_plan_name,
)
from .evaluator import (
    CompareOutcome,
    Verdict,
    ComparisonRow,
    ComparisonReport,
    evaluate,
    compare,
    compare_cases,
    outcome_for,
)

__all__ = [
    "PlanSource",
    "ComparisonCase",
    "discover_plans",
    "pair_plans",
    "load_document",
    "matches_mode",
    "split_plan_name",
    "CompareOutcome",
    "Verdict",
    "ComparisonRow",
    "ComparisonReport",
    "evaluate",
    "compare",
    "compare_cases",
    "outcome_for",
]
