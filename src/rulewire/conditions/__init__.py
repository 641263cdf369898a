"""Condition evaluation engine."""

from rulewire.conditions.evaluator import (
    check_syntax,
    evaluate,
    evaluate_batch,
    evaluate_detailed,
    extract_variables,
    preview_condition,
    synthesize_fixture,
)
from rulewire.conditions.operators import OPERATORS, OperatorSpec
from rulewire.conditions.validator import is_valid, validate

# Alias used by callers that evaluate many rules at once
evaluate_many = evaluate_batch

__all__ = [
    "OPERATORS",
    "OperatorSpec",
    "check_syntax",
    "evaluate",
    "evaluate_batch",
    "evaluate_detailed",
    "evaluate_many",
    "extract_variables",
    "is_valid",
    "preview_condition",
    "synthesize_fixture",
    "validate",
]
