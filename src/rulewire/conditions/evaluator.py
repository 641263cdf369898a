"""Condition evaluation with fail-closed error containment.

Any failure while validating or evaluating a condition degrades the result
to a non-match. ``evaluate_detailed`` keeps the failure visible so callers
can tell "evaluated false" apart from "failed to evaluate".
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from rulewire.conditions.operators import apply, as_args, is_operation, truthy
from rulewire.conditions.validator import validate
from rulewire.errors import RulewireError, StructuralError
from rulewire.models import BatchResult, EvaluationOutcome, Rule
from rulewire.utils.paths import has_path

logger = logging.getLogger(__name__)


def evaluate_detailed(expression: Any, data: Mapping[str, Any] | None) -> EvaluationOutcome:
    """Evaluate a condition and report whether it matched or failed.

    Never raises.
    """
    try:
        validate(expression)
        result = apply(expression, data if data is not None else {})
        return EvaluationOutcome(matched=truthy(result))
    except RulewireError as e:
        logger.warning(f"Condition evaluation failed: {e.message}")
        return EvaluationOutcome(matched=False, error=e.message, error_code=e.code)
    except Exception as e:
        logger.warning(f"Condition evaluation failed: {type(e).__name__}: {e}")
        return EvaluationOutcome(
            matched=False, error=f"{type(e).__name__}: {e}", error_code="EVALUATION_ERROR"
        )


def evaluate(expression: Any, data: Mapping[str, Any] | None) -> bool:
    """Evaluate a condition to a boolean; failures count as no match."""
    return evaluate_detailed(expression, data).matched


def evaluate_batch(rules: Iterable[Rule], data: Mapping[str, Any] | None) -> list[BatchResult]:
    """Evaluate every rule's condition independently, preserving order.

    A failing rule is reported with ``matched=False`` and an ``error``; it
    never affects the other entries.
    """
    results = []
    for rule in rules:
        outcome = evaluate_detailed(rule.condition, data)
        if outcome.failed:
            logger.warning(
                f"Rule {rule.id} ({rule.name}) condition failed to evaluate: {outcome.error}",
                extra={"rule_id": rule.id, "rule_name": rule.name},
            )
        results.append(
            BatchResult(
                rule_id=rule.id,
                rule_name=rule.name,
                matched=outcome.matched,
                error=outcome.error,
            )
        )
    return results


def extract_variables(expression: Any) -> set[str]:
    """Collect every path referenced by a ``var`` node.

    The whole-record path ``""`` is not reported.
    """
    found: set[str] = set()
    seen: set[int] = set()

    def visit(node: Any) -> None:
        if isinstance(node, list | tuple | dict):
            if id(node) in seen:
                return
            seen.add(id(node))
        if isinstance(node, list | tuple):
            for item in node:
                visit(item)
            return
        if not isinstance(node, dict):
            return
        if is_operation(node):
            name, raw = next(iter(node.items()))
            args = as_args(raw)
            if name == "var" and args and isinstance(args[0], str) and args[0] != "":
                found.add(args[0])
            for arg in args:
                visit(arg)

    visit(expression)
    return found


def synthesize_fixture(expression: Any) -> dict[str, Any]:
    """Build a minimal input record with every referenced path set to None."""
    fixture: dict[str, Any] = {}
    for path in sorted(extract_variables(expression)):
        target = fixture
        segments = path.split(".")
        for segment in segments[:-1]:
            nested = target.get(segment)
            if not isinstance(nested, dict):
                nested = {}
                target[segment] = nested
            target = nested
        target.setdefault(segments[-1], None)
    return fixture


def check_syntax(expression: Any) -> dict[str, Any]:
    """Report whether a condition is structurally valid and what it reads."""
    try:
        validate(expression)
    except StructuralError as e:
        return {"valid": False, "error": e.message, "error_code": e.code, "variables": []}
    return {"valid": True, "variables": sorted(extract_variables(expression))}


def preview_condition(expression: Any, data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Dry-run a condition against sample data."""
    report = check_syntax(expression)
    if not report["valid"]:
        report["matched"] = False
        return report

    outcome = evaluate_detailed(expression, data)
    report["matched"] = outcome.matched
    report["missing"] = [path for path in report["variables"] if not has_path(data or {}, path)]
    if outcome.failed:
        report["error"] = outcome.error
        report["error_code"] = outcome.error_code
    return report
