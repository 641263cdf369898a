"""Manual trigger path and the facade over evaluator, executor and stores."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from rulewire.actions.executor import ActionExecutor
from rulewire.conditions.evaluator import evaluate, evaluate_batch, evaluate_detailed
from rulewire.models import ActionContext, ActionResult, BatchResult, Rule, WebhookAction
from rulewire.store.base import LogSink, RuleStore, safe_record

logger = logging.getLogger(__name__)


class MatchedRule(BaseModel):
    id: str
    name: str


class RuleExecution(BaseModel):
    """Action results for one matched rule."""

    rule_id: str
    rule_name: str
    actions: list[ActionResult] = Field(default_factory=list)


class EvaluationFailure(BaseModel):
    rule_id: str
    rule_name: str
    error: str


class TriggerReport(BaseModel):
    """Complete result of one trigger call, even when individual rules fail."""

    event: str
    total_rules: int = 0
    matched_rules: list[MatchedRule] = Field(default_factory=list)
    evaluation_errors: list[EvaluationFailure] = Field(default_factory=list)
    execution_results: list[RuleExecution] = Field(default_factory=list)


class RulePipeline:
    """Evaluates active rules against pushed event data and runs matching actions."""

    def __init__(self, store: RuleStore, log_sink: LogSink, executor: ActionExecutor):
        self.store = store
        self.log_sink = log_sink
        self.executor = executor

    def evaluate(self, condition: Any, data: Mapping[str, Any] | None) -> bool:
        return evaluate(condition, data)

    def evaluate_many(
        self, rules: Iterable[Rule], data: Mapping[str, Any] | None
    ) -> list[BatchResult]:
        return evaluate_batch(rules, data)

    def execute_actions(
        self,
        actions: Iterable[WebhookAction | Mapping[str, Any]],
        data: Mapping[str, Any] | None,
        context: ActionContext | None = None,
    ) -> list[ActionResult]:
        return self.executor.run(actions, data, context)

    def trigger(self, event: str, data: Mapping[str, Any] | None) -> TriggerReport:
        """Evaluate every active rule and run the actions of those that match.

        One execution record is written per rule. A rule that fails to
        evaluate is reported in ``evaluation_errors`` and treated as a
        non-match.
        """
        data = dict(data or {})
        rules = self.store.get_active_rules()
        report = TriggerReport(event=event, total_rules=len(rules))
        if not rules:
            logger.info(f"No active rules for event '{event}'", extra={"event": event})
            return report

        for rule in rules:
            start = self.executor.clock.monotonic()
            outcome = evaluate_detailed(rule.condition, data)
            duration = round((self.executor.clock.monotonic() - start) * 1000, 3)
            safe_record(self.log_sink, rule.id, outcome.matched, data, duration, outcome.error)

            if outcome.failed:
                report.evaluation_errors.append(
                    EvaluationFailure(rule_id=rule.id, rule_name=rule.name, error=outcome.error)
                )
            if not outcome.matched:
                continue

            report.matched_rules.append(MatchedRule(id=rule.id, name=rule.name))
            results = self.executor.run(
                rule.actions,
                data,
                ActionContext.for_rule(rule, event=event, trigger="manual"),
            )
            report.execution_results.append(
                RuleExecution(rule_id=rule.id, rule_name=rule.name, actions=results)
            )

        logger.info(
            f"Event '{event}' matched {len(report.matched_rules)}/{report.total_rules} rule(s)",
            extra={"event": event, "trigger": "manual"},
        )
        return report
