"""In-memory rule store and log sink."""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import Any

from rulewire.errors import DuplicateRuleError, RuleNotFoundError
from rulewire.models import ExecutionRecord, LogStats, Rule, RuleLogCount


class InMemoryRuleStore:
    """Dictionary-backed rule store with unique rule names."""

    def __init__(self, rules: list[Rule] | None = None):
        self._rules: dict[str, Rule] = {}
        self._lock = threading.Lock()
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: Rule) -> Rule:
        with self._lock:
            if any(r.name == rule.name for r in self._rules.values()):
                raise DuplicateRuleError(rule.name)
            self._rules[rule.id] = rule
        return rule

    def update_rule(self, rule: Rule) -> Rule:
        with self._lock:
            if rule.id not in self._rules:
                raise RuleNotFoundError(rule.id)
            if any(r.name == rule.name and r.id != rule.id for r in self._rules.values()):
                raise DuplicateRuleError(rule.name)
            updated = rule.model_copy(update={"updated_at": datetime.now(UTC)})
            self._rules[rule.id] = updated
        return updated

    def delete_rule(self, rule_id: str) -> None:
        with self._lock:
            if self._rules.pop(rule_id, None) is None:
                raise RuleNotFoundError(rule_id)

    def get_all_rules(self) -> list[Rule]:
        with self._lock:
            return list(self._rules.values())

    def get_active_rules(self) -> list[Rule]:
        return [rule for rule in self.get_all_rules() if rule.is_active]

    def get_scheduled_rules(self) -> list[Rule]:
        return [rule for rule in self.get_all_rules() if rule.is_scheduled]

    def get_rule_by_id(self, rule_id: str) -> Rule:
        with self._lock:
            rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule


class InMemoryLogSink:
    """Keeps execution records in a list, newest last."""

    def __init__(self):
        self.records: list[ExecutionRecord] = []
        self._lock = threading.Lock()

    def record(
        self,
        rule_id: str,
        matched: bool,
        input: dict[str, Any],
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        entry = ExecutionRecord(
            rule_id=rule_id,
            matched=matched,
            input=dict(input),
            duration_ms=duration_ms,
            error=error,
        )
        with self._lock:
            self.records.append(entry)

    def get_logs(self, rule_id: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        """Most recent records first."""
        with self._lock:
            records = [r for r in self.records if rule_id is None or r.rule_id == rule_id]
        return list(reversed(records))[:limit]

    def clear_old_logs(self, days: int, now: datetime | None = None) -> int:
        """Drop records executed more than ``days`` days before ``now``; returns the count."""
        if days < 0:
            raise ValueError("days must be zero or greater")
        cutoff = (now or datetime.now(UTC)).astimezone(UTC) - timedelta(days=days)
        with self._lock:
            kept = [r for r in self.records if r.executed_at >= cutoff]
            deleted = len(self.records) - len(kept)
            self.records = kept
        return deleted

    def get_log_stats(self, top: int = 10) -> LogStats:
        with self._lock:
            records = list(self.records)

        per_rule: dict[str, RuleLogCount] = {}
        for r in records:
            entry = per_rule.setdefault(
                r.rule_id, RuleLogCount(rule_id=r.rule_id, count=0, matched_count=0)
            )
            entry.count += 1
            entry.matched_count += int(r.matched)

        matched = sum(1 for r in records if r.matched)
        return LogStats(
            total=len(records),
            matched=matched,
            unmatched=len(records) - matched,
            errors=sum(1 for r in records if r.error is not None),
            top_rules=sorted(per_rule.values(), key=lambda e: (-e.count, e.rule_id))[:top],
        )
