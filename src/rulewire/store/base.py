"""Collaborator contracts for rule storage and execution logging."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from rulewire.models import LogStats, Rule

logger = logging.getLogger(__name__)


class RuleStore(Protocol):
    """Read side of the rule store. Reflects committed state on every call."""

    def get_active_rules(self) -> list[Rule]: ...

    def get_scheduled_rules(self) -> list[Rule]: ...

    def get_rule_by_id(self, rule_id: str) -> Rule:
        """Raises RuleNotFoundError when absent."""
        ...


class LogSink(Protocol):
    """Append-only sink for execution records."""

    def record(
        self,
        rule_id: str,
        matched: bool,
        input: dict[str, Any],
        duration_ms: float,
        error: str | None = None,
    ) -> None: ...


class LogMaintenance(Protocol):
    """Pruning and aggregate views over a log sink."""

    def clear_old_logs(self, days: int, now: datetime | None = None) -> int:
        """Delete records older than ``days`` days and return how many went."""
        ...

    def get_log_stats(self, top: int = 10) -> LogStats: ...


def safe_record(
    sink: LogSink,
    rule_id: str,
    matched: bool,
    input: dict[str, Any],
    duration_ms: float,
    error: str | None = None,
) -> None:
    """Write an execution record; a failing sink is logged, never raised."""
    try:
        sink.record(rule_id, matched, input, duration_ms, error)
    except Exception as e:
        logger.error(
            f"Failed to save execution log for rule {rule_id}: {e}", extra={"rule_id": rule_id}
        )
