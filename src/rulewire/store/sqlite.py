"""SQLite-backed rule store and execution log."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from rulewire.errors import DuplicateRuleError, RuleNotFoundError
from rulewire.models import ExecutionRecord, LogStats, Rule, RuleLogCount
from rulewire.store.backends import DatabaseBackend

logger = logging.getLogger(__name__)


def _parse_datetime(value) -> datetime | None:
    """Parse datetime from database (handles both strings and datetime objects)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class SQLiteRuleStore:
    """Rule store persisted in a ``rules`` table.

    Condition, actions and scheduled input are stored as JSON text.
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS rules (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            description TEXT DEFAULT '',
            condition TEXT NOT NULL,
            actions TEXT NOT NULL,
            schedule TEXT,
            scheduled_input TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_rules_active ON rules(is_active);
    """

    def __init__(self, backend: DatabaseBackend):
        self.backend = backend
        self.backend.executescript(self.SCHEMA)

    def add_rule(self, rule: Rule) -> Rule:
        """Insert a new rule.

        Raises:
            DuplicateRuleError: another rule already has this name
        """
        if self.backend.fetchone("SELECT id FROM rules WHERE name = ?", (rule.name,)):
            raise DuplicateRuleError(rule.name)

        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO rules
                (id, name, description, condition, actions, schedule, scheduled_input,
                 is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule.id,
                    rule.name,
                    rule.description,
                    json.dumps(rule.condition),
                    json.dumps(self._dump_actions(rule)),
                    rule.schedule,
                    json.dumps(rule.scheduled_input) if rule.scheduled_input else None,
                    int(rule.is_active),
                    rule.created_at.isoformat(),
                    rule.updated_at.isoformat(),
                ),
            )
        logger.info(f"Created rule {rule.id} ({rule.name})", extra={"rule_id": rule.id})
        return rule

    def update_rule(self, rule: Rule) -> Rule:
        """Replace a stored rule.

        Raises:
            RuleNotFoundError: no rule with this id
            DuplicateRuleError: the new name belongs to another rule
        """
        self.get_rule_by_id(rule.id)
        clash = self.backend.fetchone(
            "SELECT id FROM rules WHERE name = ? AND id != ?", (rule.name, rule.id)
        )
        if clash:
            raise DuplicateRuleError(rule.name)

        updated = rule.model_copy(update={"updated_at": datetime.now(UTC)})
        with self.backend.transaction():
            self.backend.execute(
                """
                UPDATE rules
                SET name = ?, description = ?, condition = ?, actions = ?, schedule = ?,
                    scheduled_input = ?, is_active = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    updated.name,
                    updated.description,
                    json.dumps(updated.condition),
                    json.dumps(self._dump_actions(updated)),
                    updated.schedule,
                    json.dumps(updated.scheduled_input) if updated.scheduled_input else None,
                    int(updated.is_active),
                    updated.updated_at.isoformat(),
                    updated.id,
                ),
            )
        return updated

    def delete_rule(self, rule_id: str) -> None:
        """Raises RuleNotFoundError when absent."""
        self.get_rule_by_id(rule_id)
        with self.backend.transaction():
            self.backend.execute("DELETE FROM rules WHERE id = ?", (rule_id,))
        logger.info(f"Deleted rule {rule_id}", extra={"rule_id": rule_id})

    def import_rules(self, rules: list[Rule]) -> dict[str, list]:
        """Add many rules, collecting per-rule failures instead of stopping."""
        imported, errors = [], []
        for rule in rules:
            try:
                imported.append(self.add_rule(rule).id)
            except DuplicateRuleError as e:
                errors.append({"name": rule.name, "error": e.message})
        return {"imported": imported, "errors": errors}

    def get_all_rules(self) -> list[Rule]:
        rows = self.backend.fetchall("SELECT * FROM rules ORDER BY created_at")
        return [self._row_to_rule(row) for row in rows]

    def get_active_rules(self) -> list[Rule]:
        rows = self.backend.fetchall(
            "SELECT * FROM rules WHERE is_active = 1 ORDER BY created_at"
        )
        return [self._row_to_rule(row) for row in rows]

    def get_scheduled_rules(self) -> list[Rule]:
        rows = self.backend.fetchall(
            "SELECT * FROM rules WHERE is_active = 1 AND schedule IS NOT NULL ORDER BY created_at"
        )
        return [self._row_to_rule(row) for row in rows]

    def get_rule_by_id(self, rule_id: str) -> Rule:
        row = self.backend.fetchone("SELECT * FROM rules WHERE id = ?", (rule_id,))
        if row is None:
            raise RuleNotFoundError(rule_id)
        return self._row_to_rule(row)

    @staticmethod
    def _dump_actions(rule: Rule) -> list[dict[str, Any]]:
        return [
            action if isinstance(action, dict) else action.model_dump(by_alias=True)
            for action in rule.actions
        ]

    @staticmethod
    def _row_to_rule(row: dict) -> Rule:
        return Rule(
            id=row["id"],
            name=row["name"],
            description=row.get("description") or "",
            condition=json.loads(row["condition"]),
            actions=json.loads(row["actions"]),
            schedule=row.get("schedule"),
            scheduled_input=json.loads(row["scheduled_input"])
            if row.get("scheduled_input")
            else None,
            is_active=bool(row["is_active"]),
            created_at=_parse_datetime(row.get("created_at")) or datetime.now(UTC),
            updated_at=_parse_datetime(row.get("updated_at")) or datetime.now(UTC),
        )


class SQLiteLogSink:
    """Execution records persisted in an ``execution_logs`` table."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS execution_logs (
            id TEXT PRIMARY KEY,
            rule_id TEXT NOT NULL,
            matched INTEGER NOT NULL,
            executed_at TIMESTAMP NOT NULL,
            input TEXT,
            duration_ms REAL,
            error TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_execution_logs_rule
        ON execution_logs(rule_id, executed_at DESC);
    """

    def __init__(self, backend: DatabaseBackend):
        self.backend = backend
        self.backend.executescript(self.SCHEMA)

    def record(
        self,
        rule_id: str,
        matched: bool,
        input: dict[str, Any],
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO execution_logs
                (id, rule_id, matched, executed_at, input, duration_ms, error)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()),
                    rule_id,
                    int(matched),
                    datetime.now(UTC).isoformat(),
                    json.dumps(input, default=str),
                    duration_ms,
                    error,
                ),
            )

    def get_logs(self, rule_id: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        """Most recent records first, optionally for one rule."""
        if rule_id is None:
            rows = self.backend.fetchall(
                "SELECT * FROM execution_logs ORDER BY executed_at DESC LIMIT ?", (limit,)
            )
        else:
            rows = self.backend.fetchall(
                """
                SELECT * FROM execution_logs WHERE rule_id = ?
                ORDER BY executed_at DESC LIMIT ?
                """,
                (rule_id, limit),
            )
        return [
            ExecutionRecord(
                id=row["id"],
                rule_id=row["rule_id"],
                matched=bool(row["matched"]),
                executed_at=_parse_datetime(row["executed_at"]),
                input=json.loads(row["input"]) if row.get("input") else {},
                duration_ms=row.get("duration_ms") or 0.0,
                error=row.get("error"),
            )
            for row in rows
        ]

    def clear_old_logs(self, days: int, now: datetime | None = None) -> int:
        """Delete records executed more than ``days`` days before ``now``.

        Returns:
            Number of records deleted
        """
        if days < 0:
            raise ValueError("days must be zero or greater")
        cutoff = (now or datetime.now(UTC)).astimezone(UTC) - timedelta(days=days)
        with self.backend.transaction():
            cursor = self.backend.execute(
                "DELETE FROM execution_logs WHERE executed_at < ?", (cutoff.isoformat(),)
            )
        deleted = cursor.rowcount
        logger.info(
            f"Cleared {deleted} execution log(s) older than {days} day(s)",
            extra={"deleted_count": deleted, "cutoff": cutoff.isoformat()},
        )
        return deleted

    def get_log_stats(self, top: int = 10) -> LogStats:
        """Totals, matched/unmatched split, error count and the busiest rules."""
        totals = self.backend.fetchone(
            """
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(matched), 0) AS matched,
                   COALESCE(SUM(CASE WHEN error IS NOT NULL THEN 1 ELSE 0 END), 0) AS errors
            FROM execution_logs
            """
        )
        rows = self.backend.fetchall(
            """
            SELECT rule_id, COUNT(*) AS count, SUM(matched) AS matched_count
            FROM execution_logs
            GROUP BY rule_id
            ORDER BY count DESC, rule_id
            LIMIT ?
            """,
            (top,),
        )
        return LogStats(
            total=totals["total"],
            matched=totals["matched"],
            unmatched=totals["total"] - totals["matched"],
            errors=totals["errors"],
            top_rules=[RuleLogCount(**row) for row in rows],
        )
