"""Tests for rule stores, log sinks and database backends."""

import logging
import threading
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from rulewire.errors import ConfigurationError, DuplicateRuleError, RuleNotFoundError
from rulewire.models import LogStats, Rule, RuleLogCount, WebhookAction
from rulewire.store import (
    InMemoryLogSink,
    InMemoryRuleStore,
    SQLiteBackend,
    SQLiteLogSink,
    SQLiteRuleStore,
    create_backend,
    safe_record,
)

CONDITION = {">": [{"var": "amount"}, 100]}


def make_rule(rule_id, name=None, **kwargs):
    fields = {
        "id": rule_id,
        "name": name or f"rule {rule_id}",
        "condition": CONDITION,
        "actions": [
            {
                "type": "webhook",
                "url": "https://hooks.example.com/a",
                "includeMetadata": False,
                "headers": {"X-Team": "billing"},
            }
        ],
    }
    fields.update(kwargs)
    return Rule(**fields)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, backend):
    """Each contract test runs against both store implementations."""
    if request.param == "memory":
        return InMemoryRuleStore()
    return SQLiteRuleStore(backend)


class TestRuleStoreContract:
    def test_add_and_get(self, store):
        store.add_rule(make_rule("r1"))

        rule = store.get_rule_by_id("r1")

        assert rule.name == "rule r1"
        assert rule.condition == CONDITION
        assert isinstance(rule.actions[0], WebhookAction)
        assert rule.actions[0].include_metadata is False
        assert rule.actions[0].headers == {"X-Team": "billing"}

    def test_duplicate_name_rejected(self, store):
        store.add_rule(make_rule("r1", name="shared"))
        with pytest.raises(DuplicateRuleError):
            store.add_rule(make_rule("r2", name="shared"))

    def test_get_missing(self, store):
        with pytest.raises(RuleNotFoundError):
            store.get_rule_by_id("missing")

    def test_active_and_scheduled_views(self, store):
        store.add_rule(make_rule("live"))
        store.add_rule(make_rule("off", is_active=False, schedule="0 0 * * * *"))
        store.add_rule(make_rule("cron", schedule="0 0 * * * *"))

        assert {r.id for r in store.get_all_rules()} == {"live", "off", "cron"}
        assert {r.id for r in store.get_active_rules()} == {"live", "cron"}
        assert [r.id for r in store.get_scheduled_rules()] == ["cron"]

    def test_update(self, store):
        original = store.add_rule(make_rule("r1"))

        store.update_rule(make_rule("r1", name="renamed", is_active=False))

        rule = store.get_rule_by_id("r1")
        assert rule.name == "renamed"
        assert rule.is_active is False
        assert rule.updated_at >= original.updated_at

    def test_update_missing(self, store):
        with pytest.raises(RuleNotFoundError):
            store.update_rule(make_rule("ghost"))

    def test_update_to_taken_name(self, store):
        store.add_rule(make_rule("r1", name="first"))
        store.add_rule(make_rule("r2", name="second"))
        with pytest.raises(DuplicateRuleError):
            store.update_rule(make_rule("r2", name="first"))

    def test_delete(self, store):
        store.add_rule(make_rule("r1"))

        store.delete_rule("r1")

        assert store.get_all_rules() == []
        with pytest.raises(RuleNotFoundError):
            store.delete_rule("r1")


class TestSQLiteRuleStore:
    def test_scheduled_input_round_trips(self, backend):
        store = SQLiteRuleStore(backend)
        store.add_rule(make_rule("r1", schedule="0 0 6 * * *", scheduled_input={"region": "eu"}))

        rule = store.get_rule_by_id("r1")

        assert rule.schedule == "0 0 6 * * *"
        assert rule.scheduled_input == {"region": "eu"}

    def test_persists_across_store_instances(self, backend):
        SQLiteRuleStore(backend).add_rule(make_rule("r1"))
        assert SQLiteRuleStore(backend).get_rule_by_id("r1").name == "rule r1"

    def test_import_rules_collects_errors(self, backend):
        store = SQLiteRuleStore(backend)
        store.add_rule(make_rule("existing", name="taken"))

        result = store.import_rules([make_rule("a"), make_rule("b", name="taken")])

        assert result["imported"] == ["a"]
        assert result["errors"] == [
            {"name": "taken", "error": "Rule with name 'taken' already exists"}
        ]


class TestLogSinks:
    @pytest.fixture(params=["memory", "sqlite"])
    def sink(self, request, backend):
        if request.param == "memory":
            return InMemoryLogSink()
        return SQLiteLogSink(backend)

    def test_record_and_read_back(self, sink):
        sink.record("r1", True, {"amount": 500}, 1.5)
        sink.record("r2", False, {}, 0.2, error="division by zero")

        logs = sink.get_logs()
        assert len(logs) == 2

        by_rule = {log.rule_id: log for log in logs}
        assert by_rule["r1"].matched is True
        assert by_rule["r1"].input == {"amount": 500}
        assert by_rule["r1"].duration_ms == 1.5
        assert by_rule["r1"].error is None
        assert by_rule["r2"].error == "division by zero"

    def test_filter_and_limit(self, sink):
        for _ in range(3):
            sink.record("r1", True, {}, 1.0)
        sink.record("r2", True, {}, 1.0)

        assert len(sink.get_logs(rule_id="r1")) == 3
        assert len(sink.get_logs(rule_id="r1", limit=2)) == 2
        assert [log.rule_id for log in sink.get_logs(rule_id="r2")] == ["r2"]

    def test_clear_old_logs(self, sink):
        sink.record("r1", True, {}, 1.0)
        sink.record("r2", False, {}, 1.0)

        assert sink.clear_old_logs(30) == 0
        assert len(sink.get_logs()) == 2

        later = datetime.now(UTC) + timedelta(days=31)
        assert sink.clear_old_logs(30, now=later) == 2
        assert sink.get_logs() == []

    def test_clear_old_logs_rejects_negative_days(self, sink):
        with pytest.raises(ValueError):
            sink.clear_old_logs(-1)

    def test_log_stats(self, sink):
        for _ in range(3):
            sink.record("busy", True, {}, 1.0)
        sink.record("quiet", False, {}, 1.0)
        sink.record("broken", False, {}, 1.0, error="division by zero")

        stats = sink.get_log_stats()

        assert (stats.total, stats.matched, stats.unmatched, stats.errors) == (5, 3, 2, 1)
        assert stats.top_rules[0] == RuleLogCount(rule_id="busy", count=3, matched_count=3)
        assert {entry.rule_id for entry in stats.top_rules} == {"busy", "quiet", "broken"}
        assert len(sink.get_log_stats(top=1).top_rules) == 1

    def test_log_stats_empty(self, sink):
        assert sink.get_log_stats() == LogStats()

    def test_memory_sink_newest_first(self):
        sink = InMemoryLogSink()
        sink.record("first", True, {}, 1.0)
        sink.record("second", True, {}, 1.0)
        assert [log.rule_id for log in sink.get_logs()] == ["second", "first"]

    def test_safe_record_swallows_sink_failure(self, caplog):
        sink = MagicMock()
        sink.record.side_effect = RuntimeError("disk full")

        with caplog.at_level(logging.ERROR, logger="rulewire.store.base"):
            safe_record(sink, "r1", True, {}, 1.0)

        assert "Failed to save execution log for rule r1" in caplog.text


class TestBackends:
    def test_create_backend_default(self):
        backend = create_backend()
        assert isinstance(backend, SQLiteBackend)
        assert str(backend.db_path) == "rulewire.db"

    def test_create_backend_from_url(self, tmp_path):
        backend = create_backend(f"sqlite:///{tmp_path}/rules.db")
        assert isinstance(backend, SQLiteBackend)
        assert backend.db_path.name == "rules.db"

    def test_create_backend_relative_path(self):
        assert str(create_backend("sqlite:///data/rules.db").db_path) == "data/rules.db"

    def test_unsupported_scheme(self):
        with pytest.raises(ConfigurationError):
            create_backend("postgresql://localhost/rulewire")

    def test_transaction_rolls_back(self, backend):
        backend.executescript("CREATE TABLE items (name TEXT)")

        with pytest.raises(RuntimeError):
            with backend.transaction():
                backend.execute("INSERT INTO items (name) VALUES (?)", ("a",))
                raise RuntimeError("abort")

        assert backend.fetchall("SELECT * FROM items") == []

    def test_fetchone_returns_dict(self, backend):
        backend.executescript("CREATE TABLE items (name TEXT)")
        with backend.transaction():
            backend.execute("INSERT INTO items (name) VALUES (?)", ("a",))

        assert backend.fetchone("SELECT name FROM items") == {"name": "a"}
        assert backend.fetchone("SELECT name FROM items WHERE name = ?", ("b",)) is None

    def test_in_memory_database_rejected(self):
        with pytest.raises(ConfigurationError):
            SQLiteBackend(db_path=":memory:")

    def test_creates_parent_directories(self, tmp_path):
        backend = SQLiteBackend(db_path=str(tmp_path / "nested" / "dir" / "rules.db"))

        backend.executescript("CREATE TABLE items (name TEXT)")

        assert (tmp_path / "nested" / "dir" / "rules.db").exists()
        backend.close()

    def test_close_releases_connections_from_other_threads(self, backend):
        backend.executescript("CREATE TABLE items (name TEXT)")
        worker = threading.Thread(target=backend.fetchall, args=("SELECT * FROM items",))
        worker.start()
        worker.join()
        assert len(backend._connections) == 2

        backend.close()

        assert backend._connections == []
        # A fresh connection is opened on next use
        assert backend.fetchall("SELECT * FROM items") == []
