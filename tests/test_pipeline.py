"""Tests for the manual trigger path."""

from unittest.mock import MagicMock

import pytest

from rulewire.models import Rule
from rulewire.pipeline import RulePipeline

URL = "https://hooks.example.com/orders"


@pytest.fixture
def pipeline(rule_store, log_sink, executor):
    return RulePipeline(rule_store, log_sink, executor)


def add_rule(store, rule_id, condition, **kwargs):
    return store.add_rule(
        Rule(
            id=rule_id,
            name=f"rule {rule_id}",
            condition=condition,
            actions=[{"type": "webhook", "url": f"{URL}/{rule_id}"}],
            **kwargs,
        )
    )


class TestTrigger:
    def test_matching_rules_run_actions(self, pipeline, rule_store, transport):
        add_rule(rule_store, "big", {">": [{"var": "total"}, 100]})
        add_rule(rule_store, "small", {"<": [{"var": "total"}, 10]})

        report = pipeline.trigger("order.created", {"total": 250})

        assert report.event == "order.created"
        assert report.total_rules == 2
        assert [m.id for m in report.matched_rules] == ["big"]
        assert report.evaluation_errors == []
        assert len(report.execution_results) == 1
        execution = report.execution_results[0]
        assert execution.rule_id == "big"
        assert execution.actions[0].success is True

        assert transport.attempts == 1
        request = transport.requests[0]
        assert request["url"] == f"{URL}/big"
        assert request["headers"]["X-Rulewire-Event"] == "order.created"
        assert request["headers"]["X-Rulewire-Rule"] == "big"

    def test_every_rule_gets_a_record(self, pipeline, rule_store, log_sink):
        add_rule(rule_store, "a", {"==": [{"var": "kind"}, "x"]})
        add_rule(rule_store, "b", {"==": [{"var": "kind"}, "y"]})

        pipeline.trigger("evt", {"kind": "x"})

        records = {r.rule_id: r for r in log_sink.records}
        assert set(records) == {"a", "b"}
        assert records["a"].matched is True
        assert records["b"].matched is False
        assert records["a"].input == {"kind": "x"}

    def test_evaluation_error_is_reported_not_raised(self, pipeline, rule_store, log_sink):
        add_rule(rule_store, "broken", {">": [{"/": [{"var": "n"}, 0]}, 1]})
        add_rule(rule_store, "fine", {"==": [{"var": "n"}, 4]})

        report = pipeline.trigger("evt", {"n": 4})

        assert [m.id for m in report.matched_rules] == ["fine"]
        assert len(report.evaluation_errors) == 1
        failure = report.evaluation_errors[0]
        assert failure.rule_id == "broken"
        assert "division by zero" in failure.error

        records = {r.rule_id: r for r in log_sink.records}
        assert records["broken"].error == failure.error
        assert records["fine"].error is None

    def test_inactive_rules_are_ignored(self, pipeline, rule_store, transport):
        add_rule(rule_store, "off", True, is_active=False)

        report = pipeline.trigger("evt", {})

        assert report.total_rules == 0
        assert transport.attempts == 0

    def test_no_rules(self, pipeline, log_sink):
        report = pipeline.trigger("evt", {"a": 1})

        assert report.total_rules == 0
        assert report.matched_rules == []
        assert log_sink.records == []

    def test_failed_action_does_not_stop_other_rules(self, pipeline, rule_store, transport):
        transport.responses = [404, 200]
        add_rule(rule_store, "first", True)
        add_rule(rule_store, "second", True)

        report = pipeline.trigger("evt", {})

        outcomes = [e.actions[0].success for e in report.execution_results]
        assert outcomes == [False, True]

    def test_log_sink_failure_does_not_block_actions(self, rule_store, executor, transport):
        sink = MagicMock()
        sink.record.side_effect = RuntimeError("disk full")
        add_rule(rule_store, "r1", True)

        report = RulePipeline(rule_store, sink, executor).trigger("evt", {})

        assert report.execution_results[0].actions[0].success is True

    def test_report_serializes(self, pipeline, rule_store):
        add_rule(rule_store, "r1", True)

        dumped = pipeline.trigger("evt", {}).model_dump(mode="json")

        assert dumped["matched_rules"] == [{"id": "r1", "name": "rule r1"}]
        assert dumped["execution_results"][0]["actions"][0]["status_code"] == 200


class TestFacade:
    def test_evaluate(self, pipeline):
        assert pipeline.evaluate({"==": [1, 1]}, {}) is True

    def test_evaluate_many(self, pipeline):
        rules = [Rule(id="r1", name="one", condition={"==": [{"var": "a"}, 1]})]
        assert pipeline.evaluate_many(rules, {"a": 1})[0].matched is True

    def test_execute_actions(self, pipeline, transport):
        results = pipeline.execute_actions([{"type": "webhook", "url": URL}], {"a": 1})
        assert results[0].success is True
        assert transport.requests[0]["json"]["data"] == {"a": 1}
