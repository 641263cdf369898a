"""Tests for log formatting, redaction and setup."""

import io
import json
import logging
import sys

import pytest

from rulewire.config import (
    JSONFormatter,
    SanitizingFilter,
    Settings,
    TextFormatter,
    configure_logging,
    configure_logging_from_settings,
)
from rulewire.config.logging import HANDLER_MARKER


def make_record(msg, args=None, **extra):
    record = logging.LogRecord(
        name="rulewire.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def root_logger():
    """Root logger, with rulewire handlers removed and the level restored afterwards."""
    root = logging.getLogger()
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if getattr(handler, HANDLER_MARKER, False):
            root.removeHandler(handler)
    root.setLevel(level)


def installed(root):
    return [h for h in root.handlers if getattr(h, HANDLER_MARKER, False)]


class TestJSONFormatter:
    def test_core_fields(self):
        payload = json.loads(JSONFormatter().format(make_record("Webhook executed")))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "rulewire.test"
        assert payload["message"] == "Webhook executed"
        assert "timestamp" in payload
        assert "thread" in payload

    def test_context_fields(self):
        record = make_record(
            "done", rule_id="r1", status_code=200, attempt=2, url=None, unrelated="x"
        )

        payload = json.loads(JSONFormatter().format(record))

        assert payload["rule_id"] == "r1"
        assert payload["status_code"] == 200
        assert payload["attempt"] == 2
        assert "url" not in payload
        assert "unrelated" not in payload

    def test_exception_included(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = make_record("failed")
            record.exc_info = sys.exc_info()

        payload = json.loads(JSONFormatter().format(record))

        assert "ValueError: bad" in payload["exception"]


class TestTextFormatter:
    def test_rule_suffix(self):
        line = TextFormatter().format(make_record("Webhook failed", rule_id="r1"))
        assert line.endswith("Webhook failed [rule=r1]")

    def test_no_suffix_without_rule(self):
        line = TextFormatter().format(make_record("Scheduler started"))
        assert line.endswith("rulewire.test - INFO - Scheduler started")


class TestSanitizingFilter:
    def test_redacts_message(self):
        record = make_record("Sending with Authorization: Bearer abc.def.ghi")

        assert SanitizingFilter().filter(record) is True
        assert "abc.def.ghi" not in record.getMessage()
        assert "Bearer [REDACTED]" in record.getMessage()

    def test_redacts_string_args(self):
        record = make_record("headers %s count %d", ("api_key=secret123", 3))

        SanitizingFilter().filter(record)

        message = record.getMessage()
        assert "secret123" not in message
        assert message.endswith("count 3")

    def test_redacts_url_field(self):
        record = make_record("Webhook failed", url="https://hooks.example.com/x?token=abc123")

        SanitizingFilter().filter(record)

        assert "abc123" not in record.url


class TestConfigureLogging:
    def test_json_handler(self, root_logger):
        stream = io.StringIO()
        configure_logging(level="DEBUG", format="json", stream=stream)

        assert root_logger.level == logging.DEBUG
        handler = installed(root_logger)[0]
        assert isinstance(handler.formatter, JSONFormatter)
        assert any(isinstance(f, SanitizingFilter) for f in handler.filters)

        logging.getLogger("rulewire.demo").info("hello", extra={"rule_id": "r9"})
        line = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert line["message"] == "hello"
        assert line["rule_id"] == "r9"

    def test_text_handler_without_sanitizing(self, root_logger):
        handler = configure_logging(level="warning", format="text", sanitize_logs=False)

        assert isinstance(handler.formatter, TextFormatter)
        assert handler.filters == []
        assert root_logger.level == logging.WARNING

    def test_reconfiguring_replaces_only_own_handler(self, root_logger):
        foreign = logging.NullHandler()
        root_logger.addHandler(foreign)
        try:
            configure_logging(stream=io.StringIO())
            configure_logging(format="json", stream=io.StringIO())

            assert len(installed(root_logger)) == 1
            assert foreign in root_logger.handlers
        finally:
            root_logger.removeHandler(foreign)

    def test_quiets_third_party_loggers(self, root_logger):
        configure_logging(stream=io.StringIO())
        assert logging.getLogger("apscheduler").level == logging.WARNING
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_from_settings(self, root_logger):
        settings = Settings(_env_file=None, log_format="json", log_level="ERROR")

        handler = configure_logging_from_settings(settings, stream=io.StringIO())

        assert isinstance(handler.formatter, JSONFormatter)
        assert handler.level == logging.ERROR
