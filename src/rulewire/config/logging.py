"""Logging setup for the CLI and the scheduler daemon.

Rule and webhook log calls pass context through ``extra=`` (``rule_id``,
``url``, ``attempt``...). The JSON formatter lifts those onto the log line;
the text formatter appends the rule id so interleaved scheduler and action
pool output stays attributable.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO, Any

from rulewire.utils.sanitize import sanitize_log_message

# Attribute marking handlers installed by configure_logging
HANDLER_MARKER = "_rulewire_handler"

CONTEXT_FIELDS = (
    "rule_id",
    "rule_name",
    "event",
    "trigger",
    "url",
    "method",
    "status_code",
    "attempt",
    "duration_ms",
    "schedule",
    "job_count",
)

NOISY_LOGGERS = ("apscheduler", "urllib3")


class SanitizingFilter(logging.Filter):
    """Redact secrets from the message, its string args and the ``url`` field.

    Webhook URLs sometimes carry tokens in the query string, so the url
    context field is scrubbed along with the message.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = sanitize_log_message(str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(
                sanitize_log_message(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        url = getattr(record, "url", None)
        if isinstance(url, str):
            record.url = sanitize_log_message(url)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line with the record's rule/webhook context."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines, suffixed with ``[rule=<id>]`` when known."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        rule_id = getattr(record, "rule_id", None)
        if rule_id:
            # Keep any traceback below the suffixed first line
            first, sep, rest = line.partition("\n")
            line = f"{first} [rule={rule_id}]{sep}{rest}"
        return line


def configure_logging(
    level: str = "INFO",
    format: str = "text",
    sanitize_logs: bool = True,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Install the rulewire handler on the root logger.

    Calling again replaces the handler from the previous call; handlers
    installed by anything else are left alone.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: 'text' or 'json'
        sanitize_logs: Redact bearer tokens, API keys and passwords
        stream: Output stream, stdout by default

    Returns:
        The installed handler
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        if getattr(handler, HANDLER_MARKER, False):
            root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if format.lower() == "json" else TextFormatter())
    if sanitize_logs:
        handler.addFilter(SanitizingFilter())
    setattr(handler, HANDLER_MARKER, True)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler


def configure_logging_from_settings(settings, stream: IO[str] | None = None) -> logging.Handler:
    """Apply ``log_level``, ``log_format`` and ``sanitize_logs`` from settings."""
    return configure_logging(
        level=settings.log_level,
        format=settings.log_format,
        sanitize_logs=settings.sanitize_logs,
        stream=stream,
    )
