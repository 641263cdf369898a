"""Rule storage and execution logging."""

from rulewire.store.backends import DatabaseBackend, SQLiteBackend, create_backend
from rulewire.store.base import LogMaintenance, LogSink, RuleStore, safe_record
from rulewire.store.memory import InMemoryLogSink, InMemoryRuleStore
from rulewire.store.sqlite import SQLiteLogSink, SQLiteRuleStore

__all__ = [
    "DatabaseBackend",
    "InMemoryLogSink",
    "InMemoryRuleStore",
    "LogMaintenance",
    "LogSink",
    "RuleStore",
    "SQLiteBackend",
    "SQLiteLogSink",
    "SQLiteRuleStore",
    "create_backend",
    "safe_record",
]
