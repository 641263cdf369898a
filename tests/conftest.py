"""Pytest configuration and fixtures."""

import os
import sys
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from rulewire.actions import ActionExecutor, RetryPolicy, TransportResponse  # noqa: E402
from rulewire.config import Settings  # noqa: E402
from rulewire.store import InMemoryLogSink, InMemoryRuleStore, SQLiteBackend  # noqa: E402


class FakeClock:
    """Deterministic clock; sleeping advances time and records the delay."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
        self.elapsed = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current + timedelta(seconds=self.elapsed)

    def monotonic(self) -> float:
        return self.elapsed

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.elapsed += seconds


class FakeTransport:
    """Replays scripted responses (or raises scripted errors) and records requests."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests: list[dict] = []

    def send(self, method, url, headers, json_body, timeout_seconds):
        self.requests.append(
            {
                "method": method,
                "url": url,
                "headers": headers,
                "json": json_body,
                "timeout": timeout_seconds,
            }
        )
        if self.responses:
            outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        else:
            outcome = 200
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return TransportResponse(status_code=outcome, body='{"ok": true}')
        return outcome

    @property
    def attempts(self) -> int:
        return len(self.requests)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def executor(transport, clock):
    """Executor with a fake transport and clock and the default backoff policy."""
    return ActionExecutor(
        transport=transport,
        clock=clock,
        retry_policy=RetryPolicy(max_attempts=3, base_delay_ms=1000, max_delay_ms=10000),
    )


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def rule_store():
    return InMemoryRuleStore()


@pytest.fixture
def log_sink():
    return InMemoryLogSink()


@pytest.fixture
def backend():
    """Create a temporary SQLite backend."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = os.path.join(tmpdir, "test.db")
        backend = SQLiteBackend(db_path=db_path)
        yield backend
        backend.close()
