"""Database backends for the rule store and execution log."""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from rulewire.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "rulewire.db"
SQLITE_SCHEMES = ("sqlite", "sqlite3")


class DatabaseBackend(ABC):
    """Minimal SQL surface the stores are written against."""

    @abstractmethod
    def execute(self, query: str, params: tuple = ()) -> Any:
        """Execute a query and return cursor."""

    @abstractmethod
    def executescript(self, script: str) -> None:
        """Execute multiple SQL statements (schema setup)."""

    @abstractmethod
    def fetchone(self, query: str, params: tuple = ()) -> dict | None:
        """Execute query and fetch one row as dict."""

    @abstractmethod
    def fetchall(self, query: str, params: tuple = ()) -> list[dict]:
        """Execute query and fetch all rows as dicts."""

    @abstractmethod
    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Commit on success, roll back on error."""

    @abstractmethod
    def close(self) -> None:
        """Release every connection."""


class SQLiteBackend(DatabaseBackend):
    """SQLite file database shared by the CLI, the trigger path and scheduler threads.

    Each thread gets its own connection. Connections are tracked so
    ``close()`` from the main thread also releases those opened by
    APScheduler and action pool workers. WAL mode lets the scheduler write
    execution records while a CLI process reads them.

    Args:
        db_path: Database file; parent directories are created on first use
        busy_timeout_ms: How long a writer waits for a lock held elsewhere
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH, busy_timeout_ms: int = 5000):
        if str(db_path) == ":memory:":
            # Every thread would see its own empty database
            raise ConfigurationError("In-memory SQLite is not supported; use InMemoryRuleStore")
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()

    def _get_conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            if self.db_path.parent != Path("."):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=self.busy_timeout_ms / 1000,
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
            logger.debug(f"Opened SQLite connection to {self.db_path}")
        return conn

    def execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        return self._get_conn().execute(query, params)

    def executescript(self, script: str) -> None:
        conn = self._get_conn()
        conn.executescript(script)
        conn.commit()

    def fetchone(self, query: str, params: tuple = ()) -> dict | None:
        row = self.execute(query, params).fetchone()
        return dict(row) if row else None

    def fetchall(self, query: str, params: tuple = ()) -> list[dict]:
        return [dict(row) for row in self.execute(query, params).fetchall()]

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        conn = self._get_conn()
        try:
            yield
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()


def create_backend(url: str | None = None) -> DatabaseBackend:
    """Create a backend from a ``database_url`` setting.

    Only SQLite is supported. ``sqlite:///rules.db`` is relative to the
    working directory; ``sqlite:////var/lib/rulewire/rules.db`` is absolute.

    Raises:
        ConfigurationError: unsupported scheme
    """
    if not url:
        return SQLiteBackend()

    parsed = urlparse(url)
    if parsed.scheme not in SQLITE_SCHEMES:
        raise ConfigurationError(f"Unsupported database scheme: {parsed.scheme or url}")

    path = parsed.path
    if path.startswith("/"):
        path = path[1:]
    return SQLiteBackend(db_path=path or DEFAULT_DB_PATH)
