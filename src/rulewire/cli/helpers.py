"""Shared helpers for CLI modules: console, JSON loading, runtime wiring."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from rulewire.actions.executor import ActionExecutor
from rulewire.config import Settings, configure_logging_from_settings, load_settings
from rulewire.errors import ConfigurationError
from rulewire.store import SQLiteLogSink, SQLiteRuleStore, create_backend

console = Console()


@dataclass
class Runtime:
    """Collaborators wired from settings for commands that touch the database."""

    settings: Settings
    store: SQLiteRuleStore
    log_sink: SQLiteLogSink
    executor: ActionExecutor


def load_json_file(path: Path) -> Any:
    """Read a JSON document or exit with a readable error."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        console.print(f"[red]Cannot read {path}:[/red] {e}")
        raise typer.Exit(1)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {path}:[/red] {e}")
        raise typer.Exit(1)


def get_runtime(database_url: str | None = None) -> Runtime:
    """Build settings, logging, stores and executor for the configured database."""
    overrides = {"database_url": database_url} if database_url else {}
    try:
        settings = load_settings(**overrides)
        # stdout is reserved for command output such as --json
        configure_logging_from_settings(settings, stream=sys.stderr)
        backend = create_backend(settings.database_url)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        raise typer.Exit(1)

    return Runtime(
        settings=settings,
        store=SQLiteRuleStore(backend),
        log_sink=SQLiteLogSink(backend),
        executor=ActionExecutor.from_settings(settings),
    )
