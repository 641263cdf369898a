"""Rule commands: list, import and execution logs."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.panel import Panel
from rich.table import Table

from rulewire.models import LogStats, Rule

from ..helpers import console, get_runtime, load_json_file

rules_app = typer.Typer(help="Manage stored rules")

DatabaseOption = typer.Option(None, "--db", help="Database URL (defaults to settings)")


@rules_app.command("list")
def rules_list(
    database_url: str = DatabaseOption,
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List stored rules."""
    runtime = get_runtime(database_url)
    rules = runtime.store.get_all_rules()

    if json_output:
        print(json.dumps([rule.model_dump(mode="json") for rule in rules], indent=2))
        return

    if not rules:
        console.print("[yellow]No rules[/yellow]")
        return

    table = Table(title="Rules")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Schedule")
    table.add_column("Actions", justify="right")
    table.add_column("Status")

    for rule in rules:
        status = "[green]active[/green]" if rule.is_active else "[yellow]inactive[/yellow]"
        table.add_row(rule.id[:12], rule.name, rule.schedule or "-", str(len(rule.actions)), status)

    console.print(table)


@rules_app.command("import")
def rules_import(
    rules_file: Path = typer.Argument(..., help="JSON file with a list of rules"),
    database_url: str = DatabaseOption,
):
    """Import rules from JSON; rules whose names already exist are skipped."""
    document = load_json_file(rules_file)
    if not isinstance(document, list):
        document = [document]

    try:
        rules = [Rule.model_validate(item) for item in document]
    except ValidationError as e:
        console.print(f"[red]Invalid rule definition:[/red] {e}")
        raise typer.Exit(1)

    runtime = get_runtime(database_url)
    result = runtime.store.import_rules(rules)

    console.print(f"[green]✓ Imported {len(result['imported'])} rule(s)[/green]")
    for error in result["errors"]:
        console.print(f"[yellow]Skipped {error['name']}:[/yellow] {error['error']}")


@rules_app.command("logs")
def rules_logs(
    rule_id: str = typer.Option(None, "--rule", "-r", help="Only show this rule's records"),
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Maximum records"),
    stats: bool = typer.Option(False, "--stats", "-s", help="Show aggregate counts instead"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output stats as JSON"),
    database_url: str = DatabaseOption,
):
    """Show recent execution records."""
    runtime = get_runtime(database_url)
    if stats:
        _print_log_stats(runtime.log_sink.get_log_stats(), json_output)
        return

    records = runtime.log_sink.get_logs(rule_id=rule_id, limit=limit)

    if not records:
        console.print("[yellow]No execution records[/yellow]")
        return

    table = Table(title="Execution Records")
    table.add_column("Executed At")
    table.add_column("Rule", style="cyan")
    table.add_column("Matched")
    table.add_column("Duration", justify="right")
    table.add_column("Error")

    for record in records:
        matched = "[green]yes[/green]" if record.matched else "no"
        table.add_row(
            str(record.executed_at)[:19],
            record.rule_id[:12],
            matched,
            f"{record.duration_ms:.1f}ms",
            record.error or "",
        )

    console.print(table)


@rules_app.command("clear-logs")
def rules_clear_logs(
    days: int = typer.Option(30, "--days", "-d", min=0, help="Keep records newer than this"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
    database_url: str = DatabaseOption,
):
    """Delete execution records older than the given number of days."""
    if not force and not typer.confirm(f"Delete execution records older than {days} day(s)?"):
        raise typer.Abort()

    runtime = get_runtime(database_url)
    deleted = runtime.log_sink.clear_old_logs(days)
    console.print(f"[green]✓ Cleared {deleted} execution record(s)[/green]")


def _print_log_stats(stats: LogStats, json_output: bool) -> None:
    if json_output:
        print(json.dumps(stats.model_dump(), indent=2))
        return

    console.print(
        Panel(
            f"Total: [bold]{stats.total}[/bold]\n"
            f"Matched: [bold]{stats.matched}[/bold]\n"
            f"Unmatched: [bold]{stats.unmatched}[/bold]\n"
            f"Errors: [bold]{stats.errors}[/bold]",
            title="Execution Log Stats",
            border_style="blue",
        )
    )

    if stats.top_rules:
        table = Table(title="Busiest Rules")
        table.add_column("Rule", style="cyan")
        table.add_column("Records", justify="right")
        table.add_column("Matched", justify="right")
        for entry in stats.top_rules:
            table.add_row(entry.rule_id[:12], str(entry.count), str(entry.matched_count))
        console.print(table)
