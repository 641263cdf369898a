"""Condition commands: syntax checks, dry runs and fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich.table import Table

from rulewire.conditions import check_syntax, preview_condition, synthesize_fixture

from ..helpers import console, load_json_file

condition_app = typer.Typer(help="Check and dry-run rule conditions")


@condition_app.command("check")
def condition_check(
    condition_file: Path = typer.Argument(..., help="JSON file holding the condition"),
    data_file: Path = typer.Option(None, "--data", "-d", help="JSON file with sample input"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Validate a condition, list the variables it reads, and optionally evaluate it."""
    condition = load_json_file(condition_file)
    if data_file is not None:
        result = preview_condition(condition, load_json_file(data_file))
    else:
        result = check_syntax(condition)

    if json_output:
        print(json.dumps(result, indent=2))
        if not result["valid"]:
            raise typer.Exit(1)
        return

    if not result["valid"]:
        console.print(f"[red]✗ Invalid condition:[/red] {result['error']}")
        raise typer.Exit(1)

    console.print("[green]✓ Condition is valid[/green]")
    if result["variables"]:
        table = Table(title="Variables")
        table.add_column("Path", style="cyan")
        if "missing" in result:
            table.add_column("In data")
        for path in result["variables"]:
            if "missing" in result:
                present = "[red]no[/red]" if path in result["missing"] else "[green]yes[/green]"
                table.add_row(path, present)
            else:
                table.add_row(path)
        console.print(table)

    if "matched" in result:
        if result.get("error"):
            console.print(f"[yellow]Evaluation failed:[/yellow] {result['error']}")
        color = "green" if result["matched"] else "yellow"
        console.print(f"Matched: [{color}]{result['matched']}[/{color}]")


@condition_app.command("fixture")
def condition_fixture(
    condition_file: Path = typer.Argument(..., help="JSON file holding the condition"),
):
    """Print a minimal input record with every referenced path set to null."""
    condition = load_json_file(condition_file)
    print(json.dumps(synthesize_fixture(condition), indent=2))
