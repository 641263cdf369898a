"""Cron commands: validate expressions and preview fire times."""

from __future__ import annotations

import json

import typer

from rulewire.scheduler.cron import preview_cron

from ..helpers import console

cron_app = typer.Typer(help="Inspect six-field cron expressions")


@cron_app.command("test")
def cron_test(
    expression: str = typer.Argument(..., help="Cron expression: sec min hour day month dow"),
    count: int = typer.Option(5, "--count", "-n", min=1, max=50, help="Fire times to show"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Validate a cron expression and show its next fire times (UTC)."""
    result = preview_cron(expression, count=count)

    if json_output:
        print(json.dumps(result, indent=2))
    elif result["valid"]:
        console.print(f"[green]✓ Valid:[/green] {expression}")
        for fire_time in result["next_executions"]:
            console.print(f"  {fire_time}")
    else:
        console.print(f"[red]✗ Invalid:[/red] {result['error']}")

    if not result["valid"]:
        raise typer.Exit(1)
