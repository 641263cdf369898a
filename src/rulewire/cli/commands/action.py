"""Action commands."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from rulewire.actions import validate_action

from ..helpers import console, load_json_file

action_app = typer.Typer(help="Validate action definitions")


@action_app.command("validate")
def action_validate(
    actions_file: Path = typer.Argument(..., help="JSON file with an action or a list of actions"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Report configuration problems in action definitions."""
    document = load_json_file(actions_file)
    actions = document if isinstance(document, list) else [document]

    report = [{"index": i, "errors": validate_action(action)} for i, action in enumerate(actions)]
    invalid = [entry for entry in report if entry["errors"]]

    if json_output:
        print(json.dumps({"valid": not invalid, "actions": report}, indent=2))
    elif not invalid:
        console.print(f"[green]✓ {len(actions)} action(s) valid[/green]")
    else:
        for entry in invalid:
            console.print(f"[red]✗ Action {entry['index']}:[/red]")
            for error in entry["errors"]:
                console.print(f"  - {error}")

    if invalid:
        raise typer.Exit(1)
