"""Rulewire CLI - Main entry point."""

from __future__ import annotations

from typing import Annotated

import typer

from rulewire import __version__

from .helpers import console

app = typer.Typer(
    name="rulewire",
    help="Conditional automations: rules, webhook actions and cron schedules.",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]rulewire[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
):
    """Rulewire - evaluate rules against event data and fire webhooks.

    [bold]Quick Start:[/bold]

        rulewire cron test "0 */5 * * * *"     Preview a schedule
        rulewire condition check cond.json     Validate a condition
        rulewire rules import rules.json       Load rules into the database
        rulewire trigger order.created -d e.json   Run the manual trigger path
        rulewire serve                         Run scheduled rules
    """


# =============================================================================
# Register sub-app commands
# =============================================================================

from .commands.action import action_app  # noqa: E402
from .commands.condition import condition_app  # noqa: E402
from .commands.cron import cron_app  # noqa: E402
from .commands.rules import rules_app  # noqa: E402

app.add_typer(cron_app, name="cron")
app.add_typer(condition_app, name="condition")
app.add_typer(action_app, name="action")
app.add_typer(rules_app, name="rules")


# =============================================================================
# Register top-level commands
# =============================================================================

from .commands.run import serve, trigger  # noqa: E402

app.command()(trigger)
app.command()(serve)
