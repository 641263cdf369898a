"""Runtime commands: manual trigger and the scheduler loop."""

from __future__ import annotations

import json
import signal
import threading
from pathlib import Path

import typer
from rich.table import Table

from rulewire.pipeline import RulePipeline
from rulewire.scheduler import RuleScheduler

from ..helpers import console, get_runtime, load_json_file


def trigger(
    event: str = typer.Argument(..., help="Event name sent in the provenance header"),
    data_file: Path = typer.Option(..., "--data", "-d", help="JSON file with the event data"),
    database_url: str = typer.Option(None, "--db", help="Database URL (defaults to settings)"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Evaluate every active rule against event data and run matching actions."""
    data = load_json_file(data_file)
    if not isinstance(data, dict):
        console.print("[red]Event data must be a JSON object[/red]")
        raise typer.Exit(1)

    runtime = get_runtime(database_url)
    pipeline = RulePipeline(runtime.store, runtime.log_sink, runtime.executor)
    try:
        report = pipeline.trigger(event, data)
    finally:
        runtime.executor.close()

    if json_output:
        print(json.dumps(report.model_dump(mode="json"), indent=2))
        return

    console.print(
        f"Event [bold]{event}[/bold]: {len(report.matched_rules)} of "
        f"{report.total_rules} rule(s) matched"
    )
    for failure in report.evaluation_errors:
        console.print(
            f"[yellow]Rule {failure.rule_name} failed to evaluate:[/yellow] {failure.error}"
        )

    if report.execution_results:
        table = Table(title="Action Results")
        table.add_column("Rule", style="cyan")
        table.add_column("URL")
        table.add_column("Status")
        table.add_column("Attempts", justify="right")
        table.add_column("Error")
        for execution in report.execution_results:
            for result in execution.actions:
                status = (
                    f"[green]{result.status_code}[/green]"
                    if result.success
                    else f"[red]{result.status_code or 'failed'}[/red]"
                )
                table.add_row(
                    execution.rule_name,
                    result.url or "-",
                    status,
                    str(result.attempt),
                    result.error or "",
                )
        console.print(table)


def serve(
    database_url: str = typer.Option(None, "--db", help="Database URL (defaults to settings)"),
):
    """Run the scheduler in the foreground until interrupted."""
    runtime = get_runtime(database_url)
    if not runtime.settings.cron_enabled:
        console.print("[yellow]Cron scheduling is disabled (CRON_ENABLED=false)[/yellow]")
        raise typer.Exit(1)

    scheduler = RuleScheduler(
        runtime.store, runtime.log_sink, runtime.executor, settings=runtime.settings
    )
    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    scheduler.start()
    job_count = len(scheduler.get_jobs_status())
    console.print(f"[green]Scheduler running with {job_count} job(s)[/green]")
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.shutdown(wait=True)
        runtime.executor.close()
        console.print("Scheduler stopped")
