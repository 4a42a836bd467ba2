"""Engine commands: serve the API and run one scheduler tick."""

from __future__ import annotations

import typer

from ..helpers import console, get_engine, styled


def serve(
    host: str | None = typer.Option(None, "--host", help="Bind host"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """Start the API server with the scheduler and realtime listener."""
    from ghostwatch.api import run

    console.print("[bold cyan]Starting Ghostwatch rule engine[/bold cyan]")
    run(host=host, port=port)


def tick():
    """Run every due scheduled rule once and exit."""
    engine = get_engine()
    futures = engine.scheduler.tick()
    if not futures:
        console.print("[dim]No rules due.[/dim]")
        return

    for future in futures:
        execution = future.result()
        if execution is None:
            continue
        console.print(
            f"{execution.rule_id[:8]} {styled(execution.status.value)} "
            f"matched={execution.matched_count} actions={execution.actions_executed}"
        )
