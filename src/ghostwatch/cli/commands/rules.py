"""Rule commands: list, run and inspect history."""

from __future__ import annotations

import json

import typer
from rich.table import Table

from ghostwatch.errors import GhostwatchError

from ..helpers import console, fail, get_engine, styled

rules_app = typer.Typer(help="Manage and run rules")


@rules_app.command("list")
def rules_list(
    owner: str | None = typer.Option(None, "--owner", "-o", help="Only rules of this owner"),
    status: str | None = typer.Option(None, "--status", "-s", help="Filter by status"),
):
    """List rules."""
    engine = get_engine()
    try:
        rules = engine.service.list_rules(
            owner_id=owner, status=status.upper() if status else None, include_executions=1
        )
    except (GhostwatchError, ValueError) as e:
        fail(e)

    if not rules:
        console.print("[dim]No rules found.[/dim]")
        return

    table = Table(title="Rules")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Owner")
    table.add_column("Status")
    table.add_column("Trigger")
    table.add_column("Schedule")
    table.add_column("Source")
    table.add_column("Last Run")

    for rule in rules:
        last = rule.executions[0].status.value if rule.executions else None
        table.add_row(
            rule.id[:8],
            rule.name,
            rule.owner_id,
            styled(rule.status.value),
            rule.trigger_type.value,
            rule.schedule or "-",
            rule.data_source or "-",
            styled(last) if last else "-",
        )

    console.print(table)


@rules_app.command("run")
def rules_run(
    rule_id: str = typer.Argument(..., help="Rule ID"),
    show_matches: bool = typer.Option(False, "--matches", "-m", help="Print matched records"),
):
    """Run a rule now, whatever its status."""
    engine = get_engine()
    try:
        execution = engine.execute_now(rule_id)
    except GhostwatchError as e:
        fail(e)

    console.print(
        f"{styled(execution.status.value)} "
        f"matched={execution.matched_count} actions={execution.actions_executed} "
        f"in {execution.execution_time_ms}ms"
    )
    if execution.error:
        console.print(f"[red]{execution.error}[/red]")

    results = execution.results or {}
    failed = [a for a in results.get("actions", []) if not a.get("success")]
    if failed:
        console.print(f"[yellow]{len(failed)} action(s) failed[/yellow]")
        for action in failed[:10]:
            console.print(f"  {action['action_type']}: {action.get('error')}")
    if show_matches:
        for record in results.get("matches", []):
            console.print(json.dumps(record, default=str))


@rules_app.command("history")
def rules_history(
    rule_id: str = typer.Argument(..., help="Rule ID"),
    limit: int = typer.Option(10, "--limit", "-n", help="Number of executions to show"),
):
    """Show recent executions of a rule."""
    engine = get_engine()
    try:
        executions = engine.service.list_executions(rule_id, limit=limit)
    except GhostwatchError as e:
        fail(e)

    if not executions:
        console.print("[dim]No executions yet.[/dim]")
        return

    table = Table(title=f"Executions of {rule_id[:8]}")
    table.add_column("ID", style="dim")
    table.add_column("Trigger")
    table.add_column("Status")
    table.add_column("Matched", justify="right")
    table.add_column("Actions", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Started")
    table.add_column("Error")

    for e in executions:
        table.add_row(
            e.id[:8],
            e.trigger.value,
            styled(e.status.value),
            str(e.matched_count),
            str(e.actions_executed),
            f"{e.execution_time_ms}ms" if e.execution_time_ms is not None else "-",
            e.started_at.isoformat()[:19],
            (e.error or "")[:60],
        )

    console.print(table)
