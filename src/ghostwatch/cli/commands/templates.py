"""Template commands."""

from __future__ import annotations

import typer
from rich.table import Table

from ..helpers import console, get_engine

templates_app = typer.Typer(help="Browse rule templates")


@templates_app.command("list")
def templates_list(
    category: str | None = typer.Option(None, "--category", "-c", help="Filter by category"),
):
    """List rule templates, most used first."""
    engine = get_engine()
    engine.store.seed_builtin_templates()
    templates = engine.service.list_templates(category)

    if not templates:
        console.print("[dim]No templates found.[/dim]")
        return

    table = Table(title="Rule Templates")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Conditions", justify="right")
    table.add_column("Actions", justify="right")
    table.add_column("Used", justify="right")

    for t in templates:
        table.add_row(
            t.id,
            t.name,
            t.category,
            str(len(t.conditions)),
            str(len(t.actions)),
            str(t.usage_count),
        )

    console.print(table)
