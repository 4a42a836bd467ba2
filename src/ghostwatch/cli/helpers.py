"""Shared CLI helpers."""

from __future__ import annotations

import typer
from rich.console import Console

from ghostwatch.errors import GhostwatchError

console = Console()

STATUS_STYLES = {
    "ACTIVE": "green",
    "SUCCESS": "green",
    "PAUSED": "yellow",
    "RUNNING": "cyan",
    "DRAFT": "dim",
    "FAILURE": "red",
}


def styled(value: str) -> str:
    style = STATUS_STYLES.get(value, "white")
    return f"[{style}]{value}[/{style}]"


def get_engine():
    """Build a rule engine from settings without starting it."""
    from ghostwatch.engine import RuleEngine

    try:
        return RuleEngine()
    except Exception as e:
        console.print(f"[red]Error:[/red] Could not initialize engine: {e}")
        raise typer.Exit(1)


def fail(error: Exception) -> None:
    """Print an error and exit with status 1."""
    message = error.message if isinstance(error, GhostwatchError) else str(error)
    console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)
