"""Ghostwatch CLI - Main entry point."""

from __future__ import annotations

from typing import Annotated

import typer

from ghostwatch import __version__

from .helpers import console

app = typer.Typer(
    name="ghostwatch",
    help="Rule automation for ghost and suspicion metrics.",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold cyan]ghostwatch[/bold cyan] version {__version__}")
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
    """Ghostwatch - watch behavioral metrics and act on them.

    [bold]Quick Start:[/bold]

        ghostwatch serve            Run the API, scheduler and listener
        ghostwatch rules list       Show rules
        ghostwatch rules run ID     Run a rule now
        ghostwatch templates list   Browse rule templates
    """
    from ghostwatch.config import configure_logging, get_settings

    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        format=settings.log_format,
        sanitize_logs=settings.sanitize_logs,
    )


# =============================================================================
# Register sub-app commands
# =============================================================================

from .commands.rules import rules_app  # noqa: E402
from .commands.templates import templates_app  # noqa: E402

app.add_typer(rules_app, name="rules")
app.add_typer(templates_app, name="templates")


# =============================================================================
# Register top-level commands
# =============================================================================

from .commands.engine import serve, tick  # noqa: E402

app.command()(serve)
app.command()(tick)
