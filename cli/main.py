#!/usr/bin/env python3
"""
Replaycache CLI - Partitioned query cache with chunked replay

Main entrypoint for the replaycache command-line tool.
"""

import typer
from typing import Optional

from rich.console import Console
from rich.table import Table

from replaycache.logging_config import setup_logging

from cli.commands import log, run, sweep

# Initialize Typer app
app = typer.Typer(
    name="replaycache",
    help="Partitioned query cache with chunked replay",
    add_completion=False,
)

# Console for rich output
console = Console()

# Add command groups
app.add_typer(log.app, name="log", help="Partition log operations")

# Add standalone commands
app.command("sweep")(sweep.sweep_command)
app.command("run")(run.run_command)


@app.callback()
def configure(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", envvar="REPLAYCACHE_LOG_LEVEL", help="DEBUG, INFO, WARNING, ERROR"
    ),
):
    """Configure logging before any command runs."""
    setup_logging(level=log_level or "WARNING", log_format="text")


@app.command()
def version():
    """Show version information."""
    from cli import __version__
    from replaycache import __version__ as library_version

    table = Table(show_header=False, box=None)
    table.add_row("[bold]Replaycache CLI[/bold]", f"v{__version__}")
    table.add_row("Library", f"v{library_version}")
    table.add_row("Backends", "file, stream")

    console.print(table)


def main():
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
