"""Main Typer application — imports and registers all CLI commands.

Entry point: ``markersync`` (configured via pyproject.toml [project.scripts]).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from markersync.cli.commands._common import console, load_config
from markersync.cli.commands.overlay_cmds import markers_cmd, teardown_cmd
from markersync.cli.commands.run_cmd import run_cmd
from markersync.cli.commands.tick_cmd import tick_cmd

app = typer.Typer(
    name="markersync",
    help="markersync: keep a map overlay's markers in sync with a live record store.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="run", help="Sync continuously on a fixed cadence.")(run_cmd)
app.command(name="tick", help="Run a single reconciliation pass.")(tick_cmd)
app.command(name="markers", help="List markers in the overlay.")(markers_cmd)
app.command(name="teardown", help="Delete the overlay namespace.")(teardown_cmd)


def configure_logging(level: str) -> None:
    """Route ``logging`` through Rich at *level*."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    root.addHandler(
        RichHandler(console=console, show_path=False, rich_tracebacks=True)
    )
    root.setLevel(level.upper())


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Logging level (defaults to MARKERSYNC_LOG_LEVEL or INFO).",
    ),
) -> None:
    """Configure logging before any command runs."""
    try:
        configure_logging(log_level or load_config().log_level)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
