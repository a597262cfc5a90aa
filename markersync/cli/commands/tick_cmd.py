"""``markersync tick`` — run a single reconciliation pass.

The overlay is left in place afterwards so a web map (or a later
``markersync markers``) can show the result.
"""

from __future__ import annotations

from pathlib import Path

import typer

from markersync.cli.commands._common import console, load_config
from markersync.core.lifecycle import SyncService
from markersync.core.marker_adapter import MarkerAdapterError
from markersync.core.snapshot_reader import SnapshotError
from markersync.monitor.renderer import SyncRenderer


def tick_cmd(
    store: Path = typer.Option(
        None, "--store", "-s", help="Path to the record store SQLite database."
    ),
    overlay: Path = typer.Option(
        None, "--overlay", "-o", help="Directory holding the JSON overlay."
    ),
) -> None:
    """Reconcile the overlay with the record store once."""
    cfg = load_config(store=store, overlay=overlay)
    try:
        service = SyncService.from_config(cfg)
        service.open()
    except (SnapshotError, MarkerAdapterError) as exc:
        console.print(f"[bold red]Cannot open marker sync:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    except Exception as exc:
        console.print(f"[bold red]Cannot prepare overlay:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    try:
        report = service.run_once()
    finally:
        service.stop(teardown=False)

    SyncRenderer(console=console).print_report(report)
    if not report.ok:
        raise typer.Exit(code=1)
