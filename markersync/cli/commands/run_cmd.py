"""``markersync run`` — keep the overlay in sync until interrupted.

Starts the sync service against the JSON-file overlay, ticking on the
configured cadence.  On exit (Ctrl+C or after ``--ticks`` ticks) the
namespace is deleted and the record store released, unless
``--keep-overlay`` is given.
"""

from __future__ import annotations

from pathlib import Path

import typer

from markersync.bridge.rendering import describe_backend
from markersync.cli.commands._common import console, load_config
from markersync.core.lifecycle import SyncService
from markersync.core.marker_adapter import MarkerAdapterError
from markersync.core.snapshot_reader import SnapshotError
from markersync.monitor.renderer import SyncRenderer


def run_cmd(
    store: Path = typer.Option(
        None, "--store", "-s", help="Path to the record store SQLite database."
    ),
    overlay: Path = typer.Option(
        None, "--overlay", "-o", help="Directory holding the JSON overlay."
    ),
    interval: float = typer.Option(
        None, "--interval", "-i", help="Seconds between ticks."
    ),
    ticks: int = typer.Option(
        0, "--ticks", "-n", help="Stop after this many ticks (0 = run until Ctrl+C)."
    ),
    keep_overlay: bool = typer.Option(
        False, "--keep-overlay", help="Do not delete the namespace on exit."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Print a report after every tick."
    ),
) -> None:
    """Run the marker sync loop."""
    cfg = load_config(store=store, overlay=overlay, tick_interval_seconds=interval)
    try:
        service = SyncService.from_config(cfg)
    except Exception as exc:
        console.print(f"[bold red]Cannot prepare overlay:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    renderer = SyncRenderer(console=console)
    if keep_overlay:
        service.keep_overlay_on_exit()

    try:
        service.start()
    except (SnapshotError, MarkerAdapterError) as exc:
        console.print(f"[bold red]Cannot start marker sync:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(
        f"[dim]Syncing {cfg.store_path} -> {describe_backend(service.adapter.service)} "
        f"namespace {cfg.namespace_id} every {cfg.tick_interval_seconds:.1f}s. "
        f"Press Ctrl+C to exit.[/dim]"
    )

    seen = 0
    try:
        while ticks <= 0 or seen < ticks:
            if not service.scheduler.wait_for_ticks(seen + 1, timeout=1.0):
                continue
            seen = service.scheduler.ticks_run
            report = service.engine.last_report
            if verbose and report is not None:
                renderer.print_report(report)
    except KeyboardInterrupt:
        console.print("[dim]Interrupted.[/dim]")
    finally:
        service.stop(teardown=not keep_overlay)

    if keep_overlay:
        console.print(f"[green]Overlay kept at {cfg.overlay_path}.[/green]")
    else:
        console.print(f"[green]Namespace {cfg.namespace_id} removed.[/green]")
