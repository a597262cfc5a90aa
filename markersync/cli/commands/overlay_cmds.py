"""``markersync markers`` and ``markersync teardown`` — inspect or remove the overlay.

Both commands work directly on the JSON overlay directory; neither reads
the record store.
"""

from __future__ import annotations

from pathlib import Path

import typer

from markersync.bridge.rendering import JsonFileRenderingService, RenderingServiceError
from markersync.cli.commands._common import console, load_config
from markersync.core.marker_adapter import MarkerAdapterError, MarkerSetAdapter
from markersync.monitor.renderer import SyncRenderer


def _open_overlay(overlay: Path | None) -> tuple[JsonFileRenderingService, str, str]:
    cfg = load_config(overlay=overlay)
    try:
        service = JsonFileRenderingService(cfg.overlay_path)
    except RenderingServiceError as exc:
        console.print(f"[bold red]Cannot open overlay:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    return service, cfg.namespace_id, cfg.namespace_label


def markers_cmd(
    overlay: Path = typer.Option(
        None, "--overlay", "-o", help="Directory holding the JSON overlay."
    ),
) -> None:
    """List the markers currently in the overlay namespace."""
    service, namespace_id, _ = _open_overlay(overlay)
    if not service.get_namespace(namespace_id):
        console.print(f"[yellow]Namespace {namespace_id} does not exist.[/yellow]")
        raise typer.Exit(code=1)
    SyncRenderer(console=console).print_markers(
        namespace_id, service.list_markers(namespace_id)
    )


def teardown_cmd(
    overlay: Path = typer.Option(
        None, "--overlay", "-o", help="Directory holding the JSON overlay."
    ),
) -> None:
    """Delete the overlay namespace and all of its markers."""
    service, namespace_id, label = _open_overlay(overlay)
    if not service.get_namespace(namespace_id):
        console.print(f"[dim]Namespace {namespace_id} already absent.[/dim]")
        return
    adapter = MarkerSetAdapter(service, namespace_id, label=label)
    try:
        adapter.delete_namespace()
    except MarkerAdapterError as exc:
        console.print(f"[bold red]Teardown failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Namespace {namespace_id} removed.[/green]")
