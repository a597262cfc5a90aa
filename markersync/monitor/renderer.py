"""Rich terminal renderer for tick reports and marker listings.

Color scheme
------------
- green   : created
- yellow  : updated
- red     : deleted / failed
- dim     : unchanged / skipped
"""

from __future__ import annotations

from collections.abc import Iterable

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from markersync.models.markers import OverlayMarker
from markersync.models.reports import TickReport


class SyncRenderer:
    """Renders ``TickReport`` and ``OverlayMarker`` collections.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Tick reports
    # ------------------------------------------------------------------

    def render_report(self, report: TickReport) -> Panel:
        """Render a TickReport as a Rich Panel."""
        if report.skipped:
            body = Text.from_markup(
                f"[dim]Skipped:[/dim] {report.reason or 'unknown reason'}"
            )
            return Panel(
                body,
                title=f"[bold]Tick {report.tick}[/bold]",
                border_style="yellow",
            )

        summary = "  |  ".join(
            [
                f"[bold]Entities:[/bold] {report.entity_count}",
                f"[green]Created:[/green] {report.created}",
                f"[yellow]Updated:[/yellow] {report.updated}",
                f"[red]Deleted:[/red] {report.deleted}",
                f"[dim]Unchanged:[/dim] {report.unchanged}",
            ]
        )
        parts: list = [Text.from_markup(summary)]

        if report.failures:
            table = Table(show_header=True, header_style="bold red", expand=True)
            table.add_column("Marker", style="cyan")
            table.add_column("Operation")
            table.add_column("Error")
            for failure in report.failures:
                table.add_row(failure.marker_id, failure.operation.value, failure.error)
            parts.extend([Text(""), table])

        return Panel(
            Group(*parts),
            title=f"[bold]Tick {report.tick}[/bold]",
            subtitle=f"{report.duration_seconds:.3f}s",
            border_style="green" if report.ok else "red",
        )

    def print_report(self, report: TickReport) -> None:
        self.console.print(self.render_report(report))

    # ------------------------------------------------------------------
    # Markers
    # ------------------------------------------------------------------

    def render_markers(self, namespace_id: str, markers: Iterable[OverlayMarker]) -> Table:
        """Render the markers of a namespace as a table sorted by id."""
        table = Table(
            title=f"Markers in {namespace_id}",
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Marker", style="cyan")
        table.add_column("Label")
        table.add_column("World")
        table.add_column("X", justify="right")
        table.add_column("Y", justify="right")
        table.add_column("Z", justify="right")
        table.add_column("Icon", style="dim")

        for marker in sorted(markers, key=lambda m: m.marker_id):
            pos = marker.position
            table.add_row(
                marker.marker_id,
                marker.label,
                pos.world,
                f"{pos.x:.1f}",
                f"{pos.y:.1f}",
                f"{pos.z:.1f}",
                marker.icon_id,
            )
        return table

    def print_markers(self, namespace_id: str, markers: Iterable[OverlayMarker]) -> None:
        markers = list(markers)
        if not markers:
            self.console.print(f"[dim]No markers in {namespace_id}.[/dim]")
            return
        self.console.print(self.render_markers(namespace_id, markers))
