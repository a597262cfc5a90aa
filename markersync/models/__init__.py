"""markersync data models — all Pydantic v2, all frozen (immutable)."""

from markersync.models.entities import LiveEntity, Position
from markersync.models.markers import DEFAULT_ICON_ID, IconHandle, OverlayMarker
from markersync.models.reports import MarkerFailure, MarkerOperation, TickReport

__all__ = [
    # entities
    "LiveEntity",
    "Position",
    # markers
    "DEFAULT_ICON_ID",
    "IconHandle",
    "OverlayMarker",
    # reports
    "MarkerFailure",
    "MarkerOperation",
    "TickReport",
]
