"""Overlay side value types: markers and icon handles."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from markersync.models.entities import Position

DEFAULT_ICON_ID = "default"


class IconHandle(BaseModel):
    """Reference to an icon asset registered with the rendering service."""

    model_config = ConfigDict(frozen=True)

    icon_id: str = DEFAULT_ICON_ID
    label: str = ""
    is_default: bool = False


class OverlayMarker(BaseModel):
    """A named, positioned, labeled marker in an overlay namespace.

    Markers are owned by the rendering service.  This model is the
    read-side view returned by listings; mutations go through the
    ``MarkerSetAdapter``.
    """

    model_config = ConfigDict(frozen=True)

    marker_id: str
    label: str = ""
    position: Position = Position()
    icon_id: str = DEFAULT_ICON_ID

    def matches(self, label: str, position: Position) -> bool:
        """Return ``True`` if label and position already equal the given values."""
        return self.label == label and self.position == position
