"""Marker Set Adapter — one overlay namespace as list/create/update/delete.

Wraps a ``RenderingService`` and pins every call to a single namespace.
Backend exceptions are translated into the ``MarkerAdapterError`` family
so the reconciler can isolate failures per marker.
"""

from __future__ import annotations

import logging

from markersync.bridge.rendering import RenderingService
from markersync.models.entities import Position
from markersync.models.markers import IconHandle, OverlayMarker

logger = logging.getLogger(__name__)


class MarkerAdapterError(RuntimeError):
    """Base class for overlay marker operation failures."""


class MarkerNotFoundError(MarkerAdapterError):
    """Raised when an update or delete targets a marker that does not exist."""


class MarkerCreateError(MarkerAdapterError):
    """Raised when the rendering service rejects a marker creation."""


class MarkerUpdateError(MarkerAdapterError):
    """Raised when the rendering service rejects a marker update."""


class MarkerDeleteError(MarkerAdapterError):
    """Raised when the rendering service rejects a marker deletion."""


class MarkerSetAdapter:
    """Minimal marker primitives over one overlay namespace.

    Parameters
    ----------
    service:
        The rendering service backend.
    namespace_id:
        Globally named namespace all markers of this system live in.
    label:
        Display label used when the namespace has to be created.
    """

    def __init__(
        self,
        service: RenderingService,
        namespace_id: str,
        *,
        label: str = "",
    ) -> None:
        self._service = service
        self._namespace_id = namespace_id
        self._label = label or namespace_id
        self._ready = False

    @property
    def namespace_id(self) -> str:
        return self._namespace_id

    @property
    def service(self) -> RenderingService:
        return self._service

    @property
    def is_ready(self) -> bool:
        """``True`` once the namespace is known to exist."""
        return self._ready

    # ------------------------------------------------------------------
    # Namespace lifecycle
    # ------------------------------------------------------------------

    def ensure_namespace(self) -> None:
        """Create the namespace if absent and mark the adapter ready."""
        try:
            if not self._service.get_namespace(self._namespace_id):
                self._service.create_namespace(self._namespace_id, self._label)
                logger.info("Created marker namespace %s.", self._namespace_id)
            else:
                logger.info("Using existing marker namespace %s.", self._namespace_id)
        except Exception as exc:
            raise MarkerAdapterError(
                f"Cannot prepare namespace {self._namespace_id}: {exc}"
            ) from exc
        self._ready = True

    def delete_namespace(self) -> None:
        """Delete the namespace and everything in it."""
        self._ready = False
        try:
            self._service.delete_namespace(self._namespace_id)
        except KeyError:
            logger.debug("Namespace %s already absent.", self._namespace_id)
            return
        except Exception as exc:
            raise MarkerAdapterError(
                f"Cannot delete namespace {self._namespace_id}: {exc}"
            ) from exc
        logger.info("Deleted marker namespace %s.", self._namespace_id)

    # ------------------------------------------------------------------
    # Marker primitives
    # ------------------------------------------------------------------

    def list_markers(self) -> list[OverlayMarker]:
        self._require_ready()
        try:
            return list(self._service.list_markers(self._namespace_id))
        except Exception as exc:
            raise MarkerAdapterError(
                f"Cannot list markers in {self._namespace_id}: {exc}"
            ) from exc

    def create_marker(
        self,
        marker_id: str,
        label: str,
        position: Position,
        icon: IconHandle,
    ) -> OverlayMarker:
        self._require_ready()
        marker = OverlayMarker(
            marker_id=marker_id,
            label=label,
            position=position,
            icon_id=icon.icon_id,
        )
        try:
            return self._service.create_marker(self._namespace_id, marker)
        except Exception as exc:
            raise MarkerCreateError(f"Cannot create marker {marker_id}: {exc}") from exc

    def update_marker(self, marker_id: str, label: str, position: Position) -> None:
        self._require_ready()
        try:
            self._service.update_marker(self._namespace_id, marker_id, label, position)
        except KeyError as exc:
            raise MarkerNotFoundError(f"Marker {marker_id} not found") from exc
        except Exception as exc:
            raise MarkerUpdateError(f"Cannot update marker {marker_id}: {exc}") from exc

    def delete_marker(self, marker_id: str) -> None:
        self._require_ready()
        try:
            self._service.delete_marker(self._namespace_id, marker_id)
        except KeyError as exc:
            raise MarkerNotFoundError(f"Marker {marker_id} not found") from exc
        except Exception as exc:
            raise MarkerDeleteError(f"Cannot delete marker {marker_id}: {exc}") from exc

    # ------------------------------------------------------------------
    # Icon pass-through
    # ------------------------------------------------------------------

    def register_icon(self, icon_id: str, label: str, data: bytes) -> IconHandle:
        return self._service.register_icon(icon_id, label, data)

    def default_icon(self) -> IconHandle:
        return self._service.default_icon()

    def _require_ready(self) -> None:
        if not self._ready:
            raise MarkerAdapterError(
                f"Namespace {self._namespace_id} has not been prepared"
            )

    def __repr__(self) -> str:
        return f"MarkerSetAdapter(namespace_id={self._namespace_id!r}, ready={self._ready})"
