"""Rendering service boundary — protocol and backends for overlay storage.

Bridge boundary
---------------
The rendering service owns overlay namespaces, the markers inside them,
and the icon assets markers point at.  ``markersync`` only needs the small
capability set captured by the ``RenderingService`` protocol; anything
that provides these methods (a map server's marker API, a test double)
can back the ``MarkerSetAdapter``.

Two backends ship with the package:

1. **InMemoryRenderingService**: volatile, suitable for tests and for
   embedding in a host process that renders from memory.
2. **JsonFileRenderingService**: persists every namespace to
   ``markers.json`` and icon images to ``icons/<icon_id>.png`` under a base
   directory, so a static web map can serve the overlay directly.

Backends serialize their own internal state with a lock; callers do not
need additional locking.  Unknown namespaces and markers raise
``KeyError``; every other backend failure raises ``RenderingServiceError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from markersync.models.entities import Position
from markersync.models.markers import DEFAULT_ICON_ID, IconHandle, OverlayMarker

logger = logging.getLogger(__name__)


def _overlay_bytes(payload: dict[str, Any]) -> bytes:
    # An unchanged overlay always serializes to identical bytes.
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def _icon_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class RenderingServiceError(RuntimeError):
    """Raised when a rendering backend cannot complete an operation."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class RenderingService(Protocol):
    """Capability set the marker adapter needs from a rendering service."""

    def get_namespace(self, namespace_id: str) -> bool:
        """Return ``True`` if the namespace exists."""
        ...

    def create_namespace(self, namespace_id: str, label: str) -> None:
        """Create an empty namespace.  Creating an existing one is a no-op."""
        ...

    def delete_namespace(self, namespace_id: str) -> None:
        """Delete a namespace and every marker in it."""
        ...

    def list_markers(self, namespace_id: str) -> list[OverlayMarker]:
        """Return every marker in the namespace."""
        ...

    def create_marker(self, namespace_id: str, marker: OverlayMarker) -> OverlayMarker:
        """Add a marker.  Raises ``RenderingServiceError`` if the id is taken."""
        ...

    def update_marker(
        self, namespace_id: str, marker_id: str, label: str, position: Position
    ) -> OverlayMarker:
        """Set label and position of an existing marker (``KeyError`` if absent)."""
        ...

    def delete_marker(self, namespace_id: str, marker_id: str) -> None:
        """Remove a marker (``KeyError`` if absent)."""
        ...

    def register_icon(self, icon_id: str, label: str, data: bytes) -> IconHandle:
        """Store image bytes as an icon asset and return its handle."""
        ...

    def default_icon(self) -> IconHandle:
        """Return the shared fallback icon."""
        ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryRenderingService:
    """Volatile rendering backend holding namespaces and icons in dicts.

    Every mutation runs inside ``_mutating()``: if the ``_changed()`` hook
    raises, the dicts are restored to their state before the mutation, so
    a failed call leaves nothing behind.

    Parameters
    ----------
    default_icon_id:
        Identifier of the shared fallback icon.
    """

    def __init__(self, default_icon_id: str = DEFAULT_ICON_ID) -> None:
        self._lock = threading.RLock()
        self._labels: dict[str, str] = {}
        self._namespaces: dict[str, dict[str, OverlayMarker]] = {}
        self._icons: dict[str, bytes] = {}
        self._default = IconHandle(
            icon_id=default_icon_id, label="Default", is_default=True
        )

    # -- namespaces ------------------------------------------------------

    def get_namespace(self, namespace_id: str) -> bool:
        with self._lock:
            return namespace_id in self._namespaces

    def create_namespace(self, namespace_id: str, label: str) -> None:
        with self._lock:
            if namespace_id in self._namespaces:
                return
            with self._mutating():
                self._namespaces[namespace_id] = {}
                self._labels[namespace_id] = label

    def delete_namespace(self, namespace_id: str) -> None:
        with self._lock:
            if namespace_id not in self._namespaces:
                raise KeyError(namespace_id)
            with self._mutating():
                del self._namespaces[namespace_id]
                self._labels.pop(namespace_id, None)

    def namespace_label(self, namespace_id: str) -> str:
        with self._lock:
            return self._labels[namespace_id]

    # -- markers ---------------------------------------------------------

    def list_markers(self, namespace_id: str) -> list[OverlayMarker]:
        with self._lock:
            return list(self._markers(namespace_id).values())

    def create_marker(self, namespace_id: str, marker: OverlayMarker) -> OverlayMarker:
        with self._lock:
            markers = self._markers(namespace_id)
            if marker.marker_id in markers:
                raise RenderingServiceError(
                    f"Marker {marker.marker_id} already exists in {namespace_id}"
                )
            with self._mutating():
                markers[marker.marker_id] = marker
            return marker

    def update_marker(
        self, namespace_id: str, marker_id: str, label: str, position: Position
    ) -> OverlayMarker:
        with self._lock:
            markers = self._markers(namespace_id)
            current = markers[marker_id]
            updated = current.model_copy(update={"label": label, "position": position})
            if updated != current:
                with self._mutating():
                    markers[marker_id] = updated
            return updated

    def delete_marker(self, namespace_id: str, marker_id: str) -> None:
        with self._lock:
            markers = self._markers(namespace_id)
            if marker_id not in markers:
                raise KeyError(marker_id)
            with self._mutating():
                del markers[marker_id]

    # -- icons -----------------------------------------------------------

    def register_icon(self, icon_id: str, label: str, data: bytes) -> IconHandle:
        if not data:
            raise RenderingServiceError(f"Refusing to register empty icon {icon_id}")
        with self._lock:
            with self._mutating():
                self._icons[icon_id] = data
                self._store_icon(icon_id, data)
        return IconHandle(icon_id=icon_id, label=label)

    def default_icon(self) -> IconHandle:
        return self._default

    def icon_bytes(self, icon_id: str) -> bytes:
        """Return the raw bytes of a registered icon."""
        with self._lock:
            return self._icons[icon_id]

    @property
    def icon_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._icons)

    # -- internals -------------------------------------------------------

    def _markers(self, namespace_id: str) -> dict[str, OverlayMarker]:
        try:
            return self._namespaces[namespace_id]
        except KeyError:
            raise KeyError(f"Unknown namespace {namespace_id}") from None

    @contextmanager
    def _mutating(self) -> Iterator[None]:
        """Apply a mutation and persist it, or roll it back if either fails."""
        saved = self._snapshot()
        try:
            yield
            self._changed()
        except Exception:
            self._restore(saved)
            raise

    def _snapshot(self) -> dict[str, Any]:
        return {
            "labels": dict(self._labels),
            "namespaces": {ns: dict(m) for ns, m in self._namespaces.items()},
            "icons": dict(self._icons),
        }

    def _restore(self, saved: dict[str, Any]) -> None:
        self._labels = saved["labels"]
        self._namespaces = saved["namespaces"]
        self._icons = saved["icons"]

    def _changed(self) -> None:
        """Hook called with the lock held after every mutation."""

    def _store_icon(self, icon_id: str, data: bytes) -> None:
        """Hook called with the lock held when an icon is registered."""

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(namespaces={sorted(self._namespaces)!r}, "
            f"icons={len(self._icons)})"
        )


# ---------------------------------------------------------------------------
# JSON file backend
# ---------------------------------------------------------------------------


class JsonFileRenderingService(InMemoryRenderingService):
    """Rendering backend persisted to a directory.

    Layout::

        {base_path}/markers.json          all namespaces, canonical JSON
        {base_path}/icons/{icon_id}.png   registered icon images

    ``markers.json`` is rewritten atomically (temp file + rename) after
    every mutation, and reloaded on construction so a restarted process
    sees the overlay it left behind.

    Parameters
    ----------
    base_path:
        Directory for the overlay files.  Created if missing.
    """

    MARKERS_FILE = "markers.json"

    def __init__(
        self, base_path: Path | str, default_icon_id: str = DEFAULT_ICON_ID
    ) -> None:
        super().__init__(default_icon_id=default_icon_id)
        self._base = Path(base_path)
        self._icons_dir = self._base / "icons"
        self._icon_digests: dict[str, str] = {}
        try:
            self._icons_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RenderingServiceError(
                f"Cannot create overlay directory {self._base}: {exc}"
            ) from exc
        self._load()

    @property
    def base_path(self) -> Path:
        return self._base

    @property
    def markers_path(self) -> Path:
        return self._base / self.MARKERS_FILE

    def icon_path(self, icon_id: str) -> Path:
        return self._icons_dir / f"{icon_id}.png"

    def _load(self) -> None:
        path = self.markers_path
        if not path.exists():
            return
        try:
            data = json.loads(path.read_bytes())
            for ns_id, ns in data.get("namespaces", {}).items():
                self._labels[ns_id] = ns.get("label", ns_id)
                self._namespaces[ns_id] = {
                    m["marker_id"]: OverlayMarker.model_validate(m)
                    for m in ns.get("markers", [])
                }
            for icon_id, digest in data.get("icons", {}).items():
                icon_file = self.icon_path(icon_id)
                if icon_file.exists():
                    self._icons[icon_id] = icon_file.read_bytes()
                    self._icon_digests[icon_id] = digest
        except (OSError, ValueError, KeyError) as exc:
            raise RenderingServiceError(
                f"Cannot load overlay state from {path}: {exc}"
            ) from exc
        logger.info(
            "JsonFileRenderingService: loaded %d namespace(s) from %s",
            len(self._namespaces),
            path,
        )

    def _store_icon(self, icon_id: str, data: bytes) -> None:
        try:
            self.icon_path(icon_id).write_bytes(data)
        except OSError as exc:
            raise RenderingServiceError(f"Cannot write icon {icon_id}: {exc}") from exc
        self._icon_digests[icon_id] = _icon_digest(data)

    def _snapshot(self) -> dict[str, Any]:
        saved = super()._snapshot()
        saved["icon_digests"] = dict(self._icon_digests)
        return saved

    def _restore(self, saved: dict[str, Any]) -> None:
        super()._restore(saved)
        self._icon_digests = saved["icon_digests"]

    def _changed(self) -> None:
        payload = {
            "namespaces": {
                ns_id: {
                    "label": self._labels.get(ns_id, ns_id),
                    "markers": [
                        m.model_dump(mode="json")
                        for _, m in sorted(markers.items())
                    ],
                }
                for ns_id, markers in self._namespaces.items()
            },
            "icons": dict(self._icon_digests),
        }
        target = self.markers_path
        tmp = target.with_suffix(".json.tmp")
        try:
            tmp.write_bytes(_overlay_bytes(payload))
            os.replace(tmp, target)
        except OSError as exc:
            raise RenderingServiceError(f"Cannot write {target}: {exc}") from exc
        logger.debug("JsonFileRenderingService: wrote %s", target)

    def __repr__(self) -> str:
        return f"JsonFileRenderingService(base_path={str(self._base)!r})"


def describe_backend(service: Any) -> str:
    """Human-readable backend name for status output."""
    if isinstance(service, JsonFileRenderingService):
        return f"json-file ({service.base_path})"
    if isinstance(service, InMemoryRenderingService):
        return "in-memory"
    return type(service).__name__
