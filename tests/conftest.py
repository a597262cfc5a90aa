"""Shared test fixtures for markersync."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import requests

from markersync.bridge.rendering import InMemoryRenderingService, RenderingServiceError
from markersync.core.icon_cache import IconProvisioner
from markersync.core.marker_adapter import MarkerSetAdapter
from markersync.core.reconciler import ReconciliationEngine
from markersync.core.snapshot_reader import SnapshotReader
from markersync.models.entities import Position
from markersync.models.markers import IconHandle, OverlayMarker

NAMESPACE = "live_map_players"
PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-data"


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------


class PlayerStore:
    """Writable handle on a test record store with the tracker's schema."""

    def __init__(self, path: Path) -> None:
        self.path = path
        with sqlite3.connect(path) as conn:
            conn.execute(
                """CREATE TABLE IF NOT EXISTS players (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT UNIQUE NOT NULL,
                    token TEXT UNIQUE NOT NULL,
                    dimension TEXT NOT NULL DEFAULT 'world',
                    x REAL DEFAULT 0,
                    y REAL DEFAULT 0,
                    z REAL DEFAULT 0
                )"""
            )
        conn.close()

    def set_players(self, *rows: tuple[Any, ...]) -> None:
        """Replace all rows.  Each row is ``(token, name, x, y, z[, dimension])``."""
        conn = sqlite3.connect(self.path)
        try:
            conn.execute("DELETE FROM players")
            for row in rows:
                token, name, x, y, z, *rest = row
                dimension = rest[0] if rest else "world"
                conn.execute(
                    "INSERT INTO players (token, name, dimension, x, y, z) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (token, name, dimension, x, y, z),
                )
            conn.commit()
        finally:
            conn.close()


@pytest.fixture
def store(tmp_path: Path) -> PlayerStore:
    """Provide an empty record store in a temp directory."""
    return PlayerStore(tmp_path / "players.db")


@pytest.fixture
def reader(store: PlayerStore) -> Iterator[SnapshotReader]:
    """Provide an open SnapshotReader on the test store."""
    r = SnapshotReader(store.path)
    r.open()
    yield r
    r.close()


# ---------------------------------------------------------------------------
# Rendering service
# ---------------------------------------------------------------------------


class RecordingRenderingService(InMemoryRenderingService):
    """In-memory backend that records mutating calls and can inject failures.

    ``fail_on`` holds ``(operation, marker_id)`` pairs; a matching call
    raises ``RenderingServiceError`` instead of mutating.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[Any, ...]] = []
        self.fail_on: set[tuple[str, str]] = set()
        self.fail_register = False

    def create_marker(self, namespace_id: str, marker: OverlayMarker) -> OverlayMarker:
        self.calls.append(
            ("create", marker.marker_id, marker.label, marker.position, marker.icon_id)
        )
        self._maybe_fail("create", marker.marker_id)
        return super().create_marker(namespace_id, marker)

    def update_marker(
        self, namespace_id: str, marker_id: str, label: str, position: Position
    ) -> OverlayMarker:
        self.calls.append(("update", marker_id, label, position))
        self._maybe_fail("update", marker_id)
        return super().update_marker(namespace_id, marker_id, label, position)

    def delete_marker(self, namespace_id: str, marker_id: str) -> None:
        self.calls.append(("delete", marker_id))
        self._maybe_fail("delete", marker_id)
        super().delete_marker(namespace_id, marker_id)

    def register_icon(self, icon_id: str, label: str, data: bytes) -> IconHandle:
        self.calls.append(("register_icon", icon_id))
        if self.fail_register:
            raise RenderingServiceError(f"icon {icon_id} rejected")
        return super().register_icon(icon_id, label, data)

    def ops(self, *kinds: str) -> list[tuple[Any, ...]]:
        """Recorded calls, optionally filtered by operation name."""
        if not kinds:
            kinds = ("create", "update", "delete")
        return [c for c in self.calls if c[0] in kinds]

    def _maybe_fail(self, op: str, marker_id: str) -> None:
        if (op, marker_id) in self.fail_on:
            raise RenderingServiceError(f"injected {op} failure for {marker_id}")


@pytest.fixture
def rendering() -> RecordingRenderingService:
    return RecordingRenderingService()


@pytest.fixture
def adapter(rendering: RecordingRenderingService) -> MarkerSetAdapter:
    """Provide a ready MarkerSetAdapter over the recording backend."""
    a = MarkerSetAdapter(rendering, NAMESPACE, label="Live Map Players")
    a.ensure_namespace()
    return a


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = PNG_BYTES) -> None:
        self.status_code = status_code
        self.content = content
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stands in for ``requests.Session`` without touching the network.

    ``responses`` maps a URL substring to either a ``FakeResponse`` or an
    exception instance to raise.  Unmatched URLs get a 200 PNG.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = responses or {}
        self.requested: list[str] = []
        self.kwargs: list[dict[str, Any]] = []
        self.closed = False
        self._lock = threading.Lock()

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        with self._lock:
            self.requested.append(url)
            self.kwargs.append(kwargs)
        for fragment, outcome in self.responses.items():
            if fragment in url:
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
        return FakeResponse()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def icons(adapter: MarkerSetAdapter, session: FakeSession) -> IconProvisioner:
    return IconProvisioner(
        adapter,
        url_template="https://skins.example/helm/{name}/100.png",
        session=session,
    )


@pytest.fixture
def engine(
    reader: SnapshotReader, adapter: MarkerSetAdapter, icons: IconProvisioner
) -> ReconciliationEngine:
    return ReconciliationEngine(reader, adapter, icons, prefix="plr_")


@pytest.fixture
def timeout_error() -> requests.Timeout:
    return requests.Timeout("read timed out")
