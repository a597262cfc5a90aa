"""Unit tests for the rendering backends (in-memory and JSON file)."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from markersync.bridge.rendering import (
    InMemoryRenderingService,
    JsonFileRenderingService,
    RenderingService,
    RenderingServiceError,
    describe_backend,
)
from markersync.models.entities import Position
from markersync.models.markers import OverlayMarker
from tests.conftest import PNG_BYTES

NS = "live_map_players"


def _marker(marker_id: str = "plr_a", x: float = 1.0) -> OverlayMarker:
    return OverlayMarker(
        marker_id=marker_id,
        label="Alice",
        position=Position(world="world", x=x, y=64, z=0),
    )


class TestInMemoryRenderingService:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryRenderingService(), RenderingService)

    def test_create_namespace_is_noop_when_present(self):
        svc = InMemoryRenderingService()
        svc.create_namespace(NS, "First")
        svc.create_marker(NS, _marker())
        svc.create_namespace(NS, "Second")
        assert svc.namespace_label(NS) == "First"
        assert len(svc.list_markers(NS)) == 1

    def test_unknown_namespace_raises_key_error(self):
        svc = InMemoryRenderingService()
        with pytest.raises(KeyError):
            svc.list_markers(NS)
        with pytest.raises(KeyError):
            svc.delete_namespace(NS)

    def test_register_icon_stores_bytes(self):
        svc = InMemoryRenderingService()
        handle = svc.register_icon("icon_a", "Alice", PNG_BYTES)
        assert handle.icon_id == "icon_a"
        assert handle.is_default is False
        assert svc.icon_bytes("icon_a") == PNG_BYTES
        assert svc.icon_ids == ["icon_a"]

    def test_register_empty_icon_rejected(self):
        with pytest.raises(RenderingServiceError):
            InMemoryRenderingService().register_icon("icon_a", "A", b"")

    def test_delete_namespace_removes_markers(self):
        svc = InMemoryRenderingService()
        svc.create_namespace(NS, "Players")
        svc.create_marker(NS, _marker())
        svc.delete_namespace(NS)
        assert svc.get_namespace(NS) is False


class TestJsonFileRenderingService:
    def test_writes_markers_file(self, tmp_path: Path):
        svc = JsonFileRenderingService(tmp_path / "overlay")
        svc.create_namespace(NS, "Live Map Players")
        svc.create_marker(NS, _marker())

        data = json.loads(svc.markers_path.read_bytes())
        ns = data["namespaces"][NS]
        assert ns["label"] == "Live Map Players"
        assert ns["markers"][0]["marker_id"] == "plr_a"
        assert ns["markers"][0]["position"]["x"] == 1.0

    def test_state_survives_restart(self, tmp_path: Path):
        base = tmp_path / "overlay"
        svc = JsonFileRenderingService(base)
        svc.create_namespace(NS, "Players")
        svc.create_marker(NS, _marker("plr_a"))
        svc.create_marker(NS, _marker("plr_b", x=5))
        svc.register_icon("icon_a", "Alice", PNG_BYTES)

        reloaded = JsonFileRenderingService(base)

        assert reloaded.get_namespace(NS) is True
        assert sorted(m.marker_id for m in reloaded.list_markers(NS)) == ["plr_a", "plr_b"]
        assert reloaded.icon_bytes("icon_a") == PNG_BYTES

    def test_icons_written_with_digest(self, tmp_path: Path):
        svc = JsonFileRenderingService(tmp_path)
        svc.register_icon("icon_a", "Alice", PNG_BYTES)

        assert svc.icon_path("icon_a").read_bytes() == PNG_BYTES
        data = json.loads(svc.markers_path.read_bytes())
        assert data["icons"]["icon_a"] == hashlib.sha256(PNG_BYTES).hexdigest()

    def test_delete_namespace_persists(self, tmp_path: Path):
        svc = JsonFileRenderingService(tmp_path)
        svc.create_namespace(NS, "Players")
        svc.delete_namespace(NS)

        data = json.loads(svc.markers_path.read_bytes())
        assert data["namespaces"] == {}
        assert JsonFileRenderingService(tmp_path).get_namespace(NS) is False

    def test_corrupt_markers_file_raises(self, tmp_path: Path):
        (tmp_path / "markers.json").write_text("{not json")
        with pytest.raises(RenderingServiceError):
            JsonFileRenderingService(tmp_path)

    def test_no_temp_file_left_behind(self, tmp_path: Path):
        svc = JsonFileRenderingService(tmp_path)
        svc.create_namespace(NS, "Players")
        assert not list(tmp_path.glob("*.tmp"))

    def test_describe_backend(self, tmp_path: Path):
        assert describe_backend(InMemoryRenderingService()) == "in-memory"
        assert describe_backend(JsonFileRenderingService(tmp_path)).startswith("json-file")

    def test_markers_file_independent_of_insertion_order(self, tmp_path: Path):
        first = JsonFileRenderingService(tmp_path / "one")
        second = JsonFileRenderingService(tmp_path / "two")
        for svc, order in ((first, ("plr_a", "plr_b")), (second, ("plr_b", "plr_a"))):
            svc.create_namespace(NS, "Players")
            for marker_id in order:
                svc.create_marker(NS, _marker(marker_id))

        assert first.markers_path.read_bytes() == second.markers_path.read_bytes()


# ---------------------------------------------------------------------------
# Failed writes leave memory and disk in step
# ---------------------------------------------------------------------------


class _BrokenWrites:
    """Blocks ``markers.json`` rewrites by occupying the temp file path."""

    def __init__(self, svc: JsonFileRenderingService) -> None:
        self.tmp = svc.markers_path.with_suffix(".json.tmp")

    def __enter__(self) -> _BrokenWrites:
        self.tmp.mkdir()
        return self

    def __exit__(self, *exc) -> None:
        self.tmp.rmdir()


class TestWriteFailureRollback:
    @pytest.fixture
    def svc(self, tmp_path: Path) -> JsonFileRenderingService:
        s = JsonFileRenderingService(tmp_path)
        s.create_namespace(NS, "Players")
        return s

    def _on_disk(self, svc: JsonFileRenderingService) -> list[str]:
        data = json.loads(svc.markers_path.read_bytes())
        return [m["marker_id"] for m in data["namespaces"][NS]["markers"]]

    def test_failed_create_is_not_kept(self, svc):
        with _BrokenWrites(svc):
            with pytest.raises(RenderingServiceError):
                svc.create_marker(NS, _marker())
        assert svc.list_markers(NS) == []

        # Once the write succeeds again, the same create goes through.
        svc.create_marker(NS, _marker())
        assert self._on_disk(svc) == ["plr_a"]

    def test_failed_update_is_not_kept(self, svc):
        svc.create_marker(NS, _marker(x=1.0))
        with _BrokenWrites(svc):
            with pytest.raises(RenderingServiceError):
                svc.update_marker(NS, "plr_a", "Alice", Position(x=9.0))
        assert svc.list_markers(NS)[0].position.x == 1.0

        svc.update_marker(NS, "plr_a", "Alice", Position(x=9.0))
        data = json.loads(svc.markers_path.read_bytes())
        assert data["namespaces"][NS]["markers"][0]["position"]["x"] == 9.0

    def test_failed_delete_is_not_kept(self, svc):
        svc.create_marker(NS, _marker())
        with _BrokenWrites(svc):
            with pytest.raises(RenderingServiceError):
                svc.delete_marker(NS, "plr_a")
        assert [m.marker_id for m in svc.list_markers(NS)] == ["plr_a"]

        svc.delete_marker(NS, "plr_a")
        assert self._on_disk(svc) == []

    def test_failed_icon_registration_is_not_kept(self, svc):
        with _BrokenWrites(svc):
            with pytest.raises(RenderingServiceError):
                svc.register_icon("icon_a", "Alice", PNG_BYTES)
        assert svc.icon_ids == []
        assert "icon_a" not in json.loads(svc.markers_path.read_bytes())["icons"]

    def test_failed_namespace_delete_is_not_kept(self, svc):
        with _BrokenWrites(svc):
            with pytest.raises(RenderingServiceError):
                svc.delete_namespace(NS)
        assert svc.get_namespace(NS) is True

    def test_state_matches_reload_after_failure(self, svc, tmp_path: Path):
        svc.create_marker(NS, _marker("plr_a"))
        with _BrokenWrites(svc):
            with pytest.raises(RenderingServiceError):
                svc.create_marker(NS, _marker("plr_b"))

        reloaded = JsonFileRenderingService(tmp_path)
        assert reloaded.list_markers(NS) == svc.list_markers(NS)
