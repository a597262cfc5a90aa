"""Reconciliation Engine — converge the overlay onto the record store.

Each tick is a set difference keyed by marker id:

1. Read a fresh snapshot of live entities.
2. List the namespace's markers into ``existing_by_id``.
3. For every entity, pop its marker from ``existing_by_id`` (claimed) and
   update it only if label or position changed; entities without a marker
   are queued for creation.
4. Resolve icons for the queued creations, then create them.
5. Whatever is left in ``existing_by_id`` belongs to no live entity and is
   deleted.  There is no grace period: a marker absent from one snapshot
   is removed on that tick.

A failed snapshot read or listing aborts the tick before any mutation.
Individual marker failures are recorded in the ``TickReport`` and never
stop the remaining operations of the same tick; the next tick corrects
whatever did not converge.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone

from markersync.core.icon_cache import IconProvisioner
from markersync.core.marker_adapter import MarkerAdapterError, MarkerSetAdapter
from markersync.core.snapshot_reader import SnapshotError, SnapshotReader
from markersync.models.entities import LiveEntity
from markersync.models.markers import OverlayMarker
from markersync.models.reports import MarkerFailure, MarkerOperation, TickReport

logger = logging.getLogger(__name__)

DEFAULT_MARKER_PREFIX = "plr_"


class ReconciliationEngine:
    """Computes and applies the minimal marker mutations per tick.

    Parameters
    ----------
    reader:
        Source of truth for live entities.
    adapter:
        Marker primitives over the overlay namespace.
    icons:
        Icon provisioner consulted only for markers about to be created.
    prefix:
        Constant prefix joined to an identity to form its marker id.
    icon_workers:
        Upper bound on concurrent icon downloads within one tick.
    """

    def __init__(
        self,
        reader: SnapshotReader,
        adapter: MarkerSetAdapter,
        icons: IconProvisioner,
        *,
        prefix: str = DEFAULT_MARKER_PREFIX,
        icon_workers: int = 4,
    ) -> None:
        self._reader = reader
        self._adapter = adapter
        self._icons = icons
        self._prefix = prefix
        self._icon_workers = icon_workers
        self._tick_lock = threading.Lock()
        self._tick_count = 0
        self._last_report: TickReport | None = None

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def tick_count(self) -> int:
        """Number of ticks started so far (including skipped ones)."""
        return self._tick_count

    @property
    def last_report(self) -> TickReport | None:
        return self._last_report

    def marker_id_for(self, identity: str) -> str:
        """Deterministic marker id for an identity."""
        return self._prefix + identity

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def run_tick(self) -> TickReport:
        """Run one reconciliation pass and return its report.

        Never raises for store or adapter failures.  If another tick is
        already running, returns a skipped report immediately instead of
        interleaving with it.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Tick requested while another tick is in flight; skipping.")
            return TickReport(tick=self._tick_count, skipped=True, reason="tick in flight")
        try:
            self._tick_count += 1
            report = self._reconcile(self._tick_count)
            self._last_report = report
            return report
        finally:
            self._tick_lock.release()

    def _reconcile(self, tick: int) -> TickReport:
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        def skipped(reason: str) -> TickReport:
            return TickReport(
                tick=tick,
                started_at=started_at,
                duration_seconds=time.monotonic() - start,
                skipped=True,
                reason=reason,
            )

        if not self._adapter.is_ready:
            logger.info("Tick %d skipped: marker namespace not ready.", tick)
            return skipped("marker namespace not ready")
        if not self._reader.is_open:
            logger.info("Tick %d skipped: record store not open.", tick)
            return skipped("record store not open")

        try:
            entities = self._reader.read_snapshot()
        except SnapshotError as exc:
            logger.warning("Tick %d aborted, snapshot read failed: %s", tick, exc)
            return skipped(f"snapshot read failed: {exc}")

        try:
            existing_by_id: dict[str, OverlayMarker] = {
                m.marker_id: m for m in self._adapter.list_markers()
            }
        except MarkerAdapterError as exc:
            logger.warning("Tick %d aborted, marker listing failed: %s", tick, exc)
            return skipped(f"marker listing failed: {exc}")

        # Last occurrence of a duplicated identity wins; each marker is claimed once.
        desired: dict[str, LiveEntity] = {}
        for entity in entities:
            desired[self.marker_id_for(entity.identity)] = entity

        failures: list[MarkerFailure] = []
        to_create: dict[str, LiveEntity] = {}
        updated = unchanged = 0

        for marker_id, entity in desired.items():
            current = existing_by_id.pop(marker_id, None)
            if current is None:
                to_create[marker_id] = entity
                continue
            if current.matches(entity.display_name, entity.position):
                unchanged += 1
                continue
            try:
                self._adapter.update_marker(
                    marker_id, entity.display_name, entity.position
                )
                updated += 1
            except MarkerAdapterError as exc:
                logger.error("Tick %d: update of %s failed: %s", tick, marker_id, exc)
                failures.append(
                    MarkerFailure(
                        marker_id=marker_id,
                        operation=MarkerOperation.UPDATE,
                        error=str(exc),
                    )
                )

        created = self._create_markers(tick, to_create, failures)

        deleted = 0
        for marker_id in existing_by_id:
            try:
                self._adapter.delete_marker(marker_id)
                deleted += 1
            except MarkerAdapterError as exc:
                logger.error("Tick %d: delete of %s failed: %s", tick, marker_id, exc)
                failures.append(
                    MarkerFailure(
                        marker_id=marker_id,
                        operation=MarkerOperation.DELETE,
                        error=str(exc),
                    )
                )

        report = TickReport(
            tick=tick,
            started_at=started_at,
            duration_seconds=time.monotonic() - start,
            entity_count=len(desired),
            created=created,
            updated=updated,
            deleted=deleted,
            unchanged=unchanged,
            failures=failures,
        )
        log = logger.warning if failures else logger.info
        log(
            "Tick %d: %d entities, %d created, %d updated, %d deleted, "
            "%d unchanged, %d failed (%.3fs)",
            tick,
            report.entity_count,
            created,
            updated,
            deleted,
            unchanged,
            len(failures),
            report.duration_seconds,
        )
        return report

    def _create_markers(
        self,
        tick: int,
        to_create: dict[str, LiveEntity],
        failures: list[MarkerFailure],
    ) -> int:
        """Resolve icons for new markers, then create each one."""
        if not to_create:
            return 0
        icons = self._icons.get_icons(
            {e.identity: e.display_name for e in to_create.values()},
            max_workers=self._icon_workers,
        )
        created = 0
        for marker_id, entity in to_create.items():
            try:
                self._adapter.create_marker(
                    marker_id,
                    entity.display_name,
                    entity.position,
                    icons[entity.identity],
                )
                created += 1
            except MarkerAdapterError as exc:
                logger.error("Tick %d: create of %s failed: %s", tick, marker_id, exc)
                failures.append(
                    MarkerFailure(
                        marker_id=marker_id,
                        operation=MarkerOperation.CREATE,
                        error=str(exc),
                    )
                )
        return created
