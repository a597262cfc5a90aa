"""Service lifecycle — wiring, scoped start/stop, and run-once bootstrap.

``SyncService`` owns every long-lived handle (record-store connection,
marker adapter, icon provisioner, scheduler) explicitly.  Nothing lives in
module globals and nothing is checked for ``None`` at call sites: handles
are injected at construction and released by ``stop()``, which the context
manager guarantees on every exit path.

Start order: open the record store, prepare the namespace (exactly once,
via ``OneShotGuard``), start the scheduler.  Stop order is the reverse:
stop scheduling, delete the namespace, close the store.  Teardown is
best-effort; errors are logged, never raised.

The service must only be started once the rendering service is ready to
accept namespace operations.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any

from markersync.bridge.rendering import JsonFileRenderingService, RenderingService
from markersync.config import SyncConfig
from markersync.core.icon_cache import IconProvisioner
from markersync.core.marker_adapter import MarkerSetAdapter
from markersync.core.reconciler import ReconciliationEngine
from markersync.core.scheduler import TickScheduler
from markersync.core.snapshot_reader import SnapshotReader
from markersync.models.reports import TickReport

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    DONE = "done"


class OneShotGuard:
    """Tri-state run-once guard for one-shot bootstrap actions.

    The first caller of ``run()`` flips ``NOT_STARTED -> RUNNING`` under a
    lock and executes the action; every later caller returns immediately.
    If the action raises, the guard falls back to ``NOT_STARTED`` so the
    action can be attempted again.
    """

    def __init__(self, name: str = "bootstrap") -> None:
        self._name = name
        self._state = GuardState.NOT_STARTED
        self._lock = threading.Lock()

    @property
    def state(self) -> GuardState:
        return self._state

    def run(self, action: Callable[[], Any]) -> bool:
        """Execute *action* if it has never completed.

        Returns ``True`` if this call ran the action.
        """
        with self._lock:
            if self._state is not GuardState.NOT_STARTED:
                logger.debug("%s already %s; not running again.", self._name, self._state.value)
                return False
            self._state = GuardState.RUNNING
        try:
            action()
        except BaseException:
            with self._lock:
                self._state = GuardState.NOT_STARTED
            raise
        with self._lock:
            self._state = GuardState.DONE
        return True

    def reset(self) -> None:
        with self._lock:
            self._state = GuardState.NOT_STARTED


class SyncService:
    """Owns the reconciliation engine and its resources for one overlay.

    Parameters
    ----------
    reader:
        Record store reader (opened by ``start()``).
    adapter:
        Marker adapter over the overlay namespace.
    icons:
        Icon provisioner bound to the same adapter.
    interval_seconds:
        Tick cadence.
    prefix:
        Marker id prefix.
    icon_workers:
        Concurrent icon downloads per tick.
    """

    def __init__(
        self,
        reader: SnapshotReader,
        adapter: MarkerSetAdapter,
        icons: IconProvisioner,
        *,
        interval_seconds: float = 5.0,
        prefix: str = "plr_",
        icon_workers: int = 4,
    ) -> None:
        self.reader = reader
        self.adapter = adapter
        self.icons = icons
        self.engine = ReconciliationEngine(
            reader, adapter, icons, prefix=prefix, icon_workers=icon_workers
        )
        self.scheduler = TickScheduler(self.engine.run_tick, interval_seconds)
        self._bootstrap = OneShotGuard(f"namespace {adapter.namespace_id}")
        self._teardown_on_exit = True

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        *,
        service: RenderingService | None = None,
        session: Any | None = None,
    ) -> SyncService:
        """Build a service from settings.

        ``service`` defaults to a ``JsonFileRenderingService`` rooted at
        ``config.overlay_path``.  ``session`` is forwarded to the icon
        provisioner (a ``requests.Session`` is created when omitted).
        """
        if service is None:
            service = JsonFileRenderingService(config.overlay_path)
        reader = SnapshotReader(
            config.store_path,
            table=config.store_table,
            identity_column=config.identity_column,
            name_column=config.name_column,
            world_column=config.world_column,
            default_world=config.default_world,
            timeout_seconds=config.store_timeout_seconds,
        )
        adapter = MarkerSetAdapter(
            service, config.namespace_id, label=config.namespace_label
        )
        icons = IconProvisioner(
            adapter,
            url_template=config.icon_url_template,
            timeout_seconds=config.icon_timeout_seconds,
            session=session,
            user_agent=config.icon_user_agent,
        )
        return cls(
            reader,
            adapter,
            icons,
            interval_seconds=config.tick_interval_seconds,
            prefix=config.marker_prefix,
            icon_workers=config.icon_workers,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.scheduler.is_running

    def open(self) -> None:
        """Acquire the store connection and prepare the namespace.

        Releases anything already acquired if a step fails.
        """
        try:
            self.reader.open()
            self._bootstrap.run(self.adapter.ensure_namespace)
        except Exception:
            self._release(teardown=False)
            raise

    def start(self) -> None:
        """Open resources and begin ticking on the configured cadence."""
        self.open()
        self.scheduler.start()
        logger.info(
            "Marker sync started for namespace %s (every %.1fs).",
            self.adapter.namespace_id,
            self.scheduler.interval_seconds,
        )

    def run_once(self) -> TickReport:
        """Run a single tick on the calling thread (resources must be open)."""
        return self.engine.run_tick()

    def stop(self, *, teardown: bool = True, timeout: float = 5.0) -> None:
        """Stop ticking, optionally delete the namespace, close the store.

        Resources are released only after the in-flight tick has finished;
        if it outlives *timeout*, this waits for it without a bound.
        """
        if not self.scheduler.stop(timeout=timeout):
            logger.warning(
                "Waiting for the in-flight tick before releasing namespace %s.",
                self.adapter.namespace_id,
            )
            self.scheduler.stop(timeout=None)
        self._release(teardown=teardown)
        logger.info("Marker sync stopped for namespace %s.", self.adapter.namespace_id)

    def keep_overlay_on_exit(self) -> None:
        """Leave the namespace in place when the context manager exits."""
        self._teardown_on_exit = False

    def __enter__(self) -> SyncService:
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop(teardown=self._teardown_on_exit)

    def _release(self, *, teardown: bool) -> None:
        if teardown and self._bootstrap.state is GuardState.DONE:
            try:
                self.adapter.delete_namespace()
            except Exception:
                logger.exception("Failed to delete namespace %s.", self.adapter.namespace_id)
            self._bootstrap.reset()
        try:
            self.reader.close()
        except Exception:
            logger.exception("Failed to close record store %s.", self.reader.db_path)
        try:
            self.icons.close()
        except Exception:
            logger.exception("Failed to close icon provisioner session.")
