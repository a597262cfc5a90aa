"""Tick scheduler — fixed cadence, one worker, never overlapping.

A single daemon thread calls the tick function every ``interval_seconds``.
Because there is only one worker, a tick can never start while the
previous one is still running.  If a tick overruns its slot, the missed
deadlines collapse into one immediate follow-up tick and the cadence then
resumes from there, so a slow tick never causes a burst.

``request_tick()`` asks for an extra tick as soon as possible.  Requests
made while a tick is in flight coalesce into at most one pending tick.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class TickScheduler:
    """Drives a tick function on a fixed cadence.

    Parameters
    ----------
    tick:
        Callable run on every tick.  Exceptions are logged and the
        schedule continues.
    interval_seconds:
        Time between tick starts.
    run_immediately:
        Run the first tick right after ``start()`` instead of one interval
        later.
    name:
        Worker thread name.
    """

    def __init__(
        self,
        tick: Callable[[], Any],
        interval_seconds: float = 5.0,
        *,
        run_immediately: bool = True,
        name: str = "markersync-ticker",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than zero")
        self._tick = tick
        self._interval = interval_seconds
        self._run_immediately = run_immediately
        self._name = name

        self._cond = threading.Condition()
        self._thread: threading.Thread | None = None
        self._stopping = False
        self._pending = False
        self._ticks_run = 0

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def ticks_run(self) -> int:
        with self._cond:
            return self._ticks_run

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.is_running:
            return
        with self._cond:
            self._stopping = False
            self._pending = False
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.info("Tick scheduler started (interval=%.1fs).", self._interval)

    def stop(self, timeout: float | None = 5.0) -> bool:
        """Stop scheduling new ticks and wait for the in-flight one.

        Returns ``True`` if the worker exited within *timeout* (``None``
        waits without a bound).
        """
        with self._cond:
            self._stopping = True
            self._cond.notify_all()
        thread = self._thread
        if thread is None:
            return True
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        stopped = not thread.is_alive()
        if stopped:
            self._thread = None
            logger.info("Tick scheduler stopped after %d tick(s).", self._ticks_run)
        else:
            logger.warning("Tick scheduler did not stop within %ss.", timeout)
        return stopped

    def request_tick(self) -> None:
        """Ask for a tick as soon as the worker is free."""
        with self._cond:
            self._pending = True
            self._cond.notify_all()

    def wait_for_ticks(self, count: int, timeout: float | None = None) -> bool:
        """Block until at least *count* ticks have completed.

        Returns ``False`` on timeout or if the scheduler stops first.
        """
        with self._cond:
            return self._cond.wait_for(
                lambda: self._ticks_run >= count or self._stopping,
                timeout=timeout,
            ) and self._ticks_run >= count

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run(self) -> None:
        next_due = time.monotonic()
        if not self._run_immediately:
            next_due += self._interval

        while True:
            with self._cond:
                self._cond.wait_for(
                    lambda: self._stopping
                    or self._pending
                    or time.monotonic() >= next_due,
                    timeout=max(0.0, next_due - time.monotonic()),
                )
                if self._stopping:
                    return
                scheduled = time.monotonic() >= next_due
                if not (scheduled or self._pending):
                    continue
                self._pending = False

            try:
                self._tick()
            except Exception:
                logger.exception("Tick raised an unexpected error; continuing.")

            with self._cond:
                self._ticks_run += 1
                self._cond.notify_all()

            if scheduled:
                now = time.monotonic()
                next_due += self._interval
                if next_due < now:
                    # Overran: one catch-up tick now instead of a burst.
                    next_due = now
