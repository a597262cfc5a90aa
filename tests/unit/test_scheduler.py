"""Unit tests for TickScheduler — fixed cadence without overlapping ticks."""

from __future__ import annotations

import threading
import time

import pytest

from markersync.core.scheduler import TickScheduler


class TestTickScheduler:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            TickScheduler(lambda: None, interval_seconds=0)

    def test_runs_ticks_on_cadence(self):
        calls: list[float] = []
        scheduler = TickScheduler(lambda: calls.append(time.monotonic()), 0.05)
        scheduler.start()
        try:
            assert scheduler.wait_for_ticks(3, timeout=5)
        finally:
            assert scheduler.stop() is True
        assert len(calls) >= 3
        assert scheduler.is_running is False

    def test_first_tick_waits_when_not_immediate(self):
        calls: list[int] = []
        scheduler = TickScheduler(lambda: calls.append(1), 10.0, run_immediately=False)
        scheduler.start()
        time.sleep(0.1)
        scheduler.stop()
        assert calls == []

    def test_ticks_never_overlap(self):
        active = 0
        max_active = 0
        lock = threading.Lock()

        def slow_tick():
            nonlocal active, max_active
            with lock:
                active += 1
                max_active = max(max_active, active)
            time.sleep(0.05)
            with lock:
                active -= 1

        scheduler = TickScheduler(slow_tick, 0.01)
        scheduler.start()
        for _ in range(5):
            scheduler.request_tick()
        assert scheduler.wait_for_ticks(4, timeout=5)
        scheduler.stop()

        assert max_active == 1

    def test_requests_during_tick_coalesce(self):
        started = threading.Event()
        release = threading.Event()
        count = 0

        def tick():
            nonlocal count
            count += 1
            if count == 1:
                started.set()
                release.wait(timeout=5)

        scheduler = TickScheduler(tick, 60.0)
        scheduler.start()
        assert started.wait(timeout=5)
        for _ in range(10):
            scheduler.request_tick()
        release.set()
        assert scheduler.wait_for_ticks(2, timeout=5)
        time.sleep(0.1)
        scheduler.stop()

        # The first tick plus exactly one pending tick.
        assert count == 2

    def test_exception_in_tick_does_not_stop_worker(self):
        calls: list[int] = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        scheduler = TickScheduler(flaky, 0.01)
        scheduler.start()
        try:
            assert scheduler.wait_for_ticks(2, timeout=5)
        finally:
            scheduler.stop()
        assert len(calls) >= 2

    def test_stop_without_start(self):
        assert TickScheduler(lambda: None, 1.0).stop() is True

    def test_wait_for_ticks_returns_false_on_timeout(self):
        scheduler = TickScheduler(lambda: None, 60.0, run_immediately=False)
        scheduler.start()
        try:
            assert scheduler.wait_for_ticks(1, timeout=0.05) is False
        finally:
            scheduler.stop()

    def test_start_twice_keeps_single_worker(self):
        scheduler = TickScheduler(lambda: None, 60.0, run_immediately=False)
        scheduler.start()
        first = scheduler._thread
        scheduler.start()
        assert scheduler._thread is first
        scheduler.stop()
