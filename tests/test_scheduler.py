"""Tests for the scheduler.

**Feature: price-alerts**
"""

import threading
import time as _time
from datetime import datetime, time, timedelta

import pytest
import pytz
from hypothesis import given, settings
from hypothesis import strategies as st
from unittest.mock import MagicMock

from pricewatch.core.cycle import CycleReport, CycleRunner
from pricewatch.core.scheduler import Scheduler, next_daily_run
from pricewatch.errors import SchedulerError
from pricewatch.sources.base import PriceSource


def _report() -> CycleReport:
    return CycleReport(started_at=datetime.now(pytz.utc), duration_seconds=0.0)


def _runner(side_effect=None) -> MagicMock:
    runner = MagicMock(spec=CycleRunner)
    if side_effect is None:
        runner.run_once.side_effect = lambda: _report()
    else:
        runner.run_once.side_effect = side_effect
    return runner


def _wait_until(predicate, timeout: float = 3.0) -> bool:
    deadline = _time.monotonic() + timeout
    while _time.monotonic() < deadline:
        if predicate():
            return True
        _time.sleep(0.01)
    return predicate()


def _clock_near_midnight(seconds_before: float = 0.2):
    """Wall clock that starts shortly before midnight UTC and runs in real time."""
    base = datetime(2024, 1, 1, tzinfo=pytz.utc) + timedelta(days=1) - timedelta(seconds=seconds_before)
    started = _time.monotonic()
    return lambda: base + timedelta(seconds=_time.monotonic() - started)


class TestNextDailyRun:
    """
    **Feature: price-alerts, Property 16: Daily Cadence Time**

    *For any* current time, the next daily run is strictly in the future,
    at most one day (plus a DST shift) away and at the configured wall
    clock time.
    """

    @given(
        now=st.datetimes(min_value=datetime(2000, 1, 1), max_value=datetime(2100, 1, 1)),
        daily_time=st.times(),
        tz=st.sampled_from(["UTC", "America/New_York", "Asia/Kolkata", "Europe/London"]),
    )
    @settings(max_examples=200)
    def test_next_run_properties(self, now: datetime, daily_time: time, tz: str):
        result = next_daily_run(now, daily_time, tz)
        aware_now = pytz.utc.localize(now)

        assert result > aware_now
        assert result - aware_now <= timedelta(days=1, hours=1)
        assert result.replace(tzinfo=None).time() == daily_time

    def test_midnight_utc(self):
        now = datetime(2024, 1, 1, 23, 59, 59, tzinfo=pytz.utc)
        assert next_daily_run(now, time(0, 0)) == datetime(2024, 1, 2, tzinfo=pytz.utc)

    def test_exactly_at_time_moves_to_next_day(self):
        now = datetime(2024, 1, 2, 0, 0, tzinfo=pytz.utc)
        assert next_daily_run(now, time(0, 0)) == datetime(2024, 1, 3, tzinfo=pytz.utc)

    def test_local_timezone(self):
        # 03:00 UTC is 23:00 the previous evening in New York (EDT)
        now = datetime(2024, 6, 1, 3, 0, tzinfo=pytz.utc)
        result = next_daily_run(now, time(0, 0), "America/New_York")
        assert result.astimezone(pytz.utc) == datetime(2024, 6, 1, 4, 0, tzinfo=pytz.utc)


class TestSchedulerLifecycle:
    """
    **Feature: price-alerts, Property 17: Scheduler Lifecycle**

    start() completes one cycle before returning; after stop() returns no
    further cycle starts.
    """

    def test_start_runs_first_cycle_synchronously(self):
        runner = _runner()
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=60)

        scheduler.start()
        try:
            assert runner.run_once.call_count == 1
            assert scheduler.cycles_completed == 1
            assert scheduler.is_running
        finally:
            scheduler.stop()

        assert not scheduler.is_running

    def test_runs_on_cadence_and_stops(self):
        runner = _runner()
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=0.05)

        scheduler.start()
        assert _wait_until(lambda: runner.run_once.call_count >= 3)
        scheduler.stop()

        calls = runner.run_once.call_count
        _time.sleep(0.2)
        assert runner.run_once.call_count == calls

    def test_start_twice_raises(self):
        scheduler = Scheduler(_runner(), MagicMock(spec=PriceSource), interval_seconds=60)
        scheduler.start()
        try:
            with pytest.raises(SchedulerError):
                scheduler.start()
        finally:
            scheduler.stop()

    def test_restart_after_stop(self):
        runner = _runner()
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=60)

        scheduler.start()
        scheduler.stop()
        scheduler.start()
        scheduler.stop()

        assert runner.run_once.call_count == 2

    def test_stop_without_start(self):
        Scheduler(_runner(), MagicMock(spec=PriceSource)).stop()

    def test_independent_instances(self):
        first, second = _runner(), _runner()
        a = Scheduler(first, MagicMock(spec=PriceSource), interval_seconds=60)
        b = Scheduler(second, MagicMock(spec=PriceSource), interval_seconds=60)

        a.start()
        b.start()
        a.stop()
        assert b.is_running
        b.stop()

        assert first.run_once.call_count == 1
        assert second.run_once.call_count == 1

    @pytest.mark.parametrize("interval", [0, -1])
    def test_invalid_interval(self, interval: float):
        with pytest.raises(ValueError):
            Scheduler(_runner(), MagicMock(spec=PriceSource), interval_seconds=interval)

    def test_unknown_timezone(self):
        with pytest.raises(pytz.UnknownTimeZoneError):
            Scheduler(_runner(), MagicMock(spec=PriceSource), timezone="Mars/Olympus")


class TestStopSemantics:
    """
    **Feature: price-alerts, Property 21: Nothing Starts After Stop**

    *For any* moment stop() is called, including during the first
    synchronous cycle of start(), the running job finishes and no further
    job starts once stop() has returned.
    """

    def test_stop_during_first_cycle(self):
        release = threading.Event()
        started = threading.Event()

        def run_once():
            started.set()
            release.wait(5)
            return _report()

        runner = _runner(side_effect=run_once)
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=0.05)

        starter = threading.Thread(target=scheduler.start)
        starter.start()
        assert started.wait(2)

        scheduler.stop()
        assert not scheduler.is_running
        release.set()
        starter.join(2)

        assert not starter.is_alive()
        assert scheduler.cycles_completed == 1
        _time.sleep(0.25)
        assert runner.run_once.call_count == 1
        assert not scheduler.is_running
        assert scheduler.wait(0) is True

    def test_start_again_after_stop_during_first_cycle(self):
        release = threading.Event()
        started = threading.Event()

        def run_once():
            if not started.is_set():
                started.set()
                release.wait(5)
            return _report()

        runner = _runner(side_effect=run_once)
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=60)

        starter = threading.Thread(target=scheduler.start)
        starter.start()
        assert started.wait(2)
        scheduler.stop()
        release.set()
        starter.join(2)

        scheduler.start()
        try:
            assert scheduler.is_running
            assert runner.run_once.call_count == 2
        finally:
            scheduler.stop()

    def test_stop_before_start_has_no_effect(self):
        runner = _runner()
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=0.05)

        scheduler.stop()
        scheduler.start()
        try:
            assert scheduler.is_running
            assert _wait_until(lambda: runner.run_once.call_count >= 2)
        finally:
            scheduler.stop()

    def test_in_flight_cycle_finishes_and_nothing_follows(self):
        release = threading.Event()
        in_second = threading.Event()
        calls = []

        def run_once():
            calls.append(1)
            if len(calls) == 2:
                in_second.set()
                release.wait(5)
            return _report()

        runner = _runner(side_effect=run_once)
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=0.05)
        scheduler.start()
        assert in_second.wait(2)

        stopper = threading.Thread(target=scheduler.stop)
        stopper.start()
        # stop() waits for the running cycle
        stopper.join(0.2)
        assert stopper.is_alive()

        release.set()
        stopper.join(2)
        assert not stopper.is_alive()

        assert scheduler.cycles_completed == 2
        _time.sleep(0.25)
        assert runner.run_once.call_count == 2


class TestSchedulerFaultTolerance:
    """
    **Feature: price-alerts, Property 18: Timers Survive Failures**

    *For any* failing job, the scheduler logs it and keeps firing; the
    primary and daily cadences never block each other.
    """

    def test_failing_cycles_keep_firing(self):
        runner = _runner(side_effect=RuntimeError("boom"))
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=0.05)

        scheduler.start()
        try:
            assert _wait_until(lambda: runner.run_once.call_count >= 3)
            assert scheduler.is_running
        finally:
            scheduler.stop()

    def test_daily_reset_fires_at_wall_clock_time(self):
        source = MagicMock(spec=PriceSource)
        scheduler = Scheduler(
            _runner(),
            source,
            interval_seconds=60,
            daily_time=time(0, 0),
            clock=_clock_near_midnight(0.2),
        )

        scheduler.start()
        try:
            assert _wait_until(lambda: source.reset_daily_stats.call_count == 1)
            assert _wait_until(lambda: scheduler.status()["next_daily_reset"] == datetime(2024, 1, 3, tzinfo=pytz.utc))
            assert scheduler.resets_completed == 1
        finally:
            scheduler.stop()

    def test_failing_daily_reset_does_not_stop_cycles(self):
        runner = _runner()
        source = MagicMock(spec=PriceSource)
        source.reset_daily_stats.side_effect = RuntimeError("reset failed")
        scheduler = Scheduler(
            runner,
            source,
            interval_seconds=0.05,
            clock=_clock_near_midnight(0.1),
        )

        scheduler.start()
        try:
            assert _wait_until(lambda: source.reset_daily_stats.call_count == 1)
            calls = runner.run_once.call_count
            assert _wait_until(lambda: runner.run_once.call_count >= calls + 2)
            assert scheduler.resets_completed == 0
        finally:
            scheduler.stop()

    def test_slow_cycle_does_not_block_daily_reset(self):
        release = threading.Event()
        first_call = threading.Event()

        def run_once():
            if first_call.is_set():
                release.wait(5)
            first_call.set()
            return _report()

        runner = _runner(side_effect=run_once)
        source = MagicMock(spec=PriceSource)
        scheduler = Scheduler(
            runner,
            source,
            interval_seconds=0.05,
            clock=_clock_near_midnight(0.3),
        )

        scheduler.start()
        try:
            assert _wait_until(lambda: runner.run_once.call_count == 2)
            # Second cycle is blocked; the daily reset still fires
            assert _wait_until(lambda: source.reset_daily_stats.call_count == 1)
            assert runner.run_once.call_count == 2
        finally:
            release.set()
            scheduler.stop()


class TestSingleFlight:
    """
    **Feature: price-alerts, Property 19: Single-Flight Guard**

    While a cycle is running, another fire of the same cadence is skipped.
    """

    def test_overlapping_fire_is_skipped(self):
        release = threading.Event()
        started = threading.Event()

        def run_once():
            started.set()
            release.wait(5)
            return _report()

        scheduler = Scheduler(_runner(side_effect=run_once), MagicMock(spec=PriceSource), interval_seconds=60)

        worker = threading.Thread(target=scheduler.run_cycle_now)
        worker.start()
        assert started.wait(2)

        assert scheduler.run_cycle_now() is None
        assert scheduler.cycles_skipped == 1

        release.set()
        worker.join(2)
        assert scheduler.cycles_completed == 1

    def test_without_single_flight_cycles_overlap(self):
        release = threading.Event()
        active = []
        lock = threading.Lock()
        peak = [0]

        def run_once():
            with lock:
                active.append(1)
                peak[0] = max(peak[0], len(active))
            release.wait(0.3)
            with lock:
                active.pop()
            return _report()

        runner = _runner(side_effect=run_once)
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=0.05, single_flight=False)

        # First synchronous cycle is slow too, so let it pass quickly
        release.set()
        scheduler.start()
        release.clear()
        try:
            assert _wait_until(lambda: peak[0] >= 2)
        finally:
            release.set()
            scheduler.stop()

    def test_overrun_skips_missed_ticks(self):
        durations = iter([0.0, 0.35])

        def run_once():
            _time.sleep(next(durations, 0.0))
            return _report()

        runner = _runner(side_effect=run_once)
        scheduler = Scheduler(runner, MagicMock(spec=PriceSource), interval_seconds=0.1)

        scheduler.start()
        try:
            assert _wait_until(lambda: runner.run_once.call_count >= 3)
        finally:
            scheduler.stop()

        # The overrun did not queue up a burst of back-to-back cycles
        assert scheduler.cycles_skipped == 0
        assert runner.run_once.call_count < 10

    def test_status(self):
        scheduler = Scheduler(_runner(), MagicMock(spec=PriceSource), interval_seconds=60)
        scheduler.start()
        try:
            status = scheduler.status()
        finally:
            scheduler.stop()

        assert status["running"] is True
        assert status["cycles_completed"] == 1
        assert status["interval_seconds"] == 60.0
        assert isinstance(status["last_report"], CycleReport)
