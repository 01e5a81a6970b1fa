"""Recurring scheduler for price update cycles and daily resets.

Two cadences run on their own threads:

* the primary cadence runs a cycle every ``interval_seconds``;
* the daily cadence resets daily stats at a fixed wall-clock time.

A failure in one never delays or cancels the other, and no exception
from a job ever stops its timer.
"""

import logging
import threading
import time as _time
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, Optional, Union

import pytz

from pricewatch.core.cycle import CycleReport, CycleRunner
from pricewatch.errors import SchedulerError
from pricewatch.sources.base import PriceSource
from pricewatch.timeutil import utc_now

logger = logging.getLogger(__name__)


def next_daily_run(
    now: datetime,
    daily_time: time,
    tz: Union[str, tzinfo] = "UTC",
) -> datetime:
    """Get the next occurrence of a wall-clock time.

    Args:
        now: Current time. Naive values are taken as UTC.
        daily_time: Time of day to fire.
        tz: Timezone the time of day is expressed in.

    Returns:
        Aware datetime strictly after ``now``.
    """
    zone = pytz.timezone(tz) if isinstance(tz, str) else tz
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    local_now = now.astimezone(zone)

    day = local_now.date()
    candidate = _localize(zone, datetime.combine(day, daily_time))
    if candidate <= local_now:
        candidate = _localize(zone, datetime.combine(day + timedelta(days=1), daily_time))
    return candidate


def _localize(zone: tzinfo, value: datetime) -> datetime:
    if hasattr(zone, "localize"):
        return zone.localize(value)
    return value.replace(tzinfo=zone)


class Scheduler:
    """Drives a CycleRunner and a daily reset until stopped.

    With ``single_flight`` enabled (the default) each cadence holds a
    busy lock while its job runs; a fire that finds the lock taken is
    skipped. A primary cycle that outlasts the interval makes the timer
    drop the missed ticks instead of running them back to back.

    With ``single_flight`` disabled every primary fire is dispatched on
    its own thread, so slow cycles can overlap.
    """

    # Upper bound on a single wait for the daily cadence, so wall-clock
    # jumps are picked up
    MAX_DAILY_SLEEP = 60.0

    def __init__(
        self,
        runner: CycleRunner,
        price_source: PriceSource,
        interval_seconds: float = 30.0,
        daily_time: time = time(0, 0),
        timezone: str = "UTC",
        single_flight: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the scheduler.

        Args:
            runner: Cycle runner for the primary cadence.
            price_source: Source whose daily stats are reset.
            interval_seconds: Seconds between primary cycles.
            daily_time: Wall-clock time of the daily reset.
            timezone: Timezone of ``daily_time``.
            single_flight: Skip a fire while the previous one is running.
            clock: Wall-clock source for the daily cadence.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._runner = runner
        self._source = price_source
        self._interval = float(interval_seconds)
        self._daily_time = daily_time
        self._zone = pytz.timezone(timezone)
        self._single_flight = single_flight
        self._clock = clock

        self._lifecycle_lock = threading.RLock()
        self._started = False
        self._stop_event = threading.Event()
        self._cycle_lock = threading.Lock()
        self._reset_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._workers: list[threading.Thread] = []

        self._cycles_completed = 0
        self._cycles_skipped = 0
        self._resets_completed = 0
        self._last_report: Optional[CycleReport] = None
        self._next_daily: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._started and not self._stop_event.is_set()

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def cycles_completed(self) -> int:
        with self._stats_lock:
            return self._cycles_completed

    @property
    def cycles_skipped(self) -> int:
        with self._stats_lock:
            return self._cycles_skipped

    @property
    def resets_completed(self) -> int:
        with self._stats_lock:
            return self._resets_completed

    @property
    def last_report(self) -> Optional[CycleReport]:
        with self._stats_lock:
            return self._last_report

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Run one cycle now, then start both cadences.

        The first cycle completes before this method returns. If stop()
        is called during that cycle, the cadences are never started.

        Raises:
            SchedulerError: If the scheduler is already running.
        """
        with self._lifecycle_lock:
            if self._started:
                raise SchedulerError("Scheduler is already running")
            self._started = True
            self._stop_event.clear()

        logger.info(
            "Starting scheduler: every %.1fs, daily reset at %s %s",
            self._interval,
            self._daily_time.strftime("%H:%M"),
            self._zone.zone,
        )
        self.run_cycle_now()

        with self._lifecycle_lock:
            if self._stop_event.is_set():
                self._started = False
                logger.info("Scheduler stopped during its first cycle")
                return

            self._threads = [
                threading.Thread(target=self._primary_loop, name="pricewatch-cycle", daemon=True),
                threading.Thread(target=self._daily_loop, name="pricewatch-daily", daemon=True),
            ]
            for thread in self._threads:
                thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop both cadences.

        A job already running is allowed to finish. Once this returns
        (with no timeout) no further job is started. Stopping during the
        first cycle of start() makes start() return without starting the
        cadences.

        Args:
            timeout: Maximum seconds to wait for each thread.
        """
        with self._lifecycle_lock:
            if not self._started or self._stop_event.is_set():
                return

            logger.info("Stopping scheduler...")
            self._stop_event.set()
            threads = self._threads
            if not threads:
                # start() is still in its first cycle and cleans up after it
                return

        for thread in threads:
            thread.join(timeout)
        for worker in list(self._workers):
            worker.join(timeout)

        with self._lifecycle_lock:
            self._threads = []
            self._workers = [w for w in self._workers if w.is_alive()]
            self._started = False
        logger.info("Scheduler stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the scheduler is stopped.

        Returns:
            True if stopped, False if the timeout elapsed first.
        """
        return self._stop_event.wait(timeout)

    # ==================== Jobs ====================

    def _run_guarded(self, lock: threading.Lock, name: str, job: Callable):
        """Run a job under its busy lock, logging anything it raises.

        Returns:
            Tuple of (ran, result). ``ran`` is False if the job was skipped.
        """
        if self._single_flight and not lock.acquire(blocking=False):
            logger.warning("%s still running, skipping this run", name)
            return False, None
        try:
            return True, job()
        except Exception:
            logger.exception("%s failed", name)
            return True, None
        finally:
            if self._single_flight:
                lock.release()

    def run_cycle_now(self) -> Optional[CycleReport]:
        """Run one cycle on the calling thread.

        Returns:
            The cycle report, or None if the cycle was skipped because
            another one was running.
        """
        ran, report = self._run_guarded(self._cycle_lock, "Price update cycle", self._runner.run_once)
        with self._stats_lock:
            if not ran:
                self._cycles_skipped += 1
            elif report is not None:
                self._cycles_completed += 1
                self._last_report = report
        return report

    def _reset_daily(self) -> None:
        logger.info("Resetting daily statistics...")
        self._source.reset_daily_stats()
        logger.info("Daily stats reset complete")
        with self._stats_lock:
            self._resets_completed += 1

    def reset_daily_now(self) -> bool:
        """Run the daily reset on the calling thread.

        Returns:
            True if the reset ran (even if it failed), False if skipped.
        """
        ran, _ = self._run_guarded(self._reset_lock, "Daily stats reset", self._reset_daily)
        return ran

    # ==================== Cadences ====================

    def _fire_cycle(self) -> None:
        if self._stop_event.is_set():
            return
        if self._single_flight:
            self.run_cycle_now()
            return

        worker = threading.Thread(target=self.run_cycle_now, name="pricewatch-cycle-worker", daemon=True)
        self._workers = [w for w in self._workers if w.is_alive()]
        self._workers.append(worker)
        worker.start()

    def _primary_loop(self) -> None:
        next_fire = _time.monotonic() + self._interval
        while not self._stop_event.wait(max(0.0, next_fire - _time.monotonic())):
            self._fire_cycle()

            next_fire += self._interval
            now = _time.monotonic()
            if next_fire <= now:
                missed = int((now - next_fire) // self._interval) + 1
                next_fire += missed * self._interval
                logger.warning("Cycle overran its interval, skipping %d tick(s)", missed)

    def _daily_loop(self) -> None:
        while not self._stop_event.is_set():
            next_run = next_daily_run(self._clock(), self._daily_time, self._zone)
            with self._stats_lock:
                self._next_daily = next_run

            while True:
                remaining = (next_run - self._clock()).total_seconds()
                if remaining <= 0:
                    break
                if self._stop_event.wait(min(remaining, self.MAX_DAILY_SLEEP)):
                    return

            if self._stop_event.is_set():
                return
            self.reset_daily_now()

    def status(self) -> dict:
        """Get scheduler status.

        Returns:
            Dictionary with running state, counters, the last cycle
            report and the next daily reset time.
        """
        with self._stats_lock:
            return {
                "running": self.is_running,
                "interval_seconds": self._interval,
                "single_flight": self._single_flight,
                "cycles_completed": self._cycles_completed,
                "cycles_skipped": self._cycles_skipped,
                "resets_completed": self._resets_completed,
                "last_report": self._last_report,
                "next_daily_reset": self._next_daily,
            }
