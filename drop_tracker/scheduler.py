"""Scheduler daemon for the recurring ingestion batch.

No external scheduler library is required — uses stdlib ``time`` and
``signal`` only.

Typical usage via the CLI::

    drop-tracker start-scheduler

Or import directly::

    from drop_tracker.scheduler import SchedulerDaemon
    daemon = SchedulerDaemon(job=ctx.batch.run_active, interval_hours=3)
    daemon.start()  # blocks until Ctrl-C

Ticks fire on UTC hour boundaries divisible by ``interval_hours``
(``interval_hours=3`` → 00:00, 03:00, 06:00 ... UTC). Missed ticks are not
caught up, and there is no jitter. The job runs inline in the loop, so a
new tick can never start while the previous batch is still running; a long
batch simply pushes the next run to the following boundary.
"""

from __future__ import annotations

import logging
import platform
import signal
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

log = logging.getLogger(__name__)


def next_run_after(now: datetime, interval_hours: int) -> datetime:
    """Return the first UTC boundary strictly after ``now``.

    >>> next_run_after(datetime(2024, 1, 1, 4, 30, tzinfo=timezone.utc), 3)
    datetime.datetime(2024, 1, 1, 6, 0, tzinfo=datetime.timezone.utc)
    """
    now = now.astimezone(timezone.utc)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    slot = now.hour // interval_hours + 1
    return day_start + timedelta(hours=slot * interval_hours)


class SchedulerDaemon:
    """Runs ``job`` at every ``interval_hours`` UTC boundary.

    Parameters
    ----------
    job:
        Zero-argument callable; normally ``BatchRunner.run_active``.
    interval_hours:
        Hours between runs; must divide 24.
    run_on_start:
        When *True*, run the job once immediately before waiting for the
        first boundary.
    clock:
        Returns the current aware datetime; injectable for tests.
    tick_seconds:
        How often the loop wakes to check the clock.
    """

    def __init__(
        self,
        job: Callable[[], Any],
        interval_hours: int = 3,
        run_on_start: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
        tick_seconds: float = 30.0,
    ) -> None:
        self.job = job
        self.interval_hours = interval_hours
        self.run_on_start = run_on_start
        self.clock = clock or (lambda: datetime.now(tz=timezone.utc))
        self.tick_seconds = tick_seconds
        self._running = False

    def run_once(self) -> bool:
        """Run the job, logging instead of raising. Returns ``True`` on success."""
        log.info("=== Batch starting at %s ===", self.clock().isoformat(timespec="seconds"))
        try:
            self.job()
        except Exception as exc:
            log.error("Batch failed: %s", exc, exc_info=True)
            return False
        return True

    def stop(self) -> None:
        self._running = False

    def start(self) -> None:
        """Start the daemon. Blocks until Ctrl-C (or SIGTERM on Linux/macOS)."""
        self._running = True

        def _shutdown(signum, frame):  # noqa: ANN001
            log.info("Signal %d received — stopping scheduler.", signum)
            self._running = False

        signums = [signal.SIGINT]
        if platform.system() != "Windows":
            signums.append(signal.SIGTERM)
        previous = {signum: signal.signal(signum, _shutdown) for signum in signums}

        try:
            if self.run_on_start:
                self.run_once()

            next_run = next_run_after(self.clock(), self.interval_hours)
            log.info(
                "Scheduler started | interval=%dh UTC | next run: %s",
                self.interval_hours, next_run.isoformat(timespec="seconds"),
            )

            while self._running:
                if self.clock() >= next_run:
                    self.run_once()
                    next_run = next_run_after(self.clock(), self.interval_hours)
                    log.info("Next run scheduled: %s", next_run.isoformat(timespec="seconds"))
                time.sleep(self.tick_seconds)
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)

        log.info("Scheduler stopped.")
