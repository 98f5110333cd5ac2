"""Tests for drop_tracker.scheduler — UTC boundary math and the daemon loop."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from drop_tracker.scheduler import SchedulerDaemon, next_run_after


def _utc(hour, minute=0, day=1) -> datetime:
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


class _StepClock:
    """Advances by ``step`` on every call."""

    def __init__(self, start: datetime, step: timedelta) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now += self.step
        return current


class TestNextRunAfter:
    @pytest.mark.parametrize(
        "now, expected",
        [
            (_utc(0, 0), _utc(3)),
            (_utc(4, 30), _utc(6)),
            (_utc(5, 59), _utc(6)),
            (_utc(6, 0), _utc(9)),
            (_utc(22, 15), _utc(0, day=2)),
        ],
    )
    def test_three_hourly(self, now, expected):
        assert next_run_after(now, 3) == expected

    def test_hourly(self):
        assert next_run_after(_utc(7, 1), 1) == _utc(8)

    def test_daily(self):
        assert next_run_after(_utc(7), 24) == _utc(0, day=2)

    def test_non_utc_input(self):
        tz = timezone(timedelta(hours=2))
        now = datetime(2024, 1, 1, 6, 30, tzinfo=tz)  # 04:30 UTC
        assert next_run_after(now, 3) == _utc(6)


class TestRunOnce:
    def test_success(self):
        calls = []
        daemon = SchedulerDaemon(job=lambda: calls.append(1))
        assert daemon.run_once() is True
        assert calls == [1]

    def test_failure_is_logged_not_raised(self):
        def job():
            raise RuntimeError("store unavailable")

        assert SchedulerDaemon(job=job).run_once() is False


class TestStart:
    def test_runs_at_boundary_then_stops(self):
        runs: list[datetime] = []
        clock = _StepClock(_utc(4, 30), timedelta(hours=1))
        daemon = SchedulerDaemon(job=None, interval_hours=3, clock=clock, tick_seconds=0)

        def job():
            runs.append(clock.now)
            daemon.stop()

        daemon.job = job
        daemon.start()
        assert len(runs) == 1

    def test_run_on_start(self):
        runs = []
        clock = _StepClock(_utc(4, 30), timedelta(minutes=1))
        daemon = SchedulerDaemon(job=None, run_on_start=True, clock=clock, tick_seconds=0)

        def stop_after_start():
            runs.append(1)
            daemon.stop()

        daemon.job = stop_after_start
        daemon.start()
        assert runs == [1]

    def test_failing_job_does_not_stop_loop(self):
        attempts = []
        clock = _StepClock(_utc(2, 30), timedelta(hours=1))
        daemon = SchedulerDaemon(job=None, interval_hours=1, clock=clock, tick_seconds=0)

        def job():
            attempts.append(1)
            if len(attempts) == 2:
                daemon.stop()
            raise RuntimeError("batch failed")

        daemon.job = job
        daemon.start()
        assert len(attempts) == 2
