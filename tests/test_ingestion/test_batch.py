"""
Tests for drop_tracker.ingestion.batch — sequential throttled batch runs.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import make_profile
from drop_tracker.config import DatabaseConfig
from drop_tracker.exceptions import PersistenceError, ProfileNotFound
from drop_tracker.ingestion.batch import BatchReport, BatchRunner


def _runner(ingestor, throttle_ms=500, database=None):
    sleeps: list[float] = []
    runner = BatchRunner(
        ingestor,
        database or DatabaseConfig(db_path=":memory:"),
        throttle_ms=throttle_ms,
        sleep=sleeps.append,
    )
    return runner, sleeps


class TestBatchReport:
    def test_status(self):
        assert BatchReport(succeeded=2).status == "success"
        assert BatchReport(succeeded=1, failed=[("a", "x")]).status == "partial"
        assert BatchReport(failed=[("a", "x")]).status == "failed"
        assert BatchReport().status == "success"

    def test_total(self):
        assert BatchReport(succeeded=2, failed=[("a", "x")]).total == 3


class TestRunBatch:
    def test_processes_in_order(self):
        ingestor = MagicMock()
        runner, _ = _runner(ingestor)
        report = runner.run_batch(["a", "b", "c"])
        assert [c.args[0] for c in ingestor.ingest.call_args_list] == ["a", "b", "c"]
        assert report.succeeded == 3
        assert report.status == "success"
        assert report.started_at <= report.finished_at

    def test_throttles_between_players_only(self):
        runner, sleeps = _runner(MagicMock(), throttle_ms=1000)
        runner.run_batch(["a", "b", "c"])
        assert sleeps == [1.0, 1.0]

    def test_single_player_never_sleeps(self):
        runner, sleeps = _runner(MagicMock())
        runner.run_batch(["a"])
        assert sleeps == []

    def test_zero_throttle_never_sleeps(self):
        runner, sleeps = _runner(MagicMock(), throttle_ms=0)
        runner.run_batch(["a", "b"])
        assert sleeps == []

    def test_failure_is_isolated(self):
        ingestor = MagicMock()
        ingestor.ingest.side_effect = [None, ProfileNotFound("b"), None]
        runner, sleeps = _runner(ingestor)

        report = runner.run_batch(["a", "b", "c"])
        assert ingestor.ingest.call_count == 3
        assert report.succeeded == 2
        assert report.failed == [("b", "Profile not found for 'b': NO_PROFILE")]
        assert report.status == "partial"
        # Throttle applies after a failure too.
        assert len(sleeps) == 2

    def test_unexpected_exception_is_isolated(self):
        ingestor = MagicMock()
        ingestor.ingest.side_effect = [RuntimeError("boom"), None]
        runner, _ = _runner(ingestor)
        report = runner.run_batch(["a", "b"])
        assert report.failed == [("a", "boom")]
        assert report.succeeded == 1

    def test_empty(self):
        runner, _ = _runner(MagicMock())
        report = runner.run_batch([])
        assert report.total == 0
        assert report.status == "success"


class TestRunActive:
    def test_runs_every_active_player(self, tracker, upstream):
        for name in ("alpha", "bravo", "charlie"):
            upstream.profiles[name] = make_profile(name.title())
            tracker.ingestor.ingest(name)
        with tracker.players(immediate=True) as repo:
            repo.mark_inactive("bravo")
        upstream.requests.clear()

        report = tracker.batch.run_active()
        assert report.succeeded == 2
        fetched = [
            r.url.params["user"]
            for r in upstream.requests
            if r.url.path.endswith("/profile")
        ]
        assert fetched == ["alpha", "charlie"]

    def test_partial_failure(self, tracker, upstream):
        for name in ("alpha", "bravo"):
            upstream.profiles[name] = make_profile(name.title())
            tracker.ingestor.ingest(name)
        upstream.profiles["alpha"] = (503, "down")

        report = tracker.batch.run_active()
        assert report.succeeded == 1
        assert report.failed[0][0] == "alpha"
        assert "503" in report.failed[0][1]

        with tracker.players() as repo:
            assert len(repo.find_by_username("bravo").snapshots) == 2
            assert len(repo.find_by_username("alpha").snapshots) == 1

    def test_listing_failure_fails_batch(self, tmp_path):
        ingestor = MagicMock()
        runner, _ = _runner(ingestor, database=DatabaseConfig(db_path=str(tmp_path)))
        with pytest.raises(PersistenceError):
            runner.run_active()
        ingestor.ingest.assert_not_called()
