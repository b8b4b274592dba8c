"""Tests for the refresh worker."""

from __future__ import annotations

import asyncio

from drawsync.workers.refresh_worker import RefreshCycleResult, RefreshWorker
from tests.factories.data_factories import build_play, build_settled_play


class TestRefreshCycleResult:
    def test_to_dict(self):
        result = RefreshCycleResult(3)
        result.plays_refreshed = True
        data = result.to_dict()
        assert data["cycle"] == 3
        assert data["success"] is True
        assert data["errors"] == []

    def test_failed_fetch_is_not_success(self):
        assert not RefreshCycleResult(1).success


class TestRefreshWorker:
    def test_runs_requested_cycles(self, engine, backend, sleep):
        backend.plays = [build_play(request_id="0x1"), build_settled_play(5, request_id="0x2")]
        worker = RefreshWorker(engine, sleep=sleep)

        results = asyncio.run(worker.run(max_cycles=2))

        assert [r.cycle for r in results] == [1, 2]
        assert all(r.success for r in results)
        assert results[0].round_id == 7
        assert results[0].tickets == 2
        assert results[0].pending == 1
        # no sleep after the final cycle
        assert sleep.delays == [15]

    def test_backend_failure_recorded(self, engine, backend, sleep):
        backend.plays_errors = [500]
        backend.lottery = None
        result = asyncio.run(RefreshWorker(engine, sleep=sleep).run_once())
        assert not result.plays_refreshed
        assert result.round_id is None
        assert not result.success

    def test_unexpected_error_does_not_stop_worker(self, engine, sleep, monkeypatch):
        async def broken():
            raise RuntimeError("boom")

        monkeypatch.setattr(engine, "refresh", broken)
        results = asyncio.run(RefreshWorker(engine, interval_seconds=1, sleep=sleep).run(max_cycles=2))
        assert [r.errors for r in results] == [["boom"], ["boom"]]
        assert sleep.delays == [1]

    def test_stop_before_run(self, engine, sleep):
        worker = RefreshWorker(engine, sleep=sleep)
        worker.stop()
        assert asyncio.run(worker.run()) == []

    def test_stop_from_callback(self, engine, backend):
        async def stop_after_sleep(seconds):
            worker.stop()
            await asyncio.sleep(0)

        worker = RefreshWorker(engine, interval_seconds=0, sleep=stop_after_sleep)
        results = asyncio.run(worker.run())
        assert len(results) == 1
