"""Refresh worker: periodically fold backend snapshots into the engine.

Each cycle refreshes the round snapshot and the account's plays. A failed
cycle is recorded and the next one runs on schedule.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from drawsync.services.engine import LotteryEngine

logger = logging.getLogger(__name__)


class RefreshCycleResult:
    """Result of one refresh cycle."""

    def __init__(self, cycle: int) -> None:
        self.cycle = cycle
        self.plays_refreshed: bool = False
        self.round_id: int | None = None
        self.tickets: int = 0
        self.pending: int = 0
        self.errors: list[str] = []

    @property
    def success(self) -> bool:
        return self.plays_refreshed and not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle": self.cycle,
            "plays_refreshed": self.plays_refreshed,
            "round_id": self.round_id,
            "tickets": self.tickets,
            "pending": self.pending,
            "errors": self.errors,
            "success": self.success,
        }


class RefreshWorker:
    """Runs ``engine.refresh`` every *interval_seconds* until stopped."""

    def __init__(
        self,
        engine: LotteryEngine,
        interval_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.engine = engine
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else engine.settings.refresh_interval_seconds
        )
        self._sleep = sleep
        self._stopped = asyncio.Event()
        self.cycles = 0

    def stop(self) -> None:
        self._stopped.set()

    async def run_once(self) -> RefreshCycleResult:
        """Execute one refresh cycle."""
        self.cycles += 1
        result = RefreshCycleResult(self.cycles)
        try:
            snapshot = await self.engine.refresh_round()
            result.round_id = snapshot.round_id if snapshot else None
            result.plays_refreshed = await self.engine.refresh()
        except Exception as e:
            logger.error("Refresh cycle %d failed: %s", self.cycles, e, exc_info=True)
            result.errors.append(str(e))

        summary = self.engine.summary()
        result.tickets = summary.total_tickets
        result.pending = len(summary.pending)
        logger.info(
            "Refresh cycle %d: %d tickets, %d pending",
            result.cycle,
            result.tickets,
            result.pending,
        )
        return result

    async def run(self, max_cycles: int | None = None) -> list[RefreshCycleResult]:
        """Loop until ``stop()`` or *max_cycles* cycles have run."""
        results: list[RefreshCycleResult] = []
        while not self._stopped.is_set():
            results.append(await self.run_once())
            if max_cycles is not None and len(results) >= max_cycles:
                break
            await self._sleep(self.interval_seconds)
        return results
