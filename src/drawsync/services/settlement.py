"""Settlement poller: wait for the backend to index a settled ticket."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from drawsync.api.client import BackendClient, BackendError
from drawsync.api.schemas.plays import BackendPlay
from drawsync.core.constants import (
    SETTLE_BACKOFF_CEILING_MS,
    SETTLE_BACKOFF_FLOOR_MS,
    SETTLE_BACKOFF_STEP_MS,
    SETTLE_MAX_ATTEMPTS,
)
from drawsync.core.context import ticket_context
from drawsync.services.tracking import TrackingState

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]
SettledCallback = Callable[[BackendPlay], None]
SnapshotCallback = Callable[[list[BackendPlay]], None]


@dataclass
class SettlementResult:
    """Outcome of one settlement poll."""

    request_id: str
    attempts: int = 0
    play: BackendPlay | None = None
    skipped: bool = False
    final_merge: bool = False

    @property
    def settled(self) -> bool:
        return self.play is not None and not self.play.is_pending

    @property
    def still_pending(self) -> bool:
        return not self.skipped and not self.settled

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "attempts": self.attempts,
            "settled": self.settled,
            "skipped": self.skipped,
            "final_merge": self.final_merge,
            "status": self.play.status if self.play else None,
        }


def backoff_ms(
    attempt: int,
    floor_ms: int = SETTLE_BACKOFF_FLOOR_MS,
    ceiling_ms: int = SETTLE_BACKOFF_CEILING_MS,
    step_ms: int = SETTLE_BACKOFF_STEP_MS,
) -> int:
    """Delay before *attempt* (1-based): linear from floor, capped at ceiling."""
    return min(ceiling_ms, floor_ms + max(0, attempt - 1) * step_ms)


class SettlementPoller:
    """Polls the account's play list until a ticket leaves ``pending``.

    At most one poll runs per request id (``TrackingState.polling``). After
    ``max_attempts`` misses it does one last fetch, hands the list to
    *on_snapshot* and stops; the ticket simply stays pending.
    """

    def __init__(
        self,
        client: BackendClient,
        account_hash: str,
        tracking: TrackingState,
        on_settled: SettledCallback,
        on_snapshot: SnapshotCallback,
        max_attempts: int = SETTLE_MAX_ATTEMPTS,
        floor_ms: int = SETTLE_BACKOFF_FLOOR_MS,
        ceiling_ms: int = SETTLE_BACKOFF_CEILING_MS,
        step_ms: int = SETTLE_BACKOFF_STEP_MS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.account_hash = account_hash
        self.tracking = tracking
        self.on_settled = on_settled
        self.on_snapshot = on_snapshot
        self.max_attempts = max_attempts
        self.floor_ms = floor_ms
        self.ceiling_ms = ceiling_ms
        self.step_ms = step_ms
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before *attempt*."""
        return backoff_ms(attempt, self.floor_ms, self.ceiling_ms, self.step_ms) / 1000

    async def _fetch(self) -> list[BackendPlay] | None:
        try:
            return await self.client.fetch_player_plays(self.account_hash)
        except BackendError as exc:
            logger.warning("Settlement poll fetch failed: %s", exc.detail)
            return None

    async def poll(self, request_id: str) -> SettlementResult:
        """Poll until *request_id* is settled or attempts run out."""
        result = SettlementResult(request_id=request_id)
        if request_id in self.tracking.polling:
            logger.debug("Settlement poll for %s already in flight", request_id)
            result.skipped = True
            return result

        self.tracking.polling.add(request_id)
        try:
            with ticket_context(request_id):
                return await self._poll(request_id, result)
        finally:
            self.tracking.polling.discard(request_id)

    async def _poll(self, request_id: str, result: SettlementResult) -> SettlementResult:
        for attempt in range(1, self.max_attempts + 1):
            await self._sleep(self.delay_for(attempt))
            if self.tracking.closed:
                return result

            result.attempts = attempt
            plays = await self._fetch()
            if self.tracking.closed:
                return result
            if plays is None:
                continue

            match = next((p for p in plays if p.request_id == request_id), None)
            if match is not None and not match.is_pending:
                logger.info(
                    "Ticket %s settled on attempt %d/%d", request_id, attempt, self.max_attempts
                )
                result.play = match
                self.on_settled(match)
                self.on_snapshot(plays)
                return result
            logger.debug("Ticket %s still pending (attempt %d)", request_id, attempt)

        logger.info(
            "Ticket %s still pending after %d attempts; final refresh", request_id, self.max_attempts
        )
        plays = await self._fetch()
        if plays is not None and not self.tracking.closed:
            result.final_merge = True
            result.play = next((p for p in plays if p.request_id == request_id), None)
            self.on_snapshot(plays)
        return result
