"""Refund eligibility: when may a stuck ticket's stake be reclaimed.

Tickets bought this session wait out a 60 s window from ``entry_date``.
Tickets known only from a backend snapshot have no trustworthy local
creation time, so they are eligible as soon as no fulfillment is recorded.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from drawsync.core.constants import REFUND_TICK_SECONDS, REFUND_WINDOW_MS, STATUS_PENDING
from drawsync.services.entries import TicketEntry

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RefundStatus:
    """Refund view of one ticket at one instant."""

    request_id: str
    eligible: bool
    remaining_seconds: int
    show_countdown: bool
    elapsed_ms: int


def elapsed_ms(entry: TicketEntry, now: datetime) -> int:
    entry_date = entry.entry_date
    if entry_date.tzinfo is None:
        entry_date = entry_date.replace(tzinfo=UTC)
    return int((now - entry_date).total_seconds() * 1000)


def refund_status(
    entry: TicketEntry,
    now: datetime | None = None,
    window_ms: int = REFUND_WINDOW_MS,
    known_fulfilled: bool = False,
) -> RefundStatus:
    """Derive refund eligibility and countdown for *entry* at *now*."""
    if now is None:
        now = datetime.now(tz=UTC)

    elapsed = elapsed_ms(entry, now)
    fulfilled = known_fulfilled or entry.is_fulfilled
    session_created = entry.awaiting_fulfillment is True

    if fulfilled or entry.status != STATUS_PENDING:
        eligible = False
    elif session_created:
        eligible = elapsed >= window_ms
    else:
        eligible = True

    remaining = max(0, math.ceil((window_ms - elapsed) / 1000))
    show_countdown = (
        session_created and not fulfilled and entry.status == STATUS_PENDING and elapsed < window_ms
    )
    return RefundStatus(
        request_id=entry.request_id,
        eligible=eligible,
        remaining_seconds=remaining,
        show_countdown=show_countdown,
        elapsed_ms=elapsed,
    )


class RefundCountdown:
    """Per-second ticker re-evaluating one ticket's refund status.

    Runs only while the countdown is pending and stops once the window has
    elapsed, a fulfillment hash shows up, or the ticket leaves ``pending``.
    *lookup* returns the ticket's current entry (``None`` once it is gone).
    """

    def __init__(
        self,
        lookup: Callable[[], TicketEntry | None],
        on_tick: Callable[[RefundStatus], None],
        known_fulfilled: Callable[[str], bool] | None = None,
        window_ms: int = REFUND_WINDOW_MS,
        tick_seconds: float = REFUND_TICK_SECONDS,
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.lookup = lookup
        self.on_tick = on_tick
        self.known_fulfilled = known_fulfilled or (lambda _request_id: False)
        self.window_ms = window_ms
        self.tick_seconds = tick_seconds
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._sleep = sleep
        self.ticks = 0

    async def run(self) -> RefundStatus | None:
        """Tick until the status stops changing; return the final status."""
        status: RefundStatus | None = None
        while True:
            entry = self.lookup()
            if entry is None:
                return status
            status = refund_status(
                entry,
                self._clock(),
                self.window_ms,
                known_fulfilled=self.known_fulfilled(entry.request_id),
            )
            self.ticks += 1
            self.on_tick(status)
            if not status.show_countdown:
                logger.debug(
                    "Refund countdown for %s finished (eligible=%s)", entry.request_id, status.eligible
                )
                return status
            await self._sleep(self.tick_seconds)
