"""Outcome notifier: announce each ticket's result exactly once."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from drawsync.services.entries import TicketEntry
from drawsync.services.tracking import TrackingState

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[TicketEntry], None]


class OutcomeNotifier:
    """Emits an outcome signal the first time a ticket turns terminal.

    ``TrackingState.previous_statuses`` holds the last status seen per id and
    ``TrackingState.outcome_notified`` the ids already announced.
    """

    def __init__(self, tracking: TrackingState, on_outcome: OutcomeCallback | None = None) -> None:
        self.tracking = tracking
        self.on_outcome = on_outcome
        self.primed = False

    def prime(self, entries: Iterable[TicketEntry]) -> None:
        """Record the statuses of tickets known at startup without emitting.

        History loaded on first refresh must not celebrate again. Tickets the
        engine already tracks have a baseline and go through ``observe``.
        """
        for entry in entries:
            if entry.request_id in self.tracking.previous_statuses:
                self.observe(entry)
                continue
            self.tracking.previous_statuses[entry.request_id] = entry.status
            if entry.is_terminal:
                self.tracking.outcome_notified.add(entry.request_id)
        self.primed = True

    def observe(self, entry: TicketEntry) -> bool:
        """Feed the ticket's current state; True if a signal was emitted."""
        request_id = entry.request_id
        previous = self.tracking.previous_statuses.get(request_id)
        self.tracking.previous_statuses[request_id] = entry.status

        if request_id in self.tracking.outcome_notified:
            return False
        if previous == entry.status or not entry.is_terminal:
            return False
        if self.tracking.closed:
            return False

        self.tracking.outcome_notified.add(request_id)
        logger.info("Ticket %s outcome: %s", request_id, entry.status)
        if self.on_outcome is not None:
            self.on_outcome(entry)
        return True

    def observe_all(self, entries: Iterable[TicketEntry]) -> list[TicketEntry]:
        """Observe every entry; return the ones that produced a signal."""
        return [entry for entry in entries if self.observe(entry)]
