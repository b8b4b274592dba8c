"""Engine-owned tracking state.

Every per-ticket set the components consult lives here and is passed into
them explicitly. Execution is single-threaded, so membership sets are the
only guard against duplicate polls and subscriptions.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class TrackingState:
    """Mutable bookkeeping shared by the engine's components."""

    live_ids: set[str] = field(default_factory=set)  # created this session, oracle pending
    ready_notified: set[str] = field(default_factory=set)  # fulfillment watcher guard
    fulfilled_ids: set[str] = field(default_factory=set)  # oracle answered, per push channel
    outcome_notified: set[str] = field(default_factory=set)  # outcome notifier guard
    previous_statuses: dict[str, str] = field(default_factory=dict)
    polling: set[str] = field(default_factory=set)  # settlement polls in flight
    subscriptions: set[str] = field(default_factory=set)  # active push subscriptions
    resolving: set[str] = field(default_factory=set)  # deploy hashes being resolved
    tasks: dict[tuple[str, str], asyncio.Task[object]] = field(default_factory=dict)
    closed: bool = False

    def rekey(self, old_id: str, new_id: str) -> None:
        """Carry per-ticket membership across a canonical id change."""
        for members in (
            self.live_ids,
            self.ready_notified,
            self.fulfilled_ids,
            self.outcome_notified,
        ):
            if old_id in members:
                members.discard(old_id)
                members.add(new_id)
        if old_id in self.previous_statuses:
            self.previous_statuses.setdefault(new_id, self.previous_statuses.pop(old_id))

    # ── Background tasks ────────────────────────────────────────────

    def track(self, kind: str, request_id: str, task: asyncio.Task[object]) -> None:
        key = (kind, request_id)
        self.tasks[key] = task

        def _done(finished: asyncio.Task[object]) -> None:
            if self.tasks.get(key) is finished:
                del self.tasks[key]

        task.add_done_callback(_done)

    def has_task(self, kind: str, request_id: str) -> bool:
        task = self.tasks.get((kind, request_id))
        return task is not None and not task.done()

    def cancel(self, kind: str, request_id: str) -> bool:
        task = self.tasks.get((kind, request_id))
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> list[asyncio.Task[object]]:
        pending = [t for t in self.tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        logger.debug("Cancelled %d background tasks", len(pending))
        return pending
