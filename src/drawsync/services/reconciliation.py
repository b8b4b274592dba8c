"""Reconciliation merger: fold a backend snapshot into the local ticket list.

The backend is authoritative for every ticket it reports. Locally we only
know two extra things: which tickets were bought this session and are still
waiting on the oracle, and the transaction hashes we saw go by. The merge
keeps both without ever duplicating a ticket.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from drawsync.api.schemas.plays import BackendPlay
from drawsync.core.constants import DEFAULT_TICKET_PRICE_CSPR
from drawsync.services.entries import TRANSACTION_FIELDS, TicketEntry, entry_from_play
from drawsync.services.store import dedupe

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Merged entries plus placeholders that the snapshot upgraded."""

    entries: list[TicketEntry] = field(default_factory=list)
    upgraded: dict[str, str] = field(default_factory=dict)  # deploy hash → request id


def _carry_local_metadata(entry: TicketEntry, previous: TicketEntry | None) -> TicketEntry:
    if previous is None:
        return entry
    updates = {
        name: getattr(previous, name)
        for name in TRANSACTION_FIELDS
        if getattr(entry, name) is None and getattr(previous, name) is not None
    }
    return entry.evolve(**updates) if updates else entry


def merge_snapshot(
    snapshot: Sequence[BackendPlay],
    current: Iterable[TicketEntry],
    live_ids: Collection[str] = frozenset(),
    ticket_cost: Decimal = DEFAULT_TICKET_PRICE_CSPR,
) -> MergeResult:
    """Combine *snapshot* with the *current* entries.

    1. Remember each current entry's ``awaiting_fulfillment``.
    2. Convert every backend play. Settled → not awaiting. Pending → the
       remembered value, else membership in *live_ids*, else ``False``.
    3. Current entries missing from the snapshot and still awaiting are
       kept, ahead of the backend list.
    4. Deduplicate by id; backend entries beat same-keyed local ones.

    A local placeholder whose deploy hash the snapshot now reports under a
    canonical id is dropped in favour of that play (see ``upgraded``).
    """
    current = list(current)
    by_id: dict[str, TicketEntry] = {e.request_id: e for e in current}
    previous_awaiting: dict[str, bool] = {
        e.request_id: e.awaiting_fulfillment
        for e in current
        if e.awaiting_fulfillment is not None
    }

    result = MergeResult()
    backend_entries: list[TicketEntry] = []
    for play in snapshot:
        previous = by_id.get(play.request_id)

        # A placeholder still keyed by this play's deploy hash
        placeholder = by_id.get(play.entry_deploy_hash) if play.entry_deploy_hash else None
        if placeholder is not None and placeholder.request_id != play.request_id:
            result.upgraded[placeholder.request_id] = play.request_id
            if previous is None:
                previous = placeholder

        entry = entry_from_play(play, ticket_cost=previous.cost if previous else ticket_cost)
        if not entry.is_terminal:
            if previous is not None and previous.request_id in previous_awaiting:
                awaiting = previous_awaiting[previous.request_id]
            else:
                awaiting = play.request_id in live_ids
            entry = entry.evolve(awaiting_fulfillment=awaiting)
        backend_entries.append(_carry_local_metadata(entry, previous))

    reported = {e.request_id for e in backend_entries} | set(result.upgraded)
    local_only = [
        e for e in current if e.request_id not in reported and e.awaiting_fulfillment is True
    ]
    if local_only:
        logger.debug("Keeping %d local-only tickets not yet indexed", len(local_only))

    # dedupe keeps the first occurrence, so backend entries go in first and
    # the final order puts local-only tickets ahead of them
    kept = dedupe([*backend_entries, *local_only])
    backend_ids = {e.request_id for e in backend_entries}
    result.entries = [e for e in kept if e.request_id not in backend_ids] + [
        e for e in kept if e.request_id in backend_ids
    ]
    return result
