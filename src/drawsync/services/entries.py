"""Ticket entries: the engine's view of one purchased ticket.

Entries are frozen; every change goes through ``TicketEntry.evolve`` and
yields a new object, so the store can swap whole lists without aliasing.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, model_validator

from drawsync.api.schemas.plays import BackendPlay
from drawsync.core.constants import (
    CANONICAL_ID_MAX_LENGTH,
    CANONICAL_ID_PREFIX,
    DEFAULT_TICKET_PRICE_CSPR,
    STATUS_LOST,
    STATUS_PENDING,
    STATUS_WON_CONSOLATION,
    STATUS_WON_JACKPOT,
    TERMINAL_STATUSES,
    TICKET_STATUSES,
)
from drawsync.core.money import motes_to_cspr, parse_motes

logger = logging.getLogger(__name__)

# Local metadata the backend may not (yet) report; kept across merges.
TRANSACTION_FIELDS: tuple[str, ...] = (
    "entry_deploy_hash",
    "request_deploy_hash",
    "fulfill_deploy_hash",
    "settle_deploy_hash",
    "refund_deploy_hash",
    "randomness",
)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def is_canonical_id(request_id: str | None) -> bool:
    """Canonical request ids are short hex (``0x21``), unlike deploy hashes."""
    return bool(
        request_id
        and request_id.startswith(CANONICAL_ID_PREFIX)
        and len(request_id) < CANONICAL_ID_MAX_LENGTH
    )


class TicketEntry(BaseModel):
    """One purchased lottery ticket."""

    request_id: str
    play_id: str = ""
    round_id: int | None = None
    entry_date: datetime
    cost: Decimal = DEFAULT_TICKET_PRICE_CSPR
    status: str = STATUS_PENDING
    prize_amount: Decimal | None = None
    settled_date: datetime | None = None
    # True: created this session and the oracle has not answered.
    # None: only seen in a backend snapshot, no session-local signal.
    awaiting_fulfillment: bool | None = None
    is_placeholder: bool = False
    entry_deploy_hash: str | None = None
    request_deploy_hash: str | None = None
    fulfill_deploy_hash: str | None = None
    settle_deploy_hash: str | None = None
    refund_deploy_hash: str | None = None
    randomness: str | None = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_invariants(self) -> TicketEntry:
        if self.status not in TICKET_STATUSES:
            raise ValueError(f"Invalid status: {self.status}")
        if self.awaiting_fulfillment and is_terminal(self.status):
            raise ValueError("A settled ticket cannot be awaiting fulfillment")
        return self

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    @property
    def is_fulfilled(self) -> bool:
        return bool(self.fulfill_deploy_hash or self.randomness)

    def evolve(self, **changes: Any) -> TicketEntry:
        """Return a validated copy with *changes* applied."""
        data = self.model_dump()
        data.update(changes)
        if is_terminal(data.get("status", STATUS_PENDING)) and data.get("awaiting_fulfillment"):
            data["awaiting_fulfillment"] = False
        return TicketEntry.model_validate(data)


def status_from_play(play: BackendPlay) -> tuple[str, Decimal | None]:
    """Map a backend record to ``(status, prize in CSPR)``.

    The "won" test compares motes, never the converted display amount.
    """
    if play.is_pending:
        return STATUS_PENDING, None

    if play.is_jackpot:
        jackpot_motes = parse_motes(play.jackpot_amount) if play.jackpot_amount else None
        return STATUS_WON_JACKPOT, motes_to_cspr(jackpot_motes) if jackpot_motes is not None else None

    prize_motes = parse_motes(play.prize_amount) if play.prize_amount else None
    if prize_motes is not None and prize_motes > 0:
        return STATUS_WON_CONSOLATION, motes_to_cspr(prize_motes)
    return STATUS_LOST, None


def entry_from_play(
    play: BackendPlay,
    ticket_cost: Decimal = DEFAULT_TICKET_PRICE_CSPR,
    awaiting_fulfillment: bool | None = None,
    now: datetime | None = None,
) -> TicketEntry:
    """Convert a backend play record into a ticket entry."""
    status, prize = status_from_play(play)
    entry_date = play.timestamp or play.created_at or now or datetime.now(tz=UTC)
    if entry_date.tzinfo is None:
        entry_date = entry_date.replace(tzinfo=UTC)
    settled_date = play.settled_at
    if settled_date is not None and settled_date.tzinfo is None:
        settled_date = settled_date.replace(tzinfo=UTC)

    return TicketEntry(
        request_id=play.request_id,
        play_id=play.play_id,
        round_id=play.round_id,
        entry_date=entry_date,
        cost=ticket_cost,
        status=status,
        prize_amount=prize,
        settled_date=settled_date,
        awaiting_fulfillment=False if is_terminal(status) else awaiting_fulfillment,
        is_placeholder=False,
        entry_deploy_hash=play.entry_deploy_hash,
        request_deploy_hash=play.request_deploy_hash,
        fulfill_deploy_hash=play.fulfill_deploy_hash,
        settle_deploy_hash=play.settle_deploy_hash,
        refund_deploy_hash=play.refund_deploy_hash,
    )


def new_placeholder(
    deploy_hash: str,
    *,
    cost: Decimal,
    round_id: int | None = None,
    play_id_hint: str | None = None,
    now: datetime | None = None,
) -> TicketEntry:
    """Build the entry a purchase creates before the backend has indexed it."""
    return TicketEntry(
        request_id=deploy_hash,
        play_id=play_id_hint or "",
        round_id=round_id,
        entry_date=now or datetime.now(tz=UTC),
        cost=cost,
        status=STATUS_PENDING,
        awaiting_fulfillment=True,
        is_placeholder=True,
        entry_deploy_hash=deploy_hash,
    )
