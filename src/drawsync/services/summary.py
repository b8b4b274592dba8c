"""Account summary: dashboard totals derived from the store."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from drawsync.core.constants import STATUS_PENDING, WINNING_STATUSES
from drawsync.core.money import format_compact
from drawsync.services.entries import TicketEntry


@dataclass
class AccountSummary:
    pending: list[TicketEntry] = field(default_factory=list)
    settled: list[TicketEntry] = field(default_factory=list)
    winnings: list[TicketEntry] = field(default_factory=list)
    total_won: Decimal = Decimal(0)
    total_spent: Decimal = Decimal(0)

    @property
    def total_tickets(self) -> int:
        return len(self.pending) + len(self.settled)

    @property
    def net_profit(self) -> Decimal:
        return self.total_won - self.total_spent

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_tickets": self.total_tickets,
            "pending": len(self.pending),
            "settled": len(self.settled),
            "winning_tickets": len(self.winnings),
            "total_won": format_compact(self.total_won),
            "total_spent": format_compact(self.total_spent),
            "net_profit": format_compact(max(self.net_profit, Decimal(0))),
        }


def summarize(entries: Iterable[TicketEntry]) -> AccountSummary:
    summary = AccountSummary()
    for entry in entries:
        summary.total_spent += entry.cost
        if entry.status == STATUS_PENDING:
            summary.pending.append(entry)
            continue
        summary.settled.append(entry)
        if entry.status in WINNING_STATUSES:
            summary.winnings.append(entry)
            summary.total_won += entry.prize_amount or Decimal(0)
    return summary
