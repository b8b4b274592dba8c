"""CLI runner for DrawSync.

Usage:
    python -m drawsync.workers.run health
    python -m drawsync.workers.run round
    python -m drawsync.workers.run plays --account <account-hash> [--status pending]
    python -m drawsync.workers.run watch --account <account-hash> [--cycles N]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from drawsync.core.config import Settings
from drawsync.core.constants import BACKEND_PLAY_STATUSES
from drawsync.core.logging import setup_logging
from drawsync.core.money import format_decimal

logger = logging.getLogger(__name__)


async def run_health(settings: Settings) -> int:
    """Check backend liveness."""
    from drawsync.api.client import BackendClient

    async with BackendClient(settings) as client:
        healthy = await client.check_health()
    print(json.dumps({"healthy": healthy}))
    return 0 if healthy else 1


async def run_round(settings: Settings) -> int:
    """Print the current round snapshot."""
    from drawsync.api.client import BackendClient, BackendError

    async with BackendClient(settings) as client:
        try:
            state = await client.fetch_current_lottery()
        except BackendError as exc:
            logger.error("Cannot fetch round: %s", exc.detail)
            return 1

    from drawsync.core.money import format_motes

    print(
        json.dumps(
            {
                "round_id": state.round.round_id if state.round else None,
                "jackpot_cspr": format_motes(state.raw_jackpot, settings.display_decimal_places),
            }
        )
    )
    return 0


async def run_plays(settings: Settings, account: str, status: str | None) -> int:
    """Print the account's plays as ticket entries."""
    from drawsync.api.client import BackendClient, BackendError
    from drawsync.services.entries import entry_from_play
    from drawsync.services.wallet import explorer_url

    async with BackendClient(settings) as client:
        try:
            plays = await client.fetch_player_plays(account, status=status)
        except BackendError as exc:
            logger.error("Cannot fetch plays: %s", exc.detail)
            return 1

    for play in plays:
        entry = entry_from_play(play, ticket_cost=settings.ticket_price_cspr)
        prize = (
            format_decimal(entry.prize_amount, settings.display_decimal_places)
            if entry.prize_amount is not None
            else "-"
        )
        link = explorer_url(settings.explorer_url, entry.entry_deploy_hash) if entry.entry_deploy_hash else ""
        print(f"{entry.request_id:>10}  round={entry.round_id}  {entry.status:<16} prize={prize}  {link}")
    return 0


async def run_watch(settings: Settings, account: str, cycles: int | None) -> int:
    """Run the refresh worker, logging outcomes as they arrive."""
    from drawsync.api.client import BackendClient
    from drawsync.api.push import SocketIOPushChannel
    from drawsync.services.engine import LotteryEngine
    from drawsync.services.entries import TicketEntry
    from drawsync.workers.refresh_worker import RefreshWorker

    def _announce(entry: TicketEntry) -> None:
        prize = format_decimal(entry.prize_amount or 0, settings.display_decimal_places)
        logger.info("Outcome for %s: %s (prize %s CSPR)", entry.request_id, entry.status, prize)

    async with BackendClient(settings) as client:
        engine = LotteryEngine(
            client,
            SocketIOPushChannel(settings.push_url),
            account,
            settings,
            on_outcome=_announce,
        )
        worker = RefreshWorker(engine)
        try:
            results = await worker.run(max_cycles=cycles)
        finally:
            await engine.close()

    failed = sum(1 for r in results if not r.success)
    logger.info("Watch finished: %d cycles, %d failed", len(results), failed)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="DrawSync ticket reconciliation")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Check backend liveness")
    sub.add_parser("round", help="Show the current round and jackpot")

    plays = sub.add_parser("plays", help="List an account's tickets")
    plays.add_argument("--account", required=True)
    plays.add_argument("--status", choices=BACKEND_PLAY_STATUSES, default=None)

    watch = sub.add_parser("watch", help="Keep an account's tickets reconciled")
    watch.add_argument("--account", required=True)
    watch.add_argument("--cycles", type=int, default=None)

    args = parser.parse_args()

    settings = Settings()
    setup_logging(level=settings.log_level, log_format=settings.log_format)

    if args.command == "health":
        return asyncio.run(run_health(settings))
    if args.command == "round":
        return asyncio.run(run_round(settings))
    if args.command == "plays":
        return asyncio.run(run_plays(settings, args.account, args.status))
    if args.command == "watch":
        try:
            return asyncio.run(run_watch(settings, args.account, args.cycles))
        except KeyboardInterrupt:
            logger.info("Interrupted")
            return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
