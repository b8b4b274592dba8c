"""Lottery engine: wires the store, resolver, watcher, poller and notifier.

Flow for one ticket::

    record_purchase → placeholder keyed by deploy hash
        → resolver re-keys it to the canonical request id
        → watcher clears awaiting_fulfillment when the oracle answers
        → record_settlement → settlement poller until terminal
        → every refresh folds a backend snapshot in through the merger

Background work runs as ``asyncio`` tasks registered in ``TrackingState``.
None of them may raise out of the engine: failures are logged and the cycle
is skipped. After ``close()`` no late completion touches the store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

from drawsync.api.client import BackendClient, BackendError
from drawsync.api.push import PushChannel
from drawsync.api.schemas.lottery import RoundSnapshot
from drawsync.api.schemas.plays import BackendPlay
from drawsync.core.config import Settings, get_settings
from drawsync.core.context import ticket_context
from drawsync.core.money import motes_to_cspr, parse_motes
from drawsync.services.entries import (
    TicketEntry,
    entry_from_play,
    is_canonical_id,
    new_placeholder,
)
from drawsync.services.fulfillment import FulfillmentWatcher, WatchState
from drawsync.services.outcomes import OutcomeCallback, OutcomeNotifier
from drawsync.services.reconciliation import merge_snapshot
from drawsync.services.refunds import RefundCountdown, RefundStatus, refund_status
from drawsync.services.resolver import DeployHashResolver, apply_resolution
from drawsync.services.settlement import SettlementPoller, SettlementResult
from drawsync.services.store import TicketStore
from drawsync.services.summary import AccountSummary, summarize
from drawsync.services.tracking import TrackingState
from drawsync.services.wallet import TransactionResult, handle_transaction_status

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[Any]]
ReadyCallback = Callable[[TicketEntry], None]


class EngineError(Exception):
    """Caller asked for something the ticket's state does not allow."""

    def __init__(self, detail: str, status_code: int = 400) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class LotteryEngine:
    """Keeps one consistent ticket list for *account_hash*."""

    def __init__(
        self,
        client: BackendClient,
        push: PushChannel,
        account_hash: str,
        settings: Settings | None = None,
        *,
        on_outcome: OutcomeCallback | None = None,
        on_ready: ReadyCallback | None = None,
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.account_hash = account_hash
        self.settings = settings or get_settings()
        self.on_ready = on_ready
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._sleep = sleep

        self.store = TicketStore()
        self.tracking = TrackingState()
        self.round: RoundSnapshot | None = None

        self.resolver = DeployHashResolver(
            client,
            max_attempts=self.settings.resolve_max_attempts,
            interval_ms=self.settings.resolve_interval_ms,
            sleep=sleep,
        )
        self.watcher = FulfillmentWatcher(push, self.tracking)
        self.notifier = OutcomeNotifier(self.tracking, on_outcome)
        self.poller = SettlementPoller(
            client,
            account_hash,
            self.tracking,
            on_settled=self._on_settled,
            on_snapshot=self.apply_snapshot,
            max_attempts=self.settings.settle_max_attempts,
            floor_ms=self.settings.settle_backoff_floor_ms,
            ceiling_ms=self.settings.settle_backoff_ceiling_ms,
            step_ms=self.settings.settle_backoff_step_ms,
            sleep=sleep,
        )

    # ── Task plumbing ───────────────────────────────────────────────

    def _spawn(
        self,
        kind: str,
        request_id: str,
        coro: Coroutine[Any, Any, Any],
    ) -> asyncio.Task[Any] | None:
        if self.tracking.closed:
            coro.close()
            return None
        task: asyncio.Task[Any] = asyncio.create_task(self._guarded(kind, request_id, coro))
        self.tracking.track(kind, request_id, task)
        return task

    async def _guarded(self, kind: str, request_id: str, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            with ticket_context(request_id):
                return await coro
        except asyncio.CancelledError:
            logger.debug("%s task for %s cancelled", kind, request_id)
            raise
        except Exception:
            logger.error("%s task for %s failed", kind, request_id, exc_info=True)
            return None

    async def close(self) -> None:
        """Stop every background task; later callbacks become no-ops."""
        self.tracking.closed = True
        pending = self.tracking.cancel_all()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Round ───────────────────────────────────────────────────────

    async def refresh_round(self) -> RoundSnapshot | None:
        """Refresh round id, play-id hint and jackpot; keep the old one on failure."""
        try:
            state = await self.client.fetch_current_lottery()
        except BackendError as exc:
            logger.warning("Failed to fetch current lottery state: %s", exc.detail)
            return self.round

        jackpot_motes = parse_motes(state.raw_jackpot)
        self.round = RoundSnapshot(
            round_id=state.round.round_id if state.round else None,
            next_play_id_hint=state.stats.next_play_id if state.stats else None,
            jackpot=motes_to_cspr(jackpot_motes) if jackpot_motes is not None else None,
        )
        return self.round

    # ── Purchase & resolution ───────────────────────────────────────

    def record_purchase(self, result: TransactionResult) -> TicketEntry:
        """Create the placeholder for a processed purchase and start resolving it."""
        result.raise_for_failure("purchase")

        snapshot = self.round or RoundSnapshot()
        entry = new_placeholder(
            result.deploy_hash,
            cost=self.settings.ticket_price_cspr,
            round_id=snapshot.round_id,
            play_id_hint=snapshot.next_play_id_hint,
            now=self._clock(),
        )
        entry = self.store.upsert(entry)
        self.tracking.live_ids.add(entry.request_id)
        self.notifier.observe(entry)
        logger.info("Ticket purchased, deploy %s", result.deploy_hash)
        self._spawn("resolve", result.deploy_hash, self.resolve_entry(result.deploy_hash))
        return entry

    async def resolve_entry(self, deploy_hash: str) -> TicketEntry | None:
        """Resolve a placeholder to its canonical id; ``None`` leaves it as is."""
        if deploy_hash in self.tracking.resolving:
            return None
        self.tracking.resolving.add(deploy_hash)
        try:
            play = await self.resolver.resolve(deploy_hash)
        finally:
            self.tracking.resolving.discard(deploy_hash)

        if play is None or self.tracking.closed:
            return None
        entry = apply_resolution(self.store, self.tracking, deploy_hash, play)
        if entry is not None:
            self.notifier.observe(entry)
            self._sync_watchers()
        return entry

    # ── Fulfillment ─────────────────────────────────────────────────

    def start_watching(self, request_id: str) -> bool:
        """Subscribe *request_id* to fulfillment events if it qualifies."""
        entry = self.store.get(request_id)
        if entry is None or entry.awaiting_fulfillment is not True:
            return False
        if entry.is_placeholder or not is_canonical_id(entry.request_id):
            return False
        if entry.request_id in self.tracking.subscriptions or self.tracking.has_task(
            "watch", entry.request_id
        ):
            return False
        if entry.request_id in self.tracking.ready_notified:
            return False
        task = self._spawn(
            "watch",
            entry.request_id,
            self.watcher.watch(
                entry.request_id,
                on_ready=self._on_ready,
                on_metadata=self._on_metadata,
                is_awaiting=self._is_awaiting,
            ),
        )
        return task is not None

    def stop_watching(self, request_id: str) -> bool:
        """Invalidate a subscription the caller no longer cares about."""
        return self.tracking.cancel("watch", self.store.canonical_key(request_id))

    def _sync_watchers(self) -> None:
        for entry in self.store.all():
            if entry.awaiting_fulfillment is True and not entry.is_placeholder:
                self.start_watching(entry.request_id)

    def _is_awaiting(self, request_id: str) -> bool:
        entry = self.store.get(request_id)
        return entry is not None and entry.awaiting_fulfillment is True

    def _on_metadata(self, request_id: str, metadata: dict[str, Any]) -> None:
        if self.tracking.closed:
            return
        self.store.update(request_id, **metadata)

    def _on_ready(self, request_id: str, reason: WatchState) -> None:
        if self.tracking.closed:
            return
        if reason == WatchState.FULFILLED:
            self.tracking.fulfilled_ids.add(request_id)
        self.tracking.live_ids.discard(request_id)
        entry = self.store.update(request_id, awaiting_fulfillment=False)
        logger.info("Ticket %s ready to settle (%s)", request_id, reason.value)
        if entry is not None and self.on_ready is not None:
            self.on_ready(entry)

    # ── Refresh / merge ─────────────────────────────────────────────

    async def refresh(self) -> bool:
        """Fetch the account's plays and merge them; False if the fetch failed."""
        try:
            plays = await self.client.fetch_player_plays(self.account_hash)
        except BackendError as exc:
            logger.warning("Failed to fetch player plays: %s", exc.detail)
            return False
        self.apply_snapshot(plays)
        return True

    def apply_snapshot(self, plays: list[BackendPlay]) -> tuple[TicketEntry, ...]:
        """Fold a backend snapshot into the store and derive signals from it."""
        if self.tracking.closed:
            return self.store.all()

        merged = merge_snapshot(
            plays,
            self.store.all(),
            live_ids=self.tracking.live_ids,
            ticket_cost=self.settings.ticket_price_cspr,
        )
        entries = self.store.replace_all(merged.entries, aliases=merged.upgraded)
        for old_id, new_id in merged.upgraded.items():
            logger.info("Snapshot upgraded placeholder %s → %s", old_id[:16], new_id)
            self.tracking.rekey(old_id, new_id)
            self.tracking.cancel("resolve", old_id)

        for entry in entries:
            if entry.awaiting_fulfillment is not True:
                self.tracking.live_ids.discard(entry.request_id)

        if self.notifier.primed:
            self.notifier.observe_all(entries)
        else:
            self.notifier.prime(entries)
        self._sync_watchers()
        return entries

    # ── Settlement ──────────────────────────────────────────────────

    def _require(self, request_id: str) -> TicketEntry:
        entry = self.store.get(request_id)
        if entry is None:
            raise EngineError(f"Unknown ticket {request_id}", status_code=404)
        return entry

    def ensure_settleable(self, request_id: str) -> TicketEntry:
        """Raise unless the ticket may be settled now."""
        entry = self._require(request_id)
        if entry.is_terminal:
            raise EngineError(f"Ticket {request_id} is already settled ({entry.status})")
        if entry.awaiting_fulfillment is True:
            raise EngineError("Still awaiting randomness for this ticket")
        if entry.is_placeholder or not is_canonical_id(entry.request_id):
            raise EngineError("Ticket has not been indexed yet")
        return entry

    def record_settlement(
        self, request_id: str, result: TransactionResult
    ) -> asyncio.Task[Any] | None:
        """Store the settle deploy and start polling for the outcome."""
        entry = self._require(request_id)
        result.raise_for_failure("settle")
        self.store.update(entry.request_id, settle_deploy_hash=result.deploy_hash)
        logger.info("Settlement sent for %s: %s", entry.request_id, result.deploy_hash)
        return self.await_settlement(entry.request_id)

    def await_settlement(self, request_id: str) -> asyncio.Task[Any] | None:
        """Start the settlement poller unless one already runs for the id."""
        if request_id in self.tracking.polling or self.tracking.has_task("settle", request_id):
            return None
        return self._spawn("settle", request_id, self.poll_settlement(request_id))

    async def poll_settlement(self, request_id: str) -> SettlementResult:
        return await self.poller.poll(request_id)

    def _on_settled(self, play: BackendPlay) -> None:
        if self.tracking.closed:
            return
        current = self.store.get(play.request_id)
        settled = entry_from_play(
            play,
            ticket_cost=current.cost if current else self.settings.ticket_price_cspr,
        )
        if current is None:
            entry = self.store.upsert(settled)
        else:
            entry = self.store.update(
                current.request_id,
                status=settled.status,
                prize_amount=settled.prize_amount,
                settled_date=settled.settled_date,
                settle_deploy_hash=settled.settle_deploy_hash or current.settle_deploy_hash,
                awaiting_fulfillment=False,
            )
        self.tracking.live_ids.discard(play.request_id)
        if entry is not None:
            self.notifier.observe(entry)

    # ── Refunds ─────────────────────────────────────────────────────

    def refund_status(self, request_id: str, now: datetime | None = None) -> RefundStatus | None:
        entry = self.store.get(request_id)
        if entry is None:
            return None
        return refund_status(
            entry,
            now or self._clock(),
            window_ms=self.settings.refund_window_ms,
            known_fulfilled=entry.request_id in self.tracking.fulfilled_ids,
        )

    def refund_statuses(self, now: datetime | None = None) -> list[RefundStatus]:
        """Refund view of every pending ticket."""
        now = now or self._clock()
        statuses = []
        for entry in self.store.all():
            if entry.is_terminal:
                continue
            status = self.refund_status(entry.request_id, now)
            if status is not None:
                statuses.append(status)
        return statuses

    def start_refund_countdown(
        self,
        request_id: str,
        on_tick: Callable[[RefundStatus], None],
    ) -> asyncio.Task[Any] | None:
        """Tick *on_tick* once a second while the refund countdown runs."""
        key = self.store.canonical_key(request_id)
        if self.tracking.has_task("refund-timer", key):
            return None

        countdown = RefundCountdown(
            lambda: self.store.get(key),
            on_tick,
            known_fulfilled=lambda rid: rid in self.tracking.fulfilled_ids,
            window_ms=self.settings.refund_window_ms,
            clock=self._clock,
            sleep=self._sleep,
        )
        return self._spawn("refund-timer", key, countdown.run())

    def record_refund(self, request_id: str, result: TransactionResult) -> asyncio.Task[Any] | None:
        """Store the refund deploy and refresh to pick up the new status."""
        entry = self._require(request_id)
        result.raise_for_failure("refund")
        self.store.update(entry.request_id, refund_deploy_hash=result.deploy_hash)
        self.tracking.cancel("refund-timer", entry.request_id)
        logger.info("Refund sent for %s: %s", entry.request_id, result.deploy_hash)
        return self._spawn("refresh", entry.request_id, self.refresh())

    # ── Wallet callbacks ────────────────────────────────────────────

    def on_wallet_status(
        self,
        action: str,
        status: str,
        data: dict[str, Any] | None = None,
        request_id: str | None = None,
    ) -> TicketEntry | None:
        """Dispatch one wallet status message for *action*.

        ``action`` is ``purchase``, ``settle`` or ``refund``. Returns the
        affected entry once the transaction is processed, ``None`` while it
        is still in flight. Rejections raise ``TransactionRejected``.
        """
        result = handle_transaction_status(status, data)
        if result is None:
            return None

        if action == "purchase":
            return self.record_purchase(result)
        if request_id is None:
            raise EngineError(f"{action} status needs a request id")
        if action == "settle":
            self.record_settlement(request_id, result)
        elif action == "refund":
            self.record_refund(request_id, result)
        else:
            raise EngineError(f"Unknown wallet action: {action}")
        return self.store.get(request_id)

    # ── Views ───────────────────────────────────────────────────────

    def entries(self) -> tuple[TicketEntry, ...]:
        return self.store.all()

    def summary(self) -> AccountSummary:
        return summarize(self.store.all())
