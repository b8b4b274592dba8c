"""Fulfillment watcher: per-ticket subscription to oracle push events.

State machine::

    idle → subscribed → fulfilled | timed_out | disconnected

``fulfilled`` and ``timed_out`` are terminal and surface the "ticket is
ready" signal. That signal fires once per request id, guarded by
``TrackingState.ready_notified``; duplicate deliveries and a timeout after
fulfillment are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from drawsync.api.push import PushChannel
from drawsync.api.schemas.events import (
    DisconnectedEvent,
    FulfilledEvent,
    PushEvent,
    RequestedEvent,
    TimeoutEvent,
)
from drawsync.core.context import ticket_context
from drawsync.services.entries import is_canonical_id
from drawsync.services.tracking import TrackingState

logger = logging.getLogger(__name__)


class WatchState(str, Enum):
    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    FULFILLED = "fulfilled"
    TIMED_OUT = "timed_out"
    DISCONNECTED = "disconnected"
    CANCELLED = "cancelled"


TERMINAL_WATCH_STATES = frozenset(
    {WatchState.FULFILLED, WatchState.TIMED_OUT, WatchState.DISCONNECTED, WatchState.CANCELLED}
)

# ── Valid state transitions ─────────────────────────────────────────

WATCH_TRANSITIONS: dict[WatchState, list[WatchState]] = {
    WatchState.IDLE: [WatchState.SUBSCRIBED, WatchState.CANCELLED],
    WatchState.SUBSCRIBED: [
        WatchState.FULFILLED,
        WatchState.TIMED_OUT,
        WatchState.DISCONNECTED,
        WatchState.CANCELLED,
    ],
    WatchState.FULFILLED: [],  # Terminal
    WatchState.TIMED_OUT: [],  # Terminal
    WatchState.DISCONNECTED: [],  # Terminal
    WatchState.CANCELLED: [],  # Terminal
}


class WatchError(Exception):
    """Fulfillment watcher misuse."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


@dataclass
class WatchUpdate:
    """What one event changed: entry metadata and whether the ticket is ready."""

    metadata: dict[str, Any] = field(default_factory=dict)
    ready: bool = False


@dataclass
class FulfillmentWatch:
    """State of one ticket's subscription."""

    request_id: str
    state: WatchState = WatchState.IDLE

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_WATCH_STATES

    def transition(self, new_state: WatchState) -> None:
        allowed = WATCH_TRANSITIONS[self.state]
        if new_state not in allowed:
            raise WatchError(
                f"Cannot transition from '{self.state.value}' to '{new_state.value}'"
            )
        self.state = new_state

    def apply(self, event: PushEvent) -> WatchUpdate:
        """Single update function for every push message."""
        if self.is_terminal or event.request_id != self.request_id:
            return WatchUpdate()

        if isinstance(event, RequestedEvent):
            if event.deploy_hash:
                return WatchUpdate(metadata={"request_deploy_hash": event.deploy_hash})
            return WatchUpdate()

        if isinstance(event, FulfilledEvent):
            self.transition(WatchState.FULFILLED)
            metadata: dict[str, Any] = {}
            if event.deploy_hash:
                metadata["fulfill_deploy_hash"] = event.deploy_hash
            if event.randomness:
                metadata["randomness"] = event.randomness
            return WatchUpdate(metadata=metadata, ready=True)

        if isinstance(event, TimeoutEvent):
            self.transition(WatchState.TIMED_OUT)
            return WatchUpdate(ready=True)

        if isinstance(event, DisconnectedEvent):
            self.transition(WatchState.DISCONNECTED)
            return WatchUpdate()

        return WatchUpdate()


ReadyCallback = Callable[[str, WatchState], None]
MetadataCallback = Callable[[str, dict[str, Any]], None]
AwaitingCheck = Callable[[str], bool]


class FulfillmentWatcher:
    """Runs push subscriptions and funnels their events into callbacks."""

    def __init__(self, channel: PushChannel, tracking: TrackingState) -> None:
        self.channel = channel
        self.tracking = tracking

    def notify_ready(self, request_id: str, reason: WatchState, on_ready: ReadyCallback) -> bool:
        """Fire *on_ready* unless this id was already announced."""
        if request_id in self.tracking.ready_notified or self.tracking.closed:
            return False
        self.tracking.ready_notified.add(request_id)
        on_ready(request_id, reason)
        return True

    async def watch(
        self,
        request_id: str,
        on_ready: ReadyCallback,
        on_metadata: MetadataCallback | None = None,
        is_awaiting: AwaitingCheck | None = None,
    ) -> WatchState:
        """Subscribe and process events until a terminal state.

        A second call for an id already subscribed returns ``IDLE``
        without subscribing. Placeholder (deploy-hash) ids are rejected.
        """
        if not is_canonical_id(request_id):
            raise WatchError(f"Refusing to subscribe non-canonical id {request_id[:16]}")
        if request_id in self.tracking.subscriptions:
            logger.debug("Already watching %s", request_id)
            return WatchState.IDLE

        watch = FulfillmentWatch(request_id)
        self.tracking.subscriptions.add(request_id)
        stream = self.channel.subscribe(request_id)
        try:
            with ticket_context(request_id):
                watch.transition(WatchState.SUBSCRIBED)
                logger.info("Waiting for fulfillment of %s", request_id)
                async for event in stream:
                    if self.tracking.closed:
                        break
                    update = watch.apply(event)
                    if update.metadata and on_metadata is not None:
                        on_metadata(request_id, update.metadata)
                    if update.ready:
                        self._on_terminal(watch, on_ready, is_awaiting)
                    if watch.is_terminal:
                        break
                if watch.state == WatchState.SUBSCRIBED:
                    watch.transition(WatchState.DISCONNECTED)
                logger.info("Stopped watching %s (%s)", request_id, watch.state.value)
        except asyncio.CancelledError:
            if not watch.is_terminal:
                watch.transition(WatchState.CANCELLED)
            raise
        finally:
            self.tracking.subscriptions.discard(request_id)
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return watch.state

    def _on_terminal(
        self,
        watch: FulfillmentWatch,
        on_ready: ReadyCallback,
        is_awaiting: AwaitingCheck | None,
    ) -> None:
        if watch.state == WatchState.FULFILLED:
            logger.info("Fulfilled event received for %s", watch.request_id)
            self.notify_ready(watch.request_id, watch.state, on_ready)
            return
        # Timeout fallback: only a ticket still waiting is promoted to ready
        logger.info("Timeout waiting for %s", watch.request_id)
        if is_awaiting is None or is_awaiting(watch.request_id):
            self.notify_ready(watch.request_id, watch.state, on_ready)
