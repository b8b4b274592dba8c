"""Deploy-hash resolver: learn a ticket's canonical id from its deploy hash.

Right after a purchase the only handle on the ticket is the deploy hash. The
backend indexes the deploy a few seconds later; until then
``GET /play/{hash}`` answers 404 and we keep polling.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from drawsync.api.client import BackendClient, BackendError, PlayNotFound
from drawsync.api.schemas.plays import BackendPlay
from drawsync.core.constants import RESOLVE_INTERVAL_MS, RESOLVE_MAX_ATTEMPTS
from drawsync.services.entries import TicketEntry, is_terminal, status_from_play
from drawsync.services.store import TicketStore
from drawsync.services.tracking import TrackingState

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class DeployHashResolver:
    """Polls the single-play endpoint until the deploy is indexed."""

    def __init__(
        self,
        client: BackendClient,
        max_attempts: int = RESOLVE_MAX_ATTEMPTS,
        interval_ms: int = RESOLVE_INTERVAL_MS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client
        self.max_attempts = max_attempts
        self.interval_ms = interval_ms
        self._sleep = sleep

    async def resolve(self, deploy_hash: str) -> BackendPlay | None:
        """Return the backend record for *deploy_hash*, or ``None``.

        404s and transport failures wait ``interval_ms`` and retry, up to
        ``max_attempts``. Any other backend error gives up at once.
        """
        logger.info("Polling for play with deploy hash %s", deploy_hash)

        for attempt in range(1, self.max_attempts + 1):
            logger.debug("Attempt %d/%d to fetch play", attempt, self.max_attempts)
            try:
                play = await self.client.fetch_play_by_deploy_hash(deploy_hash)
            except PlayNotFound:
                pass
            except BackendError as exc:
                if not exc.retriable or exc.status_code is not None:
                    logger.error("Resolution of %s aborted: %s", deploy_hash, exc.detail)
                    return None
                logger.warning("Request failed on attempt %d: %s", attempt, exc.detail)
            else:
                logger.info("Play found, request_id %s", play.request_id)
                return play

            if attempt < self.max_attempts:
                await self._sleep(self.interval_ms / 1000)

        logger.error("Failed to fetch play after %d attempts", self.max_attempts)
        return None


def apply_resolution(
    store: TicketStore,
    tracking: TrackingState,
    deploy_hash: str,
    play: BackendPlay,
) -> TicketEntry | None:
    """Re-key the placeholder for *deploy_hash* onto the canonical id.

    ``awaiting_fulfillment`` survives unless the backend already reports the
    ticket settled.
    """
    current = store.get(deploy_hash)
    status, prize = status_from_play(play)

    patch: dict[str, Any] = {
        "play_id": play.play_id,
        "status": status,
        "prize_amount": prize,
    }
    if play.round_id is not None:
        patch["round_id"] = play.round_id
    if play.settled_at is not None:
        patch["settled_date"] = play.settled_at
    for field in ("request_deploy_hash", "fulfill_deploy_hash", "settle_deploy_hash"):
        value = getattr(play, field)
        if value is not None:
            patch[field] = value
    if is_terminal(status):
        patch["awaiting_fulfillment"] = False
    elif current is not None:
        patch["awaiting_fulfillment"] = current.awaiting_fulfillment

    entry = store.rekey(deploy_hash, play.request_id, **patch)
    if entry is not None:
        tracking.rekey(deploy_hash, play.request_id)
        if is_terminal(status):
            tracking.live_ids.discard(play.request_id)
    return entry
