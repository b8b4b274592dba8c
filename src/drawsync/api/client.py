"""Async REST client for the lottery backend.

Wraps ``httpx.AsyncClient``; every transport failure and non-2xx response is
translated into :class:`BackendError` so callers deal with one error type.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

import httpx
from pydantic import ValidationError

from drawsync.api.schemas.lottery import LotteryCurrentState
from drawsync.api.schemas.plays import BackendPlay, PlayerPlaysResponse
from drawsync.core.config import Settings

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Error talking to the backend, with HTTP status hint."""

    def __init__(self, detail: str, status_code: int | None = None, retriable: bool = False) -> None:
        self.detail = detail
        self.status_code = status_code
        self.retriable = retriable
        super().__init__(detail)


class PlayNotFound(BackendError):
    """The backend has not indexed the requested play (yet)."""

    def __init__(self, deploy_hash: str) -> None:
        self.deploy_hash = deploy_hash
        super().__init__(f"Play not found for deploy {deploy_hash}", status_code=404, retriable=True)


class BackendClient:
    """Typed access to the backend endpoints the engine consumes.

    Pass *http_client* to share a connection pool or inject an
    ``httpx.MockTransport`` in tests; otherwise one is created from *settings*
    and owned (closed) by this instance.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        self.api_base_url = settings.api_base_url.rstrip("/")
        self.root_url = settings.service_root_url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> BackendClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ── Transport ───────────────────────────────────────────────────

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            return await self._http.get(url, params=params)
        except httpx.HTTPError as exc:
            raise BackendError(f"GET {url} failed: {exc}", retriable=True) from exc

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(
                f"Invalid JSON from {response.request.url}", status_code=response.status_code
            ) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        body = response.text[:200]
        logger.error("Backend error %s from %s: %s", response.status_code, response.request.url, body)
        raise BackendError(
            f"API error: {response.status_code}",
            status_code=response.status_code,
            retriable=response.status_code >= 500,
        )

    # ── Endpoints ───────────────────────────────────────────────────

    async def fetch_player_plays(
        self,
        account_hash: str,
        status: str | None = None,
    ) -> list[BackendPlay]:
        """``GET /player/{account}/plays[?status=]``."""
        url = f"{self.api_base_url}/player/{account_hash}/plays"
        params = {"status": status} if status else None
        response = await self._get(url, params=params)
        self._raise_for_status(response)
        try:
            parsed = PlayerPlaysResponse.model_validate(self._json(response))
        except ValidationError as exc:
            raise BackendError(f"Malformed plays payload: {exc.error_count()} errors") from exc
        plays = parsed.parse_plays()
        logger.debug("Fetched %d plays for %s", len(plays), account_hash[:12])
        return plays

    async def fetch_play_by_deploy_hash(self, deploy_hash: str) -> BackendPlay:
        """``GET /play/{deploy_hash}``; raises :class:`PlayNotFound` on 404."""
        url = f"{self.api_base_url}/play/{deploy_hash}"
        response = await self._get(url)
        if response.status_code == 404:
            raise PlayNotFound(deploy_hash)
        self._raise_for_status(response)
        try:
            return BackendPlay.model_validate(self._json(response))
        except ValidationError as exc:
            raise BackendError(f"Malformed play payload for {deploy_hash}") from exc

    async def fetch_current_lottery(self) -> LotteryCurrentState:
        """``GET /lottery/current``."""
        url = f"{self.api_base_url}/lottery/current"
        response = await self._get(url)
        self._raise_for_status(response)
        try:
            return LotteryCurrentState.model_validate(self._json(response))
        except ValidationError as exc:
            raise BackendError("Malformed lottery state payload") from exc

    async def check_health(self) -> bool:
        """``GET /health``: any 2xx is healthy; failures are ``False``."""
        try:
            response = await self._http.get(f"{self.root_url}/health")
        except httpx.HTTPError:
            logger.warning("Health check failed", exc_info=True)
            return False
        return response.is_success
