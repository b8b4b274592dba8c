"""Shared pytest fixtures and test configuration."""

from __future__ import annotations

import asyncio
import os
import sys
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

# Ensure src is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from drawsync.api.client import BackendClient  # noqa: E402
from drawsync.api.push import PushChannel  # noqa: E402
from drawsync.api.schemas.events import DisconnectedEvent, PushEvent  # noqa: E402
from drawsync.core.config import Settings  # noqa: E402
from drawsync.services.engine import LotteryEngine  # noqa: E402
from drawsync.services.entries import TicketEntry  # noqa: E402
from tests.factories.data_factories import build_lottery_state  # noqa: E402

ACCOUNT = "account-hash-0123456789abcdef"


class FakeBackend:
    """In-memory lottery backend served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.plays: list[dict[str, Any]] = []
        self.deploys: dict[str, dict[str, Any]] = {}  # deploy hash → play payload
        self.deploy_misses: dict[str, int] = {}  # 404s to answer before indexing
        self.lottery: dict[str, Any] | None = build_lottery_state()
        self.play_errors: list[int] = []  # queued statuses for GET /play/{hash}
        self.plays_errors: list[int] = []  # queued statuses for GET /player/.../plays
        self.healthy = True
        self.calls: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)

        if path == "/health":
            return httpx.Response(200 if self.healthy else 503, json={"status": "ok"})

        if path.startswith("/api/play/"):
            deploy = path.rsplit("/", 1)[-1]
            if self.play_errors:
                return httpx.Response(self.play_errors.pop(0), json={"error": "boom"})
            if self.deploy_misses.get(deploy, 0) > 0:
                self.deploy_misses[deploy] -= 1
                return httpx.Response(404, json={"error": "Play not found"})
            play = self.deploys.get(deploy)
            if play is None:
                return httpx.Response(404, json={"error": "Play not found"})
            return httpx.Response(200, json=play)

        if path.startswith("/api/player/") and path.endswith("/plays"):
            if self.plays_errors:
                return httpx.Response(self.plays_errors.pop(0), json={"error": "boom"})
            status = request.url.params.get("status")
            plays = [p for p in self.plays if status is None or p["status"] == status]
            return httpx.Response(200, json={"plays": plays})

        if path == "/api/lottery/current":
            if self.lottery is None:
                return httpx.Response(503, json={"error": "unavailable"})
            return httpx.Response(200, json=self.lottery)

        return httpx.Response(404, json={"error": "unknown route"})

    def count(self, suffix: str) -> int:
        return sum(1 for c in self.calls if c.endswith(suffix))

    def index(self, play: dict[str, Any]) -> None:
        """Make *play* visible under its deploy hash and in the account list."""
        if play.get("entry_deploy_hash"):
            self.deploys[play["entry_deploy_hash"]] = play
        self.plays = [p for p in self.plays if p["request_id"] != play["request_id"]]
        self.plays.insert(0, play)

    def client(self, settings: Settings) -> BackendClient:
        transport = httpx.MockTransport(lambda request: self.handler(request))
        return BackendClient(settings, http_client=httpx.AsyncClient(transport=transport))


class FakePushChannel(PushChannel):
    """Push channel fed by the test through ``emit``/``disconnect``."""

    def __init__(self) -> None:
        self.queues: dict[str, asyncio.Queue[PushEvent | None]] = {}
        self.subscribed: list[str] = []
        self.closed: list[str] = []

    def _queue(self, request_id: str) -> asyncio.Queue[PushEvent | None]:
        return self.queues.setdefault(request_id, asyncio.Queue())

    def emit(self, event: PushEvent) -> None:
        self._queue(event.request_id).put_nowait(event)

    def disconnect(self, request_id: str) -> None:
        self._queue(request_id).put_nowait(None)

    async def subscribe(self, request_id: str) -> AsyncIterator[PushEvent]:
        self.subscribed.append(request_id)
        queue = self._queue(request_id)
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
        finally:
            self.closed.append(request_id)
        yield DisconnectedEvent(request_id=request_id, reason="closed")


class RecordingSleep:
    """Drop-in for ``asyncio.sleep`` that records delays and only yields."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class FakeClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class Recorder:
    """Collects engine callbacks."""

    def __init__(self) -> None:
        self.outcomes: list[TicketEntry] = []
        self.ready: list[TicketEntry] = []

    def on_outcome(self, entry: TicketEntry) -> None:
        self.outcomes.append(entry)

    def on_ready(self, entry: TicketEntry) -> None:
        self.ready.append(entry)


async def wait_for(predicate: Any, rounds: int = 200) -> None:
    """Yield to the loop until *predicate* holds."""
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def settings() -> Settings:
    return Settings(app_env="testing", api_base_url="http://backend.test/api")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def push() -> FakePushChannel:
    return FakePushChannel()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def engine(
    settings: Settings,
    backend: FakeBackend,
    push: FakePushChannel,
    sleep: RecordingSleep,
    clock: FakeClock,
    recorder: Recorder,
) -> LotteryEngine:
    return LotteryEngine(
        backend.client(settings),
        push,
        ACCOUNT,
        settings,
        on_outcome=recorder.on_outcome,
        on_ready=recorder.on_ready,
        clock=clock,
        sleep=sleep,
    )
