"""Push channel client for randomness-fulfillment events."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

import socketio
from pydantic import ValidationError
from socketio.exceptions import ConnectionError as SocketIOConnectionError

from drawsync.api.schemas.events import PUSH_EVENT_NAMES, DisconnectedEvent, PushEvent, parse_push_event

logger = logging.getLogger(__name__)


class PushChannel(ABC):
    """Abstract per-ticket event stream.

    ``subscribe`` returns an async iterator of typed events scoped to one
    canonical request id. Closing the iterator (``aclose``) tears the
    subscription down. When the transport drops, the stream yields a final
    :class:`DisconnectedEvent` and ends.
    """

    @abstractmethod
    def subscribe(self, request_id: str) -> AsyncIterator[PushEvent]:
        """Stream events for *request_id*."""


class SocketIOPushChannel(PushChannel):
    """Socket.IO implementation of :class:`PushChannel`.

    One connection per subscription: connect, ``emit("subscribe", request_id)``
    and translate the server's named events into the typed union.
    """

    def __init__(
        self,
        url: str,
        transports: list[str] | None = None,
        connect_timeout: float = 5.0,
    ) -> None:
        self.url = url
        self.transports = transports or ["websocket", "polling"]
        self.connect_timeout = connect_timeout

    def _to_event(self, name: str, request_id: str, args: tuple[Any, ...]) -> PushEvent | None:
        payload: dict[str, Any] = dict(args[0]) if args and isinstance(args[0], dict) else {}
        payload["event"] = name
        if "request_id" not in payload and "requestId" not in payload:
            payload["request_id"] = request_id
        try:
            event = parse_push_event(payload)
        except ValidationError:
            logger.debug("Ignoring unrecognized %s message: %r", name, args)
            return None
        if event.request_id != request_id:
            return None
        return event

    async def subscribe(self, request_id: str) -> AsyncIterator[PushEvent]:
        queue: asyncio.Queue[PushEvent | None] = asyncio.Queue()
        state = {"reason": "closed"}
        client = socketio.AsyncClient(reconnection=False)

        def _register(name: str) -> None:
            async def handler(*args: Any) -> None:
                event = self._to_event(name, request_id, args)
                if event is not None:
                    queue.put_nowait(event)

            client.on(name, handler)

        for name in PUSH_EVENT_NAMES:
            _register(name)

        async def on_disconnect(*args: Any) -> None:
            if args:
                state["reason"] = str(args[0])
            queue.put_nowait(None)

        client.on("disconnect", on_disconnect)

        try:
            await client.connect(
                self.url, transports=self.transports, wait_timeout=self.connect_timeout
            )
            logger.info("Connected, subscribing to request_id %s", request_id)
            await client.emit("subscribe", request_id)
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
        except SocketIOConnectionError as exc:
            logger.warning("Push channel error for %s: %s", request_id, exc)
            state["reason"] = str(exc) or "connect_error"
        finally:
            if client.connected:
                await client.disconnect()
        yield DisconnectedEvent(request_id=request_id, reason=state["reason"])
