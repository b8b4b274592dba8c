"""Push channel event schemas.

The fulfillment channel is Socket.IO: the server emits named events
(``requested``, ``fulfilled``, ``timeout``) with camelCase payloads such as
``{requestId, randomness, timestamp}``. The client tags each payload with
its event name, giving a closed union discriminated by ``event``.
``disconnected`` never comes from the server; the channel client synthesizes
it when the transport drops.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter

# Server-side Socket.IO event names
PUSH_EVENT_NAMES: tuple[str, ...] = ("requested", "fulfilled", "timeout")


class _PushEventBase(BaseModel):
    request_id: str = Field(validation_alias=AliasChoices("request_id", "requestId"))

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}


class RequestedEvent(_PushEventBase):
    """The coordinator submitted the randomness request on-chain."""

    event: Literal["requested"] = "requested"
    deploy_hash: str | None = Field(
        default=None, validation_alias=AliasChoices("deploy_hash", "deployHash")
    )


class FulfilledEvent(_PushEventBase):
    """The oracle answered."""

    event: Literal["fulfilled"] = "fulfilled"
    randomness: str | None = None
    deploy_hash: str | None = Field(
        default=None, validation_alias=AliasChoices("deploy_hash", "deployHash")
    )
    timestamp: str | None = None


class TimeoutEvent(_PushEventBase):
    """The server gave up waiting for the oracle within its own window."""

    event: Literal["timeout"] = "timeout"


class DisconnectedEvent(_PushEventBase):
    event: Literal["disconnected"] = "disconnected"
    reason: str | None = None


PushEvent = Annotated[
    RequestedEvent | FulfilledEvent | TimeoutEvent | DisconnectedEvent,
    Field(discriminator="event"),
]

push_event_adapter: TypeAdapter[PushEvent] = TypeAdapter(PushEvent)


def parse_push_event(payload: dict[str, object] | str | bytes) -> PushEvent:
    """Validate a raw server message into a typed event.

    Raises ``pydantic.ValidationError`` for unknown or malformed messages.
    """
    if isinstance(payload, (str, bytes)):
        return push_event_adapter.validate_json(payload)
    return push_event_adapter.validate_python(payload)
