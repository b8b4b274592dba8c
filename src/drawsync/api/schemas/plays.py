"""Backend play record schemas."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)

_datetime_adapter: TypeAdapter[datetime] = TypeAdapter(datetime)


def parse_sequence_id(value: Any) -> int | None:
    """Parse a play/round sequence number from decimal or ``0x`` hex text.

    Returns ``None`` (and logs) when the value is not numeric.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        logger.warning("Ignoring malformed identifier %r", value)
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text, 10)
    except ValueError:
        logger.warning("Ignoring malformed identifier %r", value)
        return None


class BackendPlay(BaseModel):
    """One play (ticket) as indexed by the backend."""

    play_id: str = ""
    request_id: str
    round_id: int | None = None
    player: str | None = None
    timestamp: datetime | None = None
    status: str = "pending"  # "pending" | "settled"
    entry_deploy_hash: str | None = None
    prize_amount: str | None = None  # motes
    is_jackpot: bool = False
    jackpot_amount: str | None = None  # motes
    settled_at: datetime | None = None
    settle_deploy_hash: str | None = None
    request_deploy_hash: str | None = None
    fulfill_deploy_hash: str | None = None
    refund_deploy_hash: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "ignore"}

    @field_validator("request_id", mode="before")
    @classmethod
    def _coerce_request_id(cls, value: Any) -> Any:
        if value is None or value == "":
            raise ValueError("play record has no request_id")
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("play_id", mode="before")
    @classmethod
    def _coerce_play_id(cls, value: Any) -> str:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value
        logger.warning("Ignoring malformed play id %r", value)
        return ""

    @field_validator("timestamp", "settled_at", "created_at", "updated_at", mode="before")
    @classmethod
    def _parse_datetime(cls, value: Any) -> datetime | None:
        if value is None or value == "":
            return None
        try:
            return _datetime_adapter.validate_python(value)
        except ValidationError:
            logger.warning("Ignoring malformed timestamp %r", value)
            return None

    @field_validator("round_id", mode="before")
    @classmethod
    def _parse_round_id(cls, value: Any) -> int | None:
        return parse_sequence_id(value)

    @field_validator("prize_amount", "jackpot_amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("is_jackpot", mode="before")
    @classmethod
    def _coerce_jackpot_flag(cls, value: Any) -> bool:
        return bool(value)

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"

    @property
    def play_number(self) -> int | None:
        """Numeric play id, or ``None`` if the backend sent garbage."""
        return parse_sequence_id(self.play_id)


class PlayerPlaysResponse(BaseModel):
    """Response of ``GET /player/{account}/plays``.

    Records are kept raw here; ``parse_plays`` validates them one by one so a
    single bad record cannot sink the whole snapshot.
    """

    plays: list[dict[str, Any]] = []

    model_config = {"extra": "ignore"}

    def parse_plays(self) -> list[BackendPlay]:
        """Validate each record, logging and skipping those that cannot be keyed."""
        parsed: list[BackendPlay] = []
        for raw in self.plays:
            try:
                parsed.append(BackendPlay.model_validate(raw))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed play record %r: %d errors",
                    raw.get("request_id"),
                    exc.error_count(),
                )
        return parsed
