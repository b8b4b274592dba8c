"""Lottery round schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, field_validator

from drawsync.api.schemas.plays import parse_sequence_id


class RoundInfo(BaseModel):
    """Round block of ``GET /lottery/current``."""

    round_id: int | None = None
    total_plays: int | None = None
    final_jackpot: str | None = None  # motes

    model_config = {"extra": "ignore"}

    @field_validator("round_id", mode="before")
    @classmethod
    def _parse_round_id(cls, value: Any) -> int | None:
        return parse_sequence_id(value)

    @field_validator("final_jackpot", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class LotteryStats(BaseModel):
    current_jackpot: str | None = None  # motes
    next_play_id: str | None = None

    model_config = {"extra": "ignore"}

    @field_validator("current_jackpot", "next_play_id", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class LotteryCurrentState(BaseModel):
    """Response of ``GET /lottery/current``."""

    round: RoundInfo | None = None
    config: dict[str, Any] | None = None
    stats: LotteryStats | None = None

    model_config = {"extra": "ignore"}

    @property
    def raw_jackpot(self) -> str | None:
        """Jackpot in motes: live stats first, then the round's final value."""
        if self.stats is not None and self.stats.current_jackpot is not None:
            return self.stats.current_jackpot
        if self.round is not None and self.round.final_jackpot is not None:
            return self.round.final_jackpot
        return None


class RoundSnapshot(BaseModel):
    """Ephemeral round view used to seed new placeholder tickets."""

    round_id: int | None = None
    next_play_id_hint: str | None = None
    jackpot: Decimal | None = None  # CSPR

    model_config = {"frozen": True}
