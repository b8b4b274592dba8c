"""Unit tests for push-event and lottery schemas."""

from __future__ import annotations

import pytest
from pydantic import ValidationError


class TestPushEventSchemas:
    """Test the tagged push-event union."""

    def test_requested_camel_case(self) -> None:
        from drawsync.api.schemas.events import RequestedEvent, parse_push_event

        event = parse_push_event({"event": "requested", "requestId": "0x5", "deployHash": "abc"})
        assert isinstance(event, RequestedEvent)
        assert event.request_id == "0x5"
        assert event.deploy_hash == "abc"

    def test_fulfilled_from_json_text(self) -> None:
        from drawsync.api.schemas.events import FulfilledEvent, parse_push_event

        event = parse_push_event('{"event": "fulfilled", "request_id": "0x5", "randomness": "0xff"}')
        assert isinstance(event, FulfilledEvent)
        assert event.randomness == "0xff"
        assert event.deploy_hash is None

    def test_timeout(self) -> None:
        from drawsync.api.schemas.events import TimeoutEvent, parse_push_event

        assert isinstance(parse_push_event({"event": "timeout", "request_id": "0x5"}), TimeoutEvent)

    def test_unknown_event_rejected(self) -> None:
        from drawsync.api.schemas.events import parse_push_event

        with pytest.raises(ValidationError):
            parse_push_event({"event": "exploded", "request_id": "0x5"})

    def test_missing_request_id_rejected(self) -> None:
        from drawsync.api.schemas.events import parse_push_event

        with pytest.raises(ValidationError):
            parse_push_event({"event": "fulfilled"})

    def test_events_are_frozen(self) -> None:
        from drawsync.api.schemas.events import TimeoutEvent

        event = TimeoutEvent(request_id="0x5")
        with pytest.raises(ValidationError):
            event.request_id = "0x6"


class TestLotterySchemas:
    """Test ``GET /lottery/current`` parsing."""

    def test_numeric_fields_coerced(self) -> None:
        from drawsync.api.schemas.lottery import LotteryCurrentState

        state = LotteryCurrentState.model_validate(
            {"round": {"round_id": "0x7", "final_jackpot": 10}, "stats": {"next_play_id": 34}}
        )
        assert state.round.round_id == 7
        assert state.stats.next_play_id == "34"
        assert state.raw_jackpot == "10"

    def test_live_jackpot_preferred(self) -> None:
        from drawsync.api.schemas.lottery import LotteryCurrentState

        state = LotteryCurrentState.model_validate(
            {"round": {"final_jackpot": "10"}, "stats": {"current_jackpot": "20"}}
        )
        assert state.raw_jackpot == "20"

    def test_empty_state(self) -> None:
        from drawsync.api.schemas.lottery import LotteryCurrentState

        assert LotteryCurrentState().raw_jackpot is None
