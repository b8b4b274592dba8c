"""Tests for the reconciliation merger."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from drawsync.api.schemas.plays import BackendPlay
from drawsync.services.entries import TicketEntry, new_placeholder
from drawsync.services.reconciliation import merge_snapshot
from tests.factories.data_factories import (
    build_entry,
    deploy_hash,
    make_play,
    make_settled_play,
)


def _ids(entries):
    return [e.request_id for e in entries]


class TestAwaitingFlag:
    def test_previous_value_survives_for_pending(self):
        current = [build_entry(request_id="0x5", awaiting_fulfillment=True)]
        merged = merge_snapshot([make_play(request_id="0x5")], current)
        assert merged.entries[0].awaiting_fulfillment is True

    def test_previous_false_is_not_overridden_by_live_ids(self):
        current = [build_entry(request_id="0x5", awaiting_fulfillment=False)]
        merged = merge_snapshot([make_play(request_id="0x5")], current, live_ids={"0x5"})
        assert merged.entries[0].awaiting_fulfillment is False

    def test_snapshot_only_defaults_to_live_membership(self):
        plays = [make_play(request_id="0x5"), make_play(request_id="0x6")]
        merged = merge_snapshot(plays, [], live_ids={"0x6"})
        by_id = {e.request_id: e for e in merged.entries}
        assert by_id["0x5"].awaiting_fulfillment is False
        assert by_id["0x6"].awaiting_fulfillment is True

    def test_unknown_previous_falls_back_to_live_membership(self):
        current = [build_entry(request_id="0x5", awaiting_fulfillment=None)]
        merged = merge_snapshot([make_play(request_id="0x5")], current, live_ids={"0x5"})
        assert merged.entries[0].awaiting_fulfillment is True

    def test_settled_never_awaiting(self):
        current = [build_entry(request_id="0x5", awaiting_fulfillment=True)]
        merged = merge_snapshot([make_settled_play(10, request_id="0x5")], current, live_ids={"0x5"})
        entry = merged.entries[0]
        assert entry.status == "won-consolation"
        assert entry.awaiting_fulfillment is False


class TestLocalOnly:
    def test_awaiting_local_entries_kept_first(self):
        placeholder = new_placeholder(deploy_hash(), cost=Decimal("50"))
        merged = merge_snapshot([make_play(request_id="0x5")], [placeholder])
        assert _ids(merged.entries) == [placeholder.request_id, "0x5"]

    def test_local_entries_not_awaiting_dropped(self):
        current = [build_entry(request_id="0x9", awaiting_fulfillment=False)]
        merged = merge_snapshot([make_play(request_id="0x5")], current)
        assert _ids(merged.entries) == ["0x5"]

    def test_empty_snapshot_keeps_awaiting_tickets(self):
        current = [
            build_entry(request_id="0x1", awaiting_fulfillment=True),
            build_entry(request_id="0x2", awaiting_fulfillment=None),
        ]
        merged = merge_snapshot([], current)
        assert _ids(merged.entries) == ["0x1"]


class TestPlaceholderUpgrade:
    def test_snapshot_reporting_placeholder_deploy_replaces_it(self):
        h = deploy_hash()
        placeholder = new_placeholder(h, cost=Decimal("50")).evolve(request_deploy_hash="req-deploy")
        play = make_play(request_id="0x5", entry_deploy_hash=h)

        merged = merge_snapshot([play], [placeholder])

        assert _ids(merged.entries) == ["0x5"]
        assert merged.upgraded == {h: "0x5"}
        entry = merged.entries[0]
        assert entry.awaiting_fulfillment is True
        assert entry.request_deploy_hash == "req-deploy"
        assert not entry.is_placeholder


class TestMetadata:
    def test_local_transaction_hashes_kept(self):
        previous = build_entry(
            request_id="0x5",
            fulfill_deploy_hash="fulfill-deploy",
            randomness="0xfeed",
            settle_deploy_hash="settle-deploy",
        )
        merged = merge_snapshot([make_play(request_id="0x5")], [previous])
        entry = merged.entries[0]
        assert entry.fulfill_deploy_hash == "fulfill-deploy"
        assert entry.randomness == "0xfeed"
        assert entry.settle_deploy_hash == "settle-deploy"

    def test_backend_values_win_when_present(self):
        previous = build_entry(request_id="0x5", settle_deploy_hash="local")
        play = make_settled_play(0, request_id="0x5", settle_deploy_hash="backend")
        merged = merge_snapshot([play], [previous])
        assert merged.entries[0].settle_deploy_hash == "backend"

    def test_cost_taken_from_previous_entry(self):
        previous = build_entry(request_id="0x5", cost=Decimal("75"))
        merged = merge_snapshot([make_play(request_id="0x5")], [previous], ticket_cost=Decimal("50"))
        assert merged.entries[0].cost == Decimal("75")


# ── Properties ──────────────────────────────────────────────────────

_BASE = datetime(2025, 6, 1, tzinfo=UTC)


@st.composite
def _plays(draw):
    numbers = draw(st.lists(st.integers(1, 12), unique=True, max_size=8))
    plays = []
    for n in numbers:
        settled = draw(st.booleans())
        plays.append(
            BackendPlay(
                play_id=str(n),
                request_id=hex(n),
                status="settled" if settled else "pending",
                prize_amount=str(draw(st.integers(0, 3)) * 10**9) if settled else None,
                timestamp=_BASE + timedelta(minutes=n),
            )
        )
    return plays


@st.composite
def _current(draw):
    numbers = draw(st.lists(st.integers(1, 16), unique=True, max_size=8))
    entries = []
    for n in numbers:
        awaiting = draw(st.sampled_from([True, False, None]))
        entries.append(
            TicketEntry(
                request_id=hex(n),
                play_id=str(n),
                entry_date=_BASE,
                awaiting_fulfillment=awaiting,
                randomness=draw(st.sampled_from([None, "0xabc"])),
            )
        )
    return entries


@given(snapshot=_plays(), current=_current(), live=st.sets(st.integers(1, 16)))
@settings(max_examples=200)
def test_merge_is_idempotent(snapshot, current, live):
    live_ids = {hex(n) for n in live}
    once = merge_snapshot(snapshot, current, live_ids).entries
    twice = merge_snapshot(snapshot, once, live_ids).entries
    assert twice == once


@given(snapshot=_plays(), current=_current(), live=st.sets(st.integers(1, 16)))
@settings(max_examples=200)
def test_merge_never_duplicates(snapshot, current, live):
    merged = merge_snapshot(snapshot, current, {hex(n) for n in live}).entries
    ids = _ids(merged)
    assert len(ids) == len(set(ids))
    for play in snapshot:
        assert play.request_id in ids
