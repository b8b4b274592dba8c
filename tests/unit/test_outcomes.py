"""Tests for the outcome notifier: one signal per ticket."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from drawsync.services.outcomes import OutcomeNotifier
from drawsync.services.tracking import TrackingState
from tests.factories.data_factories import build_entry


class TestOutcomeNotifier:
    def test_emits_on_transition_to_terminal(self):
        emitted = []
        notifier = OutcomeNotifier(TrackingState(), emitted.append)
        notifier.observe(build_entry(request_id="0x5"))
        assert notifier.observe(build_entry(request_id="0x5", status="won-jackpot"))
        assert [e.status for e in emitted] == ["won-jackpot"]

    def test_pending_never_emits(self):
        emitted = []
        notifier = OutcomeNotifier(TrackingState(), emitted.append)
        notifier.observe(build_entry(request_id="0x5"))
        notifier.observe(build_entry(request_id="0x5"))
        assert emitted == []

    def test_first_sight_terminal_emits(self):
        emitted = []
        notifier = OutcomeNotifier(TrackingState(), emitted.append)
        assert notifier.observe(build_entry(request_id="0x5", status="lost"))

    def test_prime_marks_history_without_emitting(self):
        emitted = []
        tracking = TrackingState()
        notifier = OutcomeNotifier(tracking, emitted.append)
        notifier.prime([build_entry(request_id="0x5", status="lost"), build_entry(request_id="0x6")])

        notifier.observe_all([build_entry(request_id="0x5", status="lost"), build_entry(request_id="0x6")])

        assert emitted == []
        assert notifier.primed
        assert tracking.previous_statuses == {"0x5": "lost", "0x6": "pending"}

    def test_prime_announces_tracked_ticket(self):
        emitted = []
        notifier = OutcomeNotifier(TrackingState(), emitted.append)
        notifier.observe(build_entry(request_id="0x5"))

        notifier.prime([build_entry(request_id="0x5", status="won-jackpot"), build_entry(request_id="0x6", status="lost")])

        assert [(e.request_id, e.status) for e in emitted] == [("0x5", "won-jackpot")]

    def test_status_flip_after_notify_ignored(self):
        emitted = []
        notifier = OutcomeNotifier(TrackingState(), emitted.append)
        notifier.observe(build_entry(request_id="0x5", status="lost"))
        notifier.observe(build_entry(request_id="0x5", status="won-consolation"))
        assert len(emitted) == 1

    def test_closed_suppresses(self):
        emitted = []
        tracking = TrackingState(closed=True)
        notifier = OutcomeNotifier(tracking, emitted.append)
        assert not notifier.observe(build_entry(request_id="0x5", status="lost"))
        assert emitted == []


@given(
    merges=st.integers(min_value=1, max_value=25),
    status=st.sampled_from(["won-jackpot", "won-consolation", "lost"]),
)
@settings(max_examples=100)
def test_repeated_merges_emit_once(merges: int, status: str):
    """N merges all reporting the same terminal status emit exactly one signal."""
    emitted = []
    notifier = OutcomeNotifier(TrackingState(), emitted.append)
    notifier.prime([build_entry(request_id="0x5")])
    for _ in range(merges):
        notifier.observe_all([build_entry(request_id="0x5", status=status)])
    assert len(emitted) == 1
