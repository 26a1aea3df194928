"""Tests for event validation, folding and replay."""

import itertools
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from conftest import T0, at
from errors import InvalidTransition
from models import EventAction, SessionStatus, to_utc, utc_now
from tracking import SessionSnapshot, apply_event, interval_ms, rebuild, validate_event


@dataclass
class Ev:
    action: str
    occured_at: datetime
    sequence: int = 0


def log(*pairs):
    """Build an event log from (action, ms) pairs, numbering them in order."""
    return [Ev(action, at(ms), seq) for seq, (action, ms) in enumerate(pairs)]


def fold(events):
    snapshot = SessionSnapshot()
    for e in events:
        snapshot = apply_event(snapshot, e.action, e.occured_at)
    return snapshot


# ===========================================
# VALIDATION
# ===========================================


class TestValidateEvent:
    def test_first_event_always_accepted(self):
        validate_event("start", at(0), None)
        validate_event("pause", at(0), None)

    def test_repeat_of_last_action_rejected(self):
        with pytest.raises(InvalidTransition):
            validate_event("pause", at(50), Ev("pause", at(40)))

    def test_start_after_pause_accepted(self):
        validate_event("start", at(50), Ev("pause", at(40)))

    @pytest.mark.parametrize("action", ["start", "pause", "stop"])
    def test_nothing_after_stop(self, action):
        with pytest.raises(InvalidTransition, match="stopped"):
            validate_event(action, at(200), Ev("stop", at(100)))

    def test_backdated_event_rejected(self):
        with pytest.raises(InvalidTransition, match="earlier"):
            validate_event("pause", at(10), Ev("start", at(100)))

    def test_backdated_event_allowed_when_policy_off(self):
        validate_event("pause", at(10), Ev("start", at(100)), reject_backdated=False)

    def test_equal_timestamp_accepted(self):
        validate_event("pause", at(100), Ev("start", at(100)))

    def test_offsets_compared_in_utc(self):
        # 10:00+02:00 is 08:00 UTC, an hour before the 09:00 UTC start.
        plus_two = timezone(timedelta(hours=2))
        last = Ev("start", T0)
        with pytest.raises(InvalidTransition):
            validate_event("pause", datetime(2026, 3, 2, 10, 0, tzinfo=plus_two), last)
        validate_event("pause", datetime(2026, 3, 2, 11, 30, tzinfo=plus_two), last)

    def test_accepted_sequences_alternate(self):
        """Every sequence the validator accepts alternates and ends at most once in stop."""
        actions = ["start", "pause", "stop"]
        for candidate in itertools.product(actions, repeat=4):
            accepted = [Ev("start", at(0))]
            for i, action in enumerate(candidate, start=1):
                try:
                    validate_event(action, at(i * 10), accepted[-1])
                except InvalidTransition:
                    continue
                accepted.append(Ev(action, at(i * 10), i))
            names = [e.action for e in accepted]
            assert all(a != b for a, b in zip(names, names[1:]))
            assert "stop" not in names[:-1]


# ===========================================
# PROJECTION
# ===========================================


class TestApplyEvent:
    def test_start_opens_interval(self):
        snap = apply_event(SessionSnapshot(), EventAction.START, at(0))
        assert snap.status is SessionStatus.ACTIVE
        assert snap.last_start_time == at(0)
        assert snap.total_time == 0

    def test_pause_closes_interval(self):
        snap = apply_event(
            SessionSnapshot(SessionStatus.ACTIVE, at(0), 500), "pause", at(40)
        )
        assert snap.status is SessionStatus.PAUSED
        assert snap.total_time == 540
        assert snap.last_start_time is None

    def test_stop_while_active_credits_interval(self):
        snap = apply_event(SessionSnapshot(SessionStatus.ACTIVE, at(0), 0), "stop", at(100))
        assert snap.status is SessionStatus.COMPLETED
        assert snap.total_time == 100

    def test_stop_while_paused_credits_nothing(self):
        # Even with a stale last_start_time left behind.
        snap = apply_event(SessionSnapshot(SessionStatus.PAUSED, at(0), 40), "stop", at(100))
        assert snap.status is SessionStatus.COMPLETED
        assert snap.total_time == 40

    def test_pause_without_start_time_adds_zero(self):
        snap = apply_event(SessionSnapshot(SessionStatus.ACTIVE, None, 70), "pause", at(100))
        assert snap.total_time == 70

    def test_zero_timestamp_adds_zero(self):
        epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
        snap = apply_event(SessionSnapshot(SessionStatus.ACTIVE, epoch, 0), "pause", at(100))
        assert snap.total_time == 0

    def test_negative_interval_clamped(self):
        snap = apply_event(SessionSnapshot(SessionStatus.ACTIVE, at(100), 5), "pause", at(40))
        assert snap.total_time == 5

    def test_mixed_naive_and_aware_timestamps(self):
        naive_start = at(0).replace(tzinfo=None)
        assert interval_ms(naive_start, at(250)) == 250

    def test_submillisecond_remainder_truncated(self):
        assert interval_ms(at(0), at(10) + timedelta(microseconds=999)) == 10


# ===========================================
# REPLAY
# ===========================================


class TestRebuild:
    def test_direct_stop(self):
        assert rebuild(log(("start", 0), ("stop", 100))).total_time == 100

    def test_pause_resume_stop(self):
        events = log(("start", 0), ("pause", 40), ("start", 60), ("stop", 100))
        snap = rebuild(events)
        assert snap.total_time == 80
        assert snap.status is SessionStatus.COMPLETED

    def test_no_double_counting_after_pause(self):
        snap = rebuild(log(("start", 1_000), ("pause", 4_000), ("stop", 9_000)))
        assert snap.total_time == 3_000

    def test_empty_log(self):
        snap = rebuild([])
        assert snap.status is None
        assert snap.total_time == 0

    def test_status_follows_last_event(self):
        assert rebuild(log(("start", 0))).status is SessionStatus.ACTIVE
        assert rebuild(log(("start", 0), ("pause", 5))).status is SessionStatus.PAUSED

    def test_unordered_input_is_sorted_by_occured_at(self):
        events = log(("start", 0), ("pause", 40), ("start", 60), ("stop", 100))
        assert rebuild(reversed(events)).total_time == 80

    def test_equal_timestamps_ordered_by_sequence(self):
        events = [Ev("start", at(0), 0), Ev("stop", at(50), 2), Ev("pause", at(50), 1)]
        snap = rebuild(events)
        # pause@50 closes the interval, the stop that follows adds nothing
        assert snap.total_time == 50
        assert snap.status is SessionStatus.COMPLETED

    def test_replay_is_idempotent_and_matches_incremental_fold(self):
        logs = [
            log(("start", 0)),
            log(("start", 0), ("stop", 100)),
            log(("start", 0), ("pause", 40), ("start", 60), ("stop", 100)),
            log(("start", 0), ("pause", 10), ("start", 20), ("pause", 35), ("stop", 90)),
            # Privileged repeats: the second pause has no open interval to close.
            log(("start", 0), ("pause", 30), ("pause", 60), ("start", 70), ("stop", 75)),
        ]
        for events in logs:
            first = rebuild(events)
            assert rebuild(events) == first
            assert fold(events) == first


# ===========================================
# UTC NORMALIZATION
# ===========================================


class TestToUtc:
    def test_naive_taken_as_utc(self):
        assert to_utc(datetime(2026, 3, 2, 9, 0)) == T0
        assert to_utc(datetime(2026, 3, 2, 9, 0)).tzinfo is timezone.utc

    def test_offset_converted(self):
        plus_two = timezone(timedelta(hours=2))
        assert to_utc(datetime(2026, 3, 2, 11, 0, tzinfo=plus_two)) == T0

    def test_now_is_aware(self):
        assert utc_now().tzinfo is timezone.utc

    def test_unrepresentable_early_time_clamps_to_min(self):
        early = datetime(1, 1, 1, 0, 30, tzinfo=timezone(timedelta(hours=1)))
        assert to_utc(early) == datetime.min.replace(tzinfo=timezone.utc)
        assert interval_ms(T0, early) == 0

    def test_unrepresentable_late_time_clamps_to_max(self):
        late = datetime(9999, 12, 31, 23, 30, tzinfo=timezone(timedelta(hours=-1)))
        assert to_utc(late) == datetime.max.replace(tzinfo=timezone.utc)
