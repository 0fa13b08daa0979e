"""Tests for the pure subscription lifecycle calculator."""

from dataclasses import replace
from datetime import date, datetime, timedelta

import pytest

from milkdrop.subscriptions.errors import CorruptState, InvalidTransition, MalformedDuration
from milkdrop.subscriptions.lifecycle import (
    MAX_TOTAL_PAUSED_DAYS,
    SubscriptionState,
    SubscriptionStatus,
    cancel,
    compute_end_date,
    compute_remaining_days,
    days_between,
    derive_effective_status,
    expire,
    parse_duration_days,
    pause,
    resume,
)

NOW = datetime(2024, 3, 10, 9, 30)


def _state(status=SubscriptionStatus.ACTIVE, end_date=date(2024, 3, 20), **kwargs) -> SubscriptionState:
    return SubscriptionState(status=status, start_date=date(2024, 3, 1), end_date=end_date, **kwargs)


class TestComputeEndDate:
    def test_six_day_plan_gets_seven_days(self):
        assert compute_end_date(date(2024, 1, 1), "6days") == date(2024, 1, 8)

    def test_fifteen_day_plan_gets_seventeen_days(self):
        assert compute_end_date(date(2024, 1, 1), "15days") == date(2024, 1, 18)

    def test_no_bonus_for_other_durations(self):
        assert compute_end_date(date(2024, 1, 1), "30days") == date(2024, 1, 31)

    def test_unparsable_duration_falls_back_to_default(self, caplog):
        """A malformed code is logged and treated as the default plan length."""
        with caplog.at_level("WARNING"):
            assert compute_end_date(date(2024, 1, 1), "monthly") == date(2024, 1, 8)
        assert "monthly" in caplog.text

    def test_missing_duration_falls_back_to_default(self):
        assert compute_end_date(date(2024, 1, 1), None) == date(2024, 1, 8)

    def test_custom_default(self):
        assert compute_end_date(date(2024, 1, 1), "", default_days=15) == date(2024, 1, 18)

    def test_crosses_month_boundary(self):
        assert compute_end_date(date(2024, 2, 25), "6days") == date(2024, 3, 3)


class TestParseDuration:
    def test_leading_integer(self):
        assert parse_duration_days("15days") == 15

    def test_malformed_raises(self):
        with pytest.raises(MalformedDuration):
            parse_duration_days("weekly")

    def test_malformed_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_duration_days(None)


class TestDaysBetween:
    def test_counts_calendar_days(self):
        assert days_between(datetime(2024, 3, 1, 23, 0), datetime(2024, 3, 2, 1, 0)) == 1

    def test_negative_when_end_before_start(self):
        assert days_between(date(2024, 3, 5), date(2024, 3, 1)) == -4


class TestComputeRemainingDays:
    def test_active_counts_from_now(self):
        assert compute_remaining_days(_state(), NOW) == 10

    def test_active_past_end_is_zero(self):
        assert compute_remaining_days(_state(end_date=date(2024, 3, 1)), NOW) == 0

    def test_paused_is_frozen_at_paused_at(self):
        state = _state(status=SubscriptionStatus.PAUSED, paused_at=datetime(2024, 3, 5, 8, 0))
        assert compute_remaining_days(state, NOW) == 15
        assert compute_remaining_days(state, NOW + timedelta(days=30)) == 15

    def test_paused_without_paused_at_is_zero(self):
        state = _state(status=SubscriptionStatus.PAUSED, paused_at=None)
        assert compute_remaining_days(state, NOW) == 0

    @pytest.mark.parametrize("status", [SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED])
    def test_terminal_statuses_are_zero(self, status):
        assert compute_remaining_days(_state(status=status), NOW) == 0

    def test_missing_end_date_is_zero(self):
        assert compute_remaining_days(_state(end_date=None), NOW) == 0

    def test_inactive_counts_from_now(self):
        assert compute_remaining_days(_state(status=SubscriptionStatus.INACTIVE), NOW) == 10

    @pytest.mark.parametrize("offset", [-400, -1, 0, 1, 400])
    def test_never_negative(self, offset):
        for status in SubscriptionStatus:
            state = _state(status=status, paused_at=NOW, end_date=NOW.date() + timedelta(days=offset))
            assert compute_remaining_days(state, NOW) >= 0


class TestDeriveEffectiveStatus:
    def test_overdue_active_is_expired(self):
        assert derive_effective_status(_state(end_date=date(2024, 3, 9)), NOW) == SubscriptionStatus.EXPIRED

    def test_last_day_is_still_active(self):
        assert derive_effective_status(_state(end_date=date(2024, 3, 10)), NOW) == SubscriptionStatus.ACTIVE

    def test_overdue_paused_stays_paused(self):
        state = _state(status=SubscriptionStatus.PAUSED, end_date=date(2024, 3, 1), paused_at=NOW)
        assert derive_effective_status(state, NOW) == SubscriptionStatus.PAUSED

    @pytest.mark.parametrize("status", list(SubscriptionStatus))
    def test_otherwise_returns_stored_status(self, status):
        state = _state(status=status, end_date=date(2024, 4, 1))
        assert derive_effective_status(state, NOW) == status

    def test_is_pure_and_idempotent(self):
        state = _state(end_date=date(2024, 3, 1))
        first = derive_effective_status(state, NOW)
        second = derive_effective_status(state, NOW)
        assert first == second
        assert state.status == SubscriptionStatus.ACTIVE


class TestPause:
    def test_pause_active(self):
        paused = pause(_state(), NOW)
        assert paused.status == SubscriptionStatus.PAUSED
        assert paused.paused_at == NOW
        assert paused.end_date == date(2024, 3, 20)

    @pytest.mark.parametrize(
        "status",
        [SubscriptionStatus.PAUSED, SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED, SubscriptionStatus.INACTIVE],
    )
    def test_pause_requires_active(self, status):
        with pytest.raises(InvalidTransition) as exc_info:
            pause(_state(status=status, paused_at=NOW), NOW)
        assert exc_info.value.action == "pause"
        assert exc_info.value.current_status == status.value


class TestResume:
    def test_resume_extends_end_date_by_paused_days(self):
        paused = pause(_state(), NOW)
        resumed = resume(paused, NOW + timedelta(days=4))

        assert resumed.status == SubscriptionStatus.ACTIVE
        assert resumed.end_date == date(2024, 3, 24)
        assert resumed.total_paused_days == 4
        assert resumed.paused_at is None
        assert resumed.resumed_at == NOW + timedelta(days=4)

    @pytest.mark.parametrize("days", [0, 1, 7, 30])
    def test_pause_resume_round_trip_shifts_by_d(self, days):
        original = _state(total_paused_days=3)
        resumed = resume(pause(original, NOW), NOW + timedelta(days=days))
        assert resumed.end_date == original.end_date + timedelta(days=days)
        assert resumed.total_paused_days == 3 + days

    def test_remaining_days_preserved_across_pause(self):
        original = _state()
        before = compute_remaining_days(original, NOW)
        resumed = resume(pause(original, NOW), NOW + timedelta(days=9))
        assert compute_remaining_days(resumed, NOW + timedelta(days=9)) == before

    def test_total_paused_days_clamped(self):
        paused = pause(_state(total_paused_days=MAX_TOTAL_PAUSED_DAYS - 2), NOW)
        resumed = resume(paused, NOW + timedelta(days=10))
        assert resumed.total_paused_days == MAX_TOTAL_PAUSED_DAYS
        # end_date still moves by the real elapsed days
        assert resumed.end_date == date(2024, 3, 30)

    def test_custom_cap(self):
        paused = pause(_state(), NOW)
        assert resume(paused, NOW + timedelta(days=10), max_total_paused_days=5).total_paused_days == 5

    def test_paused_at_in_future_credits_nothing(self):
        paused = _state(status=SubscriptionStatus.PAUSED, paused_at=NOW + timedelta(days=2))
        resumed = resume(paused, NOW)
        assert resumed.end_date == date(2024, 3, 20)
        assert resumed.total_paused_days == 0

    def test_missing_paused_at_is_corrupt(self):
        with pytest.raises(CorruptState):
            resume(_state(status=SubscriptionStatus.PAUSED, paused_at=None), NOW)

    def test_missing_end_date_is_corrupt(self):
        with pytest.raises(CorruptState):
            resume(_state(status=SubscriptionStatus.PAUSED, paused_at=NOW, end_date=None), NOW)

    @pytest.mark.parametrize(
        "status", [SubscriptionStatus.ACTIVE, SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED]
    )
    def test_resume_requires_paused(self, status):
        with pytest.raises(InvalidTransition):
            resume(_state(status=status), NOW)

    def test_input_state_is_not_mutated(self):
        paused = pause(_state(), NOW)
        snapshot = replace(paused)
        resume(paused, NOW + timedelta(days=3))
        assert paused == snapshot


class TestExpire:
    def test_expire_overdue_active(self):
        assert expire(_state(end_date=date(2024, 3, 1)), NOW).status == SubscriptionStatus.EXPIRED

    def test_expire_not_overdue_rejected(self):
        with pytest.raises(InvalidTransition):
            expire(_state(), NOW)

    def test_expire_paused_rejected(self):
        with pytest.raises(InvalidTransition):
            expire(_state(status=SubscriptionStatus.PAUSED, paused_at=NOW, end_date=date(2024, 3, 1)), NOW)


class TestCancel:
    @pytest.mark.parametrize(
        "status", [SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED, SubscriptionStatus.INACTIVE]
    )
    def test_cancel_live(self, status):
        state = _state(status=status, paused_at=NOW if status == SubscriptionStatus.PAUSED else None)
        cancelled = cancel(state, NOW)
        assert cancelled.status == SubscriptionStatus.CANCELLED
        assert cancelled.end_date == state.end_date

    def test_cancel_twice_rejected(self):
        with pytest.raises(InvalidTransition, match="already cancelled"):
            cancel(_state(status=SubscriptionStatus.CANCELLED), NOW)

    def test_cancel_expired_rejected(self):
        with pytest.raises(InvalidTransition):
            cancel(_state(status=SubscriptionStatus.EXPIRED), NOW)
