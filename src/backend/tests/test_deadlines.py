"""Tests for deadline and validity classification."""

from datetime import datetime, timedelta, timezone

import pytest

from marketplace.services.deadlines import (
    URGENCY_ORDER,
    DeadlineUrgency,
    as_utc,
    classify_deadline,
    days_until,
    is_past,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestClassifyDeadline:
    def test_no_deadline_is_never_urgent(self):
        status = classify_deadline(None, NOW)
        assert status.urgency is DeadlineUrgency.NONE
        assert status.days_left is None
        assert not status.is_urgent
        assert not status.is_expired

    def test_two_days_out_is_urgent(self):
        status = classify_deadline(NOW + timedelta(days=2), NOW)
        assert status.urgency is DeadlineUrgency.URGENT
        assert status.days_left == 2
        assert status.is_urgent

    def test_expired_once_now_passes_the_deadline(self):
        deadline = NOW + timedelta(days=2)
        status = classify_deadline(deadline, NOW + timedelta(days=3))
        assert status.urgency is DeadlineUrgency.EXPIRED
        assert status.is_expired

    def test_exact_deadline_instant_is_not_expired(self):
        status = classify_deadline(NOW, NOW)
        assert status.urgency is DeadlineUrgency.DUE_TODAY
        assert status.days_left == 0

    def test_one_millisecond_after_is_expired(self):
        status = classify_deadline(NOW, NOW + timedelta(milliseconds=1))
        assert status.urgency is DeadlineUrgency.EXPIRED

    @pytest.mark.parametrize(
        "delta, urgency, days_left",
        [
            (timedelta(hours=1), DeadlineUrgency.DUE_TOMORROW, 1),
            (timedelta(days=1), DeadlineUrgency.DUE_TOMORROW, 1),
            (timedelta(days=1, milliseconds=1), DeadlineUrgency.URGENT, 2),
            (timedelta(days=3), DeadlineUrgency.URGENT, 3),
            (timedelta(days=3, hours=1), DeadlineUrgency.NOT_URGENT, 4),
            (timedelta(days=30), DeadlineUrgency.NOT_URGENT, 30),
        ],
    )
    def test_days_left_is_rounded_up(self, delta, urgency, days_left):
        status = classify_deadline(NOW + delta, NOW)
        assert status.urgency is urgency
        assert status.days_left == days_left

    def test_naive_datetimes_are_read_as_utc(self):
        naive = datetime(2026, 3, 4, 9, 0)
        aware = naive.replace(tzinfo=timezone.utc)
        assert classify_deadline(naive, NOW) == classify_deadline(aware, NOW)

    def test_other_timezones_are_normalized(self):
        cet = timezone(timedelta(hours=1))
        deadline = datetime(2026, 3, 4, 10, 0, tzinfo=cet)  # 09:00 UTC
        assert classify_deadline(deadline, NOW).days_left == 2

    def test_urgency_only_moves_forward_as_time_passes(self):
        deadline = NOW + timedelta(days=6)
        previous = -1
        for hours in range(0, 24 * 8, 5):
            status = classify_deadline(deadline, NOW + timedelta(hours=hours))
            rank = URGENCY_ORDER[status.urgency]
            assert rank >= previous
            previous = rank
        assert status.is_expired


class TestHelpers:
    def test_is_past_is_strict(self):
        assert not is_past(NOW, NOW)
        assert is_past(NOW, NOW + timedelta(microseconds=1000))
        assert not is_past(None, NOW)

    def test_days_until_counts_partial_days(self):
        assert days_until(NOW + timedelta(hours=25), NOW) == 2
        assert days_until(NOW, NOW) == 0

    def test_as_utc_converts_offsets(self):
        value = datetime(2026, 3, 2, 12, 0, tzinfo=timezone(timedelta(hours=3)))
        assert as_utc(value) == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
        assert as_utc(value).utcoffset() == timedelta(0)
