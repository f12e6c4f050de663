"""
tests/test_streak.py — Reading streak transitions
==================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from lukudiplomi.engine.streak import advance_streak, hours_between

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class TestAdvanceStreak:
    def test_log_within_a_day_extends(self):
        update = advance_streak(3, 3, NOW - timedelta(hours=24), NOW)
        assert update.streak == 4
        assert update.longest_streak == 4
        assert update.last_book_logged_at == NOW

    def test_exactly_48_hours_still_extends(self):
        update = advance_streak(2, 5, NOW - timedelta(hours=48), NOW)
        assert update.streak == 3
        assert update.longest_streak == 5

    def test_gap_resets_to_one(self):
        update = advance_streak(5, 5, NOW - timedelta(hours=72), NOW)
        assert update.streak == 1
        assert update.longest_streak == 5

    def test_longest_tracks_new_record(self):
        update = advance_streak(9, 8, NOW - timedelta(hours=1), NOW)
        assert update.streak == 10
        assert update.longest_streak == 10

    def test_first_log_leaves_state_unchanged(self):
        assert advance_streak(0, 0, None, NOW) is None

    def test_naive_last_log_treated_as_utc(self):
        naive = (NOW - timedelta(hours=10)).replace(tzinfo=None)
        assert advance_streak(1, 1, naive, NOW).streak == 2


def test_hours_between():
    assert hours_between(NOW - timedelta(hours=30), NOW) == 30
