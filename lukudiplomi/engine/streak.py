"""
lukudiplomi.engine.streak — Reading streak bookkeeping
=======================================================

A streak counts consecutive book logs that are at most 48 hours apart.
A longer gap resets the streak to 1 (the log that broke it still counts).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from lukudiplomi.constants import STREAK_WINDOW_HOURS, ensure_utc


@dataclass(frozen=True, slots=True)
class StreakUpdate:
    streak: int
    longest_streak: int
    last_book_logged_at: datetime


def hours_between(earlier: datetime, later: datetime) -> float:
    return (ensure_utc(later) - ensure_utc(earlier)).total_seconds() / 3600


def advance_streak(
    streak: int,
    longest_streak: int,
    last_book_logged_at: datetime | None,
    now: datetime,
) -> StreakUpdate | None:
    """Compute the streak after a book is logged at *now*.

    Returns ``None`` when no book has been logged before: the first log
    does not start a streak, the state stays as it is.
    """
    if last_book_logged_at is None:
        return None

    if hours_between(last_book_logged_at, now) <= STREAK_WINDOW_HOURS:
        new_streak = streak + 1
    else:
        new_streak = 1

    return StreakUpdate(
        streak=new_streak,
        longest_streak=max(longest_streak, new_streak),
        last_book_logged_at=now,
    )
