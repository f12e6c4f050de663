"""
lukudiplomi.constants — Shared Constants & Helpers
===================================================

Single source of truth for the reward formula constants, the leveling
formula and board themes.  Import from here instead of duplicating in
engine modules, services and routes.

Changing any value in the *formula* section changes what students are
awarded, so bump :data:`FORMULA_VERSION` alongside it.
"""

from __future__ import annotations

from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Formula versioning — stamped on every reward result and board config
# ---------------------------------------------------------------------------
FORMULA_VERSION = "1.0"

# ---------------------------------------------------------------------------
# Reward formula
# ---------------------------------------------------------------------------
PAGES_PER_STEP = 10
XP_PER_PAGE = 2

DIFFICULTY_MIN = 0.5
DIFFICULTY_MAX = 2.0

GRADE_BONUS = 1.2

STREAK_STEP_BONUS_PER_DAY = 0.05
STREAK_XP_BONUS_PER_DAY = 0.1
MAX_STREAK_BONUS = 1.5

DIVERSITY_BONUS_PER_GENRE = 0.1
MAX_DIVERSITY_BONUS = 1.5

# How many recent reading logs feed the diversity bonus and achievements
REWARD_HISTORY_LIMIT = 10

# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------
STREAK_WINDOW_HOURS = 48

# ---------------------------------------------------------------------------
# Reading log bounds
# ---------------------------------------------------------------------------
# A claimed page count may exceed the catalogue page count by this factor
# (different editions), never more.
MAX_PAGES_RATIO = 1.5
RATING_MIN = 1
RATING_MAX = 5


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
XP_PER_LEVEL = 1000


def level_for_xp(xp: int) -> int:
    """Level reached with *xp* total experience.

    Linear: every 1000 XP is one level, starting at level 1.
    """
    return max(xp, 0) // XP_PER_LEVEL + 1


# ---------------------------------------------------------------------------
# Board themes
# ---------------------------------------------------------------------------
BOARD_BASE_LENGTH = 50
BOARD_LENGTH_PER_GRADE = 10
CHALLENGE_TILE_PROBABILITY = 0.1

THEME_BY_MAX_GRADE: list[tuple[int, str]] = [
    (3, "forest"),
    (6, "ocean"),
    (9, "space"),
]
FALLBACK_THEME = "mountain"


def theme_for_grade(grade_level: int) -> str:
    """Board theme for a student's grade level (one theme per board)."""
    for max_grade, theme in THEME_BY_MAX_GRADE:
        if grade_level <= max_grade:
            return theme
    return FALLBACK_THEME


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
