"""
lukudiplomi.engine.reward — Reward Calculation Pipeline
========================================================

Pure calculation pipeline.  No DB I/O inside the engine: the game service
reads the book, profile, game state and history, freezes them into
snapshots and hands them here.

Pipeline stages:
  pages → Base steps → Difficulty → Grade → Streak → Diversity → Steps
  pages → Base XP    → Difficulty → Grade → Streak (uncapped)  → XP
  history + state   → Achievement check → RewardResult

All multipliers are clamped before they are combined, and the result is
stamped with ``FORMULA_VERSION``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from lukudiplomi.constants import (
    DIFFICULTY_MAX,
    DIFFICULTY_MIN,
    DIVERSITY_BONUS_PER_GENRE,
    FORMULA_VERSION,
    GRADE_BONUS,
    MAX_DIVERSITY_BONUS,
    MAX_STREAK_BONUS,
    PAGES_PER_STEP,
    REWARD_HISTORY_LIMIT,
    STREAK_STEP_BONUS_PER_DAY,
    STREAK_XP_BONUS_PER_DAY,
    XP_PER_PAGE,
    utcnow,
)
from lukudiplomi.engine.achievements import (
    AchievementContext,
    AchievementDefinition,
    check_achievements,
)
from lukudiplomi.engine.snapshots import (
    BookSnapshot,
    GameStateSnapshot,
    ReadingEntry,
    StudentSnapshot,
)
from lukudiplomi.errors import ValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "RewardBonuses",
    "RewardResult",
    "base_steps",
    "calculate_reward",
    "calculate_steps",
    "calculate_xp",
    "difficulty_multiplier",
    "diversity_bonus",
    "grade_bonus",
    "streak_bonus",
    "validate_pages_read",
    "xp_streak_multiplier",
]


# ---------------------------------------------------------------------------
# RewardResult — output of the pipeline
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardBonuses:
    difficulty: float = 1.0
    grade: float = 1.0
    streak: float = 1.0
    diversity: float = 1.0

    def to_dict(self) -> dict[str, float]:
        return {
            "difficulty": self.difficulty,
            "grade": self.grade,
            "streak": self.streak,
            "diversity": self.diversity,
        }


@dataclass
class RewardResult:
    """Final reward calculation output."""

    steps: int = 0
    xp: int = 0
    achievements: list[AchievementDefinition] = field(default_factory=list)
    bonuses: RewardBonuses = field(default_factory=RewardBonuses)
    formula_version: str = FORMULA_VERSION

    @property
    def achievement_ids(self) -> list[int]:
        return [a.id for a in self.achievements]

    def to_dict(self) -> dict:
        return {
            "steps": self.steps,
            "xp": self.xp,
            "achievements": [a.to_dict() for a in self.achievements],
            "bonuses": self.bonuses.to_dict(),
            "formulaVersion": self.formula_version,
        }


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
def validate_pages_read(pages_read: object) -> int:
    """Reject anything that is not a positive integer page count."""
    if isinstance(pages_read, bool) or not isinstance(pages_read, int):
        raise ValidationError("pagesRead must be an integer")
    if pages_read <= 0:
        raise ValidationError("pagesRead must be positive")
    return pages_read


# ---------------------------------------------------------------------------
# Stage functions
# ---------------------------------------------------------------------------
def base_steps(pages_read: int) -> int:
    """One step per ten pages, rounded down."""
    return pages_read // PAGES_PER_STEP


def difficulty_multiplier(difficulty_score: float) -> float:
    """Book difficulty clamped to [0.5, 2.0]."""
    return min(max(difficulty_score, DIFFICULTY_MIN), DIFFICULTY_MAX)


def grade_bonus(recommended_age_min: int, grade_level: int) -> float:
    """Books recommended at or above the student's grade earn a bonus."""
    return GRADE_BONUS if recommended_age_min >= grade_level else 1.0


def streak_bonus(streak: int) -> float:
    """Steps-side streak bonus: 5% per streak day, capped at +50%."""
    return min(1 + streak * STREAK_STEP_BONUS_PER_DAY, MAX_STREAK_BONUS)


def xp_streak_multiplier(streak: int) -> float:
    """XP-side streak term: 10% per streak day, uncapped."""
    return 1 + streak * STREAK_XP_BONUS_PER_DAY


def diversity_bonus(genres: Iterable[str]) -> float:
    """10% per distinct genre, capped at +50%."""
    return min(1 + len(set(genres)) * DIVERSITY_BONUS_PER_GENRE, MAX_DIVERSITY_BONUS)


def calculate_steps(
    pages_read: int,
    difficulty: float = 1.0,
    grade: float = 1.0,
    streak: float = 1.0,
    diversity: float = 1.0,
) -> int:
    return math.floor(base_steps(pages_read) * difficulty * grade * streak * diversity)


def calculate_xp(
    pages_read: int,
    difficulty: float = 1.0,
    grade: float = 1.0,
    streak_days: int = 0,
) -> int:
    base_xp = pages_read * XP_PER_PAGE
    return math.floor(base_xp * difficulty * grade * xp_streak_multiplier(streak_days))


# ---------------------------------------------------------------------------
# Full calculation pipeline
# ---------------------------------------------------------------------------
def calculate_reward(
    book: BookSnapshot,
    student: StudentSnapshot,
    game_state: GameStateSnapshot,
    pages_read: int,
    *,
    history: Sequence[ReadingEntry] = (),
    achievements: Iterable[AchievementDefinition] = (),
    verified_book_count: int = 0,
    now: datetime | None = None,
) -> RewardResult:
    """Run the full reward pipeline for one completed book.

    This is a PURE function — identical inputs always produce an
    identical result.

    Parameters
    ----------
    book : the book that was read
    student : grade level source for the grade bonus
    game_state : current streak and already-unlocked achievements
    pages_read : positive page count claimed for this book
    history : recent reading logs, most recent first; only the first
        ten entries are considered
    achievements : every achievement definition to evaluate
    verified_book_count : teacher-verified logs, counted fresh by the caller
    now : reference time for time-windowed criteria
    """
    pages_read = validate_pages_read(pages_read)
    recent = list(history)[:REWARD_HISTORY_LIMIT]

    # 1–5. Clamped multipliers
    bonuses = RewardBonuses(
        difficulty=difficulty_multiplier(book.difficulty_score),
        grade=grade_bonus(book.recommended_age_min, student.grade_level),
        streak=streak_bonus(game_state.streak),
        diversity=diversity_bonus(entry.genre for entry in recent),
    )

    # 6. Steps
    steps = calculate_steps(
        pages_read,
        bonuses.difficulty,
        bonuses.grade,
        bonuses.streak,
        bonuses.diversity,
    )

    # 7. XP — separate, more generous formula with an uncapped streak term
    xp = calculate_xp(pages_read, bonuses.difficulty, bonuses.grade, game_state.streak)

    # 8. Achievements
    ctx = AchievementContext(
        student_id=student.student_id,
        reading_history=recent,
        game_state=game_state,
        new_book=book,
        verified_book_count=verified_book_count,
        now=now or utcnow(),
    )
    unlocked = check_achievements(achievements, ctx)

    logger.debug(
        "Reward for student %s book %s: %d pages → %d steps, %d xp",
        student.student_id, book.id, pages_read, steps, xp,
    )

    # 9. Version stamp
    return RewardResult(
        steps=steps,
        xp=xp,
        achievements=unlocked,
        bonuses=bonuses,
        formula_version=FORMULA_VERSION,
    )
