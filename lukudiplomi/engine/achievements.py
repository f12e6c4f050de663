"""
lukudiplomi.engine.achievements — Achievement Criteria Evaluator
=================================================================

Handler-registry implementation of achievement criteria.  Each criterion
key maps to a pure handler ``(threshold, ctx) -> bool``; an achievement
unlocks when every key present in its criteria holds (absent keys are
vacuously satisfied).

Criteria documents are parsed into :class:`AchievementCriteria` when an
achievement is *defined*, so malformed documents never reach evaluation.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta

from lukudiplomi.constants import ensure_utc, utcnow
from lukudiplomi.engine.snapshots import BookSnapshot, GameStateSnapshot, ReadingEntry
from lukudiplomi.errors import ValidationError

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=7)


# ---------------------------------------------------------------------------
# Structured criteria
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AchievementCriteria:
    """Fixed set of optional thresholds.  ``None`` means "not required".

    Parameters
    ----------
    books_in_7_days : Reading logs created in the trailing 7 days.
    total_books : Teacher-verified reading logs, all time.
    streak_days : Current streak.
    unique_genres : Distinct genres across the recent reading history.
    total_pages : Pages read across the recent reading history.
    difficulty_min : Average difficulty of the recent reading history.
    """

    books_in_7_days: int | None = None
    total_books: int | None = None
    streak_days: int | None = None
    unique_genres: int | None = None
    total_pages: int | None = None
    difficulty_min: float | None = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, object] | None) -> AchievementCriteria:
        """Validate a criteria document.

        Raises
        ------
        ValidationError
            On unknown keys, non-numeric thresholds, negative counts or a
            non-positive ``difficulty_min``.
        """
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ValidationError("Achievement criteria must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = set(raw) - known
        if unknown:
            raise ValidationError(
                f"Unknown achievement criteria: {', '.join(sorted(unknown))}"
            )

        values: dict[str, int | float] = {}
        for key, value in raw.items():
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int | float):
                raise ValidationError(f"Criterion {key!r} must be a number")
            if key == "difficulty_min":
                if not math.isfinite(value) or value <= 0:
                    raise ValidationError("difficulty_min must be a positive number")
                values[key] = float(value)
                continue
            if isinstance(value, float):
                if not value.is_integer():
                    raise ValidationError(f"Criterion {key!r} must be a whole number")
                value = int(value)
            if value < 0:
                raise ValidationError(f"Criterion {key!r} must not be negative")
            values[key] = value
        return cls(**values)

    def to_dict(self) -> dict[str, int | float]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def items(self) -> Iterable[tuple[str, int | float]]:
        return self.to_dict().items()


@dataclass(frozen=True, slots=True)
class AchievementDefinition:
    """An achievement as the evaluator sees it."""

    id: int
    key: str
    name: str
    criteria: AchievementCriteria
    points: int = 0
    tier: str = "bronze"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "name": self.name,
            "points": self.points,
            "tier": self.tier,
        }


# ---------------------------------------------------------------------------
# Evaluation context
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AchievementContext:
    """Snapshot passed to every criterion handler.

    Parameters
    ----------
    student_id : The student being evaluated.
    reading_history : Recent reading logs, most recent first.
    game_state : Current game state (``unlocked_achievements`` gates re-firing).
    new_book : The book that triggered this check, if any.
    verified_book_count : Teacher-verified logs counted from storage at
        evaluation time — independent of *reading_history*.
    now : Reference time for the trailing 7-day window.
    """

    student_id: int
    reading_history: Sequence[ReadingEntry] = ()
    game_state: GameStateSnapshot | None = None
    new_book: BookSnapshot | None = None
    verified_book_count: int = 0
    now: datetime = field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Criterion handlers — pure functions (threshold, ctx) → bool
# ---------------------------------------------------------------------------
def _check_books_in_7_days(threshold: int, ctx: AchievementContext) -> bool:
    cutoff = ensure_utc(ctx.now) - RECENT_WINDOW
    recent = [e for e in ctx.reading_history if ensure_utc(e.created_at) > cutoff]
    return len(recent) >= threshold


def _check_total_books(threshold: int, ctx: AchievementContext) -> bool:
    return ctx.verified_book_count >= threshold


def _check_streak_days(threshold: int, ctx: AchievementContext) -> bool:
    streak = ctx.game_state.streak if ctx.game_state is not None else 0
    return streak >= threshold


def _check_unique_genres(threshold: int, ctx: AchievementContext) -> bool:
    return len({e.genre for e in ctx.reading_history}) >= threshold


def _check_total_pages(threshold: int, ctx: AchievementContext) -> bool:
    return sum(e.pages_read for e in ctx.reading_history) >= threshold


def _check_difficulty_min(threshold: float, ctx: AchievementContext) -> bool:
    # The average of an empty history is undefined — never satisfied.
    if not ctx.reading_history:
        return False
    total = sum(e.difficulty_score for e in ctx.reading_history)
    return total / len(ctx.reading_history) >= threshold


CRITERION_HANDLERS: dict[str, Callable[[int | float, AchievementContext], bool]] = {
    "books_in_7_days": _check_books_in_7_days,
    "total_books": _check_total_books,
    "streak_days": _check_streak_days,
    "unique_genres": _check_unique_genres,
    "total_pages": _check_total_pages,
    "difficulty_min": _check_difficulty_min,
}


def meets_criteria(criteria: AchievementCriteria, ctx: AchievementContext) -> bool:
    """True when every criterion present in *criteria* holds for *ctx*."""
    for key, threshold in criteria.items():
        if not CRITERION_HANDLERS[key](threshold, ctx):
            return False
    return True


# ---------------------------------------------------------------------------
# Main check function
# ---------------------------------------------------------------------------
def check_achievements(
    definitions: Iterable[AchievementDefinition],
    ctx: AchievementContext,
) -> list[AchievementDefinition]:
    """Return the achievements newly unlocked by *ctx*.

    Achievements already present in ``ctx.game_state.unlocked_achievements``
    are skipped entirely, so an achievement never fires twice.
    """
    already = ctx.game_state.unlocked_achievements if ctx.game_state else frozenset()
    unlocked: list[AchievementDefinition] = []

    for definition in definitions:
        if definition.id in already:
            continue
        if meets_criteria(definition.criteria, ctx):
            unlocked.append(definition)
            logger.info(
                "Achievement unlocked: %s (id=%d) for student %s",
                definition.key, definition.id, ctx.student_id,
            )

    return unlocked
