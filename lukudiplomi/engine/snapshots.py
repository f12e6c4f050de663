"""
lukudiplomi.engine.snapshots — Immutable inputs to the pure engine
===================================================================

The engine never touches the database.  Services read ORM rows and
freeze them into these dataclasses, so every calculation runs over a
consistent snapshot and can be unit-tested without a session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from lukudiplomi.constants import ensure_utc

if TYPE_CHECKING:
    from lukudiplomi.database.models import Book, GameState, ReadingLog, StudentProfile


@dataclass(frozen=True, slots=True)
class BookSnapshot:
    id: int
    pages: int
    genre: str
    difficulty_score: float
    recommended_age_min: int
    recommended_age_max: int

    @classmethod
    def from_row(cls, book: Book) -> BookSnapshot:
        return cls(
            id=book.id,
            pages=book.pages,
            genre=book.genre,
            difficulty_score=book.difficulty_score,
            recommended_age_min=book.recommended_age_min,
            recommended_age_max=book.recommended_age_max,
        )


@dataclass(frozen=True, slots=True)
class StudentSnapshot:
    student_id: int
    class_id: str | None
    grade_level: int

    @classmethod
    def from_row(cls, profile: StudentProfile) -> StudentSnapshot:
        return cls(
            student_id=profile.student_id,
            class_id=profile.class_id,
            grade_level=profile.grade_level,
        )


@dataclass(frozen=True, slots=True)
class GameStateSnapshot:
    student_id: int
    board_position: int = 0
    xp: int = 0
    level: int = 1
    streak: int = 0
    longest_streak: int = 0
    last_book_logged_at: datetime | None = None
    unlocked_achievements: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def from_row(cls, state: GameState) -> GameStateSnapshot:
        last = state.last_book_logged_at
        return cls(
            student_id=state.student_id,
            board_position=state.board_position,
            xp=state.xp,
            level=state.level,
            streak=state.streak,
            longest_streak=state.longest_streak,
            last_book_logged_at=ensure_utc(last) if last is not None else None,
            unlocked_achievements=frozenset(state.unlocked_achievements),
        )


@dataclass(frozen=True, slots=True)
class ReadingEntry:
    """One reading-history record joined with the book it refers to."""

    book_id: int
    genre: str
    difficulty_score: float
    pages_read: int
    created_at: datetime
    verified: bool = False

    @classmethod
    def from_row(cls, log: ReadingLog) -> ReadingEntry:
        return cls(
            book_id=log.book_id,
            genre=log.book.genre,
            difficulty_score=log.book.difficulty_score,
            pages_read=log.pages_read,
            created_at=ensure_utc(log.created_at),
            verified=bool(log.verified_by_teacher),
        )
