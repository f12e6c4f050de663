"""
lukudiplomi.services.game_service — Storage-bound game operations
==================================================================

Shared service module used by the HTTP layer and by scripts.  Reads the
authoritative rows, freezes them into snapshots, runs the pure engine and
writes the results back.

GameState writes are guarded twice against lost updates:

* :class:`StudentLocks` serializes reward and streak updates for one
  student inside this process;
* steps and XP are applied with an atomic ``UPDATE … SET xp = xp + :delta``
  and the game-state row is read ``FOR UPDATE``, so concurrent writers in
  other processes add up instead of overwriting each other.

The cache is never consulted here; services only invalidate it.
"""

from __future__ import annotations

import hashlib
import logging
import random
import threading
import weakref
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lukudiplomi.constants import (
    MAX_PAGES_RATIO,
    RATING_MAX,
    RATING_MIN,
    REWARD_HISTORY_LIMIT,
    XP_PER_LEVEL,
    level_for_xp,
    utcnow,
)
from lukudiplomi.database.engine import get_session
from lukudiplomi.database.models import (
    Achievement,
    AuditAction,
    AuditLog,
    Book,
    GameState,
    ReadingLog,
    StudentAchievement,
    StudentProfile,
    User,
    UserRole,
)
from lukudiplomi.engine import reward as reward_engine
from lukudiplomi.engine.achievements import AchievementCriteria, AchievementDefinition
from lukudiplomi.engine.anti_cheat import MovementCheck, check_movement
from lukudiplomi.engine.board import BoardConfig, generate_board
from lukudiplomi.engine.reward import RewardResult, validate_pages_read
from lukudiplomi.engine.snapshots import (
    BookSnapshot,
    GameStateSnapshot,
    ReadingEntry,
    StudentSnapshot,
)
from lukudiplomi.engine.streak import advance_streak
from lukudiplomi.errors import NotFound, ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from lukudiplomi.engine.cache import Cache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-student serialization
# ---------------------------------------------------------------------------
class StudentLocks:
    """Registry of re-entrant locks keyed by student id.

    Thread-safe.  Re-entrant so that a book log holding the lock can run
    the streak update without deadlocking.

    Entries are weak: a lock lives only while some caller holds it, so the
    registry is bounded by the number of students with a request in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[int, threading.RLock] = (
            weakref.WeakValueDictionary()
        )

    def for_student(self, student_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(student_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[student_id] = lock
            return lock

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Module-level default instance (tests can inject their own)
_default_locks = StudentLocks()


def get_default_locks() -> StudentLocks:
    return _default_locks


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BookLogResult:
    reading_log_id: int
    reward: RewardResult
    game_state: GameStateSnapshot

    def to_dict(self) -> dict:
        return {
            "readingLogId": self.reading_log_id,
            "reward": self.reward.to_dict(),
            "gameState": game_state_to_dict(self.game_state),
        }


def game_state_to_dict(state: GameStateSnapshot) -> dict:
    last = state.last_book_logged_at
    return {
        "studentId": state.student_id,
        "boardPosition": state.board_position,
        "xp": state.xp,
        "level": state.level,
        "streak": state.streak,
        "longestStreak": state.longest_streak,
        "lastBookLoggedAt": last.isoformat() if last is not None else None,
        "unlockedAchievements": sorted(state.unlocked_achievements),
    }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def get_book(session: Session, book_id: int) -> Book:
    book = session.get(Book, book_id)
    if book is None:
        raise NotFound("Book", book_id)
    return book


def get_profile(session: Session, student_id: int) -> StudentProfile:
    profile = session.get(StudentProfile, student_id)
    if profile is None:
        raise NotFound("StudentProfile", student_id)
    return profile


def get_game_state(
    session: Session, student_id: int, *, for_update: bool = False
) -> GameState:
    stmt = select(GameState).where(GameState.student_id == student_id)
    if for_update:
        stmt = stmt.with_for_update()
    state = session.scalar(stmt)
    if state is None:
        raise NotFound("GameState", student_id)
    return state


def recent_history(
    session: Session, student_id: int, limit: int = REWARD_HISTORY_LIMIT
) -> list[ReadingEntry]:
    """Most recent reading logs first, verified or not."""
    rows = session.scalars(
        select(ReadingLog)
        .where(ReadingLog.student_id == student_id)
        .order_by(ReadingLog.created_at.desc(), ReadingLog.id.desc())
        .limit(limit)
    ).all()
    return [ReadingEntry.from_row(r) for r in rows]


def verified_history(session: Session, student_id: int) -> list[ReadingEntry]:
    rows = session.scalars(
        select(ReadingLog)
        .where(
            ReadingLog.student_id == student_id,
            ReadingLog.verified_by_teacher.is_(True),
        )
        .order_by(ReadingLog.created_at.desc(), ReadingLog.id.desc())
    ).all()
    return [ReadingEntry.from_row(r) for r in rows]


def count_verified_books(session: Session, student_id: int) -> int:
    return session.scalar(
        select(func.count())
        .select_from(ReadingLog)
        .where(
            ReadingLog.student_id == student_id,
            ReadingLog.verified_by_teacher.is_(True),
        )
    ) or 0


def load_achievement_definitions(session: Session) -> list[AchievementDefinition]:
    rows = session.scalars(select(Achievement).order_by(Achievement.id)).all()
    return [
        AchievementDefinition(
            id=a.id,
            key=a.key,
            name=a.name,
            criteria=AchievementCriteria.from_dict(a.criteria),
            points=a.points,
            tier=a.tier,
        )
        for a in rows
    ]


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
def register_student(
    engine: Engine,
    *,
    name: str,
    email: str,
    grade_level: int,
    class_id: str | None = None,
    reading_goal: int = 10,
) -> int:
    """Create a student with a profile and a fresh game state.  Returns the id."""
    if isinstance(grade_level, bool) or not isinstance(grade_level, int) or grade_level <= 0:
        raise ValidationError("gradeLevel must be a positive integer")

    with get_session(engine) as session:
        user = User(name=name, email=email, role=UserRole.STUDENT.value)
        user.profile = StudentProfile(
            class_id=class_id,
            grade_level=grade_level,
            reading_goal=reading_goal,
        )
        user.game_state = GameState(
            board_position=0,
            xp=0,
            level=level_for_xp(0),
            streak=0,
            longest_streak=0,
        )
        session.add(user)
        session.flush()
        logger.info("Registered student %s (grade %d)", user.id, grade_level)
        return user.id


# ---------------------------------------------------------------------------
# Reward calculation (read-only)
# ---------------------------------------------------------------------------
def _calculate_reward(
    session: Session,
    book_id: int,
    student_id: int,
    pages_read: int,
    now: datetime,
    *,
    prospective: bool = False,
) -> RewardResult:
    """Run the engine over stored state.

    With *prospective*, the book is treated as if it had just been logged:
    an unsaved entry for it heads the history, as the stored log does
    inside :func:`log_book`.
    """
    book = get_book(session, book_id)
    profile = get_profile(session, student_id)
    state = get_game_state(session, student_id)
    book_snapshot = BookSnapshot.from_row(book)

    if prospective:
        pending = ReadingEntry(
            book_id=book.id,
            genre=book.genre,
            difficulty_score=book.difficulty_score,
            pages_read=pages_read,
            created_at=now,
        )
        history = [pending, *recent_history(session, student_id, REWARD_HISTORY_LIMIT - 1)]
    else:
        history = recent_history(session, student_id)

    return reward_engine.calculate_reward(
        book_snapshot,
        StudentSnapshot.from_row(profile),
        GameStateSnapshot.from_row(state),
        pages_read,
        history=history,
        achievements=load_achievement_definitions(session),
        verified_book_count=count_verified_books(session, student_id),
        now=now,
    )


def calculate_reward(
    engine: Engine,
    book_id: int,
    student_id: int,
    pages_read: int,
    *,
    now: datetime | None = None,
) -> RewardResult:
    """Preview the reward :func:`log_book` would grant for this book now.

    Nothing is written.  The book counts towards the history exactly as
    the stored log would, so the preview matches the logged reward.

    Raises
    ------
    ValidationError
        If *pages_read* is not a positive integer.
    NotFound
        If the book, the student profile or the game state is missing.
    """
    validate_pages_read(pages_read)
    with Session(engine) as session:
        return _calculate_reward(
            session, book_id, student_id, pages_read, now or utcnow(), prospective=True
        )


# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------
def _apply_streak(state: GameState, now: datetime) -> bool:
    """Advance *state*'s streak in place.  Returns False when unchanged."""
    result = advance_streak(
        state.streak, state.longest_streak, state.last_book_logged_at, now
    )
    if result is None:
        return False
    state.streak = result.streak
    state.longest_streak = result.longest_streak
    state.last_book_logged_at = result.last_book_logged_at
    return True


def update_streak(
    engine: Engine,
    student_id: int,
    *,
    now: datetime | None = None,
    locks: StudentLocks | None = None,
) -> GameStateSnapshot:
    """Advance the streak after a logged book and persist it.

    Call exactly once per book-completion event.  A student who has never
    logged a book keeps their state unchanged.
    """
    now = now or utcnow()
    with (locks or _default_locks).for_student(student_id):
        with get_session(engine) as session:
            state = get_game_state(session, student_id, for_update=True)
            if _apply_streak(state, now):
                session.flush()
                logger.info(
                    "Streak for student %s → %d (longest %d)",
                    student_id, state.streak, state.longest_streak,
                )
            return GameStateSnapshot.from_row(state)


# ---------------------------------------------------------------------------
# Logging a book — the full calling-layer flow
# ---------------------------------------------------------------------------
def _metadata_hash(student_id: int, book_id: int, pages_read: int, now: datetime) -> str:
    stamp = int(now.timestamp() * 1000)
    raw = f"{student_id}:{book_id}:{pages_read}:{stamp}"
    return hashlib.sha256(raw.encode()).hexdigest()


def _validate_log_input(book: Book, pages_read: int, rating: int | None) -> None:
    if pages_read > book.pages * MAX_PAGES_RATIO:
        raise ValidationError(
            f"Pages read exceeds reasonable book length (book has {book.pages} pages)"
        )
    if rating is not None:
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise ValidationError("rating must be an integer")
        if not RATING_MIN <= rating <= RATING_MAX:
            raise ValidationError(f"Rating must be between {RATING_MIN} and {RATING_MAX}")


def _record_achievements(
    session: Session, student_id: int, achievement_ids: list[int], now: datetime
) -> None:
    for achievement_id in achievement_ids:
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(StudentAchievement(
                    student_id=student_id,
                    achievement_id=achievement_id,
                    unlocked_at=now,
                ))
                session.flush()
        except IntegrityError:
            # Already unlocked by a concurrent request; the set stays unique.
            logger.info(
                "Achievement %d already recorded for student %s",
                achievement_id, student_id,
            )


def log_book(
    engine: Engine,
    student_id: int,
    book_id: int,
    pages_read: int,
    *,
    review_text: str | None = None,
    rating: int | None = None,
    now: datetime | None = None,
    cache: Cache | None = None,
    locks: StudentLocks | None = None,
) -> BookLogResult:
    """Record a finished book and apply its reward.

    1. Validate the claim (page count, rating)
    2. Append the ReadingLog
    3. Calculate the reward from stored state
    4. Atomically add steps / XP and recompute the level
    5. Record newly unlocked achievements
    6. Fill the log's awarded amounts and formula version
    7. Advance the streak
    8. Invalidate cached board and leaderboards

    Rewards are granted immediately, before teacher verification.
    """
    pages_read = validate_pages_read(pages_read)
    now = now or utcnow()

    with (locks or _default_locks).for_student(student_id):
        with get_session(engine) as session:
            book = get_book(session, book_id)
            get_profile(session, student_id)
            state = get_game_state(session, student_id, for_update=True)
            _validate_log_input(book, pages_read, rating)

            log = ReadingLog(
                student_id=student_id,
                book_id=book_id,
                pages_read=pages_read,
                review_text=review_text,
                rating=rating,
                metadata_hash=_metadata_hash(student_id, book_id, pages_read, now),
                verified_by_teacher=False,
                created_at=now,
            )
            session.add(log)
            session.flush()

            reward = _calculate_reward(session, book_id, student_id, pages_read, now)

            session.execute(
                update(GameState)
                .where(GameState.student_id == student_id)
                .values(
                    board_position=GameState.board_position + reward.steps,
                    xp=GameState.xp + reward.xp,
                    level=(GameState.xp + reward.xp) // XP_PER_LEVEL + 1,
                )
                .execution_options(synchronize_session=False)
            )
            _record_achievements(session, student_id, reward.achievement_ids, now)

            log.points_awarded = reward.xp
            log.steps_awarded = reward.steps
            log.formula_version = reward.formula_version

            session.refresh(state)
            if not _apply_streak(state, now):
                # First log: no streak yet, but the next log can start one
                state.last_book_logged_at = now
            session.flush()

            snapshot = GameStateSnapshot.from_row(state)
            log_id = log.id

    logger.info(
        "Student %s logged book %s: +%d steps, +%d xp, %d achievements",
        student_id, book_id, reward.steps, reward.xp, len(reward.achievements),
    )
    if cache is not None:
        invalidate_student_views(cache, student_id)

    return BookLogResult(reading_log_id=log_id, reward=reward, game_state=snapshot)


def invalidate_student_views(cache: Cache, student_id: int) -> None:
    """Drop cached renderings that depend on a student's progress."""
    cache.delete(f"board:{student_id}")
    cache.invalidate_pattern("leaderboard:*")


# ---------------------------------------------------------------------------
# Teacher verification
# ---------------------------------------------------------------------------
def verify_reading_log(
    engine: Engine,
    log_id: int,
    teacher_id: int,
    *,
    now: datetime | None = None,
    cache: Cache | None = None,
) -> ReadingLog:
    """Mark a reading log as verified by a teacher.

    Rewards were granted when the book was logged; verification neither
    grants more nor revokes anything.
    """
    with get_session(engine) as session:
        log = session.get(ReadingLog, log_id)
        if log is None:
            raise NotFound("ReadingLog", log_id)
        if not log.verified_by_teacher:
            log.verified_by_teacher = True
            log.verified_by = teacher_id
            log.verified_at = now or utcnow()
            logger.info("Reading log %d verified by teacher %s", log_id, teacher_id)
        student_id = log.student_id

    if cache is not None:
        invalidate_student_views(cache, student_id)
    return log


# ---------------------------------------------------------------------------
# Board generation
# ---------------------------------------------------------------------------
def generate_board_config(
    engine: Engine,
    student_id: int,
    *,
    rng: random.Random | None = None,
) -> BoardConfig:
    """Build the personalized board from profile, state and verified history.

    Raises
    ------
    NotFound
        If the student profile or game state is missing.
    """
    with Session(engine) as session:
        profile = get_profile(session, student_id)
        state = get_game_state(session, student_id)
        return generate_board(
            student_id,
            profile.grade_level,
            state.streak,
            verified_history(session, student_id),
            rng=rng,
        )


# ---------------------------------------------------------------------------
# Movement validation
# ---------------------------------------------------------------------------
def validate_movement(
    engine: Engine,
    student_id: int,
    claimed_position: int,
    claimed_steps: int,
) -> MovementCheck:
    """Check a claimed board move against the stored position.

    A mismatch is recorded in ``audit_log`` and reported as invalid; it is
    never raised.  Neither outcome changes the stored position.
    """
    with get_session(engine) as session:
        state = get_game_state(session, student_id)
        check = check_movement(state.board_position, claimed_position, claimed_steps)

        if not check.valid:
            session.add(AuditLog(
                actor_id=student_id,
                action=AuditAction.SUSPICIOUS_MOVEMENT.value,
                target=f"GameState:{state.id}",
                metadata_=check.audit_metadata(),
                timestamp=utcnow(),
            ))
            logger.warning(
                "Suspicious movement by student %s: claimed %d, expected %d (at %d)",
                student_id, check.claimed_position,
                check.expected_position, check.current_position,
            )

    return check
