"""
lukudiplomi.services.student_service — Read views over student progress
========================================================================

Read-only queries behind the student dashboard and the teacher's
verification queue.  Nothing here writes; the game service owns every
mutation of game state and reading logs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lukudiplomi.constants import ensure_utc
from lukudiplomi.database.models import (
    Achievement,
    ReadingLog,
    StudentAchievement,
    StudentProfile,
    User,
)
from lukudiplomi.engine.snapshots import GameStateSnapshot
from lukudiplomi.errors import ValidationError
from lukudiplomi.services.achievement_service import TIER_ORDER, achievement_to_dict
from lukudiplomi.services.game_service import (
    game_state_to_dict,
    get_game_state,
    get_profile,
)

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy import Engine

DEFAULT_HISTORY_LIMIT = 20
DEFAULT_PENDING_LIMIT = 50
MAX_PAGE_SIZE = 100


def _iso(value: datetime | None) -> str | None:
    return ensure_utc(value).isoformat() if value is not None else None


def _check_page(limit: int, offset: int = 0) -> None:
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset must not be negative")


def reading_log_to_dict(log: ReadingLog) -> dict:
    """JSON-ready view of a reading log and its book.  Needs a live session."""
    book = log.book
    return {
        "id": log.id,
        "studentId": log.student_id,
        "book": {
            "id": book.id,
            "title": book.title,
            "author": book.author,
            "genre": book.genre,
            "pages": book.pages,
        },
        "pagesRead": log.pages_read,
        "reviewText": log.review_text,
        "rating": log.rating,
        "verifiedByTeacher": bool(log.verified_by_teacher),
        "verifiedBy": log.verified_by,
        "verifiedAt": _iso(log.verified_at),
        "pointsAwarded": log.points_awarded,
        "stepsAwarded": log.steps_awarded,
        "formulaVersion": log.formula_version,
        "createdAt": _iso(log.created_at),
    }


# ---------------------------------------------------------------------------
# Student views
# ---------------------------------------------------------------------------
def get_student_state(engine: Engine, student_id: int) -> dict:
    with Session(engine) as session:
        state = get_game_state(session, student_id)
        return game_state_to_dict(GameStateSnapshot.from_row(state))


def get_reading_history(
    engine: Engine,
    student_id: int,
    *,
    limit: int = DEFAULT_HISTORY_LIMIT,
    offset: int = 0,
) -> dict:
    """All of a student's reading logs, newest first, one page at a time."""
    _check_page(limit, offset)
    with Session(engine) as session:
        get_profile(session, student_id)
        total = session.scalar(
            select(func.count())
            .select_from(ReadingLog)
            .where(ReadingLog.student_id == student_id)
        ) or 0
        rows = session.scalars(
            select(ReadingLog)
            .where(ReadingLog.student_id == student_id)
            .order_by(ReadingLog.created_at.desc(), ReadingLog.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        logs = [reading_log_to_dict(r) for r in rows]

    return {
        "logs": logs,
        "pagination": {"total": total, "limit": limit, "offset": offset},
    }


def get_student_achievements(engine: Engine, student_id: int) -> dict:
    """Unlocked achievements (with unlock time) and the ones still locked."""
    with Session(engine) as session:
        get_game_state(session, student_id)
        unlocked_at = dict(session.execute(
            select(StudentAchievement.achievement_id, StudentAchievement.unlocked_at)
            .where(StudentAchievement.student_id == student_id)
        ).all())
        catalogue = session.scalars(select(Achievement)).all()

        unlocked, locked = [], []
        for a in catalogue:
            item = achievement_to_dict(a)
            if a.id in unlocked_at:
                item["unlockedAt"] = _iso(unlocked_at[a.id])
                unlocked.append(item)
            else:
                locked.append(item)

    def order(item: dict) -> tuple[int, int]:
        return TIER_ORDER.get(item["tier"], 99), item["id"]

    return {
        "unlocked": sorted(unlocked, key=order),
        "locked": sorted(locked, key=order),
        "total": len(catalogue),
    }


# ---------------------------------------------------------------------------
# Teacher queue
# ---------------------------------------------------------------------------
def list_pending_verifications(
    engine: Engine,
    *,
    class_id: str | None = None,
    limit: int = DEFAULT_PENDING_LIMIT,
) -> list[dict]:
    """Unverified reading logs, newest first, optionally for one class."""
    _check_page(limit)
    stmt = (
        select(ReadingLog, User.name)
        .join(User, User.id == ReadingLog.student_id)
        .where(ReadingLog.verified_by_teacher.is_(False))
    )
    if class_id is not None:
        stmt = stmt.join(
            StudentProfile, StudentProfile.student_id == ReadingLog.student_id
        ).where(StudentProfile.class_id == class_id)
    stmt = stmt.order_by(ReadingLog.created_at.desc(), ReadingLog.id.desc()).limit(limit)

    with Session(engine) as session:
        pending = []
        for log, name in session.execute(stmt).all():
            item = reading_log_to_dict(log)
            item["student"] = {"id": log.student_id, "name": name}
            pending.append(item)
    return pending
