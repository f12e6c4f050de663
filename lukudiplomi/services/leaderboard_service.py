"""
lukudiplomi.services.leaderboard_service — Class and global rankings
=====================================================================

Leaderboards are read-only views over ``game_states``, polled by the
dashboards and cached for a few minutes.

Ordering:
  * ``global`` — furthest on the board first, XP breaks ties
  * ``class``  — most XP first, board position breaks ties
"""

from __future__ import annotations

import enum
import math
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lukudiplomi.database.models import GameState, StudentProfile, User
from lukudiplomi.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from lukudiplomi.engine.cache import Cache

DEFAULT_LEADERBOARD_TTL = 300
MAX_LIMIT = 100


class LeaderboardScope(enum.StrEnum):
    GLOBAL = "global"
    CLASS = "class"


def leaderboard_cache_key(scope: LeaderboardScope, class_id: str | None, limit: int) -> str:
    return f"leaderboard:{scope.value}:{class_id or 'global'}:{limit}"


def percentile(rank: int, total: int) -> int:
    """Share of students ranked at or below *rank*, half-up rounded (rank 1 → 100)."""
    if total <= 0 or rank <= 0:
        return 0
    return math.floor((total - rank + 1) / total * 100 + 0.5)


def build_leaderboard(
    session: Session,
    scope: LeaderboardScope,
    class_id: str | None = None,
    limit: int = 10,
) -> list[dict]:
    stmt = select(GameState, User.name).join(User, User.id == GameState.student_id)

    if scope is LeaderboardScope.CLASS:
        stmt = (
            stmt.join(StudentProfile, StudentProfile.student_id == GameState.student_id)
            .where(StudentProfile.class_id == class_id)
            .order_by(
                GameState.xp.desc(),
                GameState.board_position.desc(),
                GameState.student_id,
            )
        )
    else:
        stmt = stmt.order_by(
            GameState.board_position.desc(),
            GameState.xp.desc(),
            GameState.student_id,
        )

    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = session.execute(stmt.limit(limit)).all()
    return [
        {
            "rank": index,
            "student": {"id": state.student_id, "name": name},
            "position": state.board_position,
            "xp": state.xp,
            "level": state.level,
            "streak": state.streak,
            "percentile": percentile(index, total),
        }
        for index, (state, name) in enumerate(rows, start=1)
    ]


def get_leaderboard(
    engine: Engine,
    cache: Cache,
    *,
    scope: str = "global",
    class_id: str | None = None,
    limit: int = 10,
    ttl: int = DEFAULT_LEADERBOARD_TTL,
) -> list[dict]:
    """Ranked students, cached per scope/class/limit."""
    try:
        scope_ = LeaderboardScope(scope)
    except ValueError:
        raise ValidationError(f"Unknown leaderboard scope: {scope}") from None
    if scope_ is LeaderboardScope.CLASS and not class_id:
        raise ValidationError("classId is required for the class leaderboard")
    if not 1 <= limit <= MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")

    key = leaderboard_cache_key(scope_, class_id, limit)
    cached = cache.get(key)
    if cached is not None:
        return cached

    with Session(engine) as session:
        board = build_leaderboard(session, scope_, class_id, limit)
    cache.set(key, board, ttl)
    return board
