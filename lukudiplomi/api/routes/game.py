"""
lukudiplomi.api.routes.game — Board, movement and leaderboard endpoints
========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine

from lukudiplomi.api.deps import get_cache, get_config, get_engine
from lukudiplomi.config import LukudiplomiConfig
from lukudiplomi.engine.cache import Cache
from lukudiplomi.services import board_service, leaderboard_service
from lukudiplomi.services.achievement_service import list_achievements
from lukudiplomi.services.game_service import validate_movement

router = APIRouter(prefix="/game", tags=["game"])


class MoveClaim(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    student_id: int = Field(alias="studentId")
    claimed_position: int = Field(alias="claimedPosition")
    claimed_steps: int = Field(alias="claimedSteps")


# ---------------------------------------------------------------------------
# GET /game/board/{student_id}
# ---------------------------------------------------------------------------
@router.get("/board/{student_id}")
def get_board(
    student_id: int,
    engine: Engine = Depends(get_engine),
    cache: Cache = Depends(get_cache),
    cfg: LukudiplomiConfig = Depends(get_config),
):
    return board_service.get_board(engine, cache, student_id, ttl=cfg.board_cache_ttl)


# ---------------------------------------------------------------------------
# POST /game/validate-move
# ---------------------------------------------------------------------------
@router.post("/validate-move")
def validate_move(body: MoveClaim, engine: Engine = Depends(get_engine)):
    """Check a client's claimed landing tile.  Mismatches answer 400."""
    check = validate_movement(
        engine, body.student_id, body.claimed_position, body.claimed_steps
    )
    if not check.valid:
        return JSONResponse(status_code=400, content=check.to_dict())
    return check.to_dict()


# ---------------------------------------------------------------------------
# GET /game/leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    scope: str = Query("global"),
    class_id: str | None = Query(None, alias="classId"),
    limit: int = Query(10),
    engine: Engine = Depends(get_engine),
    cache: Cache = Depends(get_cache),
    cfg: LukudiplomiConfig = Depends(get_config),
):
    return leaderboard_service.get_leaderboard(
        engine, cache,
        scope=scope, class_id=class_id, limit=limit,
        ttl=cfg.leaderboard_cache_ttl,
    )


@router.get("/leaderboard/class/{class_id}")
def get_class_leaderboard(
    class_id: str,
    limit: int = Query(10),
    engine: Engine = Depends(get_engine),
    cache: Cache = Depends(get_cache),
    cfg: LukudiplomiConfig = Depends(get_config),
):
    return leaderboard_service.get_leaderboard(
        engine, cache,
        scope="class", class_id=class_id, limit=limit,
        ttl=cfg.leaderboard_cache_ttl,
    )


# ---------------------------------------------------------------------------
# GET /game/achievements
# ---------------------------------------------------------------------------
@router.get("/achievements")
def get_achievements(engine: Engine = Depends(get_engine)):
    return list_achievements(engine)
