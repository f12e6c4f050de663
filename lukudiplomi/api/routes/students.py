"""
lukudiplomi.api.routes.students — Book logging, verification and progress views
=================================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Engine

from lukudiplomi.api.deps import get_cache, get_engine
from lukudiplomi.engine.cache import Cache
from lukudiplomi.services import game_service, student_service

router = APIRouter(tags=["students"])


class BookLogCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    book_id: int = Field(alias="bookId")
    pages_read: int = Field(alias="pagesRead")
    review_text: str | None = Field(default=None, alias="reviewText", max_length=5000)
    rating: int | None = None


class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    teacher_id: int = Field(alias="teacherId")


@router.post("/students/{student_id}/books", status_code=201)
def log_book(
    student_id: int,
    body: BookLogCreate,
    engine: Engine = Depends(get_engine),
    cache: Cache = Depends(get_cache),
):
    result = game_service.log_book(
        engine,
        student_id,
        body.book_id,
        body.pages_read,
        review_text=body.review_text,
        rating=body.rating,
        cache=cache,
    )
    return result.to_dict()


@router.post("/students/{student_id}/reward-preview")
def preview_reward(
    student_id: int,
    body: BookLogCreate,
    engine: Engine = Depends(get_engine),
):
    """What logging this book would award right now, without recording it."""
    reward = game_service.calculate_reward(
        engine, body.book_id, student_id, body.pages_read
    )
    return reward.to_dict()


@router.post("/reading-logs/{log_id}/verify")
def verify_reading_log(
    log_id: int,
    body: VerifyRequest,
    engine: Engine = Depends(get_engine),
    cache: Cache = Depends(get_cache),
):
    log = game_service.verify_reading_log(engine, log_id, body.teacher_id, cache=cache)
    return {
        "id": log.id,
        "verifiedByTeacher": log.verified_by_teacher,
        "verifiedBy": log.verified_by,
        "verifiedAt": log.verified_at.isoformat() if log.verified_at else None,
    }


# ---------------------------------------------------------------------------
# Read views
# ---------------------------------------------------------------------------
@router.get("/students/{student_id}/state")
def get_state(student_id: int, engine: Engine = Depends(get_engine)):
    return student_service.get_student_state(engine, student_id)


@router.get("/students/{student_id}/history")
def get_history(
    student_id: int,
    limit: int = Query(student_service.DEFAULT_HISTORY_LIMIT),
    offset: int = Query(0),
    engine: Engine = Depends(get_engine),
):
    return student_service.get_reading_history(
        engine, student_id, limit=limit, offset=offset
    )


@router.get("/students/{student_id}/achievements")
def get_achievements(student_id: int, engine: Engine = Depends(get_engine)):
    return student_service.get_student_achievements(engine, student_id)
