"""
lukudiplomi.api.routes.teachers — Teacher verification queue
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from lukudiplomi.api.deps import get_engine
from lukudiplomi.services.student_service import (
    DEFAULT_PENDING_LIMIT,
    list_pending_verifications,
)

router = APIRouter(prefix="/teachers", tags=["teachers"])


@router.get("/pending-verifications")
def pending_verifications(
    class_id: str | None = Query(None, alias="classId"),
    limit: int = Query(DEFAULT_PENDING_LIMIT),
    engine: Engine = Depends(get_engine),
):
    """Reading logs still waiting for a teacher, newest first."""
    return list_pending_verifications(engine, class_id=class_id, limit=limit)
