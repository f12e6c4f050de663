"""
lukudiplomi.api.routes.admin — Audit trail
===========================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from lukudiplomi.api.deps import get_engine
from lukudiplomi.services.audit_service import list_audit_logs

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/audit-logs")
def audit_logs(
    action: str | None = Query(None),
    actor_id: int | None = Query(None, alias="actorId"),
    limit: int = Query(100),
    offset: int = Query(0),
    engine: Engine = Depends(get_engine),
):
    return list_audit_logs(
        engine, action=action, actor_id=actor_id, limit=limit, offset=offset
    )
