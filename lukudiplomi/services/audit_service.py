"""
lukudiplomi.services.audit_service — Audit trail queries
=========================================================

``audit_log`` is append-only.  The game service writes suspicious
movement entries; administrators page through them here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lukudiplomi.constants import ensure_utc
from lukudiplomi.database.models import AuditLog
from lukudiplomi.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

MAX_LIMIT = 500


def audit_log_to_dict(row: AuditLog) -> dict:
    return {
        "id": row.id,
        "actorId": row.actor_id,
        "action": row.action,
        "target": row.target,
        "metadata": row.metadata_,
        "timestamp": ensure_utc(row.timestamp).isoformat(),
    }


def list_audit_logs(
    engine: Engine,
    *,
    action: str | None = None,
    actor_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> dict:
    """Newest entries first, filtered by action and/or actor."""
    if not 1 <= limit <= MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")
    if offset < 0:
        raise ValidationError("offset must not be negative")

    filters = []
    if action:
        filters.append(AuditLog.action == action)
    if actor_id is not None:
        filters.append(AuditLog.actor_id == actor_id)

    with Session(engine) as session:
        total = session.scalar(
            select(func.count()).select_from(AuditLog).where(*filters)
        ) or 0
        rows = session.scalars(
            select(AuditLog)
            .where(*filters)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        logs = [audit_log_to_dict(r) for r in rows]

    return {
        "logs": logs,
        "pagination": {"total": total, "limit": limit, "offset": offset},
    }
