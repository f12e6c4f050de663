"""
lukudiplomi.services.achievement_service — Achievement catalogue
=================================================================

Definitions are validated here, when they are created, so the evaluator
only ever sees well-formed criteria.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lukudiplomi.database.engine import get_session
from lukudiplomi.database.models import Achievement
from lukudiplomi.engine.achievements import AchievementCriteria
from lukudiplomi.errors import ValidationError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

TIER_ORDER = {"bronze": 0, "silver": 1, "gold": 2}


def achievement_to_dict(a: Achievement) -> dict:
    return {
        "id": a.id,
        "key": a.key,
        "name": a.name,
        "description": a.description,
        "icon": a.icon,
        "tier": a.tier,
        "points": a.points,
        "criteria": a.criteria,
    }


def list_achievements(engine: Engine) -> list[dict]:
    """All achievements, bronze → gold."""
    with Session(engine) as session:
        rows = session.scalars(select(Achievement)).all()
        items = [achievement_to_dict(a) for a in rows]
    return sorted(items, key=lambda a: (TIER_ORDER.get(a["tier"], 99), a["id"]))


def create_achievement(
    engine: Engine,
    *,
    key: str,
    name: str,
    criteria: dict,
    description: str | None = None,
    icon: str | None = None,
    tier: str = "bronze",
    points: int = 0,
) -> dict:
    """Validate *criteria* and insert a new achievement definition.

    Raises
    ------
    ValidationError
        If the criteria document is malformed or the key already exists.
    """
    parsed = AchievementCriteria.from_dict(criteria)
    if tier not in TIER_ORDER:
        raise ValidationError(f"Unknown tier: {tier}")

    row = Achievement(
        key=key,
        name=name,
        description=description,
        icon=icon,
        tier=tier,
        points=points,
        criteria=parsed.to_dict(),
    )
    try:
        with get_session(engine) as session:
            session.add(row)
            session.flush()
            result = achievement_to_dict(row)
    except IntegrityError:
        raise ValidationError(f"Achievement key already exists: {key}") from None

    logger.info("Created achievement %s (id=%d)", key, result["id"])
    return result
