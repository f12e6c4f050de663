"""
lukudiplomi.database.seed — Default Achievement Catalogue
==========================================================

Baseline achievements seeded on first startup so students have something
to unlock immediately.

Idempotent — only inserts keys that don't already exist.  Definitions
edited later are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from lukudiplomi.database.models import Achievement
from lukudiplomi.engine.achievements import AchievementCriteria

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default achievements
# ---------------------------------------------------------------------------
DEFAULT_ACHIEVEMENTS: list[dict] = [
    {
        "key": "first_book",
        "name": "First Steps",
        "description": "Log your first verified book",
        "icon": "📚",
        "criteria": {"total_books": 1},
        "points": 10,
        "tier": "bronze",
    },
    {
        "key": "five_books",
        "name": "Bookworm",
        "description": "Read 5 books",
        "icon": "🐛",
        "criteria": {"total_books": 5},
        "points": 25,
        "tier": "silver",
    },
    {
        "key": "ten_books",
        "name": "Reading Master",
        "description": "Read 10 books",
        "icon": "🏆",
        "criteria": {"total_books": 10},
        "points": 50,
        "tier": "gold",
    },
    {
        "key": "week_streak",
        "name": "Regular Reader",
        "description": "Keep a 7-day reading streak",
        "icon": "🔥",
        "criteria": {"streak_days": 7},
        "points": 30,
        "tier": "silver",
    },
    {
        "key": "genre_explorer",
        "name": "Genre Explorer",
        "description": "Read books from 5 different genres",
        "icon": "🌍",
        "criteria": {"unique_genres": 5},
        "points": 40,
        "tier": "gold",
    },
    {
        "key": "speed_reader",
        "name": "Speed Reader",
        "description": "Read 3 books in 7 days",
        "icon": "⚡",
        "criteria": {"books_in_7_days": 3},
        "points": 35,
        "tier": "silver",
    },
]


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_achievements(engine: Engine) -> int:
    """Insert default achievements whose key is missing.  Returns the count."""
    session = Session(engine)
    inserted = 0
    try:
        existing = set(session.scalars(select(Achievement.key)).all())
        for definition in DEFAULT_ACHIEVEMENTS:
            if definition["key"] in existing:
                continue
            criteria = AchievementCriteria.from_dict(definition["criteria"])
            session.add(Achievement(**{**definition, "criteria": criteria.to_dict()}))
            inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default achievements.", inserted)
    return inserted
