"""
lukudiplomi.services.board_service — Cached board lookups
==========================================================

Boards are polled by clients.  A rendered board is reused for
``board_cache_ttl`` seconds or until the student's progress changes
(``game_service.invalidate_student_views``).  A cached board only saves
time: the challenge tiles are cosmetic and every reward-bearing value is
recomputed by the game service.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING

from lukudiplomi.services.game_service import generate_board_config

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from lukudiplomi.engine.cache import Cache

logger = logging.getLogger(__name__)

DEFAULT_BOARD_TTL = 3600


def board_cache_key(student_id: int) -> str:
    return f"board:{student_id}"


def get_board(
    engine: Engine,
    cache: Cache,
    student_id: int,
    *,
    ttl: int = DEFAULT_BOARD_TTL,
    rng: random.Random | None = None,
) -> dict:
    """Return the student's board as a JSON-ready dict, cached when possible."""
    key = board_cache_key(student_id)
    cached = cache.get(key)
    if cached is not None:
        return cached

    board = generate_board_config(engine, student_id, rng=rng).to_dict()
    cache.set(key, board, ttl)
    logger.debug("Generated board for student %s (%d tiles)", student_id, len(board["tiles"]))
    return board
