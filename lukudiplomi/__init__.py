"""
Lukudiplomi — Server-Authoritative Reading Game Engine
=======================================================
Students log the books they finish, earn steps and XP on a board-game
style progression, and teachers verify the claims.  Every reward is
recomputed on the server from durable state; nothing the client sends
about scores or board positions is trusted.

Package layout::

    lukudiplomi/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Formula version, leveling, themes, time helpers
    ├── errors.py          # NotFound / ValidationError
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helpers
    │   ├── models.py      # ORM models (books, game state, reading logs …)
    │   └── seed.py        # Default achievement catalogue
    ├── engine/
    │   ├── snapshots.py   # Frozen inputs built from ORM rows
    │   ├── achievements.py # Structured criteria + evaluator
    │   ├── reward.py      # Steps / XP calculation pipeline
    │   ├── streak.py      # 48-hour streak bookkeeping
    │   ├── board.py       # Adaptive procedural board generation
    │   ├── anti_cheat.py  # Movement consistency check
    │   └── cache.py       # Optional best-effort cache capability
    ├── services/
    │   ├── game_service.py        # Storage-bound reward / streak / movement ops
    │   ├── board_service.py       # Cached board lookups
    │   ├── leaderboard_service.py # Class / global rankings
    │   ├── achievement_service.py # Achievement catalogue
    │   ├── student_service.py     # Student history / teacher queue read views
    │   └── audit_service.py       # Audit trail queries
    └── api/
        ├── main.py        # FastAPI app
        └── routes/        # Thin HTTP adapters over the services
"""

__version__ = "0.1.0"
