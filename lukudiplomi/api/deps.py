"""
lukudiplomi.api.deps — FastAPI dependency injection
====================================================

Authentication and authorization happen upstream of this API; handlers
receive already-authorized student and teacher ids.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from sqlalchemy import Engine

from lukudiplomi.config import DEFAULT_CONFIG, LukudiplomiConfig, load_config
from lukudiplomi.database.engine import create_db_engine
from lukudiplomi.engine.cache import Cache, build_cache


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> LukudiplomiConfig:
    if not Path("config.yaml").exists():
        return DEFAULT_CONFIG
    return load_config()


@lru_cache(maxsize=1)
def get_cache() -> Cache:
    return build_cache(get_config().cache_enabled)
