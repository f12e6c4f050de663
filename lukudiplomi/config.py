"""
lukudiplomi.config — YAML Configuration Loader
===============================================

Reads ``config.yaml`` for **infrastructure-only** settings (school
identity, API port, cache tuning).  The reward formula itself is not
configurable at runtime: it lives in :mod:`lukudiplomi.constants` and is
versioned by ``FORMULA_VERSION`` so historical rewards stay attributable.

Usage::

    from lukudiplomi.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.school_name)       # "Helsingin Ala-aste"
    print(cfg.cache_enabled)     # True
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LukudiplomiConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    school_name: str

    # API
    api_port: int = 8000

    # Cache (best-effort, never authoritative)
    cache_enabled: bool = True
    board_cache_ttl: int = 3600        # seconds
    leaderboard_cache_ttl: int = 300   # seconds


DEFAULT_CONFIG = LukudiplomiConfig(school_name="Lukudiplomi")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> LukudiplomiConfig:
    """Read *path* and return a :class:`LukudiplomiConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    cache = raw.get("cache") or {}
    return LukudiplomiConfig(
        school_name=raw["school_name"],
        api_port=int(raw.get("api_port", 8000)),
        cache_enabled=bool(cache.get("enabled", True)),
        board_cache_ttl=int(cache.get("board_ttl", 3600)),
        leaderboard_cache_ttl=int(cache.get("leaderboard_ttl", 300)),
    )
