"""
lukudiplomi.errors — Exception Hierarchy
=========================================

Services raise these; the HTTP layer translates them into status codes.
"""

from __future__ import annotations


class LukudiplomiError(Exception):
    """Base class for all domain errors."""


class NotFound(LukudiplomiError, LookupError):
    """A book, student profile, game state or reading log does not exist."""

    def __init__(self, entity: str, key: object) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class ValidationError(LukudiplomiError, ValueError):
    """Input rejected before any calculation or write takes place."""
