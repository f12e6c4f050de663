"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import Engine, create_engine

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from lukudiplomi.database.models import Base, Book
from lukudiplomi.database.seed import seed_default_achievements
from lukudiplomi.services.game_service import register_student

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Lukudiplomi tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def seeded_engine(db_engine: Engine) -> Engine:
    """Engine with the default achievement catalogue inserted."""
    seed_default_achievements(db_engine)
    return db_engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


def make_book(
    engine: Engine,
    *,
    pages: int = 200,
    genre: str = "fantasy",
    difficulty_score: float = 1.0,
    recommended_age_min: int = 0,
    title: str = "Muumipeikko ja pyrstötähti",
) -> int:
    """Insert a book and return its id.  Usable outside fixtures."""
    with Session(engine) as session:
        book = Book(
            title=title,
            author="Tove Jansson",
            pages=pages,
            genre=genre,
            difficulty_score=difficulty_score,
            recommended_age_min=recommended_age_min,
            recommended_age_max=18,
        )
        session.add(book)
        session.commit()
        return book.id


def make_student(
    engine: Engine,
    *,
    name: str = "Aino",
    grade_level: int = 3,
    class_id: str | None = "3A",
) -> int:
    email = f"{name.lower()}-{grade_level}-{class_id}@koulu.example"
    return register_student(
        engine, name=name, email=email, grade_level=grade_level, class_id=class_id
    )


@pytest.fixture
def student_id(db_engine: Engine) -> int:
    return make_student(db_engine)


@pytest.fixture
def book_id(db_engine: Engine) -> int:
    return make_book(db_engine)
