"""
lukudiplomi.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- users                — Students, teachers and admins
- student_profiles     — Class and grade for a student (1:1 with users)
- books                — Book catalogue with difficulty metadata
- game_states          — Board position, XP, level and streaks (1:1 with students)
- student_achievements — Unlocked achievements (append-only, composite PK)
- reading_logs         — Append-only book-completion journal
- achievements         — Achievement definitions with structured criteria
- audit_log            — Append-only record of suspicious activity
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from lukudiplomi.constants import utcnow


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Lukudiplomi ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UserRole(enum.StrEnum):
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"


class AuditAction(enum.StrEnum):
    """Categories of entries recorded in audit_log."""
    SUSPICIOUS_MOVEMENT = "SUSPICIOUS_MOVEMENT"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UserRole.STUDENT.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    profile: Mapped[StudentProfile | None] = relationship(
        back_populates="student", uselist=False, cascade="all, delete-orphan"
    )
    game_state: Mapped[GameState | None] = relationship(
        back_populates="student", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} role={self.role}>"


# ---------------------------------------------------------------------------
# StudentProfile — read-only input to reward and board calculations
# ---------------------------------------------------------------------------
class StudentProfile(Base):
    __tablename__ = "student_profiles"

    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    class_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    grade_level: Mapped[int] = mapped_column(Integer, nullable=False)
    reading_goal: Mapped[int] = mapped_column(Integer, default=10)

    student: Mapped[User] = relationship(back_populates="profile")

    __table_args__ = (
        CheckConstraint("grade_level > 0", name="ck_student_profiles_grade_positive"),
        Index("ix_student_profiles_class", "class_id"),
    )

    def __repr__(self) -> str:
        return f"<StudentProfile student={self.student_id} grade={self.grade_level}>"


# ---------------------------------------------------------------------------
# Books — catalogue; immutable for calculation purposes once created
# ---------------------------------------------------------------------------
class Book(Base):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    author: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    isbn: Mapped[str | None] = mapped_column(String(17), nullable=True)
    pages: Mapped[int] = mapped_column(Integer, nullable=False)
    genre: Mapped[str] = mapped_column(String(100), nullable=False)
    # Clamped to [0.5, 2.0] by the reward calculator, not by storage
    difficulty_score: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    recommended_age_min: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    recommended_age_max: Mapped[int] = mapped_column(Integer, nullable=False, default=18)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("pages > 0", name="ck_books_pages_positive"),
    )

    def __repr__(self) -> str:
        return f"<Book id={self.id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# GameState — 1:1 with a student; mutated only by the game service
# ---------------------------------------------------------------------------
class GameState(Base):
    __tablename__ = "game_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    board_position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_book_logged_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    student: Mapped[User] = relationship(back_populates="game_state")
    unlocked: Mapped[list[StudentAchievement]] = relationship(
        back_populates="game_state", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint("board_position >= 0", name="ck_game_states_position"),
        CheckConstraint("xp >= 0", name="ck_game_states_xp"),
        Index("ix_game_states_xp_desc", "xp"),
        Index("ix_game_states_position_desc", "board_position"),
    )

    @property
    def unlocked_achievements(self) -> set[int]:
        return {row.achievement_id for row in self.unlocked}

    def __repr__(self) -> str:
        return (
            f"<GameState student={self.student_id} pos={self.board_position} "
            f"xp={self.xp} streak={self.streak}>"
        )


# ---------------------------------------------------------------------------
# StudentAchievement — append-only; the composite PK forbids duplicates
# ---------------------------------------------------------------------------
class StudentAchievement(Base):
    __tablename__ = "student_achievements"

    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("game_states.student_id", ondelete="CASCADE"),
        primary_key=True,
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    game_state: Mapped[GameState] = relationship(back_populates="unlocked")

    def __repr__(self) -> str:
        return (
            f"<StudentAchievement student={self.student_id} "
            f"achievement={self.achievement_id}>"
        )


# ---------------------------------------------------------------------------
# ReadingLog — append-only; only verification and awarded fields change
# ---------------------------------------------------------------------------
class ReadingLog(Base):
    __tablename__ = "reading_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    book_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("books.id", ondelete="RESTRICT"), nullable=False
    )
    pages_read: Mapped[int] = mapped_column(Integer, nullable=False)
    review_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metadata_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    verified_by_teacher: Mapped[bool] = mapped_column(Boolean, default=False)
    verified_by: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    points_awarded: Mapped[int] = mapped_column(Integer, default=0)
    steps_awarded: Mapped[int] = mapped_column(Integer, default=0)
    formula_version: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    book: Mapped[Book] = relationship()

    __table_args__ = (
        CheckConstraint("pages_read > 0", name="ck_reading_logs_pages_positive"),
        Index("ix_reading_logs_student_time", "student_id", "created_at"),
        Index("ix_reading_logs_student_verified", "student_id", "verified_by_teacher"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReadingLog id={self.id} student={self.student_id} "
            f"book={self.book_id} verified={self.verified_by_teacher}>"
        )


# ---------------------------------------------------------------------------
# Achievement — immutable definitions with a structured criteria document
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str | None] = mapped_column(String(20), default=None)
    tier: Mapped[str] = mapped_column(String(20), nullable=False, default="bronze")
    points: Mapped[int] = mapped_column(Integer, default=0)
    # Validated through AchievementCriteria.from_dict before insert
    criteria: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Achievement id={self.id} key={self.key!r}>"


# ---------------------------------------------------------------------------
# AuditLog — append-only; never read by the reward engine
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    target: Mapped[str] = mapped_column(String(100), nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        Index("ix_audit_log_actor_time", "actor_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog id={self.id} actor={self.actor_id} action={self.action}>"
