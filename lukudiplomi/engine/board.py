"""
lukudiplomi.engine.board — Adaptive procedural board generation
================================================================

Every student gets a personal board:

* older students walk longer boards (``50 + grade * 10`` tiles);
* students with short streaks see bonus tiles more often (catch-up);
* students who read few genres meet genre gates more often.

Everything here is deterministic except the cosmetic ``challenge``
tiles, which draw from an injected :class:`random.Random`.  Pass a
seeded instance to get a reproducible board.
"""

from __future__ import annotations

import enum
import random
from collections.abc import Sequence
from dataclasses import dataclass, field

from lukudiplomi.constants import (
    BOARD_BASE_LENGTH,
    BOARD_LENGTH_PER_GRADE,
    CHALLENGE_TILE_PROBABILITY,
    FORMULA_VERSION,
    theme_for_grade,
)
from lukudiplomi.engine.snapshots import ReadingEntry

CHECKPOINT_FREQUENCY = 10


class TileType(enum.StrEnum):
    START = "start"
    DIPLOMA = "diploma"
    BONUS = "bonus"
    GENRE_GATE = "genre_gate"
    CHECKPOINT = "checkpoint"
    CHALLENGE = "challenge"
    NORMAL = "normal"


@dataclass(frozen=True, slots=True)
class Tile:
    position: int
    type: TileType
    theme: str

    def to_dict(self) -> dict:
        return {"position": self.position, "type": self.type.value, "theme": self.theme}


@dataclass(frozen=True, slots=True)
class BoardMetadata:
    board_length: int
    student_grade: int
    avg_difficulty: float
    genre_diversity: int
    streak: int

    def to_dict(self) -> dict:
        return {
            "boardLength": self.board_length,
            "studentGrade": self.student_grade,
            "avgDifficulty": self.avg_difficulty,
            "genreDiversity": self.genre_diversity,
            "streak": self.streak,
        }


@dataclass(frozen=True, slots=True)
class BoardConfig:
    student_id: int
    tiles: list[Tile]
    metadata: BoardMetadata
    version: str = FORMULA_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "studentId": self.student_id,
            "tiles": [t.to_dict() for t in self.tiles],
            "metadata": self.metadata.to_dict(),
        }


# ---------------------------------------------------------------------------
# Board parameters
# ---------------------------------------------------------------------------
def board_length(grade_level: int) -> int:
    return BOARD_BASE_LENGTH + grade_level * BOARD_LENGTH_PER_GRADE


def bonus_tile_frequency(streak: int) -> int:
    """Every 10th tile is a bonus, down to every 5th for long streaks."""
    return max(5, 10 - streak // 5)


def genre_gate_frequency(distinct_genres: int) -> int:
    return 7 if distinct_genres < 3 else 15


def tile_type_for(
    index: int,
    length: int,
    bonus_every: int,
    gate_every: int,
    rng: random.Random,
) -> TileType:
    """First matching rule wins."""
    if index == 0:
        return TileType.START
    if index == length - 1:
        return TileType.DIPLOMA
    if index % bonus_every == 0:
        return TileType.BONUS
    if index % gate_every == 0:
        return TileType.GENRE_GATE
    if index % CHECKPOINT_FREQUENCY == 0:
        return TileType.CHECKPOINT
    if rng.random() < CHALLENGE_TILE_PROBABILITY:
        return TileType.CHALLENGE
    return TileType.NORMAL


@dataclass
class _HistoryStats:
    avg_difficulty: float = 1.0
    genres: set[str] = field(default_factory=set)


def _history_stats(history: Sequence[ReadingEntry]) -> _HistoryStats:
    if not history:
        return _HistoryStats()
    return _HistoryStats(
        avg_difficulty=sum(e.difficulty_score for e in history) / len(history),
        genres={e.genre for e in history},
    )


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------
def generate_board(
    student_id: int,
    grade_level: int,
    streak: int,
    verified_history: Sequence[ReadingEntry] = (),
    *,
    rng: random.Random | None = None,
) -> BoardConfig:
    """Build the board for one student.

    Parameters
    ----------
    student_id : owner of the board
    grade_level : drives length and theme
    streak : current streak, drives bonus tile frequency
    verified_history : teacher-verified reading logs, drives genre gates
        and the reported average difficulty
    rng : source for cosmetic challenge tiles (unseeded when omitted)
    """
    rng = rng or random.Random()
    stats = _history_stats(verified_history)

    length = board_length(grade_level)
    bonus_every = bonus_tile_frequency(streak)
    gate_every = genre_gate_frequency(len(stats.genres))
    theme = theme_for_grade(grade_level)

    tiles = [
        Tile(
            position=i,
            type=tile_type_for(i, length, bonus_every, gate_every, rng),
            theme=theme,
        )
        for i in range(length)
    ]

    return BoardConfig(
        student_id=student_id,
        tiles=tiles,
        metadata=BoardMetadata(
            board_length=length,
            student_grade=grade_level,
            avg_difficulty=stats.avg_difficulty,
            genre_diversity=len(stats.genres),
            streak=streak,
        ),
    )
