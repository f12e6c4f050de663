"""
tests/test_reward_engine.py — Unit Tests for Reward Pipeline
=============================================================

Tests the pure calculation pipeline (no I/O, no database).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from lukudiplomi.engine.achievements import AchievementCriteria, AchievementDefinition
from lukudiplomi.engine.reward import (
    RewardResult,
    base_steps,
    calculate_reward,
    calculate_steps,
    calculate_xp,
    difficulty_multiplier,
    diversity_bonus,
    grade_bonus,
    streak_bonus,
    validate_pages_read,
    xp_streak_multiplier,
)
from lukudiplomi.engine.snapshots import (
    BookSnapshot,
    GameStateSnapshot,
    ReadingEntry,
    StudentSnapshot,
)
from lukudiplomi.errors import ValidationError

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
def _book(difficulty=1.0, age_min=0, genre="fantasy", book_id=1, pages=300):
    return BookSnapshot(
        id=book_id,
        pages=pages,
        genre=genre,
        difficulty_score=difficulty,
        recommended_age_min=age_min,
        recommended_age_max=18,
    )


def _entry(genre="fantasy", days_ago=1, difficulty=1.0, pages=100, verified=False):
    return ReadingEntry(
        book_id=1,
        genre=genre,
        difficulty_score=difficulty,
        pages_read=pages,
        created_at=NOW - timedelta(days=days_ago),
        verified=verified,
    )


@pytest.fixture
def student():
    return StudentSnapshot(student_id=7, class_id="3A", grade_level=3)


@pytest.fixture
def fresh_state():
    return GameStateSnapshot(student_id=7)


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
class TestValidatePagesRead:
    @pytest.mark.parametrize("bad", [0, -5, 1.5, "100", True, None])
    def test_rejects_non_positive_or_non_integer(self, bad):
        with pytest.raises(ValidationError):
            validate_pages_read(bad)

    def test_accepts_positive_int(self):
        assert validate_pages_read(42) == 42

    def test_calculate_reward_validates_pages(self, student, fresh_state):
        with pytest.raises(ValidationError):
            calculate_reward(_book(), student, fresh_state, 0, now=NOW)


# ---------------------------------------------------------------------------
# Stage functions
# ---------------------------------------------------------------------------
class TestStages:
    def test_base_steps_floors(self):
        assert base_steps(9) == 0
        assert base_steps(10) == 1
        assert base_steps(199) == 19

    @pytest.mark.parametrize("score,expected", [
        (0.1, 0.5), (0.5, 0.5), (1.3, 1.3), (2.0, 2.0), (3.5, 2.0),
    ])
    def test_difficulty_is_clamped(self, score, expected):
        assert difficulty_multiplier(score) == expected

    def test_grade_bonus_applies_at_or_above_grade(self):
        assert grade_bonus(3, 3) == 1.2
        assert grade_bonus(5, 3) == 1.2
        assert grade_bonus(2, 3) == 1.0

    def test_streak_bonus_caps_at_one_and_a_half(self):
        assert streak_bonus(0) == 1.0
        assert streak_bonus(4) == pytest.approx(1.2)
        assert streak_bonus(10) == pytest.approx(1.5)
        assert streak_bonus(40) == 1.5

    def test_xp_streak_multiplier_is_uncapped(self):
        assert xp_streak_multiplier(0) == 1.0
        assert xp_streak_multiplier(20) == pytest.approx(3.0)

    def test_diversity_counts_distinct_genres(self):
        assert diversity_bonus([]) == 1.0
        assert diversity_bonus(["a", "a", "b"]) == pytest.approx(1.2)
        assert diversity_bonus(list("abcdefg")) == 1.5

    def test_calculate_steps_defaults_to_base(self):
        assert calculate_steps(200) == 20

    def test_calculate_xp_defaults_to_two_per_page(self):
        assert calculate_xp(150) == 300


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------
class TestCalculateReward:
    def test_baseline_reward(self, student, fresh_state):
        result = calculate_reward(_book(), student, fresh_state, 200, now=NOW)

        assert isinstance(result, RewardResult)
        assert result.steps == 20
        assert result.xp == 400
        assert result.achievements == []
        assert result.formula_version == "1.0"

    def test_all_multipliers_combine(self, student):
        state = GameStateSnapshot(student_id=7, streak=4)
        history = [_entry("fantasy"), _entry("poetry")]

        result = calculate_reward(
            _book(difficulty=1.5, age_min=3), student, state, 155,
            history=history, now=NOW,
        )

        # 15 * 1.5 * 1.2 * 1.2 * 1.2 = 38.88
        assert result.steps == 38
        # 310 * 1.5 * 1.2 * 1.4 = 781.2
        assert result.xp == 781
        assert result.bonuses.grade == 1.2
        assert result.bonuses.diversity == pytest.approx(1.2)

    def test_extreme_difficulty_is_clamped(self, student, fresh_state):
        hard = calculate_reward(_book(difficulty=9.0), student, fresh_state, 100, now=NOW)
        easy = calculate_reward(_book(difficulty=0.01), student, fresh_state, 100, now=NOW)

        assert hard.steps == 20
        assert hard.bonuses.difficulty == 2.0
        assert easy.steps == 5
        assert easy.bonuses.difficulty == 0.5

    def test_long_streak_caps_steps_but_not_xp(self, student):
        state = GameStateSnapshot(student_id=7, streak=20)
        result = calculate_reward(_book(), student, state, 100, now=NOW)

        assert result.steps == 15
        assert result.xp == 600

    def test_only_ten_most_recent_entries_count(self, student, fresh_state):
        history = [_entry("fantasy", days_ago=i) for i in range(10)]
        history.append(_entry("poetry", days_ago=30))

        result = calculate_reward(
            _book(), student, fresh_state, 100, history=history, now=NOW
        )

        assert result.bonuses.diversity == pytest.approx(1.1)

    def test_short_read_gives_zero_steps_but_xp(self, student, fresh_state):
        result = calculate_reward(_book(), student, fresh_state, 7, now=NOW)
        assert result.steps == 0
        assert result.xp == 14

    def test_deterministic(self, student, fresh_state):
        history = [_entry("fantasy"), _entry("history", days_ago=3)]
        a = calculate_reward(_book(1.7), student, fresh_state, 123, history=history, now=NOW)
        b = calculate_reward(_book(1.7), student, fresh_state, 123, history=history, now=NOW)
        assert a.to_dict() == b.to_dict()

    def test_more_pages_never_earn_less(self, student, fresh_state):
        previous = (0, 0)
        for pages in range(1, 400, 7):
            r = calculate_reward(_book(1.3), student, fresh_state, pages, now=NOW)
            assert r.steps >= previous[0] and r.xp >= previous[1]
            previous = (r.steps, r.xp)

    def test_to_dict_shape(self, student, fresh_state):
        payload = calculate_reward(_book(), student, fresh_state, 50, now=NOW).to_dict()
        assert set(payload) == {"steps", "xp", "achievements", "bonuses", "formulaVersion"}
        assert set(payload["bonuses"]) == {"difficulty", "grade", "streak", "diversity"}


class TestRewardAchievements:
    @pytest.fixture
    def first_book(self):
        return AchievementDefinition(
            id=1, key="first_book", name="First Steps",
            criteria=AchievementCriteria(total_books=1), points=10,
        )

    def test_unlocks_from_verified_count(self, student, fresh_state, first_book):
        result = calculate_reward(
            _book(), student, fresh_state, 50,
            achievements=[first_book], verified_book_count=1, now=NOW,
        )
        assert result.achievement_ids == [1]

    def test_unverified_history_does_not_count(self, student, fresh_state, first_book):
        result = calculate_reward(
            _book(), student, fresh_state, 50,
            history=[_entry(), _entry()],
            achievements=[first_book], verified_book_count=0, now=NOW,
        )
        assert result.achievements == []

    def test_already_unlocked_never_fires_again(self, student, first_book):
        state = GameStateSnapshot(student_id=7, unlocked_achievements=frozenset({1}))
        result = calculate_reward(
            _book(), student, state, 50,
            achievements=[first_book], verified_book_count=5, now=NOW,
        )
        assert result.achievements == []
