"""
tests/test_game_service.py — Game service integration tests (SQLite)
=====================================================================

Exercises the storage-bound flows end to end: reward preview, book
logging, verification, streaks, movement checks and board generation.
"""

from __future__ import annotations

import gc
import random
import threading
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from lukudiplomi.constants import ensure_utc, level_for_xp
from lukudiplomi.database.models import (
    Achievement,
    AuditLog,
    GameState,
    ReadingLog,
    StudentAchievement,
)
from lukudiplomi.engine.cache import MemoryCache
from lukudiplomi.errors import NotFound, ValidationError
from lukudiplomi.services import game_service
from lukudiplomi.services.game_service import StudentLocks

from conftest import NOW, make_book, make_student


def _state(engine, student_id) -> GameState:
    with Session(engine) as session:
        return session.scalar(select(GameState).where(GameState.student_id == student_id))


def _count(engine, model) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(model))


# ===========================================================================
# Registration
# ===========================================================================
class TestRegisterStudent:
    def test_creates_fresh_game_state(self, db_engine):
        sid = make_student(db_engine, name="Eero")
        state = _state(db_engine, sid)
        assert (state.board_position, state.xp, state.level, state.streak) == (0, 0, 1, 0)
        assert state.last_book_logged_at is None

    @pytest.mark.parametrize("grade", [0, -1, True])
    def test_rejects_bad_grade(self, db_engine, grade):
        with pytest.raises(ValidationError):
            make_student(db_engine, grade_level=grade)


# ===========================================================================
# calculate_reward (read-only)
# ===========================================================================
class TestCalculateReward:
    def test_preview_does_not_write(self, db_engine, student_id, book_id):
        reward = game_service.calculate_reward(db_engine, book_id, student_id, 200, now=NOW)

        assert reward.steps == 22
        assert reward.xp == 400
        assert _state(db_engine, student_id).xp == 0
        assert _count(db_engine, ReadingLog) == 0

    def test_preview_matches_logged_reward(self, seeded_engine, student_id, book_id):
        poetry = make_book(seeded_engine, genre="poetry", difficulty_score=1.4)
        game_service.log_book(seeded_engine, student_id, book_id, 120, now=NOW)
        later = NOW + timedelta(hours=20)

        preview = game_service.calculate_reward(
            seeded_engine, poetry, student_id, 180, now=later
        )
        logged = game_service.log_book(seeded_engine, student_id, poetry, 180, now=later)

        assert preview.to_dict() == logged.reward.to_dict()

    def test_missing_book(self, db_engine, student_id):
        with pytest.raises(NotFound, match="Book"):
            game_service.calculate_reward(db_engine, 999, student_id, 10)

    def test_missing_student(self, db_engine, book_id):
        with pytest.raises(NotFound, match="StudentProfile"):
            game_service.calculate_reward(db_engine, book_id, 999, 10)

    def test_non_positive_pages(self, db_engine, student_id, book_id):
        with pytest.raises(ValidationError):
            game_service.calculate_reward(db_engine, book_id, student_id, 0)


# ===========================================================================
# log_book
# ===========================================================================
class TestLogBook:
    def test_applies_reward_to_state_and_log(self, db_engine, student_id, book_id):
        result = game_service.log_book(db_engine, student_id, book_id, 200, now=NOW)

        # The new log's genre already counts towards diversity (1.1)
        assert result.reward.steps == 22
        assert result.reward.xp == 400
        assert result.game_state.board_position == 22
        assert result.game_state.xp == 400

        state = _state(db_engine, student_id)
        assert state.board_position == 22
        assert state.xp == 400
        assert state.level == 1

        with Session(db_engine) as session:
            log = session.get(ReadingLog, result.reading_log_id)
            assert log.steps_awarded == 22
            assert log.points_awarded == 400
            assert log.formula_version == "1.0"
            assert log.verified_by_teacher is False
            assert len(log.metadata_hash) == 64

    def test_first_log_starts_no_streak(self, db_engine, student_id, book_id):
        result = game_service.log_book(db_engine, student_id, book_id, 50, now=NOW)

        assert result.game_state.streak == 0
        assert ensure_utc(_state(db_engine, student_id).last_book_logged_at) == NOW

    def test_consecutive_logs_build_streak(self, db_engine, student_id, book_id):
        game_service.log_book(db_engine, student_id, book_id, 50, now=NOW)
        second = game_service.log_book(
            db_engine, student_id, book_id, 50, now=NOW + timedelta(hours=24)
        )
        third = game_service.log_book(
            db_engine, student_id, book_id, 50, now=NOW + timedelta(hours=47)
        )

        assert second.game_state.streak == 1
        assert third.game_state.streak == 2
        assert third.game_state.longest_streak == 2

    def test_rewards_accumulate(self, db_engine, student_id, book_id):
        game_service.log_book(db_engine, student_id, book_id, 200, now=NOW)
        game_service.log_book(db_engine, student_id, book_id, 200, now=NOW + timedelta(hours=1))

        state = _state(db_engine, student_id)
        assert state.board_position == 44
        assert state.xp == 800

    def test_level_follows_xp(self, db_engine, student_id):
        big = make_book(db_engine, pages=1000, title="Seitsemän veljestä")
        result = game_service.log_book(db_engine, student_id, big, 1000, now=NOW)

        assert result.game_state.xp == 2000
        assert result.game_state.level == level_for_xp(2000) == 3

    @pytest.mark.parametrize("pages,rating", [(301, None), (100, 0), (100, 6)])
    def test_rejected_claims_write_nothing(self, db_engine, student_id, book_id, pages, rating):
        with pytest.raises(ValidationError):
            game_service.log_book(
                db_engine, student_id, book_id, pages, rating=rating, now=NOW
            )
        assert _count(db_engine, ReadingLog) == 0
        assert _state(db_engine, student_id).xp == 0

    def test_invalidates_cached_views(self, db_engine, student_id, book_id):
        cache = MemoryCache()
        cache.set(f"board:{student_id}", {"tiles": []})
        cache.set("leaderboard:global:global:10", [])
        cache.set("board:424242", {"tiles": []})

        game_service.log_book(db_engine, student_id, book_id, 50, now=NOW, cache=cache)

        assert cache.get(f"board:{student_id}") is None
        assert cache.get("leaderboard:global:global:10") is None
        assert cache.get("board:424242") == {"tiles": []}


class TestLogBookAchievements:
    def _keys(self, result):
        return [a.key for a in result.reward.achievements]

    def test_unlocks_once_and_persists(self, seeded_engine, student_id, book_id):
        first = game_service.log_book(seeded_engine, student_id, book_id, 50, now=NOW)
        assert self._keys(first) == []

        game_service.verify_reading_log(seeded_engine, first.reading_log_id, 900, now=NOW)
        second = game_service.log_book(
            seeded_engine, student_id, book_id, 50, now=NOW + timedelta(hours=1)
        )
        assert self._keys(second) == ["first_book"]

        third = game_service.log_book(
            seeded_engine, student_id, book_id, 50, now=NOW + timedelta(hours=2)
        )
        assert self._keys(third) == ["speed_reader"]

        with Session(seeded_engine) as session:
            keys = set(session.scalars(
                select(Achievement.key)
                .join(StudentAchievement, StudentAchievement.achievement_id == Achievement.id)
                .where(StudentAchievement.student_id == student_id)
            ))
        assert keys == {"first_book", "speed_reader"}
        assert len(third.game_state.unlocked_achievements) == 2


# ===========================================================================
# verify_reading_log
# ===========================================================================
class TestVerifyReadingLog:
    def test_marks_verified_without_touching_rewards(self, db_engine, student_id, book_id):
        result = game_service.log_book(db_engine, student_id, book_id, 100, now=NOW)
        before = _state(db_engine, student_id)

        log = game_service.verify_reading_log(
            db_engine, result.reading_log_id, 77, now=NOW + timedelta(days=1)
        )

        assert log.verified_by_teacher is True
        assert log.verified_by == 77
        assert ensure_utc(log.verified_at) == NOW + timedelta(days=1)
        after = _state(db_engine, student_id)
        assert (after.xp, after.board_position) == (before.xp, before.board_position)

    def test_missing_log(self, db_engine):
        with pytest.raises(NotFound):
            game_service.verify_reading_log(db_engine, 12345, 77)


# ===========================================================================
# update_streak
# ===========================================================================
class TestUpdateStreak:
    def test_no_previous_log_is_a_no_op(self, db_engine, student_id):
        snapshot = game_service.update_streak(db_engine, student_id, now=NOW)
        assert snapshot.streak == 0
        assert snapshot.last_book_logged_at is None

    def test_increments_within_window(self, db_engine, student_id):
        with Session(db_engine) as session:
            state = session.scalar(select(GameState).where(GameState.student_id == student_id))
            state.streak = 3
            state.longest_streak = 3
            state.last_book_logged_at = NOW - timedelta(hours=24)
            session.commit()

        snapshot = game_service.update_streak(db_engine, student_id, now=NOW)

        assert (snapshot.streak, snapshot.longest_streak) == (4, 4)
        assert _state(db_engine, student_id).streak == 4

    def test_missing_state(self, db_engine):
        with pytest.raises(NotFound):
            game_service.update_streak(db_engine, 999, now=NOW)


# ===========================================================================
# validate_movement
# ===========================================================================
class TestValidateMovement:
    def test_valid_claim_writes_nothing(self, db_engine, student_id, book_id):
        game_service.log_book(db_engine, student_id, book_id, 200, now=NOW)

        check = game_service.validate_movement(db_engine, student_id, 25, 3)

        assert check.valid
        assert check.new_position == 25
        assert _count(db_engine, AuditLog) == 0
        assert _state(db_engine, student_id).board_position == 22

    def test_mismatch_is_audited(self, db_engine, student_id):
        check = game_service.validate_movement(db_engine, student_id, 50, 5)

        assert not check.valid
        assert _state(db_engine, student_id).board_position == 0
        with Session(db_engine) as session:
            rows = session.scalars(select(AuditLog)).all()
        assert len(rows) == 1
        assert rows[0].action == "SUSPICIOUS_MOVEMENT"
        assert rows[0].actor_id == student_id
        assert rows[0].metadata_ == {
            "claimedPosition": 50,
            "expectedPosition": 5,
            "claimedSteps": 5,
            "currentPosition": 0,
        }

    def test_consistent_backward_claim_is_accepted(self, db_engine, student_id, book_id):
        game_service.log_book(db_engine, student_id, book_id, 200, now=NOW)

        check = game_service.validate_movement(db_engine, student_id, 19, -3)

        assert check.valid
        assert _count(db_engine, AuditLog) == 0
        assert _state(db_engine, student_id).board_position == 22

    def test_unknown_student(self, db_engine):
        with pytest.raises(NotFound):
            game_service.validate_movement(db_engine, 999, 1, 1)


# ===========================================================================
# generate_board_config
# ===========================================================================
class TestGenerateBoardConfig:
    def test_uses_profile_grade(self, db_engine):
        sid = make_student(db_engine, name="Lauri", grade_level=5)
        board = game_service.generate_board_config(db_engine, sid, rng=random.Random(3))

        assert len(board.tiles) == 100
        assert board.tiles[0].theme == "ocean"

    def test_only_verified_logs_shape_the_board(self, db_engine, student_id):
        genres = ["fantasy", "poetry", "history"]
        log_ids = []
        for i, genre in enumerate(genres):
            bid = make_book(db_engine, genre=genre, difficulty_score=1.0 + i * 0.5)
            result = game_service.log_book(
                db_engine, student_id, bid, 50, now=NOW + timedelta(hours=i)
            )
            log_ids.append(result.reading_log_id)

        unverified = game_service.generate_board_config(db_engine, student_id)
        assert unverified.metadata.genre_diversity == 0

        for log_id in log_ids:
            game_service.verify_reading_log(db_engine, log_id, 900)
        verified = game_service.generate_board_config(db_engine, student_id)
        assert verified.metadata.genre_diversity == 3
        assert verified.metadata.avg_difficulty == pytest.approx(1.5)

    def test_unknown_student(self, db_engine):
        with pytest.raises(NotFound):
            game_service.generate_board_config(db_engine, 999)


# ===========================================================================
# StudentLocks
# ===========================================================================
class TestStudentLocks:
    def test_one_lock_per_student(self):
        locks = StudentLocks()
        assert locks.for_student(1) is locks.for_student(1)
        assert locks.for_student(1) is not locks.for_student(2)

    def test_lock_is_reentrant(self):
        lock = StudentLocks().for_student(1)
        with lock:
            assert lock.acquire(blocking=False)
            lock.release()

    def test_idle_locks_are_released(self):
        locks = StudentLocks()
        lock = locks.for_student(1)
        assert len(locks) == 1

        del lock
        gc.collect()

        assert len(locks) == 0

    def test_lock_survives_while_held(self):
        locks = StudentLocks()
        with locks.for_student(1):
            gc.collect()
            assert len(locks) == 1
            assert locks.for_student(1).acquire(blocking=False)
            locks.for_student(1).release()

    def test_concurrent_logs_all_count(self, db_engine, student_id, book_id):
        errors: list[Exception] = []
        results = []

        def worker(offset):
            try:
                results.append(game_service.log_book(
                    db_engine, student_id, book_id, 100,
                    now=NOW + timedelta(minutes=offset),
                ))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        state = _state(db_engine, student_id)
        assert state.xp == sum(r.reward.xp for r in results)
        assert state.board_position == sum(r.reward.steps for r in results)
        assert state.streak == 3
        assert _count(db_engine, ReadingLog) == 4
