"""Tests for session position assignment."""

import tempfile
from datetime import UTC, datetime
from pathlib import Path

import pytest

from wordloop.core.models import Direction, LearningPhase, ProgressRecord
from wordloop.core.positions import SessionPositionManager
from wordloop.core.storage import ProgressDatabase

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db(temp_dir):
    return ProgressDatabase(temp_dir / "wordloop.db")


@pytest.fixture
def positions(db):
    return SessionPositionManager(db)


def learning_record(concept_id, position, direction=Direction.A_TO_B):
    return ProgressRecord(
        concept_id=concept_id,
        direction=direction,
        phase=LearningPhase(session_position=position),
        created_at=NOW,
        updated_at=NOW,
    )


class TestSessionPositionManager:
    def test_empty_store_starts_at_one(self, positions):
        assert positions.current_max(Direction.A_TO_B) == 0
        assert positions.next_position(Direction.A_TO_B) == 1

    def test_positions_strictly_increase(self, positions):
        handed_out = [positions.next_position(Direction.A_TO_B) for _ in range(5)]
        assert handed_out == [1, 2, 3, 4, 5]

    def test_directions_have_separate_sequences(self, positions):
        positions.next_position(Direction.A_TO_B)
        positions.next_position(Direction.A_TO_B)

        assert positions.next_position(Direction.B_TO_A) == 1

    def test_follows_existing_learning_rows(self, db, positions):
        db.upsert(learning_record(1, 12))

        assert positions.current_max(Direction.A_TO_B) == 12
        assert positions.next_position(Direction.A_TO_B) == 13

    def test_positions_not_reused_after_back_card_leaves(self, db, positions):
        """A graduated card at the back of the queue does not free its position."""
        position = positions.next_position(Direction.A_TO_B)
        db.upsert(learning_record(1, position))
        with db.transaction() as tx:
            tx.conn.execute("DELETE FROM word_progress")

        assert positions.next_position(Direction.A_TO_B) == position + 1

    def test_survives_restart(self, temp_dir):
        first = SessionPositionManager(ProgressDatabase(temp_dir / "wordloop.db"))
        first.next_position(Direction.B_TO_A)
        first.next_position(Direction.B_TO_A)

        second = SessionPositionManager(ProgressDatabase(temp_dir / "wordloop.db"))
        assert second.next_position(Direction.B_TO_A) == 3

    def test_record_assignment_within_transaction(self, db, positions):
        with db.transaction() as tx:
            positions.record_assignment(tx, Direction.A_TO_B, 40)
            assert positions.current_max(Direction.A_TO_B, tx) == 40

        assert positions.current_max(Direction.A_TO_B) == 40

    def test_record_assignment_never_lowers_mark(self, db, positions):
        with db.transaction() as tx:
            positions.record_assignment(tx, Direction.A_TO_B, 9)
            positions.record_assignment(tx, Direction.A_TO_B, 4)

        assert positions.current_max(Direction.A_TO_B) == 9
