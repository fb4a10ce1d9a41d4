"""Tests for StudyService."""

import json
import sqlite3
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from wordloop.core.errors import StorageError, ValidationError
from wordloop.core.models import Direction, Quality, SelectionStatus
from wordloop.core.service import StudyService
from wordloop.core.storage import WordloopStorage

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock for deterministic tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage(temp_dir):
    storage = WordloopStorage(temp_dir / "data", temp_dir / ".wordloop")
    package = temp_dir / "basics.json"
    package.write_text(
        json.dumps(
            {
                "package_id": "basics",
                "concepts": [
                    {"id": i, "word": f"word{i}", "translation": f"kelime{i}"} for i in range(1, 11)
                ],
            }
        )
    )
    storage.concepts.import_package(package)
    return storage


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def service(storage, clock):
    return StudyService(storage, daily_goal=3, clock=clock)


class TestSelection:
    def test_select_creates_both_directions(self, service):
        created = service.select_concepts([1, 2])

        assert len(created) == 4
        for direction in Direction:
            records = [service.progress(i, direction) for i in (1, 2)]
            assert all(r.is_learning for r in records)
            assert [r.session_position for r in records] == [1, 2]
        assert service.db.selection_status(1) == SelectionStatus.SELECTED

    def test_select_twice_creates_nothing(self, service):
        service.select_concepts([1])
        assert service.select_concepts([1]) == []

    def test_select_unknown_concept(self, service):
        with pytest.raises(ValidationError):
            service.select_concepts([1, 999])

        assert service.progress(1, Direction.A_TO_B) is None

    def test_drop_then_reselect(self, service, clock):
        service.select_concepts([1])
        service.drop_concept(1)

        assert service.fetch_queue(Direction.A_TO_B) == []
        assert service.db.selection_status(1) == SelectionStatus.HIDDEN

        service.select_concepts([1])
        assert [c.id for c in service.fetch_queue(Direction.A_TO_B)] == [1]

    def test_mark_mastered(self, service):
        service.select_concepts([1, 2])

        assert service.mark_mastered(1) == 2
        assert service.db.selection_status(1) == SelectionStatus.MASTERED
        assert [c.id for c in service.fetch_queue(Direction.A_TO_B)] == [2]

    def test_mark_mastered_one_direction(self, service):
        service.select_concepts([1])

        assert service.mark_mastered(1, Direction.B_TO_A) == 1
        assert service.fetch_queue(Direction.B_TO_A) == []
        assert [c.id for c in service.fetch_queue(Direction.A_TO_B)] == [1]


class TestSubmitResponse:
    def test_first_answer_creates_record(self, service):
        updated = service.submit_response(5, Direction.A_TO_B, Quality.EASY)

        assert updated.is_learning
        assert updated.repetitions == 1
        assert updated.successful_reviews == 1
        assert service.progress(5, Direction.A_TO_B) == updated
        assert service.progress(5, Direction.B_TO_A) is None
        assert service.db.selection_status(5) == SelectionStatus.SELECTED

    def test_requeued_behind_every_learning_card(self, service):
        service.select_concepts([1, 2, 3])

        updated = service.submit_response(1, Direction.A_TO_B, Quality.HARD)

        others = [service.progress(i, Direction.A_TO_B).session_position for i in (2, 3)]
        assert updated.session_position > max(others)
        assert [c.id for c in service.fetch_queue(Direction.A_TO_B)] == [2, 3, 1]

    def test_graduation_after_two_successes(self, service, clock):
        service.select_concepts([1])

        service.submit_response(1, Direction.A_TO_B, Quality.EASY)
        updated = service.submit_response(1, Direction.A_TO_B, Quality.MEDIUM)

        assert not updated.is_learning
        assert updated.next_review_at == NOW + timedelta(days=1)
        assert service.fetch_queue(Direction.A_TO_B) == []

        clock.advance(days=1)
        assert [c.id for c in service.fetch_queue(Direction.A_TO_B)] == [1]

    def test_positions_never_reused(self, service):
        """The card at the back graduates; the next requeue still goes further back."""
        service.select_concepts([1, 2])
        service.submit_response(2, Direction.A_TO_B, Quality.EASY)
        back = service.progress(2, Direction.A_TO_B).session_position
        service.submit_response(2, Direction.A_TO_B, Quality.EASY)

        updated = service.submit_response(1, Direction.A_TO_B, Quality.EASY)

        assert updated.session_position > back

    def test_invalid_quality_leaves_store_untouched(self, service):
        service.select_concepts([1])
        before = service.progress(1, Direction.A_TO_B)

        with pytest.raises(ValidationError):
            service.submit_response(1, Direction.A_TO_B, 7)

        assert service.progress(1, Direction.A_TO_B) == before
        assert service.db.get_stats()["total_responses"] == 0

    def test_repeated_lapse_returns_to_learning(self, service, clock):
        service.select_concepts([1, 2])
        service.submit_response(1, Direction.A_TO_B, Quality.EASY)
        service.submit_response(1, Direction.A_TO_B, Quality.EASY)

        clock.advance(days=1)
        lapsed = service.submit_response(1, Direction.A_TO_B, Quality.HARD)
        assert not lapsed.is_learning
        assert lapsed.ease_factor < 2.5

        clock.advance(days=1)
        demoted = service.submit_response(1, Direction.A_TO_B, Quality.HARD)
        assert demoted.is_learning
        assert demoted.session_position > service.progress(2, Direction.A_TO_B).session_position

    def test_repeated_easy_answers_stay_schedulable(self, service):
        """Thirty EASY answers in a row keep producing a valid, storable record."""
        service.select_concepts([1])

        for _ in range(30):
            updated = service.submit_response(1, Direction.A_TO_B, Quality.EASY)

        assert not updated.is_learning
        assert updated.interval_days == service.engine.params.max_interval_days
        assert updated.next_review_at == NOW + timedelta(days=updated.interval_days)
        assert service.progress(1, Direction.A_TO_B) == updated

    def test_storage_failure_leaves_nothing_recorded(self, service):
        service.select_concepts([1, 2])
        before = service.progress(1, Direction.A_TO_B)
        with sqlite3.connect(service.db.db_path) as conn:
            conn.execute(
                """
                CREATE TRIGGER reject_log BEFORE INSERT ON response_log
                BEGIN SELECT RAISE(ABORT, 'disk full'); END
                """
            )
        conn.close()

        with pytest.raises(StorageError):
            service.submit_response(1, Direction.A_TO_B, Quality.EASY)
        with pytest.raises(StorageError):
            service.submit_response(3, Direction.A_TO_B, Quality.HARD)

        assert service.progress(1, Direction.A_TO_B) == before
        assert service.progress(3, Direction.A_TO_B) is None
        assert service.db.selection_status(3) is None
        assert service.positions.current_max(Direction.A_TO_B) == 2
        assert service.db.get_stats()["total_responses"] == 0


class TestStudySession:
    def test_full_session(self, service, clock):
        """Cycle three cards until all of them graduate."""
        service.select_concepts([1, 2, 3])

        answers = 0
        while True:
            queue = service.fetch_queue(Direction.A_TO_B, limit=1)
            if not queue:
                break
            service.submit_response(queue[0].id, Direction.A_TO_B, Quality.MEDIUM)
            answers += 1
            clock.advance(seconds=10)

        assert answers == 6
        assert all(not service.progress(i, Direction.A_TO_B).is_learning for i in (1, 2, 3))

        progress = service.daily_goal_progress()
        assert progress.graduated == 3
        assert progress.goal_reached

    def test_review_answers_do_not_move_daily_goal(self, service, clock):
        service.select_concepts([1])
        service.submit_response(1, Direction.A_TO_B, Quality.MEDIUM)
        service.submit_response(1, Direction.A_TO_B, Quality.MEDIUM)
        assert service.daily_stats(Direction.A_TO_B).graduated_today == 1

        clock.advance(hours=2)
        service.submit_response(1, Direction.A_TO_B, Quality.EASY)

        stats = service.daily_stats(Direction.A_TO_B)
        assert stats.graduated_today == 1
        assert stats.studied_today == 1
        assert stats.daily_goal == 3

    def test_fetch_queue_items_pairs_records(self, service):
        service.select_concepts([4])

        items = service.fetch_queue_items(Direction.B_TO_A)

        assert len(items) == 1
        assert items[0].concept.translation == "kelime4"
        assert items[0].record.direction == Direction.B_TO_A

    def test_missing_concept_skipped(self, service):
        service.submit_response(404, Direction.A_TO_B, Quality.EASY)

        assert service.fetch_queue(Direction.A_TO_B) == []

    def test_missing_concepts_ahead_do_not_starve_queue(self, service):
        """Cards behind unknown concepts are still served when the limit is small."""
        service.submit_response(404, Direction.A_TO_B, Quality.HARD)
        service.submit_response(405, Direction.A_TO_B, Quality.HARD)
        service.select_concepts([1, 2])

        head = service.selector.get_queue(Direction.A_TO_B, NOW, limit=2)
        assert [r.concept_id for r in head] == [404, 405]

        assert [c.id for c in service.fetch_queue(Direction.A_TO_B, limit=1)] == [1]
        assert [c.id for c in service.fetch_queue(Direction.A_TO_B, limit=2)] == [1, 2]
        assert [c.id for c in service.fetch_queue(Direction.A_TO_B, limit=10)] == [1, 2]
        assert service.fetch_queue(Direction.A_TO_B, limit=0) == []
