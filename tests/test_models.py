"""Tests for wordloop models."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from wordloop.core.errors import ValidationError
from wordloop.core.models import (
    ConceptCard,
    DailyGoalProgress,
    Direction,
    LearningPhase,
    ProgressRecord,
    Quality,
    ReviewPhase,
    coerce_quality,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class TestDirection:
    def test_values(self):
        assert Direction.A_TO_B == "a_to_b"
        assert Direction.B_TO_A == "b_to_a"

    def test_parse_aliases(self):
        assert Direction.parse("ab") == Direction.A_TO_B
        assert Direction.parse("BA") == Direction.B_TO_A
        assert Direction.parse("a-to-b") == Direction.A_TO_B
        assert Direction.parse(Direction.B_TO_A) == Direction.B_TO_A

    def test_parse_unknown(self):
        with pytest.raises(ValidationError):
            Direction.parse("sideways")


class TestQuality:
    def test_values(self):
        assert Quality.HARD == 1
        assert Quality.MEDIUM == 2
        assert Quality.EASY == 3

    def test_coerce_int(self):
        assert coerce_quality(3) == Quality.EASY
        assert coerce_quality(Quality.HARD) is Quality.HARD

    @pytest.mark.parametrize("value", [0, 4, -1, 5])
    def test_coerce_out_of_range(self, value):
        with pytest.raises(ValidationError):
            coerce_quality(value)

    @pytest.mark.parametrize("value", ["2", 2.0, None, True])
    def test_coerce_wrong_type(self, value):
        with pytest.raises(ValidationError):
            coerce_quality(value)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            coerce_quality(9)


class TestConceptCard:
    def test_prompt_and_answer_follow_direction(self):
        card = ConceptCard(id=1, word="apple", translation="elma", example_word="An apple a day")

        assert card.prompt(Direction.A_TO_B) == "apple"
        assert card.answer(Direction.A_TO_B) == "elma"
        assert card.prompt(Direction.B_TO_A) == "elma"
        assert card.answer(Direction.B_TO_A) == "apple"
        assert card.example(Direction.A_TO_B) == "An apple a day"
        assert card.example(Direction.B_TO_A) is None


class TestProgressRecord:
    def test_learning_record_properties(self):
        record = ProgressRecord(
            concept_id=7,
            direction=Direction.A_TO_B,
            phase=LearningPhase(session_position=4),
        )
        assert record.is_learning
        assert record.session_position == 4
        assert record.interval_days is None
        assert record.ease_factor is None
        assert record.next_review_at is None
        assert record.phase_name == "learning"

    def test_review_record_properties(self):
        record = ProgressRecord(
            concept_id=7,
            direction=Direction.B_TO_A,
            phase=ReviewPhase(interval_days=6, ease_factor=2.3, next_review_at=NOW),
        )
        assert not record.is_learning
        assert record.session_position is None
        assert record.interval_days == 6
        assert record.ease_factor == 2.3
        assert record.next_review_at == NOW
        assert record.phase_name == "review"

    def test_ease_factor_floor_enforced(self):
        with pytest.raises(PydanticValidationError):
            ReviewPhase(interval_days=1, ease_factor=1.2, next_review_at=NOW)

    def test_session_position_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            LearningPhase(session_position=0)

    def test_phase_discriminator_from_dict(self):
        record = ProgressRecord.model_validate(
            {
                "concept_id": 1,
                "direction": "a_to_b",
                "phase": {"kind": "review", "interval_days": 1, "ease_factor": 2.5, "next_review_at": NOW},
            }
        )
        assert isinstance(record.phase, ReviewPhase)

    def test_record_is_frozen(self):
        record = ProgressRecord(concept_id=1, direction=Direction.A_TO_B, phase=LearningPhase(session_position=1))
        with pytest.raises(PydanticValidationError):
            record.repetitions = 5


class TestDailyGoalProgress:
    def test_percentage_capped(self):
        assert DailyGoalProgress(graduated=5, daily_goal=20).percentage == 25.0
        assert DailyGoalProgress(graduated=30, daily_goal=20).percentage == 100.0

    def test_goal_reached(self):
        assert DailyGoalProgress(graduated=20, daily_goal=20).goal_reached
        assert not DailyGoalProgress(graduated=19, daily_goal=20).goal_reached

    def test_zero_goal(self):
        progress = DailyGoalProgress(graduated=3, daily_goal=0)
        assert progress.percentage == 0.0
        assert not progress.goal_reached
