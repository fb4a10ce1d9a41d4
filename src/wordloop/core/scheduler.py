"""Modified SM-2 update engine with a learning phase before review."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field

from wordloop.core.models import (
    MIN_EASE_FACTOR,
    Direction,
    LearningPhase,
    ProgressRecord,
    Quality,
    ReviewPhase,
    coerce_quality,
)

logger = logging.getLogger(__name__)


class SchedulerParams(BaseModel):
    """Tunable constants for the update engine."""

    model_config = ConfigDict(frozen=True)

    # Learning phase
    graduation_threshold: int = Field(default=2, ge=1)
    hard_press_tolerance: int = Field(default=1, ge=0)
    graduating_interval_days: float = Field(default=1.0, gt=0)
    initial_ease_factor: float = Field(default=2.5, ge=MIN_EASE_FACTOR)

    # Review phase
    min_ease_factor: float = Field(default=MIN_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    lapse_ease_penalty: float = Field(default=0.2, gt=0)
    lapse_interval_days: float = Field(default=1.0, gt=0)
    lapse_demotion_threshold: int = Field(default=2, ge=1)
    medium_ease_bonus: float = Field(default=0.0, ge=0)
    easy_ease_bonus: float = Field(default=0.15, ge=0)
    easy_interval_bonus: float = Field(default=1.3, ge=1.0)
    max_interval_days: float = Field(default=36500.0, gt=0)

    # Mastery
    mastery_repetitions: int = Field(default=5, ge=1)
    mastery_interval_days: float = Field(default=30.0, gt=0)


class SpacedRepetitionEngine:
    """Pure state machine: (record, quality) -> new record.

    Learning records cycle through the session queue until they collect
    enough qualifying answers, then graduate to time-based review. Review
    records follow SM-2 style interval growth; lapses shrink the interval
    and, when repeated, send the record back to learning.
    """

    def __init__(self, params: SchedulerParams | None = None):
        self.params = params or SchedulerParams()

    def initial_record(
        self,
        concept_id: int,
        direction: Direction,
        session_position: int,
        now: datetime,
        is_selected: bool = True,
    ) -> ProgressRecord:
        """Fresh learning-phase record for a concept studied for the first time."""
        return ProgressRecord(
            concept_id=concept_id,
            direction=direction,
            phase=LearningPhase(session_position=session_position),
            is_selected=is_selected,
            created_at=now,
            updated_at=now,
        )

    def required_successes(self, record: ProgressRecord) -> int:
        """Qualifying answers needed before a learning record graduates.

        Each HARD press beyond the tolerance raises the bar by one.
        """
        excess = max(0, record.hard_presses - self.params.hard_press_tolerance)
        return self.params.graduation_threshold + excess

    def update(
        self,
        record: ProgressRecord,
        quality: int | Quality,
        max_learning_position: int,
        now: datetime,
    ) -> ProgressRecord:
        """Compute the record that follows ``record`` after one response.

        Args:
            record: Current progress record
            quality: HARD, MEDIUM or EASY
            max_learning_position: Largest session position currently in use
                for the record's direction; re-queued cards go one past it
            now: Response time

        Returns:
            The new record. The input is not modified.
        """
        quality = coerce_quality(quality)
        if isinstance(record.phase, LearningPhase):
            updated = self._update_learning(record, quality, max_learning_position, now)
        else:
            updated = self._update_review(record, record.phase, quality, max_learning_position, now)

        logger.debug(
            "concept %s/%s: %s %s -> %s (reps=%d, pos=%s, next=%s)",
            record.concept_id,
            record.direction,
            record.phase_name,
            quality.name,
            updated.phase_name,
            updated.repetitions,
            updated.session_position,
            updated.next_review_at,
        )
        return updated

    def _update_learning(
        self,
        record: ProgressRecord,
        quality: Quality,
        max_learning_position: int,
        now: datetime,
    ) -> ProgressRecord:
        back_of_queue = LearningPhase(session_position=max_learning_position + 1)

        if quality == Quality.HARD:
            return record.model_copy(
                update={
                    "phase": back_of_queue,
                    "repetitions": 0,
                    "hard_presses": record.hard_presses + 1,
                    "last_review_at": now,
                    "updated_at": now,
                }
            )

        successful = record.successful_reviews + 1
        changes = {
            "repetitions": record.repetitions + 1,
            "successful_reviews": successful,
            "last_review_at": now,
            "updated_at": now,
        }

        if successful >= self.required_successes(record):
            interval = self.params.graduating_interval_days
            changes["phase"] = ReviewPhase(
                interval_days=interval,
                ease_factor=self.params.initial_ease_factor,
                next_review_at=now + timedelta(days=interval),
            )
            changes["hard_presses"] = 0
        else:
            changes["phase"] = back_of_queue

        return record.model_copy(update=changes)

    def _update_review(
        self,
        record: ProgressRecord,
        phase: ReviewPhase,
        quality: Quality,
        max_learning_position: int,
        now: datetime,
    ) -> ProgressRecord:
        p = self.params

        if quality == Quality.HARD:
            hard_presses = record.hard_presses + 1
            if hard_presses >= p.lapse_demotion_threshold:
                # Repeated lapses: relearn from the back of the session queue
                return record.model_copy(
                    update={
                        "phase": LearningPhase(session_position=max_learning_position + 1),
                        "repetitions": 0,
                        "hard_presses": 0,
                        "successful_reviews": 0,
                        "last_review_at": now,
                        "updated_at": now,
                    }
                )

            interval = p.lapse_interval_days
            return record.model_copy(
                update={
                    "phase": ReviewPhase(
                        interval_days=interval,
                        ease_factor=max(p.min_ease_factor, phase.ease_factor - p.lapse_ease_penalty),
                        next_review_at=now + timedelta(days=interval),
                    ),
                    "repetitions": 0,
                    "hard_presses": hard_presses,
                    "last_review_at": now,
                    "updated_at": now,
                }
            )

        if quality == Quality.EASY:
            ease = phase.ease_factor + p.easy_ease_bonus
            interval = phase.interval_days * ease * p.easy_interval_bonus
        else:
            ease = phase.ease_factor + p.medium_ease_bonus
            interval = phase.interval_days * ease
        interval = min(interval, p.max_interval_days)

        repetitions = record.repetitions + 1
        mastered = record.is_mastered or (
            repetitions >= p.mastery_repetitions and interval >= p.mastery_interval_days
        )
        if mastered and not record.is_mastered:
            logger.info("concept %s/%s mastered", record.concept_id, record.direction)

        return record.model_copy(
            update={
                "phase": ReviewPhase(
                    interval_days=interval,
                    ease_factor=ease,
                    next_review_at=now + timedelta(days=interval),
                ),
                "repetitions": repetitions,
                "successful_reviews": record.successful_reviews + 1,
                "is_mastered": mastered,
                "last_review_at": now,
                "updated_at": now,
            }
        )


def describe_due(record: ProgressRecord, now: datetime) -> str:
    """Human-readable time until the record is due again."""
    due = record.next_review_at
    if due is None:
        return "this session"

    seconds = int((due - now).total_seconds())
    if seconds <= 0:
        return "now"

    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return f"in {seconds} second(s)"
    if minutes < 60:
        return f"in {minutes} minute(s)"
    if hours < 24:
        return f"in {hours} hour(s)"
    if days < 7:
        return f"in {days} day(s)"
    if days < 30:
        return f"in {days // 7} week(s)"
    return f"in {days // 30} month(s)"
