"""Pydantic models for concepts, progress records and daily stats."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import IntEnum, StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from wordloop.core.errors import ValidationError

MIN_EASE_FACTOR = 1.3


def utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class Direction(StrEnum):
    """Which side of a concept is the prompt."""

    A_TO_B = "a_to_b"  # word -> translation
    B_TO_A = "b_to_a"  # translation -> word

    @classmethod
    def parse(cls, value: str | Direction) -> Direction:
        """Parse a direction, accepting the short CLI spellings too."""
        if isinstance(value, Direction):
            return value
        aliases = {"ab": cls.A_TO_B, "ba": cls.B_TO_A}
        normalized = value.strip().lower().replace("-", "_")
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ValidationError(f"Unknown direction: {value!r}") from None


class Quality(IntEnum):
    """Learner's self-reported recall difficulty."""

    HARD = 1
    MEDIUM = 2
    EASY = 3


def coerce_quality(value: int | Quality) -> Quality:
    """Validate a raw quality value.

    Anything outside HARD/MEDIUM/EASY is a programming error in the caller,
    so it raises instead of falling back to a default.
    """
    if isinstance(value, Quality):
        return value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Quality must be an int in 1..3, got {value!r}")
    try:
        return Quality(value)
    except ValueError:
        raise ValidationError(f"Quality must be 1 (hard), 2 (medium) or 3 (easy), got {value}") from None


class SelectionStatus(StrEnum):
    """Learner's choice for a concept."""

    SELECTED = "selected"
    HIDDEN = "hidden"
    MASTERED = "mastered"


class ConceptCard(BaseModel):
    """A word pair from the concept dictionary."""

    id: int
    word: str
    translation: str
    example_word: str | None = None
    example_translation: str | None = None
    pronunciation: str | None = None
    level: str | None = None  # A1, B2, ...
    category: str | None = None
    package_id: str | None = None

    def prompt(self, direction: Direction) -> str:
        return self.word if direction == Direction.A_TO_B else self.translation

    def answer(self, direction: Direction) -> str:
        return self.translation if direction == Direction.A_TO_B else self.word

    def example(self, direction: Direction) -> str | None:
        if direction == Direction.A_TO_B:
            return self.example_word
        return self.example_translation


class LearningPhase(BaseModel):
    """Session-cycling acquisition stage."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["learning"] = "learning"
    session_position: int = Field(ge=1)


class ReviewPhase(BaseModel):
    """Time-spaced retention stage."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["review"] = "review"
    interval_days: float = Field(gt=0)
    ease_factor: float = Field(ge=MIN_EASE_FACTOR)
    next_review_at: datetime


Phase = Annotated[LearningPhase | ReviewPhase, Field(discriminator="kind")]


class ProgressRecord(BaseModel):
    """Memory state for one concept in one direction."""

    model_config = ConfigDict(frozen=True)

    concept_id: int
    direction: Direction
    phase: Phase
    repetitions: int = Field(default=0, ge=0)
    hard_presses: int = Field(default=0, ge=0)
    successful_reviews: int = Field(default=0, ge=0)
    last_review_at: datetime | None = None
    is_mastered: bool = False
    is_selected: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_learning(self) -> bool:
        return isinstance(self.phase, LearningPhase)

    @property
    def session_position(self) -> int | None:
        if isinstance(self.phase, LearningPhase):
            return self.phase.session_position
        return None

    @property
    def interval_days(self) -> float | None:
        if isinstance(self.phase, ReviewPhase):
            return self.phase.interval_days
        return None

    @property
    def ease_factor(self) -> float | None:
        if isinstance(self.phase, ReviewPhase):
            return self.phase.ease_factor
        return None

    @property
    def next_review_at(self) -> datetime | None:
        if isinstance(self.phase, ReviewPhase):
            return self.phase.next_review_at
        return None

    @property
    def phase_name(self) -> str:
        return self.phase.kind


class DailyStats(BaseModel):
    """Today's numbers for one direction."""

    direction: Direction
    studied_today: int = 0
    graduated_today: int = 0
    total_answers: int = 0
    correct_answers: int = 0  # MEDIUM or EASY
    streak_days: int = 0
    daily_goal: int = 0

    @property
    def accuracy(self) -> float:
        if self.total_answers == 0:
            return 0.0
        return self.correct_answers / self.total_answers


class DailyGoalProgress(BaseModel):
    """Graduations across both directions measured against the daily goal."""

    graduated: int
    daily_goal: int

    @property
    def percentage(self) -> float:
        if self.daily_goal <= 0:
            return 0.0
        return min(100.0, self.graduated / self.daily_goal * 100.0)

    @property
    def goal_reached(self) -> bool:
        return self.daily_goal > 0 and self.graduated >= self.daily_goal
