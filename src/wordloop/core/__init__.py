"""Core library for wordloop."""

from wordloop.core.errors import PackageFormatError, StorageError, ValidationError, WordloopError
from wordloop.core.metrics import DailyProgressAccountant, day_window
from wordloop.core.models import (
    ConceptCard,
    DailyGoalProgress,
    DailyStats,
    Direction,
    LearningPhase,
    ProgressRecord,
    Quality,
    ReviewPhase,
    SelectionStatus,
    coerce_quality,
)
from wordloop.core.positions import SessionPositionManager
from wordloop.core.queue import StudyQueueSelector
from wordloop.core.scheduler import SchedulerParams, SpacedRepetitionEngine
from wordloop.core.service import StudyService
from wordloop.core.storage import ConceptDictionary, ProgressDatabase, WordloopStorage

__all__ = [
    # Errors
    "PackageFormatError",
    "StorageError",
    "ValidationError",
    "WordloopError",
    # Models
    "ConceptCard",
    "DailyGoalProgress",
    "DailyStats",
    "Direction",
    "LearningPhase",
    "ProgressRecord",
    "Quality",
    "ReviewPhase",
    "SelectionStatus",
    "coerce_quality",
    # Storage
    "ConceptDictionary",
    "ProgressDatabase",
    "WordloopStorage",
    # Scheduling
    "SchedulerParams",
    "SessionPositionManager",
    "SpacedRepetitionEngine",
    "StudyQueueSelector",
    # Progress
    "DailyProgressAccountant",
    "day_window",
    # Service
    "StudyService",
]
