"""Study service: the interface the study session layer talks to."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo

from wordloop.core.errors import ValidationError
from wordloop.core.metrics import DailyProgressAccountant
from wordloop.core.models import (
    ConceptCard,
    DailyGoalProgress,
    DailyStats,
    Direction,
    ProgressRecord,
    Quality,
    SelectionStatus,
    coerce_quality,
    utcnow,
)
from wordloop.core.positions import SessionPositionManager
from wordloop.core.queue import StudyQueueSelector
from wordloop.core.scheduler import SchedulerParams, SpacedRepetitionEngine
from wordloop.core.storage import WordloopStorage

logger = logging.getLogger(__name__)


@dataclass
class QueueItem:
    """A concept ready to show, with the record that scheduled it."""

    concept: ConceptCard
    record: ProgressRecord


class StudyService:
    """Wires the selector, engine, position manager and accountant to storage."""

    def __init__(
        self,
        storage: WordloopStorage,
        params: SchedulerParams | None = None,
        daily_goal: int = 20,
        clock: Callable[[], datetime] = utcnow,
        tz: tzinfo | None = None,
    ):
        """Initialize the service.

        Args:
            storage: Concept dictionary and progress database
            params: Update engine constants (defaults if omitted)
            daily_goal: Graduations per day the learner aims for
            clock: Source of "now"; injectable for tests
            tz: Time zone used for day boundaries (UTC if omitted)
        """
        self.storage = storage
        self.db = storage.db
        self.engine = SpacedRepetitionEngine(params)
        self.positions = SessionPositionManager(self.db)
        self.selector = StudyQueueSelector(self.db)
        self.clock = clock
        self.accountant = DailyProgressAccountant(self.db, daily_goal, tz or UTC)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def fetch_queue_items(self, direction: Direction, limit: int = 20) -> list[QueueItem]:
        """Due records paired with their concepts, in presentation order.

        Records whose concept is missing from the dictionary are skipped
        and the queue is re-read with a larger limit, so up to ``limit``
        presentable items come back while any remain.
        """
        now = self.clock()
        missing: set[int] = set()
        fetch = limit
        while True:
            records = self.selector.get_queue(direction, now, fetch)
            items = []
            for record in records:
                concept = self.storage.concepts.concept_by_id(record.concept_id)
                if concept is None:
                    if record.concept_id not in missing:
                        missing.add(record.concept_id)
                        logger.warning("Concept %s is scheduled but missing from the dictionary", record.concept_id)
                    continue
                items.append(QueueItem(concept=concept, record=record))
            if len(items) >= limit or len(records) < fetch:
                return items
            fetch = limit + len(missing)

    def fetch_queue(self, direction: Direction, limit: int = 20) -> list[ConceptCard]:
        """Concepts to present next for ``direction``."""
        return [item.concept for item in self.fetch_queue_items(direction, limit)]

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def submit_response(self, concept_id: int, direction: Direction, quality: int | Quality) -> ProgressRecord:
        """Record one answer and return the updated progress record.

        The read, the position lookup, the write and the log entry share one
        transaction: either all of them land or none do.
        """
        quality = coerce_quality(quality)
        now = self.clock()

        with self.db.transaction() as tx:
            current = tx.get(concept_id, direction)
            if current is None:
                position = self.positions.next_position(direction, tx)
                current = self.engine.initial_record(concept_id, direction, position, now)
                logger.debug("No progress for %s/%s yet; starting at position %d", concept_id, direction, position)
                tx.set_selection(concept_id, SelectionStatus.SELECTED, now)

            max_position = self.positions.current_max(direction, tx)
            updated = self.engine.update(current, quality, max_position, now)

            tx.upsert(updated)
            if updated.session_position is not None:
                self.positions.record_assignment(tx, direction, updated.session_position)
            tx.log_response(current, updated, quality, now)

        if current.is_learning and not updated.is_learning:
            logger.info("Concept %s/%s graduated to review", concept_id, direction)
        return updated

    def progress(self, concept_id: int, direction: Direction) -> ProgressRecord | None:
        return self.db.get(concept_id, direction)

    # ------------------------------------------------------------------
    # Selection set
    # ------------------------------------------------------------------

    def select_concepts(self, concept_ids: Iterable[int]) -> list[ProgressRecord]:
        """Opt in to studying concepts.

        Creates a learning record in both directions for concepts studied for
        the first time and reactivates records of previously dropped ones.
        Returns the records created.
        """
        now = self.clock()
        created = []
        with self.db.transaction() as tx:
            for concept_id in concept_ids:
                if self.storage.concepts.concept_by_id(concept_id) is None:
                    raise ValidationError(f"Unknown concept: {concept_id}")
                tx.set_selection(concept_id, SelectionStatus.SELECTED, now)
                tx.set_selected(concept_id, True, now)
                for direction in Direction:
                    if tx.get(concept_id, direction) is not None:
                        continue
                    position = self.positions.next_position(direction, tx)
                    record = self.engine.initial_record(concept_id, direction, position, now)
                    tx.upsert(record)
                    created.append(record)
        logger.info("Selected concepts; %d new record(s)", len(created))
        return created

    def drop_concept(self, concept_id: int) -> None:
        """Stop studying a concept. Progress is kept but no longer scheduled."""
        now = self.clock()
        with self.db.transaction() as tx:
            tx.set_selection(concept_id, SelectionStatus.HIDDEN, now)
            tx.set_selected(concept_id, False, now)

    def mark_mastered(self, concept_id: int, direction: Direction | None = None) -> int:
        """Flag a concept as mastered so it is never scheduled again.

        Returns the number of progress records changed.
        """
        now = self.clock()
        with self.db.transaction() as tx:
            if direction is None:
                tx.set_selection(concept_id, SelectionStatus.MASTERED, now)
            return tx.set_mastered(concept_id, now, direction)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def daily_stats(self, direction: Direction) -> DailyStats:
        """Today's studied/graduated counts and the goal for ``direction``."""
        return self.accountant.daily_stats(direction, self.accountant.today(self.clock()))

    def daily_goal_progress(self) -> DailyGoalProgress:
        return self.accountant.daily_goal_progress(self.accountant.today(self.clock()))
