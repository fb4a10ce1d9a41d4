"""Study queue selection: learning cards first, then due reviews."""

from datetime import datetime

from wordloop.core.errors import ValidationError
from wordloop.core.models import Direction, ProgressRecord
from wordloop.core.storage import ProgressDatabase


class StudyQueueSelector:
    """Builds the ordered list of records to present next.

    Learning records are always eligible, regardless of the clock, so the
    active session keeps cycling while any concept is mid-acquisition.
    Review records join only once due. Selected, non-mastered records of
    the requested direction only.
    """

    def __init__(self, db: ProgressDatabase):
        self.db = db

    def get_queue(self, direction: Direction, now: datetime, limit: int = 20) -> list[ProgressRecord]:
        """Return up to ``limit`` due records.

        Ordering: learning by session position, then review by due time
        (most overdue first); ties broken by concept id.
        """
        if limit < 0:
            raise ValidationError(f"Queue limit must be non-negative, got {limit}")
        if limit == 0:
            return []

        learning = self.db.scan_learning(direction, limit)
        remaining = limit - len(learning)
        if remaining == 0:
            return learning

        return learning + self.db.scan_due_reviews(direction, now, remaining)

    def counts(self, direction: Direction, now: datetime) -> dict[str, int]:
        """Number of learning records and due reviews for ``direction``."""
        return self.db.count_schedulable(direction, now)

    def has_words_to_study(self, direction: Direction, now: datetime) -> bool:
        counts = self.counts(direction, now)
        return counts["learning"] + counts["due_reviews"] > 0
