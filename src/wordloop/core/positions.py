"""Session queue positions for learning-phase records."""

from wordloop.core.models import Direction
from wordloop.core.storage import ProgressDatabase, ProgressTransaction


class SessionPositionManager:
    """Hands out strictly increasing session positions per direction.

    Positions are read from the store on every call and never cached, so a
    restarted process continues where the last one stopped. The persisted
    high-water mark keeps positions from being reused after the card at the
    back of the queue graduates.
    """

    def __init__(self, db: ProgressDatabase):
        self.db = db

    def current_max(self, direction: Direction, tx: ProgressTransaction | None = None) -> int:
        """Largest position in use or ever assigned for ``direction``."""
        if tx is None:
            with self.db.transaction() as own_tx:
                return self._current_max(own_tx, direction)
        return self._current_max(tx, direction)

    def next_position(self, direction: Direction, tx: ProgressTransaction | None = None) -> int:
        """Reserve the position one past every current learning record."""
        if tx is None:
            with self.db.transaction() as own_tx:
                return self._reserve(own_tx, direction)
        return self._reserve(tx, direction)

    def record_assignment(self, tx: ProgressTransaction, direction: Direction, position: int) -> None:
        """Advance the high-water mark after the engine placed a card at ``position``."""
        tx.advance_position_counter(direction, position)

    def _current_max(self, tx: ProgressTransaction, direction: Direction) -> int:
        return max(tx.position_high_water(direction), tx.max_session_position(direction))

    def _reserve(self, tx: ProgressTransaction, direction: Direction) -> int:
        position = self._current_max(tx, direction) + 1
        tx.advance_position_counter(direction, position)
        return position
