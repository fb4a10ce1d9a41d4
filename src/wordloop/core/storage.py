"""Storage layer for word packages (JSON files) and progress data (SQLite)."""

import json
import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from wordloop.core.errors import PackageFormatError, StorageError
from wordloop.core.models import (
    ConceptCard,
    Direction,
    LearningPhase,
    ProgressRecord,
    Quality,
    ReviewPhase,
    SelectionStatus,
)

logger = logging.getLogger(__name__)

# Persisted for learning rows, whose ease factor has no meaning yet
_LEARNING_EASE_FACTOR = 2.5


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MILLISECOND = timedelta(milliseconds=1)


def to_millis(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return (value - _EPOCH) // _MILLISECOND


def from_millis(value: int | None) -> datetime | None:
    """Convert epoch milliseconds to an aware UTC datetime."""
    if value is None:
        return None
    return _EPOCH + timedelta(milliseconds=value)


# ============================================================================
# Schema migrations
# ============================================================================


def _migrate_v1(conn: sqlite3.Connection) -> None:
    """Base selection set and progress table."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS selections (
            concept_id INTEGER PRIMARY KEY,
            status TEXT NOT NULL,
            selected_at INTEGER NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS word_progress (
            concept_id INTEGER NOT NULL,
            direction TEXT NOT NULL,
            repetitions INTEGER NOT NULL DEFAULT 0,
            interval_days REAL NOT NULL DEFAULT 1.0,
            ease_factor REAL NOT NULL DEFAULT 2.5,
            next_review_at INTEGER NOT NULL,
            last_review_at INTEGER,
            is_selected INTEGER NOT NULL DEFAULT 0,
            is_mastered INTEGER NOT NULL DEFAULT 0,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL,
            PRIMARY KEY (concept_id, direction)
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_word_progress_concept_id ON word_progress(concept_id)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_word_progress_next_review_at ON word_progress(next_review_at)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_word_progress_is_selected ON word_progress(is_selected)")


def _migrate_v2(conn: sqlite3.Connection) -> None:
    """Learning phase and session queue position."""
    conn.execute("ALTER TABLE word_progress ADD COLUMN learning_phase INTEGER NOT NULL DEFAULT 1")
    conn.execute("ALTER TABLE word_progress ADD COLUMN session_position INTEGER")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_word_progress_learning_phase ON word_progress(learning_phase)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_word_progress_session_position ON word_progress(session_position)"
    )
    # Existing rows all start in learning; queue them in insertion order
    conn.execute(
        """
        UPDATE word_progress
        SET session_position = (
            SELECT COUNT(*) + 1
            FROM word_progress p2
            WHERE p2.direction = word_progress.direction
              AND p2.rowid < word_progress.rowid
        )
        WHERE learning_phase = 1
        """
    )


def _migrate_v3(conn: sqlite3.Connection) -> None:
    """Graduation counters.

    Rows already in review are marked as graduated (three successes) so
    they are not mistaken for fresh learners.
    """
    conn.execute("ALTER TABLE word_progress ADD COLUMN hard_presses INTEGER DEFAULT 0")
    conn.execute("ALTER TABLE word_progress ADD COLUMN successful_reviews INTEGER DEFAULT 0")
    conn.execute(
        """
        UPDATE word_progress
        SET hard_presses = 0,
            successful_reviews = CASE
                WHEN learning_phase = 0 THEN 3
                ELSE repetitions
            END
        """
    )


def _migrate_v4(conn: sqlite3.Connection) -> None:
    """Response log, position high-water marks and the due-scan index."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS response_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            concept_id INTEGER NOT NULL,
            direction TEXT NOT NULL,
            reviewed_at INTEGER NOT NULL,
            quality INTEGER NOT NULL,
            phase_before TEXT NOT NULL,
            phase_after TEXT NOT NULL,
            interval_before REAL,
            interval_after REAL,
            ease_before REAL,
            ease_after REAL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_response_log_reviewed_at ON response_log(direction, reviewed_at)"
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS session_counters (
            direction TEXT PRIMARY KEY,
            last_position INTEGER NOT NULL
        )
        """
    )
    conn.execute(
        """
        INSERT OR IGNORE INTO session_counters (direction, last_position)
        SELECT direction, MAX(session_position) FROM word_progress
        WHERE session_position IS NOT NULL
        GROUP BY direction
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_word_progress_direction_due "
        "ON word_progress(direction, next_review_at)"
    )


MIGRATIONS: list[Callable[[sqlite3.Connection], None]] = [
    _migrate_v1,
    _migrate_v2,
    _migrate_v3,
    _migrate_v4,
]
SCHEMA_VERSION = len(MIGRATIONS)


def migrate(conn: sqlite3.Connection, target: int = SCHEMA_VERSION) -> int:
    """Apply pending migrations up to ``target``. Returns the resulting version."""
    current = conn.execute("PRAGMA user_version").fetchone()[0]
    for version in range(current + 1, target + 1):
        logger.info("Migrating progress database to schema v%d", version)
        MIGRATIONS[version - 1](conn)
        conn.execute(f"PRAGMA user_version = {version}")
    return max(current, target)


# ============================================================================
# Row mapping
# ============================================================================


def _row_to_record(row: sqlite3.Row) -> ProgressRecord:
    """Build a ProgressRecord from a word_progress row."""
    direction = Direction(row["direction"])
    if row["learning_phase"]:
        if row["session_position"] is None:
            raise StorageError(
                f"Learning row without session position: {row['concept_id']}/{direction}"
            )
        phase: LearningPhase | ReviewPhase = LearningPhase(session_position=row["session_position"])
    else:
        phase = ReviewPhase(
            interval_days=row["interval_days"],
            ease_factor=row["ease_factor"],
            next_review_at=from_millis(row["next_review_at"]),
        )

    return ProgressRecord(
        concept_id=row["concept_id"],
        direction=direction,
        phase=phase,
        repetitions=row["repetitions"],
        hard_presses=row["hard_presses"] or 0,
        successful_reviews=row["successful_reviews"] or 0,
        last_review_at=from_millis(row["last_review_at"]),
        is_mastered=bool(row["is_mastered"]),
        is_selected=bool(row["is_selected"]),
        created_at=from_millis(row["created_at"]),
        updated_at=from_millis(row["updated_at"]),
    )


class ProgressTransaction:
    """Progress operations bound to one open connection."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, concept_id: int, direction: Direction) -> ProgressRecord | None:
        row = self.conn.execute(
            "SELECT * FROM word_progress WHERE concept_id = ? AND direction = ?",
            (concept_id, direction.value),
        ).fetchone()
        return _row_to_record(row) if row else None

    def upsert(self, record: ProgressRecord) -> None:
        """Insert or replace the row for the record's (concept, direction)."""
        if isinstance(record.phase, ReviewPhase):
            interval = record.phase.interval_days
            ease = record.phase.ease_factor
            next_review_at = to_millis(record.phase.next_review_at)
            session_position = None
        else:
            interval = 0.0
            ease = _LEARNING_EASE_FACTOR
            # Learning rows are available immediately
            next_review_at = to_millis(record.updated_at)
            session_position = record.phase.session_position

        self.conn.execute(
            """
            INSERT INTO word_progress (
                concept_id, direction, repetitions, interval_days, ease_factor,
                next_review_at, last_review_at, is_selected, is_mastered,
                learning_phase, session_position, hard_presses, successful_reviews,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(concept_id, direction) DO UPDATE SET
                repetitions = excluded.repetitions,
                interval_days = excluded.interval_days,
                ease_factor = excluded.ease_factor,
                next_review_at = excluded.next_review_at,
                last_review_at = excluded.last_review_at,
                is_selected = excluded.is_selected,
                is_mastered = excluded.is_mastered,
                learning_phase = excluded.learning_phase,
                session_position = excluded.session_position,
                hard_presses = excluded.hard_presses,
                successful_reviews = excluded.successful_reviews,
                updated_at = excluded.updated_at
            """,
            (
                record.concept_id,
                record.direction.value,
                record.repetitions,
                interval,
                ease,
                next_review_at,
                to_millis(record.last_review_at) if record.last_review_at else None,
                int(record.is_selected),
                int(record.is_mastered),
                int(record.is_learning),
                session_position,
                record.hard_presses,
                record.successful_reviews,
                to_millis(record.created_at),
                to_millis(record.updated_at),
            ),
        )

    def max_session_position(self, direction: Direction) -> int:
        """Largest session position among learning rows, 0 if none."""
        row = self.conn.execute(
            """
            SELECT MAX(session_position) FROM word_progress
            WHERE direction = ? AND learning_phase = 1
            """,
            (direction.value,),
        ).fetchone()
        return row[0] or 0

    def position_high_water(self, direction: Direction) -> int:
        """Largest session position ever handed out for a direction."""
        row = self.conn.execute(
            "SELECT last_position FROM session_counters WHERE direction = ?",
            (direction.value,),
        ).fetchone()
        return row[0] if row else 0

    def advance_position_counter(self, direction: Direction, position: int) -> None:
        self.conn.execute(
            """
            INSERT INTO session_counters (direction, last_position) VALUES (?, ?)
            ON CONFLICT(direction) DO UPDATE SET
                last_position = MAX(last_position, excluded.last_position)
            """,
            (direction.value, position),
        )

    def scan_learning(self, direction: Direction, limit: int) -> list[ProgressRecord]:
        """Active learning rows in queue order."""
        rows = self.conn.execute(
            """
            SELECT * FROM word_progress
            WHERE direction = ?
              AND learning_phase = 1
              AND is_selected = 1
              AND is_mastered = 0
            ORDER BY session_position ASC, concept_id ASC
            LIMIT ?
            """,
            (direction.value, limit),
        ).fetchall()
        return [_row_to_record(row) for row in rows]

    def scan_due_reviews(self, direction: Direction, now: datetime, limit: int) -> list[ProgressRecord]:
        """Review rows due at ``now``, most overdue first."""
        rows = self.conn.execute(
            """
            SELECT * FROM word_progress
            WHERE direction = ?
              AND learning_phase = 0
              AND is_selected = 1
              AND is_mastered = 0
              AND next_review_at <= ?
            ORDER BY next_review_at ASC, concept_id ASC
            LIMIT ?
            """,
            (direction.value, to_millis(now), limit),
        ).fetchall()
        return [_row_to_record(row) for row in rows]

    def count_schedulable(self, direction: Direction, now: datetime) -> dict[str, int]:
        row = self.conn.execute(
            """
            SELECT
                SUM(CASE WHEN learning_phase = 1 THEN 1 ELSE 0 END) AS learning,
                SUM(CASE WHEN learning_phase = 0 AND next_review_at <= ? THEN 1 ELSE 0 END) AS due
            FROM word_progress
            WHERE direction = ? AND is_selected = 1 AND is_mastered = 0
            """,
            (to_millis(now), direction.value),
        ).fetchone()
        return {"learning": row["learning"] or 0, "due_reviews": row["due"] or 0}

    def log_response(
        self,
        before: ProgressRecord,
        after: ProgressRecord,
        quality: Quality,
        reviewed_at: datetime,
    ) -> None:
        """Append one response to the log."""
        self.conn.execute(
            """
            INSERT INTO response_log (
                concept_id, direction, reviewed_at, quality,
                phase_before, phase_after,
                interval_before, interval_after, ease_before, ease_after
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                after.concept_id,
                after.direction.value,
                to_millis(reviewed_at),
                int(quality),
                before.phase_name,
                after.phase_name,
                before.interval_days,
                after.interval_days,
                before.ease_factor,
                after.ease_factor,
            ),
        )

    def set_selected(self, concept_id: int, selected: bool, now: datetime) -> int:
        """Flag every direction of a concept as (de)selected. Returns rows changed."""
        cursor = self.conn.execute(
            "UPDATE word_progress SET is_selected = ?, updated_at = ? WHERE concept_id = ?",
            (int(selected), to_millis(now), concept_id),
        )
        return cursor.rowcount

    def set_mastered(self, concept_id: int, now: datetime, direction: Direction | None = None) -> int:
        if direction is None:
            cursor = self.conn.execute(
                "UPDATE word_progress SET is_mastered = 1, updated_at = ? WHERE concept_id = ?",
                (to_millis(now), concept_id),
            )
        else:
            cursor = self.conn.execute(
                """
                UPDATE word_progress SET is_mastered = 1, updated_at = ?
                WHERE concept_id = ? AND direction = ?
                """,
                (to_millis(now), concept_id, direction.value),
            )
        return cursor.rowcount

    def set_selection(self, concept_id: int, status: SelectionStatus, now: datetime) -> None:
        self.conn.execute(
            """
            INSERT INTO selections (concept_id, status, selected_at) VALUES (?, ?, ?)
            ON CONFLICT(concept_id) DO UPDATE SET
                status = excluded.status,
                selected_at = excluded.selected_at
            """,
            (concept_id, status.value, to_millis(now)),
        )

    def selection_status(self, concept_id: int) -> SelectionStatus | None:
        row = self.conn.execute(
            "SELECT status FROM selections WHERE concept_id = ?", (concept_id,)
        ).fetchone()
        return SelectionStatus(row["status"]) if row else None


class ProgressDatabase:
    """SQLite database for progress records, the selection set and the response log."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Bring the schema up to the current version."""
        with self._connection() as conn:
            migrate(conn)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[ProgressTransaction]:
        """Open a write transaction; everything inside commits or rolls back together."""
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield ProgressTransaction(conn)

    @contextmanager
    def _reader(self) -> Iterator[ProgressTransaction]:
        with self._connection() as conn:
            yield ProgressTransaction(conn)

    def schema_version(self) -> int:
        with self._connection() as conn:
            return conn.execute("PRAGMA user_version").fetchone()[0]

    def get(self, concept_id: int, direction: Direction) -> ProgressRecord | None:
        """Get the progress record for a concept in one direction."""
        with self._reader() as tx:
            return tx.get(concept_id, direction)

    def get_all(self, concept_id: int) -> list[ProgressRecord]:
        """Get the progress records for every direction of a concept."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM word_progress WHERE concept_id = ? ORDER BY direction",
                (concept_id,),
            ).fetchall()
            return [_row_to_record(row) for row in rows]

    def upsert(self, record: ProgressRecord) -> None:
        with self.transaction() as tx:
            tx.upsert(record)

    def max_session_position(self, direction: Direction) -> int:
        with self._reader() as tx:
            return tx.max_session_position(direction)

    def scan_learning(self, direction: Direction, limit: int) -> list[ProgressRecord]:
        with self._reader() as tx:
            return tx.scan_learning(direction, limit)

    def scan_due_reviews(self, direction: Direction, now: datetime, limit: int) -> list[ProgressRecord]:
        with self._reader() as tx:
            return tx.scan_due_reviews(direction, now, limit)

    def count_schedulable(self, direction: Direction, now: datetime) -> dict[str, int]:
        with self._reader() as tx:
            return tx.count_schedulable(direction, now)

    def is_selected(self, concept_id: int) -> bool:
        """Whether the learner currently studies this concept."""
        with self._reader() as tx:
            return tx.selection_status(concept_id) == SelectionStatus.SELECTED

    def selection_status(self, concept_id: int) -> SelectionStatus | None:
        with self._reader() as tx:
            return tx.selection_status(concept_id)

    def selected_concept_ids(self) -> list[int]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT concept_id FROM selections WHERE status = ? ORDER BY concept_id",
                (SelectionStatus.SELECTED.value,),
            ).fetchall()
            return [row["concept_id"] for row in rows]

    def count_graduations(self, direction: Direction, start: datetime, end: datetime) -> int:
        """Distinct concepts that moved from learning to review in ``[start, end)``."""
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(DISTINCT concept_id) FROM response_log
                WHERE direction = ?
                  AND phase_before = 'learning'
                  AND phase_after = 'review'
                  AND reviewed_at >= ? AND reviewed_at < ?
                """,
                (direction.value, to_millis(start), to_millis(end)),
            ).fetchone()
            return row[0]

    def count_studied(self, direction: Direction, start: datetime, end: datetime) -> int:
        """Distinct concepts answered at least once in ``[start, end)``."""
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(DISTINCT concept_id) FROM response_log
                WHERE direction = ? AND reviewed_at >= ? AND reviewed_at < ?
                """,
                (direction.value, to_millis(start), to_millis(end)),
            ).fetchone()
            return row[0]

    def count_answers(self, direction: Direction, start: datetime, end: datetime) -> dict[str, int]:
        """All answers and MEDIUM/EASY answers in ``[start, end)``."""
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN quality >= ? THEN 1 ELSE 0 END) AS correct
                FROM response_log
                WHERE direction = ? AND reviewed_at >= ? AND reviewed_at < ?
                """,
                (int(Quality.MEDIUM), direction.value, to_millis(start), to_millis(end)),
            ).fetchone()
            return {"total": row["total"], "correct": row["correct"] or 0}

    def graduation_times(self, end: datetime) -> list[datetime]:
        """Times of every learning -> review transition before ``end``, newest first."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT reviewed_at FROM response_log
                WHERE phase_before = 'learning'
                  AND phase_after = 'review'
                  AND reviewed_at < ?
                ORDER BY reviewed_at DESC
                """,
                (to_millis(end),),
            ).fetchall()
            return [from_millis(row["reviewed_at"]) for row in rows]

    def get_stats(self) -> dict:
        """Get progress totals."""
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN learning_phase = 1 THEN 1 ELSE 0 END) AS learning,
                    SUM(CASE WHEN learning_phase = 0 THEN 1 ELSE 0 END) AS review,
                    SUM(CASE WHEN is_mastered = 1 THEN 1 ELSE 0 END) AS mastered
                FROM word_progress
                WHERE is_selected = 1
                """
            ).fetchone()
            total_responses = conn.execute("SELECT COUNT(*) FROM response_log").fetchone()[0]
            selected = conn.execute(
                "SELECT COUNT(*) FROM selections WHERE status = ?",
                (SelectionStatus.SELECTED.value,),
            ).fetchone()[0]

            return {
                "selected_concepts": selected,
                "total_records": row["total"] or 0,
                "learning": row["learning"] or 0,
                "review": row["review"] or 0,
                "mastered": row["mastered"] or 0,
                "total_responses": total_responses,
            }


class ConceptDictionary:
    """Word packages stored as JSON files under ``data_dir/packages``."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.packages_dir = data_dir / "packages"
        self.packages_dir.mkdir(parents=True, exist_ok=True)
        self._index: dict[int, ConceptCard] | None = None

    def _load_package(self, path: Path) -> list[ConceptCard]:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise PackageFormatError(f"{path.name}: invalid JSON ({exc})") from exc
        except UnicodeDecodeError as exc:
            raise PackageFormatError(f"{path.name}: not valid UTF-8 ({exc})") from exc
        except OSError as exc:
            raise PackageFormatError(f"{path.name}: cannot read package ({exc})") from exc

        if not isinstance(data, dict) or not isinstance(data.get("concepts"), list):
            raise PackageFormatError(f"{path.name}: expected an object with a 'concepts' list")

        package_id = data.get("package_id") or path.stem
        level = data.get("level")
        concepts = []
        for entry in data["concepts"]:
            if not isinstance(entry, dict):
                raise PackageFormatError(f"{path.name}: concept entries must be objects")
            entry = {"package_id": package_id, "level": level, **entry}
            try:
                concepts.append(ConceptCard.model_validate(entry))
            except PydanticValidationError as exc:
                raise PackageFormatError(f"{path.name}: {exc}") from exc
        return concepts

    def _load_index(self) -> dict[int, ConceptCard]:
        if self._index is None:
            index: dict[int, ConceptCard] = {}
            for path in sorted(self.packages_dir.glob("*.json")):
                for concept in self._load_package(path):
                    if concept.id in index:
                        logger.warning("Duplicate concept id %s in %s", concept.id, path.name)
                    index[concept.id] = concept
            self._index = index
        return self._index

    def import_package(self, source: Path) -> list[ConceptCard]:
        """Validate a package file and copy it into the packages directory."""
        concepts = self._load_package(source)
        target = self.packages_dir / source.name
        try:
            target.write_text(source.read_text(encoding="utf-8"), encoding="utf-8")
        except OSError as exc:
            raise StorageError(f"Cannot copy {source.name} into {self.packages_dir}: {exc}") from exc
        self._index = None
        logger.info("Imported %d concept(s) from %s", len(concepts), source.name)
        return concepts

    def concept_by_id(self, concept_id: int) -> ConceptCard | None:
        """Look up a concept by id."""
        return self._load_index().get(concept_id)

    def list_all(self, package_id: str | None = None) -> list[ConceptCard]:
        concepts = sorted(self._load_index().values(), key=lambda c: c.id)
        if package_id:
            concepts = [c for c in concepts if c.package_id == package_id]
        return concepts


class WordloopStorage:
    """Combined storage manager for wordloop."""

    def __init__(self, data_dir: Path | None = None, state_dir: Path | None = None):
        # Default paths
        if data_dir is None:
            data_dir = Path.cwd() / "data"
        if state_dir is None:
            state_dir = Path.cwd() / ".wordloop"

        self.data_dir = data_dir
        self.state_dir = state_dir

        self.concepts = ConceptDictionary(data_dir)
        self.db = ProgressDatabase(state_dir / "wordloop.db")
