"""SQLite storage adapter: schema, connections and the persistent Storage."""
import json
import logging
import sqlite3
import uuid
from contextlib import closing
from pathlib import Path
from typing import Optional

from repeatrom.config import Configuration, apply_updates, config_from_dict
from repeatrom.errors import (
    ConfigNotFoundError, CourseNotFoundError, DuplicateCourseError, QuestionNotFoundError,
)
from repeatrom.importer import parse_questions_json
from repeatrom.models import (
    CourseCreationResult, CourseStats, CourseSummary, EventType, Interaction, LogEntry,
    Pool, Question, QuestionState, SelectionStrategy,
)
from repeatrom.storage import check_page, check_state_updates, now_ms, pool_transition_updates

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = str(Path.home() / ".repeatrom" / "repeatrom.db")
CONFIG_ID = "global"

SCHEMA = """
CREATE TABLE IF NOT EXISTS courses (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    created_at INTEGER NOT NULL,
    last_accessed INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS course_stats (
    course_id TEXT PRIMARY KEY REFERENCES courses(id) ON DELETE CASCADE,
    question_count INTEGER NOT NULL DEFAULT 0,
    latent_count INTEGER NOT NULL DEFAULT 0,
    test_count INTEGER NOT NULL DEFAULT 0,
    learned_count INTEGER NOT NULL DEFAULT 0,
    master_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS questions (
    course_id TEXT NOT NULL REFERENCES courses(id) ON DELETE CASCADE,
    id INTEGER NOT NULL,
    question TEXT NOT NULL,
    options TEXT NOT NULL,
    correct_option TEXT NOT NULL,
    explanation TEXT NOT NULL,
    PRIMARY KEY (course_id, id)
);

CREATE TABLE IF NOT EXISTS question_states (
    course_id TEXT NOT NULL REFERENCES courses(id) ON DELETE CASCADE,
    question_id INTEGER NOT NULL,
    pool TEXT NOT NULL DEFAULT 'latent',
    last_shown INTEGER,
    snooze_until INTEGER,
    hidden INTEGER NOT NULL DEFAULT 0,
    notes TEXT NOT NULL DEFAULT '',
    consecutive_correct INTEGER NOT NULL DEFAULT 0,
    consecutive_incorrect INTEGER NOT NULL DEFAULT 0,
    total_interactions INTEGER NOT NULL DEFAULT 0,
    was_demoted INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (course_id, question_id)
);

CREATE INDEX IF NOT EXISTS idx_question_states_pool ON question_states (course_id, pool);

CREATE TABLE IF NOT EXISTS interactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    course_id TEXT NOT NULL REFERENCES courses(id) ON DELETE CASCADE,
    question_id INTEGER NOT NULL,
    timestamp INTEGER NOT NULL,
    answer_given TEXT NOT NULL,
    correct INTEGER NOT NULL,
    snooze_duration REAL NOT NULL,
    selection_strategy TEXT NOT NULL,
    pool_at_time TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_interactions_question ON interactions (course_id, question_id);

CREATE TABLE IF NOT EXISTS event_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    course_id TEXT NOT NULL REFERENCES courses(id) ON DELETE CASCADE,
    timestamp INTEGER NOT NULL,
    type TEXT NOT NULL,
    details TEXT NOT NULL DEFAULT '{}'
);

CREATE INDEX IF NOT EXISTS idx_event_log_course ON event_log (course_id, timestamp);

CREATE TABLE IF NOT EXISTS configuration (
    id TEXT PRIMARY KEY,
    data TEXT NOT NULL
);
"""

STATS_COLUMNS = ("question_count", "latent_count", "test_count", "learned_count", "master_count")


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables and the default configuration."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.execute(
        "INSERT OR IGNORE INTO configuration (id, data) VALUES (?, ?)",
        (CONFIG_ID, json.dumps(Configuration().to_dict())),
    )
    conn.commit()
    conn.close()


def _row_to_state(row: sqlite3.Row) -> QuestionState:
    return QuestionState(
        course_id=row["course_id"],
        question_id=row["question_id"],
        pool=Pool(row["pool"]),
        last_shown=row["last_shown"],
        snooze_until=row["snooze_until"],
        hidden=bool(row["hidden"]),
        notes=row["notes"],
        consecutive_correct=row["consecutive_correct"],
        consecutive_incorrect=row["consecutive_incorrect"],
        total_interactions=row["total_interactions"],
        was_demoted=bool(row["was_demoted"]),
    )


def _column_value(value):
    if isinstance(value, Pool):
        return value.value
    if isinstance(value, bool):
        return int(value)
    return value


def _insert_log(conn, course_id: str, type: EventType, details: dict, timestamp: int) -> None:
    conn.execute(
        "INSERT INTO event_log (course_id, timestamp, type, details) VALUES (?, ?, ?, ?)",
        (course_id, timestamp, EventType(type).value, json.dumps(details)),
    )


class SQLiteStorage:
    """Persistent Storage backed by a single SQLite file.

    Every call opens its own connection; multi-statement writes commit as
    one transaction or not at all.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def _connect(self):
        return closing(get_connection(self.db_path))

    def init_database(self) -> None:
        init_db(self.db_path)

    def is_initialized(self) -> bool:
        if not Path(self.db_path).exists():
            return False
        with self._connect() as conn:
            table = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='configuration'"
            ).fetchone()
            if table is None:
                return False
            return conn.execute(
                "SELECT 1 FROM configuration WHERE id = ?", (CONFIG_ID,)
            ).fetchone() is not None

    def _require_course(self, conn, course_id: str) -> None:
        if conn.execute("SELECT 1 FROM courses WHERE id = ?", (course_id,)).fetchone() is None:
            raise CourseNotFoundError(course_id)

    def _require_state(self, conn, course_id: str, question_id: int) -> sqlite3.Row:
        self._require_course(conn, course_id)
        row = conn.execute(
            "SELECT * FROM question_states WHERE course_id = ? AND question_id = ?",
            (course_id, question_id),
        ).fetchone()
        if row is None:
            raise QuestionNotFoundError(course_id, question_id)
        return row

    def create_course(self, name: str, questions_data) -> CourseCreationResult:
        parsed = parse_questions_json(questions_data)
        course_id = str(uuid.uuid4())
        now = now_ms()
        loaded = len(parsed.questions)
        with self._connect() as conn, conn:
            if conn.execute("SELECT 1 FROM courses WHERE name = ?", (name,)).fetchone():
                raise DuplicateCourseError(name)
            try:
                conn.execute(
                    "INSERT INTO courses (id, name, created_at, last_accessed) VALUES (?, ?, ?, ?)",
                    (course_id, name, now, now),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateCourseError(name) from e
            conn.execute(
                "INSERT INTO course_stats (course_id, question_count, latent_count) VALUES (?, ?, ?)",
                (course_id, loaded, loaded),
            )
            for qid, item in enumerate(parsed.questions, 1):
                conn.execute(
                    "INSERT INTO questions (course_id, id, question, options, correct_option, explanation) VALUES (?, ?, ?, ?, ?, ?)",
                    (course_id, qid, item["question"], json.dumps(item["options"]),
                     item["correct_option"], item["explanation"]),
                )
                conn.execute(
                    "INSERT INTO question_states (course_id, question_id) VALUES (?, ?)",
                    (course_id, qid),
                )
            _insert_log(conn, course_id, EventType.COURSE_CREATED, {
                "name": name,
                "total_questions": loaded,
                "skipped_questions": len(parsed.errors),
            }, now)
        logger.info("Created course %s (%s): %d loaded, %d skipped", name, course_id, loaded, len(parsed.errors))
        return CourseCreationResult(course_id, loaded, len(parsed.errors), parsed.errors)

    def list_courses(self) -> list[CourseSummary]:
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT c.id, c.name, c.created_at, c.last_accessed,
                    s.question_count, s.latent_count, s.test_count, s.learned_count, s.master_count
                FROM courses c
                JOIN course_stats s ON s.course_id = c.id
                ORDER BY c.created_at, c.name"""
            ).fetchall()
        return [CourseSummary(**dict(row)) for row in rows]

    def delete_course(self, course_id: str) -> None:
        with self._connect() as conn, conn:
            self._require_course(conn, course_id)
            # Cascades to stats, questions, states, interactions and logs.
            conn.execute("DELETE FROM courses WHERE id = ?", (course_id,))
        logger.info("Deleted course %s", course_id)

    def reset_course(self, course_id: str) -> None:
        now = now_ms()
        with self._connect() as conn, conn:
            self._require_course(conn, course_id)
            conn.execute(
                """UPDATE question_states SET pool = 'latent', last_shown = NULL, snooze_until = NULL,
                    hidden = 0, notes = '', consecutive_correct = 0, consecutive_incorrect = 0,
                    total_interactions = 0, was_demoted = 0
                WHERE course_id = ?""",
                (course_id,),
            )
            conn.execute("DELETE FROM interactions WHERE course_id = ?", (course_id,))
            conn.execute("DELETE FROM event_log WHERE course_id = ?", (course_id,))
            total = conn.execute(
                "SELECT COUNT(*) FROM question_states WHERE course_id = ?", (course_id,)
            ).fetchone()[0]
            conn.execute(
                """UPDATE course_stats SET question_count = ?, latent_count = ?, test_count = 0,
                    learned_count = 0, master_count = 0
                WHERE course_id = ?""",
                (total, total, course_id),
            )
            _insert_log(conn, course_id, EventType.COURSE_RESET, {"reset_at": now}, now)
        logger.info("Reset course %s", course_id)

    def get_course_stats(self, course_id: str) -> CourseStats:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM course_stats WHERE course_id = ?", (course_id,)).fetchone()
        if row is None:
            raise CourseNotFoundError(course_id)
        return CourseStats(id=course_id, **{c: row[c] for c in STATS_COLUMNS})

    def update_course_stats(self, course_id: str, updates: dict) -> None:
        unknown = set(updates) - set(STATS_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown course stats fields: {', '.join(sorted(unknown))}")
        if not updates:
            return
        assignments = ", ".join(f"{k} = ?" for k in updates)
        with self._connect() as conn, conn:
            self._require_course(conn, course_id)
            conn.execute(
                f"UPDATE course_stats SET {assignments} WHERE course_id = ?",
                (*updates.values(), course_id),
            )

    def update_last_accessed(self, course_id: str, now: Optional[int] = None) -> None:
        with self._connect() as conn, conn:
            self._require_course(conn, course_id)
            conn.execute(
                "UPDATE courses SET last_accessed = ? WHERE id = ?",
                (now if now is not None else now_ms(), course_id),
            )

    def get_question(self, course_id: str, question_id: int) -> Optional[Question]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM questions WHERE course_id = ? AND id = ?", (course_id, question_id)
            ).fetchone()
        if row is None:
            return None
        return Question(
            course_id=row["course_id"],
            id=row["id"],
            question=row["question"],
            options=tuple(json.loads(row["options"])),
            correct_option=row["correct_option"],
            explanation=row["explanation"],
        )

    def get_question_state(self, course_id: str, question_id: int) -> Optional[QuestionState]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM question_states WHERE course_id = ? AND question_id = ?",
                (course_id, question_id),
            ).fetchone()
        return _row_to_state(row) if row else None

    def _write_state(self, conn, course_id: str, question_id: int, updates: dict) -> sqlite3.Row:
        """Apply updates and return the row as it was before."""
        updates = check_state_updates(updates)
        row = self._require_state(conn, course_id, question_id)
        if updates:
            assignments = ", ".join(f"{k} = ?" for k in updates)
            conn.execute(
                f"UPDATE question_states SET {assignments} WHERE course_id = ? AND question_id = ?",
                (*(_column_value(v) for v in updates.values()), course_id, question_id),
            )
        return row

    def update_question_state(self, course_id: str, question_id: int, updates: dict) -> None:
        with self._connect() as conn, conn:
            self._write_state(conn, course_id, question_id, updates)

    def update_question_state_with_pool_transition(
        self, course_id, question_id, updates, old_pool, new_pool,
    ) -> None:
        updates, new_pool = pool_transition_updates(updates, new_pool)
        with self._connect() as conn, conn:
            before = self._write_state(conn, course_id, question_id, updates)
            stored = Pool(before["pool"])
            if stored != Pool(old_pool):
                logger.warning(
                    "Question %d of course %s is in %s, not %s; counting the move from %s",
                    question_id, course_id, stored.value, Pool(old_pool).value, stored.value,
                )
            # Hidden questions are already out of the counts.
            if stored != new_pool and not before["hidden"]:
                conn.execute(
                    f"""UPDATE course_stats SET {stored.count_key} = {stored.count_key} - 1,
                        {new_pool.count_key} = {new_pool.count_key} + 1
                    WHERE course_id = ?""",
                    (course_id,),
                )

    def hide_question(self, course_id: str, question_id: int) -> Optional[Pool]:
        with self._connect() as conn, conn:
            row = self._require_state(conn, course_id, question_id)
            if row["hidden"]:
                return None
            pool = Pool(row["pool"])
            conn.execute(
                "UPDATE question_states SET hidden = 1 WHERE course_id = ? AND question_id = ?",
                (course_id, question_id),
            )
            conn.execute(
                f"""UPDATE course_stats SET {pool.count_key} = {pool.count_key} - 1,
                    question_count = question_count - 1
                WHERE course_id = ?""",
                (course_id,),
            )
            _insert_log(conn, course_id, EventType.QUESTION_HIDDEN, {
                "question_id": question_id, "pool": pool.value,
            }, now_ms())
        return pool

    def update_notes(self, course_id: str, question_id: int, notes: str) -> None:
        self.update_question_state(course_id, question_id, {"notes": notes})

    def record_interaction(
        self, course_id, question_id, answer, correct, strategy, pool, snooze_duration,
        timestamp=None,
    ) -> None:
        with self._connect() as conn, conn:
            self._require_state(conn, course_id, question_id)
            conn.execute(
                """INSERT INTO interactions (course_id, question_id, timestamp, answer_given, correct,
                    snooze_duration, selection_strategy, pool_at_time)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (course_id, question_id, timestamp if timestamp is not None else now_ms(), answer,
                 int(correct), snooze_duration, SelectionStrategy(strategy).value, Pool(pool).value),
            )

    def get_question_history(self, course_id: str, question_id: int) -> list[Interaction]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM interactions WHERE course_id = ? AND question_id = ? ORDER BY timestamp, id",
                (course_id, question_id),
            ).fetchall()
        return [
            Interaction(
                id=r["id"],
                course_id=r["course_id"],
                question_id=r["question_id"],
                timestamp=r["timestamp"],
                answer_given=r["answer_given"],
                correct=bool(r["correct"]),
                snooze_duration=r["snooze_duration"],
                selection_strategy=SelectionStrategy(r["selection_strategy"]),
                pool_at_time=Pool(r["pool_at_time"]),
            )
            for r in rows
        ]

    def get_available_questions(self, course_id: str, pool: Pool, now: Optional[int] = None) -> list[QuestionState]:
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM question_states
                WHERE course_id = ? AND pool = ? AND hidden = 0
                    AND (snooze_until IS NULL OR snooze_until <= ?)
                ORDER BY question_id""",
                (course_id, Pool(pool).value, now if now is not None else now_ms()),
            ).fetchall()
        return [_row_to_state(r) for r in rows]

    def get_all_questions(self, course_id: str, pool: Pool) -> list[QuestionState]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM question_states WHERE course_id = ? AND pool = ? ORDER BY question_id",
                (course_id, Pool(pool).value),
            ).fetchall()
        return [_row_to_state(r) for r in rows]

    def log_event(self, course_id: str, type: EventType, details: dict, timestamp: Optional[int] = None) -> None:
        with self._connect() as conn, conn:
            self._require_course(conn, course_id)
            _insert_log(conn, course_id, type, details, timestamp if timestamp is not None else now_ms())

    def get_event_log(self, course_id: str, limit: int = 100, offset: int = 0) -> list[LogEntry]:
        check_page(limit, offset)
        with self._connect() as conn:
            rows = conn.execute(
                """SELECT * FROM event_log WHERE course_id = ?
                ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?""",
                (course_id, limit, offset),
            ).fetchall()
        return [
            LogEntry(
                id=r["id"],
                course_id=r["course_id"],
                timestamp=r["timestamp"],
                type=EventType(r["type"]),
                details=json.loads(r["details"]),
            )
            for r in rows
        ]

    def get_config(self) -> Configuration:
        with self._connect() as conn:
            row = conn.execute("SELECT data FROM configuration WHERE id = ?", (CONFIG_ID,)).fetchone()
        if row is None:
            raise ConfigNotFoundError()
        return config_from_dict(json.loads(row["data"]))

    def update_config(self, updates: dict) -> None:
        with self._connect() as conn, conn:
            row = conn.execute("SELECT data FROM configuration WHERE id = ?", (CONFIG_ID,)).fetchone()
            if row is None:
                raise ConfigNotFoundError()
            config = apply_updates(config_from_dict(json.loads(row["data"])), updates)
            conn.execute(
                "UPDATE configuration SET data = ? WHERE id = ?",
                (json.dumps(config.to_dict()), CONFIG_ID),
            )
