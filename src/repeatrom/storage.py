"""Storage contract the engine is written against.

Any object providing these methods can back the engine; the package ships
``SQLiteStorage`` (repeatrom.db) and ``InMemoryStorage`` (repeatrom.memory).
Timestamps are epoch milliseconds. Methods that accept ``now`` or
``timestamp`` use the current time when it is omitted.
"""
import time
from typing import Any, Optional, Protocol, runtime_checkable

from repeatrom.config import Configuration
from repeatrom.models import (
    CourseCreationResult, CourseStats, CourseSummary, EventType, Interaction,
    LogEntry, MUTABLE_STATE_FIELDS, Pool, Question, QuestionState, SelectionStrategy,
)


def now_ms() -> int:
    return int(time.time() * 1000)


def check_state_updates(updates: dict) -> dict:
    """Reject updates naming fields that are not mutable question state."""
    unknown = set(updates) - MUTABLE_STATE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update question state fields: {', '.join(sorted(unknown))}")
    if "pool" in updates:
        updates = {**updates, "pool": Pool(updates["pool"])}
    return updates


def pool_transition_updates(updates: dict, new_pool: Pool) -> tuple[dict, Pool]:
    """Make the state write land the question in new_pool.

    Stats are adjusted from the pool actually stored, so the written pool
    must be new_pool whatever the caller's snapshot said.
    """
    new_pool = Pool(new_pool)
    updates = check_state_updates(updates)
    if updates.get("pool", new_pool) != new_pool:
        raise ValueError(f"updates move the question to {updates['pool'].value}, not {new_pool.value}")
    return {**updates, "pool": new_pool}, new_pool


def check_page(limit: int, offset: int) -> None:
    if limit < 0 or offset < 0:
        raise ValueError(f"limit and offset must not be negative (got {limit}, {offset})")


@runtime_checkable
class Storage(Protocol):
    def init_database(self) -> None: ...

    def is_initialized(self) -> bool: ...

    def create_course(self, name: str, questions_data: Any) -> CourseCreationResult: ...

    def list_courses(self) -> list[CourseSummary]: ...

    def delete_course(self, course_id: str) -> None: ...

    def reset_course(self, course_id: str) -> None: ...

    def get_course_stats(self, course_id: str) -> CourseStats: ...

    def update_course_stats(self, course_id: str, updates: dict) -> None: ...

    def update_last_accessed(self, course_id: str, now: Optional[int] = None) -> None: ...

    def get_question(self, course_id: str, question_id: int) -> Optional[Question]: ...

    def get_question_state(self, course_id: str, question_id: int) -> Optional[QuestionState]: ...

    def update_question_state(self, course_id: str, question_id: int, updates: dict) -> None: ...

    def update_question_state_with_pool_transition(
        self, course_id: str, question_id: int, updates: dict, old_pool: Pool, new_pool: Pool,
    ) -> None: ...

    def hide_question(self, course_id: str, question_id: int) -> Optional[Pool]: ...

    def update_notes(self, course_id: str, question_id: int, notes: str) -> None: ...

    def record_interaction(
        self, course_id: str, question_id: int, answer: str, correct: bool,
        strategy: SelectionStrategy, pool: Pool, snooze_duration: float,
        timestamp: Optional[int] = None,
    ) -> None: ...

    def get_question_history(self, course_id: str, question_id: int) -> list[Interaction]: ...

    def get_available_questions(
        self, course_id: str, pool: Pool, now: Optional[int] = None,
    ) -> list[QuestionState]: ...

    def get_all_questions(self, course_id: str, pool: Pool) -> list[QuestionState]: ...

    def log_event(
        self, course_id: str, type: EventType, details: dict, timestamp: Optional[int] = None,
    ) -> None: ...

    def get_event_log(self, course_id: str, limit: int = 100, offset: int = 0) -> list[LogEntry]: ...

    def get_config(self) -> Configuration: ...

    def update_config(self, updates: dict) -> None: ...
