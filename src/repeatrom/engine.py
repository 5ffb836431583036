"""Engine facade: the operations a front-end calls, over any Storage."""
import logging
import random as _random
from typing import Callable, Optional

from repeatrom import scheduler
from repeatrom.answer import process_answer
from repeatrom.config import Configuration
from repeatrom.importer import read_course_file
from repeatrom.models import (
    AnswerOutcome, CourseCreationResult, CourseStats, CourseSummary, EventType,
    Interaction, LogEntry, NextQuestionResult, Pool, Question, QuestionState,
    SelectionStrategy,
)
from repeatrom.storage import Storage, now_ms

logger = logging.getLogger(__name__)


class Engine:
    """Schedules questions and persists answers for one learner.

    Args:
        storage: Any object satisfying repeatrom.storage.Storage.
        random: Zero-argument callable returning floats in [0, 1).
        clock: Zero-argument callable returning epoch milliseconds.
    """

    def __init__(
        self,
        storage: Storage,
        random: Callable[[], float] = _random.random,
        clock: Callable[[], int] = now_ms,
    ):
        self.storage = storage
        self.random = random
        self.clock = clock

    def initialize(self) -> None:
        if not self.storage.is_initialized():
            self.storage.init_database()

    # Courses

    def create_course(self, name: str, questions_data) -> CourseCreationResult:
        return self.storage.create_course(name, questions_data)

    def create_course_from_file(self, name: str, file_path: str) -> CourseCreationResult:
        return self.storage.create_course(name, read_course_file(file_path))

    def list_courses(self) -> list[CourseSummary]:
        return self.storage.list_courses()

    def reset_course(self, course_id: str) -> None:
        self.storage.reset_course(course_id)

    def delete_course(self, course_id: str) -> None:
        self.storage.delete_course(course_id)

    def get_course_stats(self, course_id: str) -> CourseStats:
        return self.storage.get_course_stats(course_id)

    def update_last_accessed(self, course_id: str) -> None:
        self.storage.update_last_accessed(course_id, self.clock())

    # Questions

    def get_question(self, course_id: str, question_id: int) -> Optional[Question]:
        return self.storage.get_question(course_id, question_id)

    def get_question_state(self, course_id: str, question_id: int) -> Optional[QuestionState]:
        return self.storage.get_question_state(course_id, question_id)

    def update_question_state(self, course_id: str, question_id: int, updates: dict) -> None:
        self.storage.update_question_state(course_id, question_id, updates)

    def update_question_state_with_pool_transition(
        self, course_id: str, question_id: int, updates: dict, old_pool: Pool, new_pool: Pool,
    ) -> None:
        self.storage.update_question_state_with_pool_transition(
            course_id, question_id, updates, old_pool, new_pool,
        )

    def hide_question(self, course_id: str, question_id: int) -> None:
        """Exclude a question from scheduling for good; refills Test if it came from there."""
        pool = self.storage.hide_question(course_id, question_id)
        if pool is None:
            return
        logger.info("Hid question %d of course %s (was in %s)", question_id, course_id, pool.value)
        if pool == Pool.TEST:
            self.refill_test_pool(course_id)

    def update_notes(self, course_id: str, question_id: int, notes: str) -> None:
        self.storage.update_notes(course_id, question_id, notes)

    def record_interaction(
        self, course_id: str, question_id: int, answer: str, correct: bool,
        strategy: SelectionStrategy, pool: Pool, snooze_duration: float,
    ) -> None:
        self.storage.record_interaction(
            course_id, question_id, answer, correct, strategy, pool, snooze_duration, self.clock(),
        )

    def get_question_history(self, course_id: str, question_id: int) -> list[Interaction]:
        return self.storage.get_question_history(course_id, question_id)

    def get_available_questions(self, course_id: str, pool: Pool) -> list[QuestionState]:
        return self.storage.get_available_questions(course_id, pool, self.clock())

    def get_all_questions(self, course_id: str, pool: Pool) -> list[QuestionState]:
        return self.storage.get_all_questions(course_id, pool)

    # Scheduling

    def refill_test_pool(self, course_id: str) -> int:
        return scheduler.refill_test_pool(self.storage, course_id, self.storage.get_config(), self.clock())

    def find_next_question(self, course_id: str) -> Optional[NextQuestionResult]:
        return scheduler.find_next_question(
            self.storage, course_id, self.storage.get_config(), self.random, self.clock(),
        )

    def next_available_at(self, course_id: str) -> Optional[int]:
        return scheduler.next_available_at(self.storage, course_id, self.clock())

    def submit_answer(self, course_id: str, result: NextQuestionResult, answer: str) -> AnswerOutcome:
        """Apply an answer to the scheduled question and persist every resulting change."""
        config = self.storage.get_config()
        now = self.clock()
        outcome = process_answer(result, answer, config, now)
        question_id = result.state.question_id

        self.storage.update_question_state_with_pool_transition(
            course_id, question_id, outcome.state_updates, outcome.old_pool, outcome.new_pool,
        )
        for event in outcome.events:
            self.storage.log_event(course_id, event.type, event.details, now)
        self.storage.record_interaction(
            course_id, question_id, answer, outcome.correct, result.strategy,
            outcome.old_pool, outcome.snooze_duration_minutes, now,
        )
        self.storage.log_event(course_id, EventType.USER_INTERACTION, {
            "question_id": question_id,
            "answer": answer,
            "correct": outcome.correct,
            "pool": outcome.old_pool.value,
            "new_pool": outcome.new_pool.value,
            "strategy": SelectionStrategy(result.strategy).value,
        }, now)
        self.storage.update_last_accessed(course_id, now)
        if outcome.needs_test_pool_refill:
            scheduler.refill_test_pool(self.storage, course_id, config, now)

        logger.debug(
            "Course %s question %d: %s, %s -> %s, snoozed %.1f min",
            course_id, question_id, "correct" if outcome.correct else "incorrect",
            outcome.old_pool.value, outcome.new_pool.value, outcome.snooze_duration_minutes,
        )
        return outcome

    # Sessions and logs

    def start_session(self, course_id: str) -> None:
        self.storage.log_event(course_id, EventType.SESSION_STARTED, {}, self.clock())
        self.update_last_accessed(course_id)

    def end_session(self, course_id: str) -> None:
        self.storage.log_event(course_id, EventType.SESSION_ENDED, {}, self.clock())

    def log_event(self, course_id: str, type: EventType, details: dict) -> None:
        self.storage.log_event(course_id, type, details, self.clock())

    def get_event_log(self, course_id: str, limit: int = 100, offset: int = 0) -> list[LogEntry]:
        return self.storage.get_event_log(course_id, limit, offset)

    # Configuration

    def get_config(self) -> Configuration:
        return self.storage.get_config()

    def update_config(self, updates: dict) -> Configuration:
        self.storage.update_config(updates)
        return self.storage.get_config()
