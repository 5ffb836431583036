"""In-memory storage adapter for tests and throwaway sessions."""
import copy
import logging
import uuid
from dataclasses import asdict, replace
from typing import Optional

from repeatrom.config import Configuration, apply_updates
from repeatrom.errors import CourseNotFoundError, DuplicateCourseError, QuestionNotFoundError
from repeatrom.importer import parse_questions_json
from repeatrom.models import (
    CourseCreationResult, CourseMetadata, CourseStats, CourseSummary, EventType,
    Interaction, LogEntry, Pool, Question, QuestionState, SelectionStrategy,
)
from repeatrom.storage import check_page, check_state_updates, now_ms, pool_transition_updates

logger = logging.getLogger(__name__)

STATS_FIELDS = ("question_count", "latent_count", "test_count", "learned_count", "master_count")


class InMemoryStorage:
    """Keeps every record in dicts keyed by (course_id, question_id)."""

    def __init__(self, config: Optional[Configuration] = None):
        self._initialized = False
        self._courses: dict[str, CourseMetadata] = {}
        self._stats: dict[str, CourseStats] = {}
        self._questions: dict[tuple[str, int], Question] = {}
        self._states: dict[tuple[str, int], QuestionState] = {}
        self._interactions: list[Interaction] = []
        self._logs: list[LogEntry] = []
        self._config = config or Configuration()
        self._next_interaction_id = 1
        self._next_log_id = 1

    def init_database(self) -> None:
        self._initialized = True

    def is_initialized(self) -> bool:
        return self._initialized

    def _require_course(self, course_id: str) -> CourseStats:
        if course_id not in self._courses:
            raise CourseNotFoundError(course_id)
        return self._stats[course_id]

    def _require_state(self, course_id: str, question_id: int) -> QuestionState:
        self._require_course(course_id)
        state = self._states.get((course_id, question_id))
        if state is None:
            raise QuestionNotFoundError(course_id, question_id)
        return state

    def _course_keys(self, course_id: str) -> list[tuple[str, int]]:
        return sorted(k for k in self._states if k[0] == course_id)

    def create_course(self, name: str, questions_data) -> CourseCreationResult:
        if any(m.name == name for m in self._courses.values()):
            raise DuplicateCourseError(name)
        parsed = parse_questions_json(questions_data)
        course_id = str(uuid.uuid4())
        now = now_ms()
        self._courses[course_id] = CourseMetadata(course_id, name, now, now)
        loaded = len(parsed.questions)
        self._stats[course_id] = CourseStats(course_id, question_count=loaded, latent_count=loaded)
        for qid, item in enumerate(parsed.questions, 1):
            self._questions[(course_id, qid)] = Question(
                course_id=course_id,
                id=qid,
                question=item["question"],
                options=tuple(item["options"]),
                correct_option=item["correct_option"],
                explanation=item["explanation"],
            )
            self._states[(course_id, qid)] = QuestionState(course_id, qid)
        self.log_event(course_id, EventType.COURSE_CREATED, {
            "name": name,
            "total_questions": loaded,
            "skipped_questions": len(parsed.errors),
        }, timestamp=now)
        logger.info("Created course %s (%s): %d loaded, %d skipped", name, course_id, loaded, len(parsed.errors))
        return CourseCreationResult(course_id, loaded, len(parsed.errors), parsed.errors)

    def list_courses(self) -> list[CourseSummary]:
        summaries = []
        for meta in sorted(self._courses.values(), key=lambda m: m.created_at):
            stats = self._stats[meta.id]
            summaries.append(CourseSummary(
                **asdict(meta), **{f: getattr(stats, f) for f in STATS_FIELDS},
            ))
        return summaries

    def delete_course(self, course_id: str) -> None:
        self._require_course(course_id)
        del self._courses[course_id]
        del self._stats[course_id]
        for key in self._course_keys(course_id):
            del self._states[key]
            self._questions.pop(key, None)
        self._interactions = [i for i in self._interactions if i.course_id != course_id]
        self._logs = [entry for entry in self._logs if entry.course_id != course_id]
        logger.info("Deleted course %s", course_id)

    def reset_course(self, course_id: str) -> None:
        self._require_course(course_id)
        keys = self._course_keys(course_id)
        for key in keys:
            self._states[key] = QuestionState(course_id, key[1])
        self._interactions = [i for i in self._interactions if i.course_id != course_id]
        self._logs = [entry for entry in self._logs if entry.course_id != course_id]
        self._stats[course_id] = CourseStats(course_id, question_count=len(keys), latent_count=len(keys))
        now = now_ms()
        self.log_event(course_id, EventType.COURSE_RESET, {"reset_at": now}, timestamp=now)
        logger.info("Reset course %s", course_id)

    def get_course_stats(self, course_id: str) -> CourseStats:
        return replace(self._require_course(course_id))

    def update_course_stats(self, course_id: str, updates: dict) -> None:
        stats = self._require_course(course_id)
        unknown = set(updates) - set(STATS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown course stats fields: {', '.join(sorted(unknown))}")
        self._stats[course_id] = replace(stats, **updates)

    def update_last_accessed(self, course_id: str, now: Optional[int] = None) -> None:
        self._require_course(course_id)
        meta = self._courses[course_id]
        self._courses[course_id] = replace(meta, last_accessed=now if now is not None else now_ms())

    def get_question(self, course_id: str, question_id: int) -> Optional[Question]:
        return self._questions.get((course_id, question_id))

    def get_question_state(self, course_id: str, question_id: int) -> Optional[QuestionState]:
        state = self._states.get((course_id, question_id))
        return replace(state) if state else None

    def update_question_state(self, course_id: str, question_id: int, updates: dict) -> None:
        state = self._require_state(course_id, question_id)
        self._states[(course_id, question_id)] = replace(state, **check_state_updates(updates))

    def update_question_state_with_pool_transition(
        self, course_id, question_id, updates, old_pool, new_pool,
    ) -> None:
        updates, new_pool = pool_transition_updates(updates, new_pool)
        current = self._require_state(course_id, question_id)
        stored = current.pool
        if stored != Pool(old_pool):
            logger.warning(
                "Question %d of course %s is in %s, not %s; counting the move from %s",
                question_id, course_id, stored.value, Pool(old_pool).value, stored.value,
            )
        self.update_question_state(course_id, question_id, updates)
        # Hidden questions are already out of the counts.
        if stored != new_pool and not current.hidden:
            stats = self._stats[course_id]
            self._stats[course_id] = replace(stats, **{
                stored.count_key: stats.count_for(stored) - 1,
                new_pool.count_key: stats.count_for(new_pool) + 1,
            })

    def hide_question(self, course_id: str, question_id: int) -> Optional[Pool]:
        state = self._require_state(course_id, question_id)
        if state.hidden:
            return None
        self._states[(course_id, question_id)] = replace(state, hidden=True)
        stats = self._stats[course_id]
        self._stats[course_id] = replace(stats, **{
            state.pool.count_key: stats.count_for(state.pool) - 1,
            "question_count": stats.question_count - 1,
        })
        self.log_event(course_id, EventType.QUESTION_HIDDEN, {
            "question_id": question_id, "pool": state.pool.value,
        })
        return state.pool

    def update_notes(self, course_id: str, question_id: int, notes: str) -> None:
        self.update_question_state(course_id, question_id, {"notes": notes})

    def record_interaction(
        self, course_id, question_id, answer, correct, strategy, pool, snooze_duration,
        timestamp=None,
    ) -> None:
        self._require_state(course_id, question_id)
        self._interactions.append(Interaction(
            id=self._next_interaction_id,
            course_id=course_id,
            question_id=question_id,
            timestamp=timestamp if timestamp is not None else now_ms(),
            answer_given=answer,
            correct=correct,
            snooze_duration=snooze_duration,
            selection_strategy=SelectionStrategy(strategy),
            pool_at_time=Pool(pool),
        ))
        self._next_interaction_id += 1

    def get_question_history(self, course_id: str, question_id: int) -> list[Interaction]:
        return [
            replace(i) for i in self._interactions
            if i.course_id == course_id and i.question_id == question_id
        ]

    def get_available_questions(self, course_id: str, pool: Pool, now: Optional[int] = None) -> list[QuestionState]:
        now = now if now is not None else now_ms()
        return [
            s for s in self.get_all_questions(course_id, pool)
            if not s.hidden and (s.snooze_until is None or s.snooze_until <= now)
        ]

    def get_all_questions(self, course_id: str, pool: Pool) -> list[QuestionState]:
        pool = Pool(pool)
        return [
            replace(self._states[k]) for k in self._course_keys(course_id)
            if self._states[k].pool == pool
        ]

    def log_event(self, course_id: str, type: EventType, details: dict, timestamp: Optional[int] = None) -> None:
        self._require_course(course_id)
        self._logs.append(LogEntry(
            id=self._next_log_id,
            course_id=course_id,
            timestamp=timestamp if timestamp is not None else now_ms(),
            type=EventType(type),
            details=copy.deepcopy(details),
        ))
        self._next_log_id += 1

    def get_event_log(self, course_id: str, limit: int = 100, offset: int = 0) -> list[LogEntry]:
        check_page(limit, offset)
        entries = sorted(
            (entry for entry in self._logs if entry.course_id == course_id),
            key=lambda entry: (entry.timestamp, entry.id),
            reverse=True,
        )
        return [copy.deepcopy(entry) for entry in entries[offset:offset + limit]]

    def get_config(self) -> Configuration:
        return self._config

    def update_config(self, updates: dict) -> None:
        self._config = apply_updates(self._config, updates)
