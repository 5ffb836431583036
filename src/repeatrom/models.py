"""Data classes for the scheduling domain model."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Pool(str, Enum):
    LATENT = "latent"
    TEST = "test"
    LEARNED = "learned"
    MASTER = "master"

    @property
    def count_key(self) -> str:
        """Name of the CourseStats field that counts this pool."""
        return f"{self.value}_count"


# Pools the scheduler draws from, in roulette order. Latent only feeds Test.
SCHEDULED_POOLS = (Pool.TEST, Pool.LEARNED, Pool.MASTER)


class SelectionStrategy(str, Enum):
    OLDEST = "oldest"
    RECOVERY = "recovery"
    RANDOM = "random"


class EventType(str, Enum):
    COURSE_CREATED = "course_created"
    COURSE_RESET = "course_reset"
    LATENT_PROMOTION = "latent_promotion"
    PROMOTION = "promotion"
    DEMOTION = "demotion"
    QUESTION_HIDDEN = "question_hidden"
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    USER_INTERACTION = "user_interaction"


@dataclass(frozen=True)
class Question:
    course_id: str
    id: int
    question: str
    options: tuple[str, ...]
    correct_option: str
    explanation: str = ""


@dataclass
class QuestionState:
    course_id: str
    question_id: int
    pool: Pool = Pool.LATENT
    last_shown: Optional[int] = None
    snooze_until: Optional[int] = None
    hidden: bool = False
    notes: str = ""
    consecutive_correct: int = 0
    consecutive_incorrect: int = 0
    total_interactions: int = 0
    was_demoted: bool = False


# Fields a caller may change through update_question_state.
MUTABLE_STATE_FIELDS = frozenset({
    "pool", "last_shown", "snooze_until", "hidden", "notes",
    "consecutive_correct", "consecutive_incorrect", "total_interactions",
    "was_demoted",
})


@dataclass
class Interaction:
    id: int
    course_id: str
    question_id: int
    timestamp: int
    answer_given: str
    correct: bool
    snooze_duration: float
    selection_strategy: SelectionStrategy
    pool_at_time: Pool


@dataclass
class LogEntry:
    id: int
    course_id: str
    timestamp: int
    type: EventType
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class CourseMetadata:
    id: str
    name: str
    created_at: int
    last_accessed: int


@dataclass
class CourseStats:
    id: str
    question_count: int = 0
    latent_count: int = 0
    test_count: int = 0
    learned_count: int = 0
    master_count: int = 0

    def count_for(self, pool: Pool) -> int:
        return getattr(self, pool.count_key)


@dataclass
class CourseSummary:
    id: str
    name: str
    created_at: int
    last_accessed: int
    question_count: int = 0
    latent_count: int = 0
    test_count: int = 0
    learned_count: int = 0
    master_count: int = 0


@dataclass
class ValidationError:
    index: int
    reason: str


@dataclass
class ParseResult:
    questions: list[dict[str, Any]] = field(default_factory=list)
    errors: list[ValidationError] = field(default_factory=list)


@dataclass
class CourseCreationResult:
    course_id: str
    total_loaded: int
    total_skipped: int
    validation_errors: list[ValidationError] = field(default_factory=list)


@dataclass
class NextQuestionResult:
    question: Question
    state: QuestionState
    strategy: SelectionStrategy


@dataclass
class DomainEvent:
    type: EventType
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class AnswerOutcome:
    correct: bool
    old_pool: Pool
    new_pool: Pool
    snooze_until: int
    snooze_duration_minutes: float
    state_updates: dict[str, Any]
    needs_test_pool_refill: bool = False
    events: list[DomainEvent] = field(default_factory=list)
