"""Next-question selection: Test pool refill, weighted pool draw, strategy mix."""
import logging
import random as _random
from typing import Callable, Optional

from repeatrom.config import Configuration
from repeatrom.errors import QuestionNotFoundError
from repeatrom.models import (
    EventType, NextQuestionResult, Pool, QuestionState, SCHEDULED_POOLS, SelectionStrategy,
)
from repeatrom.storage import Storage, now_ms

logger = logging.getLogger(__name__)

RandomSource = Callable[[], float]


def _require_course(storage: Storage, course_id: str) -> None:
    # Raises CourseNotFoundError for unknown ids.
    storage.get_course_stats(course_id)


def refill_test_pool(
    storage: Storage, course_id: str, config: Configuration, now: Optional[int] = None,
) -> int:
    """Top the Test pool up to its target size from Latent, lowest question id first.

    Returns the number of questions promoted.
    """
    current = sum(1 for s in storage.get_all_questions(course_id, Pool.TEST) if not s.hidden)
    missing = config.test_pool_target_size - current
    if missing <= 0:
        return 0
    latent = sorted(
        (s for s in storage.get_all_questions(course_id, Pool.LATENT) if not s.hidden),
        key=lambda s: s.question_id,
    )
    promoted = [s.question_id for s in latent[:missing]]
    if not promoted:
        return 0
    for question_id in promoted:
        storage.update_question_state_with_pool_transition(
            course_id, question_id, {"pool": Pool.TEST}, Pool.LATENT, Pool.TEST,
        )
    storage.log_event(course_id, EventType.LATENT_PROMOTION, {
        "count": len(promoted),
        "question_ids": promoted,
        "reason": "test_pool_refill",
    }, now)
    logger.info("Refilled test pool of course %s with %d questions", course_id, len(promoted))
    return len(promoted)


def pool_weight(pool: Pool, available: int, config: Configuration) -> float:
    """Base weight scaled down when the pool has fewer than the penalty threshold available."""
    penalty = 1.0 if available >= config.pool_penalty_threshold else available / config.pool_penalty_threshold
    return config.pool_weight(pool) * penalty


def choose_pool(
    candidates: list[tuple[Pool, list[QuestionState]]],
    config: Configuration,
    random: RandomSource,
) -> Optional[tuple[Pool, list[QuestionState]]]:
    """Roulette-wheel draw over non-empty pools."""
    candidates = [(pool, states) for pool, states in candidates if states]
    if not candidates:
        return None
    weights = [pool_weight(pool, len(states), config) for pool, states in candidates]
    r = random() * sum(weights)
    cumulative = 0.0
    for candidate, weight in zip(candidates, weights):
        cumulative += weight
        if r < cumulative:
            return candidate
    return candidates[0]


def _oldest(states: list[QuestionState]) -> QuestionState:
    # Never-shown questions sort before any timestamp.
    return min(states, key=lambda s: (s.last_shown is not None, s.last_shown or 0, s.question_id))


def _pick_random(states: list[QuestionState], random: RandomSource) -> QuestionState:
    return states[min(int(random() * len(states)), len(states) - 1)]


def choose_question(
    available: list[QuestionState],
    config: Configuration,
    random: RandomSource,
) -> tuple[QuestionState, SelectionStrategy]:
    """Pick a question from a non-empty pool; returns the strategy that actually decided."""
    s = random() * 100
    if s < config.strategy_oldest_pct:
        return _oldest(available), SelectionStrategy.OLDEST
    if s < config.strategy_oldest_pct + config.strategy_demoted_pct:
        demoted = [state for state in available if state.was_demoted]
        if demoted:
            return _oldest(demoted), SelectionStrategy.RECOVERY
    return _pick_random(available, random), SelectionStrategy.RANDOM


def find_next_question(
    storage: Storage,
    course_id: str,
    config: Configuration,
    random: RandomSource = _random.random,
    now: Optional[int] = None,
) -> Optional[NextQuestionResult]:
    """Return the next question to show, or None when nothing is available right now."""
    now = now if now is not None else now_ms()
    _require_course(storage, course_id)
    refill_test_pool(storage, course_id, config, now)

    candidates = [(pool, storage.get_available_questions(course_id, pool, now)) for pool in SCHEDULED_POOLS]
    chosen = choose_pool(candidates, config, random)
    if chosen is None:
        logger.debug("No question available in course %s", course_id)
        return None
    pool, available = chosen
    state, strategy = choose_question(available, config, random)
    question = storage.get_question(course_id, state.question_id)
    if question is None:
        raise QuestionNotFoundError(course_id, state.question_id)
    logger.debug(
        "Course %s: picked question %d from %s via %s",
        course_id, state.question_id, pool.value, strategy.value,
    )
    return NextQuestionResult(question=question, state=state, strategy=strategy)


def next_available_at(storage: Storage, course_id: str, now: Optional[int] = None) -> Optional[int]:
    """When the next scheduled question becomes available.

    Returns now if something can be shown immediately, the earliest snooze
    expiry otherwise, and None if no visible question exists in any
    scheduled pool.
    """
    now = now if now is not None else now_ms()
    _require_course(storage, course_id)
    earliest = None
    for pool in SCHEDULED_POOLS:
        for state in storage.get_all_questions(course_id, pool):
            if state.hidden:
                continue
            if state.snooze_until is None or state.snooze_until <= now:
                return now
            if earliest is None or state.snooze_until < earliest:
                earliest = state.snooze_until
    return earliest
