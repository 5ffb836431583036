"""Pool promotion/demotion state machine applied to a single answer."""
from repeatrom.config import Configuration
from repeatrom.models import (
    AnswerOutcome, DomainEvent, EventType, NextQuestionResult, Pool, QuestionState,
)

MS_PER_MINUTE = 60 * 1000


def hours_to_minutes(hours: float) -> float:
    return hours * 60


def days_to_minutes(days: float) -> float:
    return days * 24 * 60


def calculate_snooze_until(now: int, duration_minutes: float) -> int:
    return int(now + duration_minutes * MS_PER_MINUTE)


def is_question_snoozed(state: QuestionState, now: int) -> bool:
    if state.snooze_until is None:
        return False
    return now < state.snooze_until


def _pool_change(question_id: int, event_type: EventType, old: Pool, new: Pool) -> DomainEvent:
    return DomainEvent(event_type, {"question_id": question_id, "from": old.value, "to": new.value})


def process_answer(
    result: NextQuestionResult,
    answer_given: str,
    config: Configuration,
    now: int,
) -> AnswerOutcome:
    """Compute the state change caused by answering a scheduled question.

    Args:
        result: What the scheduler returned (question, state snapshot, strategy).
        answer_given: The option string the learner picked.
        config: Parameters in effect for this answer.
        now: Answer time in epoch milliseconds.

    Returns:
        AnswerOutcome describing the new pool, snooze, counter values and
        any promotion/demotion event. Nothing is written; the caller persists
        state_updates and events.
    """
    state = result.state
    pool = Pool(state.pool)
    correct = answer_given == result.question.correct_option

    new_pool = pool
    streak_correct = state.consecutive_correct
    streak_incorrect = state.consecutive_incorrect
    needs_refill = False
    events = []

    if correct:
        streak_correct += 1
        streak_incorrect = 0
        if pool == Pool.TEST:
            snooze_minutes = config.snooze_test_correct_minutes
            if streak_correct >= config.promotion_consecutive_correct:
                new_pool = Pool.LEARNED
                needs_refill = True
        elif pool == Pool.LEARNED:
            snooze_minutes = hours_to_minutes(config.snooze_learned_correct_hours)
            if streak_correct >= config.promotion_consecutive_correct:
                new_pool = Pool.MASTER
        else:
            # Master is terminal for promotion; latent questions are never
            # scheduled, but get the longest snooze rather than crashing.
            snooze_minutes = days_to_minutes(config.snooze_master_correct_days)
        if new_pool != pool:
            streak_correct = 0
            events.append(_pool_change(state.question_id, EventType.PROMOTION, pool, new_pool))
    else:
        streak_correct = 0
        streak_incorrect += 1
        snooze_minutes = config.snooze_incorrect_minutes
        if streak_incorrect >= config.demotion_incorrect_count:
            if pool == Pool.MASTER:
                new_pool = Pool.LEARNED
            elif pool == Pool.LEARNED:
                new_pool = Pool.TEST
        if new_pool != pool:
            streak_incorrect = 0
            events.append(_pool_change(state.question_id, EventType.DEMOTION, pool, new_pool))

    snooze_until = calculate_snooze_until(now, snooze_minutes)
    updates = {
        "pool": new_pool,
        "last_shown": now,
        "snooze_until": snooze_until,
        "consecutive_correct": streak_correct,
        "consecutive_incorrect": streak_incorrect,
        "total_interactions": state.total_interactions + 1,
    }
    if new_pool != pool:
        updates["was_demoted"] = not correct

    return AnswerOutcome(
        correct=correct,
        old_pool=pool,
        new_pool=new_pool,
        snooze_until=snooze_until,
        snooze_duration_minutes=snooze_minutes,
        state_updates=updates,
        needs_test_pool_refill=needs_refill,
        events=events,
    )
