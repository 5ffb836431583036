"""Contract tests run against both the in-memory and SQLite adapters."""
import pytest

from repeatrom.errors import CourseNotFoundError, DuplicateCourseError, QuestionNotFoundError
from repeatrom.models import EventType, Pool, SelectionStrategy
from repeatrom.storage import Storage


def test_adapters_satisfy_protocol(storage):
    assert isinstance(storage, Storage)
    assert storage.is_initialized() is True


def test_create_course_loads_valid_questions(storage, questions):
    data = questions(3)
    data.insert(1, {"question": "bad", "options": ["x"], "correct_option": "x", "explanation": ""})
    result = storage.create_course("Course", data)
    assert result.total_loaded == 3
    assert result.total_skipped == 1
    assert result.validation_errors[0].index == 1

    q = storage.get_question(result.course_id, 2)
    assert q.question == "Question 2"
    assert q.options == ("A", "B", "C", "D")
    assert storage.get_question(result.course_id, 4) is None

    state = storage.get_question_state(result.course_id, 3)
    assert state.pool == Pool.LATENT
    assert state.total_interactions == 0

    stats = storage.get_course_stats(result.course_id)
    assert (stats.question_count, stats.latent_count, stats.test_count) == (3, 3, 0)

    log = storage.get_event_log(result.course_id)
    assert log[0].type == EventType.COURSE_CREATED
    assert log[0].details == {"name": "Course", "total_questions": 3, "skipped_questions": 1}


def test_duplicate_course_name_rejected(storage, questions):
    storage.create_course("Dup", questions(2))
    with pytest.raises(DuplicateCourseError, match="Dup"):
        storage.create_course("Dup", questions(4))
    assert len(storage.list_courses()) == 1


def test_list_courses_merges_stats(storage, questions):
    first = storage.create_course("First", questions(2)).course_id
    storage.create_course("Second", questions(5))
    courses = storage.list_courses()
    assert [c.name for c in courses] == ["First", "Second"]
    assert courses[0].id == first
    assert courses[1].question_count == 5
    assert courses[1].latent_count == 5


def test_unknown_course_raises(storage):
    with pytest.raises(CourseNotFoundError):
        storage.get_course_stats("missing")
    with pytest.raises(CourseNotFoundError):
        storage.reset_course("missing")
    with pytest.raises(CourseNotFoundError):
        storage.delete_course("missing")
    with pytest.raises(CourseNotFoundError):
        storage.log_event("missing", EventType.SESSION_STARTED, {})


def test_unknown_question_raises_on_write(storage, questions):
    course_id = storage.create_course("C", questions(1)).course_id
    assert storage.get_question_state(course_id, 99) is None
    with pytest.raises(QuestionNotFoundError):
        storage.update_question_state(course_id, 99, {"notes": "x"})
    with pytest.raises(QuestionNotFoundError):
        storage.hide_question(course_id, 99)


def test_update_question_state_rejects_unknown_fields(storage, questions):
    course_id = storage.create_course("C", questions(1)).course_id
    with pytest.raises(ValueError):
        storage.update_question_state(course_id, 1, {"question_id": 5})


def test_pool_transition_adjusts_stats(storage, questions):
    course_id = storage.create_course("C", questions(3)).course_id
    storage.update_question_state_with_pool_transition(
        course_id, 1, {"pool": Pool.TEST, "consecutive_correct": 1}, Pool.LATENT, Pool.TEST,
    )
    state = storage.get_question_state(course_id, 1)
    assert state.pool == Pool.TEST
    assert state.consecutive_correct == 1
    stats = storage.get_course_stats(course_id)
    assert (stats.latent_count, stats.test_count, stats.question_count) == (2, 1, 3)

    # Same pool: state written, counts untouched
    storage.update_question_state_with_pool_transition(
        course_id, 1, {"consecutive_correct": 0}, Pool.TEST, Pool.TEST,
    )
    assert storage.get_course_stats(course_id).test_count == 1


def test_available_excludes_hidden_and_snoozed(storage, questions):
    course_id = storage.create_course("C", questions(4)).course_id
    now = 1_000_000
    for qid in (1, 2, 3, 4):
        storage.update_question_state(course_id, qid, {"pool": Pool.TEST})
    storage.update_question_state(course_id, 2, {"snooze_until": now + 1})
    storage.update_question_state(course_id, 3, {"snooze_until": now})
    storage.update_question_state(course_id, 4, {"hidden": True})

    available = storage.get_available_questions(course_id, Pool.TEST, now)
    assert [s.question_id for s in available] == [1, 3]
    assert [s.question_id for s in storage.get_all_questions(course_id, Pool.TEST)] == [1, 2, 3, 4]


def test_hide_question(storage, questions):
    course_id = storage.create_course("C", questions(3)).course_id
    storage.update_question_state_with_pool_transition(course_id, 2, {"pool": Pool.TEST}, Pool.LATENT, Pool.TEST)

    assert storage.hide_question(course_id, 2) == Pool.TEST
    stats = storage.get_course_stats(course_id)
    assert (stats.question_count, stats.test_count, stats.latent_count) == (2, 0, 2)
    assert storage.get_question_state(course_id, 2).hidden is True
    assert storage.get_event_log(course_id)[0].type == EventType.QUESTION_HIDDEN

    # Hiding twice changes nothing
    assert storage.hide_question(course_id, 2) is None
    assert storage.get_course_stats(course_id).question_count == 2


def test_notes_and_history(storage, questions):
    course_id = storage.create_course("C", questions(2)).course_id
    storage.update_notes(course_id, 1, "remember the trick")
    assert storage.get_question_state(course_id, 1).notes == "remember the trick"

    storage.record_interaction(course_id, 1, "A", True, SelectionStrategy.OLDEST, Pool.TEST, 5, timestamp=10)
    storage.record_interaction(course_id, 1, "B", False, SelectionStrategy.RANDOM, Pool.TEST, 1, timestamp=20)
    storage.record_interaction(course_id, 2, "A", True, SelectionStrategy.RECOVERY, Pool.LEARNED, 60, timestamp=30)

    history = storage.get_question_history(course_id, 1)
    assert [(i.answer_given, i.correct) for i in history] == [("A", True), ("B", False)]
    assert history[1].selection_strategy == SelectionStrategy.RANDOM
    assert history[1].pool_at_time == Pool.TEST
    assert history[1].snooze_duration == 1


def test_event_log_newest_first_with_paging(storage, questions):
    course_id = storage.create_course("C", questions(1)).course_id
    base = storage.get_event_log(course_id)[0].timestamp
    for i in range(5):
        storage.log_event(course_id, EventType.USER_INTERACTION, {"n": i}, timestamp=base + 1000 + i)
    entries = storage.get_event_log(course_id, limit=2, offset=1)
    assert [e.details["n"] for e in entries] == [3, 2]
    assert len(storage.get_event_log(course_id)) == 6


def test_reset_course(storage, questions):
    course_id = storage.create_course("C", questions(3)).course_id
    storage.update_question_state_with_pool_transition(
        course_id, 1,
        {"pool": Pool.LEARNED, "consecutive_correct": 2, "notes": "n", "was_demoted": True,
         "snooze_until": 5, "last_shown": 4, "total_interactions": 3},
        Pool.LATENT, Pool.LEARNED,
    )
    storage.hide_question(course_id, 2)
    storage.record_interaction(course_id, 1, "A", True, SelectionStrategy.OLDEST, Pool.TEST, 5)

    storage.reset_course(course_id)

    for qid in (1, 2, 3):
        state = storage.get_question_state(course_id, qid)
        assert state.pool == Pool.LATENT
        assert state.hidden is False
        assert state.notes == ""
        assert state.was_demoted is False
        assert state.last_shown is None
        assert state.snooze_until is None
        assert state.total_interactions == 0
    stats = storage.get_course_stats(course_id)
    assert (stats.question_count, stats.latent_count, stats.learned_count) == (3, 3, 0)
    assert storage.get_question_history(course_id, 1) == []
    log = storage.get_event_log(course_id)
    assert [e.type for e in log] == [EventType.COURSE_RESET]


def test_delete_course(storage, questions):
    course_id = storage.create_course("C", questions(2)).course_id
    storage.delete_course(course_id)
    assert storage.list_courses() == []
    assert storage.get_question(course_id, 1) is None
    assert storage.get_question_state(course_id, 1) is None
    with pytest.raises(CourseNotFoundError):
        storage.get_course_stats(course_id)
    # Name is free again
    storage.create_course("C", questions(1))


def test_update_last_accessed(storage, questions):
    course_id = storage.create_course("C", questions(1)).course_id
    storage.update_last_accessed(course_id, 42)
    assert storage.list_courses()[0].last_accessed == 42


def test_update_course_stats(storage, questions):
    course_id = storage.create_course("C", questions(2)).course_id
    storage.update_course_stats(course_id, {"master_count": 7})
    assert storage.get_course_stats(course_id).master_count == 7
    with pytest.raises(ValueError):
        storage.update_course_stats(course_id, {"bogus": 1})


def test_config_round_trip(storage):
    assert storage.get_config().test_pool_target_size == 40
    storage.update_config({"test_pool_target_size": 5, "strategy_oldest_pct": 50})
    config = storage.get_config()
    assert config.test_pool_target_size == 5
    assert config.strategy_oldest_pct == 50
    assert config.pool_weight_test == 12


def test_pool_transition_counts_from_stored_pool(storage, questions):
    course_id = storage.create_course("C", questions(3)).course_id
    for _ in range(2):
        storage.update_question_state_with_pool_transition(
            course_id, 1, {"pool": Pool.TEST}, Pool.LATENT, Pool.TEST,
        )
    stats = storage.get_course_stats(course_id)
    assert (stats.latent_count, stats.test_count) == (2, 1)

    # Caller's old pool is stale: the move is counted from test
    storage.update_question_state_with_pool_transition(
        course_id, 1, {}, Pool.LATENT, Pool.LEARNED,
    )
    assert storage.get_question_state(course_id, 1).pool == Pool.LEARNED
    stats = storage.get_course_stats(course_id)
    assert (stats.latent_count, stats.test_count, stats.learned_count) == (2, 0, 1)


def test_pool_transition_rejects_conflicting_pool(storage, questions):
    course_id = storage.create_course("C", questions(1)).course_id
    with pytest.raises(ValueError):
        storage.update_question_state_with_pool_transition(
            course_id, 1, {"pool": Pool.MASTER}, Pool.LATENT, Pool.TEST,
        )
    assert storage.get_question_state(course_id, 1).pool == Pool.LATENT


def test_pool_transition_of_hidden_question_keeps_counts(storage, questions):
    course_id = storage.create_course("C", questions(2)).course_id
    storage.update_question_state_with_pool_transition(course_id, 1, {"pool": Pool.TEST}, Pool.LATENT, Pool.TEST)
    storage.hide_question(course_id, 1)
    storage.update_question_state_with_pool_transition(
        course_id, 1, {"pool": Pool.LEARNED}, Pool.TEST, Pool.LEARNED,
    )
    stats = storage.get_course_stats(course_id)
    assert (stats.question_count, stats.latent_count, stats.test_count, stats.learned_count) == (1, 1, 0, 0)


@pytest.mark.parametrize("limit, offset", [(-1, 0), (10, -1)])
def test_event_log_rejects_negative_paging(storage, questions, limit, offset):
    course_id = storage.create_course("C", questions(1)).course_id
    with pytest.raises(ValueError):
        storage.get_event_log(course_id, limit=limit, offset=offset)


def test_event_log_limit_zero_is_empty(storage, questions):
    course_id = storage.create_course("C", questions(1)).course_id
    assert storage.get_event_log(course_id, limit=0) == []
