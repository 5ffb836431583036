import itertools

import pytest

from repeatrom.db import SQLiteStorage
from repeatrom.engine import Engine
from repeatrom.memory import InMemoryStorage
from repeatrom.storage import now_ms


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start if start is not None else now_ms()

    def __call__(self):
        return self.now

    def advance(self, minutes=0, ms=0):
        self.now += int(minutes * 60_000) + ms


def make_questions(n, correct="A"):
    return [
        {
            "question": f"Question {i}",
            "options": ["A", "B", "C", "D"],
            "correct_option": correct,
            "explanation": f"Explanation {i}",
        }
        for i in range(1, n + 1)
    ]


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_repeatrom.db")
    return db_path


@pytest.fixture
def questions():
    return make_questions


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fixed_random():
    """Build a random source that replays the given values forever."""
    def build(*values):
        cycle = itertools.cycle(values)
        return lambda: next(cycle)
    return build


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_db):
    if request.param == "memory":
        store = InMemoryStorage()
    else:
        store = SQLiteStorage(tmp_db)
    store.init_database()
    return store


@pytest.fixture
def engine(storage, clock):
    # 0.01 -> first pool, oldest strategy
    return Engine(storage, random=lambda: 0.01, clock=clock)
