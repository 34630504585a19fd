import os
import tempfile

os.environ.setdefault("TESTGENIUS_DATA_DIR", tempfile.mkdtemp(prefix="testgenius-tests-"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from testgenius.database import Base
from testgenius.domain import (
    InProgressTestState,
    NegativeMarkingSettings,
    PendingTestConfig,
    Question,
    TestInputMethod,
    TimeSettings,
)


def make_question(index: int = 0, correct: int = 0, **overrides) -> Question:
    fields = {
        "id": f"q-1700000000000-{index}",
        "question_text": f"Question {index + 1}?",
        "options": ["A", "B", "C", "D"],
        "correct_answer_index": correct,
    }
    fields.update(overrides)
    return Question(**fields)


def make_config(**overrides) -> PendingTestConfig:
    fields = {
        "input_method": TestInputMethod.TOPIC,
        "content": "Photosynthesis",
        "num_questions": 3,
        "time_settings": TimeSettings.untimed(),
        "negative_marking": NegativeMarkingSettings(),
        "test_name": "",
    }
    fields.update(overrides)
    return PendingTestConfig(**fields)


class FakeGenerator:
    def __init__(self, questions=None, error=None):
        self.questions = questions
        self.error = error
        self.calls = []

    def generate_for_config(self, config):
        self.calls.append(config)
        if self.error is not None:
            raise self.error
        if self.questions is not None:
            return [q for q in self.questions]
        return [make_question(i, correct=i % 4) for i in range(config.num_questions or 5)]


class FakeRecorder:
    def __init__(self):
        self.calls = []

    def record(self, entry_id, test_name, questions, config, was_corrected):
        self.calls.append(
            {
                "entry_id": entry_id,
                "test_name": test_name,
                "questions": questions,
                "config": config,
                "was_corrected": was_corrected,
            }
        )
        return entry_id


class MemoryStore:
    def __init__(self, state: InProgressTestState | None = None):
        self.state = state
        self.saves = 0

    def save(self, state):
        self.state = state
        self.saves += 1

    def load(self):
        return self.state

    def clear(self):
        self.state = None


@pytest.fixture
def db_factory():
    import testgenius.models.db  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(db_factory):
    session = db_factory()
    try:
        yield session
    finally:
        session.close()
