"""Shared fixtures for the adaptive engine tests."""

import sys
import time
from datetime import datetime, timezone

import pytest

sys.path.append(".")

from adaptive.engine import AdaptiveEngine
from adaptive.models import MasteryUpdateParams
from catalog import Catalog
from progress_store import ProgressStore


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeRedis:
    """In-memory stand-in for the few redis.Redis calls the store makes."""

    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    def exists(self, *keys):
        return sum(1 for key in keys if key in self.data)


class SlowRedis(FakeRedis):
    """Widens the gap between reading and writing the snapshot."""

    def get(self, key):
        value = super().get(key)
        time.sleep(0.05)
        return value


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    return AdaptiveEngine()


@pytest.fixture
def catalog():
    return Catalog()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis, engine):
    return ProgressStore(client=fake_redis, storage_key="test-progress", engine=engine)


@pytest.fixture
def answer():
    """Factory for MasteryUpdateParams with sensible defaults."""
    def _make(tags, is_correct, difficulty=2, question_id="q1", quiz_id="practice",
              selected_answer_id="a", correct_answer_id="b"):
        return MasteryUpdateParams(
            question_id=question_id,
            quiz_id=quiz_id,
            tags=list(tags),
            difficulty=difficulty,
            is_correct=is_correct,
            selected_answer_id=correct_answer_id if is_correct else selected_answer_id,
            correct_answer_id=correct_answer_id,
        )
    return _make


@pytest.fixture
def play(engine):
    """Apply a sequence of (params, when) pairs starting from a fresh state."""
    def _play(steps, state=None):
        state = state or engine.initial_state()
        for params, when in steps:
            state, _ = engine.update_mastery(state, params, now=when)
        return state
    return _play
