"""Tests for progress_store.py"""

import json
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import timedelta

import pytest

from adaptive.models import Cached, Invalidated
from conftest import SlowRedis
from progress_store import (
    SCHEMA_VERSION,
    ProgressData,
    ProgressStore,
    complete_lesson,
    initial_progress,
    migrate_progress,
    record_activity,
    save_quiz_result,
    start_lesson,
    toggle_bookmark,
)


V1_SNAPSHOT = {
    "lessonsProgress": {
        "solar-system-intro": {
            "lessonSlug": "solar-system-intro",
            "completed": True,
            "quizScore": 80,
            "startedAt": "2025-01-01T09:00:00Z",
            "completedAt": "2025-01-01T09:30:00Z",
        }
    },
    "quizResults": [{"quizId": "quick-quiz-1", "score": 4, "totalQuestions": 5}],
}


# ==================== Migration ====================

def test_migrate_v1_snapshot():
    data = migrate_progress(V1_SNAPSHOT)

    assert data.version == SCHEMA_VERSION == 4
    assert data.bookmarks == []
    assert data.activity_dates == []
    assert data.last_active is None
    assert data.lessons_progress["solar-system-intro"].completed
    assert data.lessons_progress["solar-system-intro"].quiz_score == 80
    assert data.quiz_results == V1_SNAPSHOT["quizResults"]
    assert len(data.adaptive.tag_stats) == 17
    assert data.adaptive.question_history == []
    assert data.adaptive.recommendations == Invalidated()


def test_migrate_v2_keeps_bookmarks():
    data = migrate_progress({"version": 2, "bookmarks": ["2025-02-14"]})

    assert data.bookmarks == ["2025-02-14"]
    assert data.version == 4
    assert len(data.adaptive.tag_stats) == 17


def test_migrate_missing_snapshot():
    assert migrate_progress(None) == initial_progress()


def test_migrate_is_idempotent():
    once = migrate_progress(V1_SNAPSHOT)
    twice = migrate_progress(json.loads(json.dumps(once.to_dict())))

    assert twice == once


def test_migrate_backfills_partial_tag_stats():
    raw = {
        "version": 4,
        "tagStats": {
            "orbits": {"tag": "orbits", "mastery": 0.3, "seen": 4, "correct": 2, "wrong": 2},
            "retired_topic": {"mastery": 0.9, "seen": 1, "correct": 1, "wrong": 0},
        },
    }

    data = migrate_progress(raw)
    stats = data.adaptive.tag_stats

    assert len(stats) == 18
    assert stats["orbits"].mastery == 0.3
    assert stats["orbits"].seen == 4
    assert stats["retired_topic"].tag == "retired_topic"
    assert stats["moons"].seen == 0
    assert data.adaptive.misconceptions == []


def test_migrate_does_not_touch_input():
    raw = {"lessonsProgress": {}}
    migrate_progress(raw)
    assert raw == {"lessonsProgress": {}}


@pytest.mark.parametrize("version", [0, -3, "not-a-number", None])
def test_migrate_unreadable_version(version):
    data = migrate_progress({"version": version, "lessonsProgress": {}, "bookmarks": ["2025-01-01"]})

    assert data.version == 4
    assert data.bookmarks == ["2025-01-01"]
    assert data.activity_dates == []
    assert len(data.adaptive.tag_stats) == 17


# ==================== Store ====================

def test_load_without_snapshot_returns_initial(store):
    assert not store.exists()
    data = store.load()

    assert data.version == 4
    assert len(data.adaptive.tag_stats) == 17


def test_save_and_load_roundtrip(store, engine, catalog, answer, now):
    data = store.load()
    adaptive, _ = engine.update_mastery(data.adaptive, answer(["orbits"], False), now=now)
    adaptive, _ = engine.get_recommendations(adaptive, catalog.lessons, catalog.quizzes, {}, now=now)
    data = start_lesson(ProgressData(adaptive=adaptive), "life-of-stars", now=now)

    store.save(data)
    loaded = store.load()

    assert store.exists()
    assert loaded == data
    assert isinstance(loaded.adaptive.recommendations, Cached)


def test_save_writes_single_json_value(store, fake_redis):
    store.save(initial_progress(store.engine))

    assert list(fake_redis.data) == ["test-progress"]
    stored = json.loads(fake_redis.data["test-progress"])
    assert stored["version"] == 4
    assert stored["recommendations"] is None
    assert set(stored) >= {"tagStats", "questionHistory", "misconceptions", "lessonsProgress", "bookmarks"}


def test_reset(store):
    store.save(initial_progress(store.engine))
    store.reset()
    assert not store.exists()


def test_loads_legacy_json(store, fake_redis):
    fake_redis.set("test-progress", json.dumps(V1_SNAPSHOT))

    data = store.load()

    assert data.version == 4
    assert "solar-system-intro" in data.lessons_progress


def test_concurrent_updates_are_not_lost(engine, answer, now):
    store = ProgressStore(client=SlowRedis(), storage_key="test-progress", engine=engine)

    def answer_orbits(i):
        def apply(data):
            adaptive, _ = engine.update_mastery(data.adaptive, answer(["orbits"], True, question_id=f"q{i}"), now=now)
            return replace(data, adaptive=adaptive)
        return store.update(apply)

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(answer_orbits, range(4)))

    data = store.load()
    assert len(data.adaptive.question_history) == 4
    assert data.adaptive.tag_stats["orbits"].seen == 4
    assert sorted(a.question_id for a in data.adaptive.question_history) == ["q0", "q1", "q2", "q3"]


def test_update_skips_write_when_unchanged(store, fake_redis):
    data = store.update(lambda d: d)

    assert data.version == 4
    assert not store.exists()

    store.update(lambda d: toggle_bookmark(d, "2025-03-01"))
    assert store.load().bookmarks == ["2025-03-01"]


# ==================== Progress operations ====================

def test_record_activity_once_per_day(now):
    data = record_activity(initial_progress(), now)
    data = record_activity(data, now + timedelta(hours=1))

    assert data.activity_dates == [now.date().isoformat()]
    assert data.last_active == now.date().isoformat()

    data = record_activity(data, now + timedelta(days=1))
    assert len(data.activity_dates) == 2


def test_start_then_complete_lesson(now):
    data = start_lesson(initial_progress(), "galaxies-of-the-universe", now=now)
    progress = data.lessons_progress["galaxies-of-the-universe"]
    assert not progress.completed
    assert progress.started_at == now

    later = now + timedelta(minutes=20)
    data = complete_lesson(data, "galaxies-of-the-universe", quiz_score=90, now=later)
    progress = data.lessons_progress["galaxies-of-the-universe"]
    assert progress.completed
    assert progress.quiz_score == 90
    assert progress.started_at == now
    assert progress.completed_at == later


def test_start_lesson_twice_keeps_first_start(now):
    data = start_lesson(initial_progress(), "life-of-stars", now=now)
    data = start_lesson(data, "life-of-stars", now=now + timedelta(days=1))
    assert data.lessons_progress["life-of-stars"].started_at == now


def test_complete_lesson_does_not_invalidate_recommendations(engine, catalog, now):
    adaptive, _ = engine.get_recommendations(engine.initial_state(), catalog.lessons, catalog.quizzes, {}, now=now)
    data = complete_lesson(ProgressData(adaptive=adaptive), "life-of-stars", now=now)
    assert isinstance(data.adaptive.recommendations, Cached)


def test_save_quiz_result(now):
    data = save_quiz_result(initial_progress(), "stars-quiz", 3, 5, {"sq-1": "b"}, now=now)

    assert data.quiz_results == [{
        "quizId": "stars-quiz",
        "score": 3,
        "totalQuestions": 5,
        "completedAt": now.isoformat(),
        "answers": {"sq-1": "b"},
    }]


def test_toggle_bookmark():
    data = toggle_bookmark(initial_progress(), "2025-03-01")
    assert data.bookmarks == ["2025-03-01"]

    data = toggle_bookmark(data, "2025-03-01")
    assert data.bookmarks == []
