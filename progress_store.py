"""
Progress Store - Versioned learner snapshot persisted in Redis.

Key Structure:
    {PROGRESS_STORAGE_KEY}  -> String (JSON of the whole progress snapshot)

The snapshot is always read and written whole: one GET on load, one SET on
save, so a reader never sees half of an update.

Schema versions:
    v1  lessonsProgress, quizResults
    v2  + bookmarks
    v3  + activityDates, lastActive
    v4  + tagStats, questionHistory, misconceptions, recommendations
"""

import json
import logging
import os
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional

import redis
from dotenv import load_dotenv

from adaptive.engine import AdaptiveEngine
from adaptive.models import AdaptiveState, LessonProgress, format_timestamp, utcnow

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 4
DEFAULT_STORAGE_KEY = "cosmos-edu-progress"


@dataclass(frozen=True)
class ProgressData:
    """The learner's whole progress snapshot."""
    adaptive: AdaptiveState
    version: int = SCHEMA_VERSION
    lessons_progress: Dict[str, LessonProgress] = field(default_factory=dict)
    quiz_results: List[dict] = field(default_factory=list)
    bookmarks: List[str] = field(default_factory=list)  # image-of-the-day dates
    activity_dates: List[str] = field(default_factory=list)
    last_active: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "version": self.version,
            "lessonsProgress": {slug: p.to_dict() for slug, p in self.lessons_progress.items()},
            "quizResults": list(self.quiz_results),
            "bookmarks": list(self.bookmarks),
            "activityDates": list(self.activity_dates),
            "lastActive": self.last_active,
        }
        data.update(self.adaptive.to_dict())
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressData":
        return cls(
            adaptive=AdaptiveState.from_dict(data),
            version=int(data.get("version", SCHEMA_VERSION)),
            lessons_progress={
                slug: LessonProgress.from_dict(p or {}, slug=slug)
                for slug, p in (data.get("lessonsProgress") or {}).items()
            },
            quiz_results=list(data.get("quizResults") or []),
            bookmarks=list(data.get("bookmarks") or []),
            activity_dates=list(data.get("activityDates") or []),
            last_active=data.get("lastActive"),
        )


# ==================== Migration ====================

def _v1_to_v2(raw: dict) -> dict:
    raw.setdefault("bookmarks", [])
    return raw


def _v2_to_v3(raw: dict) -> dict:
    raw.setdefault("activityDates", [])
    raw.setdefault("lastActive", None)
    return raw


def _v3_to_v4(raw: dict) -> dict:
    raw.setdefault("tagStats", {})
    raw.setdefault("questionHistory", [])
    raw.setdefault("misconceptions", [])
    raw.setdefault("recommendations", None)
    return raw


_MIGRATIONS: Dict[int, Callable[[dict], dict]] = {
    1: _v1_to_v2,
    2: _v2_to_v3,
    3: _v3_to_v4,
}


def _detect_version(raw: dict) -> int:
    if "version" not in raw:
        # Snapshots written before versioning
        return SCHEMA_VERSION if "tagStats" in raw else 1
    try:
        version = int(raw["version"])
    except (TypeError, ValueError):
        logger.warning("Unreadable snapshot version %r, migrating from v1", raw["version"])
        return 1
    return max(version, 1)


def migrate_progress(raw: Optional[dict], engine: Optional[AdaptiveEngine] = None) -> ProgressData:
    """
    Bring a stored snapshot (any version, possibly partial) up to date.

    Missing collections default to empty and every taxonomy tag gets a
    stat. Migrating an up-to-date snapshot returns an equal one.
    """
    engine = engine or AdaptiveEngine()
    raw = dict(raw or {})
    version = _detect_version(raw)

    if version < SCHEMA_VERSION:
        logger.info("Migrating progress snapshot from v%d to v%d", version, SCHEMA_VERSION)
    while version < SCHEMA_VERSION:
        raw = _MIGRATIONS[version](raw)
        version += 1

    raw["version"] = version
    data = ProgressData.from_dict(raw)
    return replace(data, version=max(version, SCHEMA_VERSION), adaptive=engine.migrate(data.adaptive))


def initial_progress(engine: Optional[AdaptiveEngine] = None) -> ProgressData:
    engine = engine or AdaptiveEngine()
    return ProgressData(adaptive=engine.initial_state())


# ==================== Progress operations ====================

def record_activity(data: ProgressData, now: Optional[datetime] = None) -> ProgressData:
    """Mark today as an active day (for streaks)."""
    today = (now or utcnow()).date().isoformat()
    dates = data.activity_dates if today in data.activity_dates else data.activity_dates + [today]
    return replace(data, activity_dates=dates, last_active=today)


def start_lesson(data: ProgressData, lesson_slug: str, now: Optional[datetime] = None) -> ProgressData:
    now = now or utcnow()
    data = record_activity(data, now)
    if lesson_slug in data.lessons_progress:
        return data

    progress = dict(data.lessons_progress)
    progress[lesson_slug] = LessonProgress(lesson_slug=lesson_slug, started_at=now)
    return replace(data, lessons_progress=progress)


def complete_lesson(data: ProgressData, lesson_slug: str, quiz_score: Optional[float] = None,
                    now: Optional[datetime] = None) -> ProgressData:
    now = now or utcnow()
    data = record_activity(data, now)
    existing = data.lessons_progress.get(lesson_slug)

    progress = dict(data.lessons_progress)
    progress[lesson_slug] = LessonProgress(
        lesson_slug=lesson_slug,
        completed=True,
        quiz_score=quiz_score,
        started_at=existing.started_at if existing and existing.started_at else now,
        completed_at=now,
    )
    return replace(data, lessons_progress=progress)


def save_quiz_result(data: ProgressData, quiz_id: str, score: int, total_questions: int,
                     answers: Optional[Dict[str, str]] = None,
                     now: Optional[datetime] = None) -> ProgressData:
    now = now or utcnow()
    data = record_activity(data, now)
    result = {
        "quizId": quiz_id,
        "score": score,
        "totalQuestions": total_questions,
        "completedAt": format_timestamp(now),
        "answers": dict(answers or {}),
    }
    return replace(data, quiz_results=data.quiz_results + [result])


def toggle_bookmark(data: ProgressData, apod_date: str) -> ProgressData:
    if apod_date in data.bookmarks:
        return replace(data, bookmarks=[d for d in data.bookmarks if d != apod_date])
    return replace(data, bookmarks=data.bookmarks + [apod_date])


# ==================== Store ====================

class ProgressStore:
    def __init__(self, client=None, storage_key: Optional[str] = None,
                 engine: Optional[AdaptiveEngine] = None):
        """Connect to Redis using environment variables unless a client is given."""
        self.client = client or redis.Redis(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", 6379)),
            password=os.getenv("REDIS_PASSWORD", None),
            db=int(os.getenv("REDIS_DB", 0)),
            decode_responses=True  # Return strings instead of bytes
        )
        self.storage_key = storage_key or os.getenv("PROGRESS_STORAGE_KEY", DEFAULT_STORAGE_KEY)
        self.engine = engine or AdaptiveEngine()
        # Serializes load -> compute -> save within this process
        self._lock = threading.RLock()

    def exists(self) -> bool:
        return bool(self.client.exists(self.storage_key))

    def load(self) -> ProgressData:
        """
        Read the snapshot and migrate it to the current schema.

        Returns:
            Stored progress, or a fresh snapshot if nothing was saved yet
        """
        raw = self.client.get(self.storage_key)
        if raw is None:
            return initial_progress(self.engine)
        return migrate_progress(json.loads(raw), self.engine)

    def save(self, data: ProgressData):
        """Write the whole snapshot in a single SET."""
        self.client.set(self.storage_key, json.dumps(data.to_dict()))

    def update(self, fn: Callable[[ProgressData], ProgressData]) -> ProgressData:
        """
        Load, apply `fn`, save - as one step.

        Concurrent callers are serialized, so no update is lost. The write
        is skipped when `fn` returns the snapshot it was given.

        Returns:
            The snapshot after `fn`
        """
        with self._lock:
            data = self.load()
            new_data = fn(data)
            if new_data is not data:
                self.save(new_data)
            return new_data

    def reset(self):
        """Delete all stored progress (for testing/cleanup)."""
        logger.info("Resetting progress snapshot %s", self.storage_key)
        with self._lock:
            self.client.delete(self.storage_key)
