"""
Data model for the adaptive engine.

In memory everything is a dataclass with timezone-aware UTC datetimes.
`to_dict` / `from_dict` use the camelCase layout of the stored progress
snapshot; `from_dict` tolerates missing fields so older snapshots load.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO 8601 string (or datetime) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


# ==================== Tracker ====================

@dataclass(frozen=True)
class TagStat:
    """Skill statistics for a single tag."""
    tag: str
    mastery: float = 0.0  # [0, 1]
    seen: int = 0
    correct: int = 0
    wrong: int = 0
    last_seen_at: Optional[datetime] = None
    next_review_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "tag": self.tag,
            "mastery": self.mastery,
            "seen": self.seen,
            "correct": self.correct,
            "wrong": self.wrong,
            "lastSeenAt": format_timestamp(self.last_seen_at),
            "nextReviewAt": format_timestamp(self.next_review_at),
        }

    @classmethod
    def from_dict(cls, data: dict, tag: Optional[str] = None) -> "TagStat":
        return cls(
            tag=data.get("tag") or tag or "",
            mastery=float(data.get("mastery", 0.0)),
            seen=int(data.get("seen", 0)),
            correct=int(data.get("correct", 0)),
            wrong=int(data.get("wrong", 0)),
            last_seen_at=parse_timestamp(data.get("lastSeenAt")),
            next_review_at=parse_timestamp(data.get("nextReviewAt")),
        )


@dataclass(frozen=True)
class QuestionAttempt:
    """One answered question. Never mutated once recorded."""
    question_id: str
    quiz_id: str
    tags: List[str]
    difficulty: int  # 1, 2 or 3
    is_correct: bool
    selected_answer_id: str
    correct_answer_id: str
    attempted_at: datetime

    def to_dict(self) -> dict:
        return {
            "questionId": self.question_id,
            "quizId": self.quiz_id,
            "tags": list(self.tags),
            "difficulty": self.difficulty,
            "isCorrect": self.is_correct,
            "selectedAnswerId": self.selected_answer_id,
            "correctAnswerId": self.correct_answer_id,
            "attemptedAt": format_timestamp(self.attempted_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "QuestionAttempt":
        return cls(
            question_id=data.get("questionId", ""),
            quiz_id=data.get("quizId", ""),
            tags=list(data.get("tags", [])),
            difficulty=int(data.get("difficulty", 2)),
            is_correct=bool(data.get("isCorrect", False)),
            selected_answer_id=data.get("selectedAnswerId", ""),
            correct_answer_id=data.get("correctAnswerId", ""),
            attempted_at=parse_timestamp(data.get("attemptedAt")) or utcnow(),
        )


@dataclass(frozen=True)
class MasteryUpdateParams:
    """An answered-question event coming from a quiz or lesson."""
    question_id: str
    quiz_id: str
    tags: List[str]
    difficulty: int
    is_correct: bool
    selected_answer_id: str
    correct_answer_id: str


@dataclass(frozen=True)
class TagDelta:
    tag: str
    old_mastery: float
    new_mastery: float
    delta: float

    def to_dict(self) -> dict:
        return {
            "tag": self.tag,
            "oldMastery": self.old_mastery,
            "newMastery": self.new_mastery,
            "delta": self.delta,
        }


@dataclass(frozen=True)
class MasteryUpdateResult:
    updated_tags: List[TagDelta]
    new_attempt: QuestionAttempt

    def to_dict(self) -> dict:
        return {
            "updatedTags": [t.to_dict() for t in self.updated_tags],
            "newAttempt": self.new_attempt.to_dict(),
        }


# ==================== Scheduler ====================

@dataclass(frozen=True)
class ReviewQueueItem:
    tag: str
    mastery: float
    next_review_at: datetime
    is_overdue: bool
    days_overdue: int

    def to_dict(self) -> dict:
        return {
            "tag": self.tag,
            "mastery": self.mastery,
            "nextReviewAt": format_timestamp(self.next_review_at),
            "isOverdue": self.is_overdue,
            "daysOverdue": self.days_overdue,
        }


# ==================== Misconceptions ====================

@dataclass(frozen=True)
class MisconceptionFlag:
    """Persisted detection result for one rule."""
    rule_id: str
    detected_at: datetime
    trigger_count: int = 1
    resolved: bool = False
    resolved_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = {
            "ruleId": self.rule_id,
            "detectedAt": format_timestamp(self.detected_at),
            "triggerCount": self.trigger_count,
            "resolved": self.resolved,
        }
        if self.resolved_at is not None:
            data["resolvedAt"] = format_timestamp(self.resolved_at)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "MisconceptionFlag":
        return cls(
            rule_id=data.get("ruleId", ""),
            detected_at=parse_timestamp(data.get("detectedAt")) or utcnow(),
            trigger_count=int(data.get("triggerCount", 1)),
            resolved=bool(data.get("resolved", False)),
            resolved_at=parse_timestamp(data.get("resolvedAt")),
        )


@dataclass(frozen=True)
class ActiveMisconception:
    """An unresolved flag joined with its rule metadata, for display."""
    rule_id: str
    title: str
    description: str
    user_message: str
    related_tags: List[str]
    recommended_lesson_slug: Optional[str]
    detected_at: datetime
    trigger_count: int

    def to_dict(self) -> dict:
        return {
            "id": self.rule_id,
            "title": self.title,
            "description": self.description,
            "userMessage": self.user_message,
            "relatedTags": list(self.related_tags),
            "recommendedLessonSlug": self.recommended_lesson_slug,
            "detectedAt": format_timestamp(self.detected_at),
            "triggerCount": self.trigger_count,
        }


# ==================== Recommendations ====================

@dataclass(frozen=True)
class RecommendationReason:
    type: str  # low_mastery, review_due, misconception, not_started, incomplete
    details: str
    tags_mentioned: Optional[List[str]] = None

    def to_dict(self) -> dict:
        data = {"type": self.type, "details": self.details}
        if self.tags_mentioned is not None:
            data["tagsMentioned"] = list(self.tags_mentioned)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "RecommendationReason":
        mentioned = data.get("tagsMentioned")
        return cls(
            type=data.get("type", ""),
            details=data.get("details", ""),
            tags_mentioned=list(mentioned) if mentioned is not None else None,
        )


@dataclass(frozen=True)
class Recommendation:
    id: str
    type: str  # lesson, review, quiz
    target_slug: str
    target_title: str
    tags: List[str]
    reason: RecommendationReason
    priority: int  # 1-10, higher = more important
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "targetSlug": self.target_slug,
            "targetTitle": self.target_title,
            "tags": list(self.tags),
            "reason": self.reason.to_dict(),
            "priority": self.priority,
            "createdAt": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Recommendation":
        return cls(
            id=data.get("id", ""),
            type=data.get("type", "lesson"),
            target_slug=data.get("targetSlug", ""),
            target_title=data.get("targetTitle", ""),
            tags=list(data.get("tags", [])),
            reason=RecommendationReason.from_dict(data.get("reason", {})),
            priority=int(data.get("priority", 1)),
            created_at=parse_timestamp(data.get("createdAt")) or utcnow(),
        )


@dataclass(frozen=True)
class RecommendationState:
    items: List[Recommendation]
    generated_at: datetime
    valid_until: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.valid_until

    def to_dict(self) -> dict:
        return {
            "items": [r.to_dict() for r in self.items],
            "generatedAt": format_timestamp(self.generated_at),
            "validUntil": format_timestamp(self.valid_until),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecommendationState":
        generated_at = parse_timestamp(data.get("generatedAt")) or utcnow()
        return cls(
            items=[Recommendation.from_dict(r) for r in data.get("items", [])],
            generated_at=generated_at,
            # No expiry on record means the cache is already stale
            valid_until=parse_timestamp(data.get("validUntil")) or generated_at,
        )


class RecommendationCache:
    """Either `Invalidated()` or `Cached(state)`."""

    def to_dict(self) -> Optional[dict]:
        raise NotImplementedError

    @staticmethod
    def from_dict(data: Optional[dict]) -> "RecommendationCache":
        if not data:
            return Invalidated()
        return Cached(RecommendationState.from_dict(data))


@dataclass(frozen=True)
class Invalidated(RecommendationCache):
    """Recommendations must be regenerated on the next read."""

    def to_dict(self) -> Optional[dict]:
        return None


@dataclass(frozen=True)
class Cached(RecommendationCache):
    state: RecommendationState

    def to_dict(self) -> Optional[dict]:
        return self.state.to_dict()


# ==================== Catalog ====================

@dataclass(frozen=True)
class CatalogLesson:
    slug: str
    title: str
    category: str = ""
    tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class CatalogQuiz:
    id: str
    title: str
    category: str = ""
    tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class LessonProgress:
    lesson_slug: str
    completed: bool = False
    quiz_score: Optional[float] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "lessonSlug": self.lesson_slug,
            "completed": self.completed,
            "quizScore": self.quiz_score,
            "startedAt": format_timestamp(self.started_at),
            "completedAt": format_timestamp(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict, slug: Optional[str] = None) -> "LessonProgress":
        return cls(
            lesson_slug=data.get("lessonSlug") or slug or "",
            completed=bool(data.get("completed", False)),
            quiz_score=data.get("quizScore"),
            started_at=parse_timestamp(data.get("startedAt")),
            completed_at=parse_timestamp(data.get("completedAt")),
        )


# ==================== Engine state ====================

@dataclass(frozen=True)
class AdaptiveState:
    """The engine-owned part of the learner's progress snapshot."""
    tag_stats: Dict[str, TagStat]
    question_history: List[QuestionAttempt] = field(default_factory=list)
    misconceptions: List[MisconceptionFlag] = field(default_factory=list)
    recommendations: RecommendationCache = field(default_factory=Invalidated)

    def to_dict(self) -> dict:
        return {
            "tagStats": {tag: stat.to_dict() for tag, stat in self.tag_stats.items()},
            "questionHistory": [a.to_dict() for a in self.question_history],
            "misconceptions": [m.to_dict() for m in self.misconceptions],
            "recommendations": self.recommendations.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AdaptiveState":
        """Load without backfilling; see `MasteryTracker.ensure_all_tags`."""
        raw_stats = data.get("tagStats") or {}
        return cls(
            tag_stats={tag: TagStat.from_dict(stat or {}, tag=tag) for tag, stat in raw_stats.items()},
            question_history=[QuestionAttempt.from_dict(a) for a in data.get("questionHistory") or []],
            misconceptions=[MisconceptionFlag.from_dict(m) for m in data.get("misconceptions") or []],
            recommendations=RecommendationCache.from_dict(data.get("recommendations")),
        )
