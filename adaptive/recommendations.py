"""
Recommendation Generator - "3 things to do today".

Four candidate sources, each with its own priority band:

    misconception   10      remediation lesson for an active misconception
    review          9 / 7   tag due for review (9 when more than 3 days late)
    low_mastery     8 / 6   lesson / quiz for one of the weakest tags
    incomplete      5       lesson started but not finished
    not_started     4       lesson covering a topic never practised

Candidates are sorted by priority, ties kept in generation order (source,
then taxonomy, then catalog order), deduplicated and cut to the limit.
Nothing is random: the same inputs always give the same list.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

from .config import AdaptiveConfig, DEFAULT_CONFIG
from .models import (
    ActiveMisconception,
    Cached,
    CatalogLesson,
    CatalogQuiz,
    LessonProgress,
    QuestionAttempt,
    Recommendation,
    RecommendationCache,
    RecommendationReason,
    RecommendationState,
    TagStat,
    parse_timestamp,
)
from .review_scheduler import ReviewScheduler
from .tags import AdaptiveTag, tag_label, tag_order

logger = logging.getLogger(__name__)


# ==================== Catalog tags ====================

LESSON_CATEGORY_TAGS: Dict[str, List[str]] = {
    "solar-system": [AdaptiveTag.SOLAR_SYSTEM_BASICS.value, AdaptiveTag.PLANETS.value],
    "stars": [AdaptiveTag.STARS_BASICS.value, AdaptiveTag.STELLAR_EVOLUTION.value],
    "galaxies": [AdaptiveTag.GALAXIES.value, AdaptiveTag.BLACK_HOLES.value],
    "rockets": [AdaptiveTag.ROCKETS.value, AdaptiveTag.PHYSICS_NEWTON.value],
    "telescopes": [AdaptiveTag.TELESCOPES.value, AdaptiveTag.LIGHT_SPECTRUM.value],
}

QUIZ_CATEGORY_TAGS: Dict[str, List[str]] = {
    "solar-system": [AdaptiveTag.SOLAR_SYSTEM_BASICS.value, AdaptiveTag.PLANETS.value],
    "stars": [AdaptiveTag.STARS_BASICS.value, AdaptiveTag.STELLAR_EVOLUTION.value],
    "galaxies": [AdaptiveTag.GALAXIES.value],
    "exploration": [AdaptiveTag.SPACE_MISSIONS.value],
    "quick": [AdaptiveTag.SOLAR_SYSTEM_BASICS.value, AdaptiveTag.GALAXIES.value],
}


def lesson_tags(lesson: CatalogLesson) -> List[str]:
    """Explicit lesson tags, or the tags implied by its category."""
    if lesson.tags:
        return list(lesson.tags)
    return list(LESSON_CATEGORY_TAGS.get(lesson.category, []))


def quiz_tags(quiz: CatalogQuiz) -> List[str]:
    if quiz.tags:
        return list(quiz.tags)
    return list(QUIZ_CATEGORY_TAGS.get(quiz.category, []))


def _percent(mastery: float) -> int:
    return int(round(mastery * 100))


# ==================== Cache ====================

def cached_state(cache: RecommendationCache, now: datetime) -> Optional[RecommendationState]:
    """The cached recommendations if still usable at `now`, else None."""
    if isinstance(cache, Cached) and cache.state.is_valid(now):
        return cache.state
    return None


class RecommendationGenerator:
    """Pure function of catalog, stats, history and misconceptions."""

    # Priority bands
    PRIORITY_MISCONCEPTION = 10
    PRIORITY_REVIEW_OVERDUE = 9
    PRIORITY_LOW_MASTERY_LESSON = 8
    PRIORITY_REVIEW = 7
    PRIORITY_LOW_MASTERY_QUIZ = 6
    PRIORITY_INCOMPLETE = 5
    PRIORITY_NOT_STARTED = 4

    OVERDUE_DAYS = 3

    def __init__(self, config: Optional[AdaptiveConfig] = None,
                 scheduler: Optional[ReviewScheduler] = None):
        self.config = config or DEFAULT_CONFIG
        self.scheduler = scheduler or ReviewScheduler(self.config)

    def generate(
        self,
        lessons: List[CatalogLesson],
        quizzes: List[CatalogQuiz],
        lessons_progress: Dict[str, LessonProgress],
        tag_stats: Dict[str, TagStat],
        history: List[QuestionAttempt],
        active_misconceptions: List[ActiveMisconception],
        now: datetime,
    ) -> RecommendationState:
        """
        Build a fresh RecommendationState valid for the configured TTL.

        Args:
            lessons: Catalog lessons in display order
            quizzes: Catalog quizzes in display order
            lessons_progress: lesson slug -> progress record
            tag_stats: Current tracker statistics
            history: Full attempt history
            active_misconceptions: Output of MisconceptionDetector.active()
            now: Generation time (naive values are taken as UTC)

        Returns:
            State with at most `recommendation_limit` items
        """
        now = parse_timestamp(now)
        candidates: List[Recommendation] = []
        candidates += self._misconception_candidates(lessons, active_misconceptions, now)
        candidates += self._review_candidates(tag_stats, now)
        candidates += self._low_mastery_candidates(lessons, quizzes, lessons_progress, tag_stats, history, now)
        candidates += self._not_started_candidates(lessons, lessons_progress, tag_stats, now)
        candidates += self._incomplete_candidates(lessons, lessons_progress, now)

        ranked = [rec for _, rec in sorted(enumerate(candidates), key=lambda p: (-p[1].priority, p[0]))]
        items = self._deduplicate(ranked)[:self.config.recommendation_limit]

        logger.debug("Generated %d recommendations from %d candidates", len(items), len(candidates))

        return RecommendationState(
            items=items,
            generated_at=now,
            valid_until=now + timedelta(hours=self.config.recommendation_cache_hours),
        )

    # ==================== Candidate sources ====================

    def _misconception_candidates(self, lessons, active_misconceptions, now) -> List[Recommendation]:
        by_slug = {lesson.slug: lesson for lesson in lessons}
        candidates = []

        for misconception in active_misconceptions:
            lesson = by_slug.get(misconception.recommended_lesson_slug or "")
            if lesson is None:
                continue
            candidates.append(Recommendation(
                id=f"lesson-misconception-{lesson.slug}",
                type="lesson",
                target_slug=lesson.slug,
                target_title=lesson.title,
                tags=lesson_tags(lesson),
                reason=RecommendationReason(
                    type="misconception",
                    details=f'Linked to a detected issue: "{misconception.title}"',
                    tags_mentioned=list(misconception.related_tags),
                ),
                priority=self.PRIORITY_MISCONCEPTION,
                created_at=now,
            ))

        return candidates

    def _review_candidates(self, tag_stats, now) -> List[Recommendation]:
        candidates = []

        for item in self.scheduler.review_queue(tag_stats, now):
            if item.days_overdue > 0:
                details = f"Review overdue by {item.days_overdue} days. Mastery: {_percent(item.mastery)}%"
            else:
                details = f"Time for a review! Mastery: {_percent(item.mastery)}%"

            candidates.append(Recommendation(
                id=f"review-{item.tag}",
                type="review",
                target_slug=item.tag,
                target_title=f"Review: {tag_label(item.tag)}",
                tags=[item.tag],
                reason=RecommendationReason(type="review_due", details=details, tags_mentioned=[item.tag]),
                priority=(self.PRIORITY_REVIEW_OVERDUE if item.days_overdue > self.OVERDUE_DAYS
                          else self.PRIORITY_REVIEW),
                created_at=now,
            ))

        return candidates

    def _low_mastery_candidates(self, lessons, quizzes, lessons_progress, tag_stats,
                                history, now) -> List[Recommendation]:
        weak = [
            stat for stat in self.scheduler.weakest_tags(tag_stats, self.config.weak_tag_limit)
            if stat.mastery < self.config.mastery_threshold
        ]
        cutoff = now - timedelta(days=self.config.recent_quiz_days)
        recent_quiz_ids = {a.quiz_id for a in history if a.attempted_at > cutoff}
        candidates = []

        for stat in weak:
            label = tag_label(stat.tag)

            lesson = next((
                l for l in lessons
                if stat.tag in lesson_tags(l) and not self._is_completed(lessons_progress, l.slug)
            ), None)
            if lesson is not None:
                candidates.append(Recommendation(
                    id=f"lesson-weak-{lesson.slug}",
                    type="lesson",
                    target_slug=lesson.slug,
                    target_title=lesson.title,
                    tags=lesson_tags(lesson),
                    reason=RecommendationReason(
                        type="low_mastery",
                        details=f"Mastery in '{label}' is only {_percent(stat.mastery)}%",
                        tags_mentioned=[stat.tag],
                    ),
                    priority=self.PRIORITY_LOW_MASTERY_LESSON,
                    created_at=now,
                ))

            quiz = next((
                q for q in quizzes
                if stat.tag in quiz_tags(q) and q.id not in recent_quiz_ids
            ), None)
            if quiz is not None:
                candidates.append(Recommendation(
                    id=f"quiz-{quiz.id}",
                    type="quiz",
                    target_slug=quiz.id,
                    target_title=quiz.title,
                    tags=quiz_tags(quiz),
                    reason=RecommendationReason(
                        type="low_mastery",
                        details=f"Check your knowledge of '{label}' ({_percent(stat.mastery)}% mastery)",
                        tags_mentioned=[stat.tag],
                    ),
                    priority=self.PRIORITY_LOW_MASTERY_QUIZ,
                    created_at=now,
                ))

        return candidates

    def _not_started_candidates(self, lessons, lessons_progress, tag_stats, now) -> List[Recommendation]:
        candidates = []

        for tag in self.scheduler.unseen_tags(tag_stats):
            lesson = next((
                l for l in lessons
                if tag in lesson_tags(l) and l.slug not in lessons_progress
            ), None)
            if lesson is None:
                continue
            candidates.append(Recommendation(
                id=f"lesson-new-{lesson.slug}",
                type="lesson",
                target_slug=lesson.slug,
                target_title=lesson.title,
                tags=lesson_tags(lesson),
                reason=RecommendationReason(
                    type="not_started",
                    details=f"New topic to explore: {tag_label(tag)}",
                    tags_mentioned=[tag],
                ),
                priority=self.PRIORITY_NOT_STARTED,
                created_at=now,
            ))

        return candidates

    def _incomplete_candidates(self, lessons, lessons_progress, now) -> List[Recommendation]:
        candidates = []

        for lesson in lessons:
            progress = lessons_progress.get(lesson.slug)
            if progress is None or progress.completed:
                continue
            tags = lesson_tags(lesson)
            candidates.append(Recommendation(
                id=f"lesson-incomplete-{lesson.slug}",
                type="lesson",
                target_slug=lesson.slug,
                target_title=lesson.title,
                tags=tags,
                reason=RecommendationReason(
                    type="incomplete",
                    details="Pick up where you left off",
                    tags_mentioned=tag_order(tags)[:2],
                ),
                priority=self.PRIORITY_INCOMPLETE,
                created_at=now,
            ))

        return candidates

    # ==================== Helpers ====================

    @staticmethod
    def _is_completed(lessons_progress: Dict[str, LessonProgress], slug: str) -> bool:
        progress = lessons_progress.get(slug)
        return progress is not None and progress.completed

    @staticmethod
    def _deduplicate(ranked: List[Recommendation]) -> List[Recommendation]:
        """
        One recommendation per target; a single tag may not drive two
        recommendations of the same type.
        """
        targets: Set[Tuple[str, str]] = set()
        drivers: Set[Tuple[str, str]] = set()
        result = []

        for rec in ranked:
            target = (rec.type, rec.target_slug)
            if target in targets:
                continue
            mentioned = rec.reason.tags_mentioned or []
            driver = (rec.type, mentioned[0]) if len(mentioned) == 1 else None
            if driver is not None and driver in drivers:
                continue

            targets.add(target)
            if driver is not None:
                drivers.add(driver)
            result.append(rec)

        return result
