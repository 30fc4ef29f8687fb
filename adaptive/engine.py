"""
Adaptive Engine - snapshot in, snapshot out.

Every public operation takes an `AdaptiveState`, never mutates it, and
returns a complete new one. One answered question produces, in a single
new state:

    1. updated tag statistics     (MasteryTracker)
    2. the attempt appended       (history)
    3. re-evaluated flags         (MisconceptionDetector)
    4. an invalidated cache       (recommendations)

so a reader can never observe a half-applied update.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .config import AdaptiveConfig, DEFAULT_CONFIG
from .mastery_tracker import MasteryTracker
from .misconception_detector import MisconceptionDetector, MisconceptionRule
from .models import (
    ActiveMisconception,
    AdaptiveState,
    Cached,
    CatalogLesson,
    CatalogQuiz,
    Invalidated,
    LessonProgress,
    MasteryUpdateParams,
    MasteryUpdateResult,
    RecommendationState,
    ReviewQueueItem,
    TagStat,
    parse_timestamp,
    utcnow,
)
from .recommendations import RecommendationGenerator, cached_state
from .review_scheduler import ReviewScheduler

logger = logging.getLogger(__name__)


def _resolve_now(now: Optional[datetime]) -> datetime:
    """Caller-supplied time as aware UTC; naive values are taken as UTC."""
    return parse_timestamp(now) if now is not None else utcnow()


class AdaptiveEngine:
    """Facade over tracker, scheduler, detector and recommendation generator."""

    def __init__(self, config: Optional[AdaptiveConfig] = None,
                 rules: Optional[Tuple[MisconceptionRule, ...]] = None):
        self.config = config or DEFAULT_CONFIG
        self.scheduler = ReviewScheduler(self.config)
        self.tracker = MasteryTracker(self.config, self.scheduler)
        self.detector = MisconceptionDetector(rules)
        self.generator = RecommendationGenerator(self.config, self.scheduler)

    # ==================== State Management ====================

    def initial_state(self) -> AdaptiveState:
        return AdaptiveState(tag_stats=self.tracker.initialize_tag_stats())

    def migrate(self, state: AdaptiveState) -> AdaptiveState:
        """Backfill tags added to the taxonomy. Idempotent."""
        tag_stats = self.tracker.ensure_all_tags(state.tag_stats)
        if tag_stats == state.tag_stats:
            return state
        return replace(state, tag_stats=tag_stats)

    # ==================== Operations ====================

    def update_mastery(self, state: AdaptiveState, params: MasteryUpdateParams,
                       now: Optional[datetime] = None) -> Tuple[AdaptiveState, MasteryUpdateResult]:
        """
        Apply one answered question.

        Returns:
            (new state, per-tag delta summary with the recorded attempt)
        """
        now = _resolve_now(now)
        tag_stats, result = self.tracker.process_update(state.tag_stats, params, now)
        history = list(state.question_history) + [result.new_attempt]
        flags = self.detector.evaluate(history, state.misconceptions, now)

        new_state = AdaptiveState(
            tag_stats=tag_stats,
            question_history=history,
            misconceptions=flags,
            recommendations=Invalidated(),
        )
        return new_state, result

    def resolve_misconception(self, state: AdaptiveState, rule_id: str,
                              now: Optional[datetime] = None) -> AdaptiveState:
        now = _resolve_now(now)
        return replace(state, misconceptions=self.detector.resolve(state.misconceptions, rule_id, now))

    def reopen_misconception(self, state: AdaptiveState, rule_id: str) -> AdaptiveState:
        return replace(state, misconceptions=self.detector.reopen(state.misconceptions, rule_id))

    def get_recommendations(
        self,
        state: AdaptiveState,
        lessons: List[CatalogLesson],
        quizzes: List[CatalogQuiz],
        lessons_progress: Dict[str, LessonProgress],
        now: Optional[datetime] = None,
    ) -> Tuple[AdaptiveState, RecommendationState]:
        """
        Cached recommendations while valid, otherwise a fresh set.

        The returned state is the input state itself on a cache hit, so the
        caller can skip the write.
        """
        now = _resolve_now(now)
        cached = cached_state(state.recommendations, now)
        if cached is not None:
            logger.debug("Recommendation cache hit (valid until %s)", cached.valid_until)
            return state, cached

        fresh = self.generator.generate(
            lessons=lessons,
            quizzes=quizzes,
            lessons_progress=lessons_progress,
            tag_stats=state.tag_stats,
            history=state.question_history,
            active_misconceptions=self.detector.active(state.misconceptions),
            now=now,
        )
        return replace(state, recommendations=Cached(fresh)), fresh

    # ==================== Selectors ====================

    def weakest_tags(self, state: AdaptiveState, limit: Optional[int] = None) -> List[TagStat]:
        return self.scheduler.weakest_tags(state.tag_stats, limit)

    def review_queue(self, state: AdaptiveState, now: Optional[datetime] = None) -> List[ReviewQueueItem]:
        return self.scheduler.review_queue(state.tag_stats, _resolve_now(now))

    def unseen_tags(self, state: AdaptiveState) -> List[str]:
        return self.scheduler.unseen_tags(state.tag_stats)

    def overall_mastery(self, state: AdaptiveState) -> float:
        return self.scheduler.overall_mastery(state.tag_stats)

    def active_misconceptions(self, state: AdaptiveState) -> List[ActiveMisconception]:
        return self.detector.active(state.misconceptions)
