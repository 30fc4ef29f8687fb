"""
Mastery Tracker - Per-tag skill statistics and the answer update rule.

Update rule for every tag named by an answered question:
    delta       = (+0.15 if correct else -0.12) * multiplier[difficulty]
    new_mastery = clamp(old_mastery + delta, 0, 1)

Multipliers: easy 0.9, medium 1.0, hard 1.15.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .config import AdaptiveConfig, DEFAULT_CONFIG
from .models import MasteryUpdateParams, MasteryUpdateResult, QuestionAttempt, TagDelta, TagStat
from .review_scheduler import ReviewScheduler
from .tags import ALL_TAGS, is_known_tag

logger = logging.getLogger(__name__)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class MasteryTracker:
    """Owns the TagStat map; every mutation goes through `process_update`."""

    def __init__(self, config: Optional[AdaptiveConfig] = None,
                 scheduler: Optional[ReviewScheduler] = None):
        self.config = config or DEFAULT_CONFIG
        self.scheduler = scheduler or ReviewScheduler(self.config)

    # ==================== Initialization ====================

    @staticmethod
    def initial_tag_stat(tag: str) -> TagStat:
        return TagStat(tag=tag)

    def initialize_tag_stats(self) -> Dict[str, TagStat]:
        """One zero-valued stat per taxonomy tag."""
        return {tag.value: self.initial_tag_stat(tag.value) for tag in ALL_TAGS}

    def ensure_all_tags(self, tag_stats: Dict[str, TagStat]) -> Dict[str, TagStat]:
        """
        Backfill tags added to the taxonomy since the stats were saved.

        Existing entries (including keys no longer in the taxonomy) are kept
        as they are, so running this twice changes nothing.
        """
        result = dict(tag_stats)
        for tag in ALL_TAGS:
            if tag.value not in result:
                result[tag.value] = self.initial_tag_stat(tag.value)
        return result

    # ==================== Update rule ====================

    def mastery_delta(self, is_correct: bool, difficulty: int) -> float:
        base = self.config.base_correct_delta if is_correct else self.config.base_wrong_delta
        return base * self.config.difficulty_multipliers.get(difficulty, 1.0)

    def update_tag_stat(self, stat: TagStat, is_correct: bool, difficulty: int,
                        now: datetime) -> TagStat:
        """Apply one answer to one tag."""
        new_mastery = clamp(stat.mastery + self.mastery_delta(is_correct, difficulty), 0.0, 1.0)

        return replace(
            stat,
            mastery=new_mastery,
            seen=stat.seen + 1,
            correct=stat.correct + 1 if is_correct else stat.correct,
            wrong=stat.wrong if is_correct else stat.wrong + 1,
            last_seen_at=now,
            next_review_at=self.scheduler.next_review_at(is_correct, new_mastery, now),
        )

    def process_update(self, tag_stats: Dict[str, TagStat], params: MasteryUpdateParams,
                       now: datetime) -> Tuple[Dict[str, TagStat], MasteryUpdateResult]:
        """
        Apply an answered question to every tag it names.

        Returns the new stats map and the per-tag deltas plus the attempt
        record; the caller appends the attempt to the history. The input
        map is left untouched.
        """
        new_stats = self.ensure_all_tags(tag_stats)
        updated: List[TagDelta] = []
        applied = set()

        for tag in params.tags:
            if tag in applied:
                continue
            if not is_known_tag(tag):
                logger.debug("Ignoring unknown tag %r on question %s", tag, params.question_id)
                continue

            old_stat = new_stats[tag]
            new_stat = self.update_tag_stat(old_stat, params.is_correct, params.difficulty, now)
            new_stats[tag] = new_stat
            applied.add(tag)

            updated.append(TagDelta(
                tag=tag,
                old_mastery=old_stat.mastery,
                new_mastery=new_stat.mastery,
                delta=new_stat.mastery - old_stat.mastery,
            ))

        attempt = QuestionAttempt(
            question_id=params.question_id,
            quiz_id=params.quiz_id,
            tags=list(params.tags),
            difficulty=params.difficulty,
            is_correct=params.is_correct,
            selected_answer_id=params.selected_answer_id,
            correct_answer_id=params.correct_answer_id,
            attempted_at=now,
        )

        return new_stats, MasteryUpdateResult(updated_tags=updated, new_attempt=attempt)
