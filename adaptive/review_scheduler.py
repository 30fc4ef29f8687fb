"""
Review Scheduler - Spaced review due dates and the review queue.

Intervals:
    - wrong answer                 -> review in 1 day
    - correct, mastery below 0.6   -> review in 3 days
    - correct, mastery 0.6 or more -> review in 7 days

Due-ness is decided per UTC calendar day: a tag scheduled for today is due
even if the exact hour has not arrived yet.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .config import AdaptiveConfig, DEFAULT_CONFIG
from .models import ReviewQueueItem, TagStat, parse_timestamp
from .tags import ALL_TAGS


class ReviewScheduler:
    """Derives review dates from tracker updates and computes what is due."""

    def __init__(self, config: Optional[AdaptiveConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def next_review_at(self, is_correct: bool, new_mastery: float, now: datetime) -> datetime:
        """When the tag should come back, evaluated at update time."""
        if not is_correct:
            days = self.config.review_interval_wrong
        elif new_mastery < self.config.mastery_threshold:
            days = self.config.review_interval_low_mastery
        else:
            days = self.config.review_interval_high_mastery
        return now + timedelta(days=days)

    # ==================== Queue ====================

    def review_queue(self, tag_stats: Dict[str, TagStat], now: datetime) -> List[ReviewQueueItem]:
        """
        Tags due for review right now.

        Sorted most overdue first, then weakest first, then taxonomy order.
        Tags never reviewed (no next_review_at) are left out.
        """
        today = parse_timestamp(now).date()
        queue = []

        for index, tag in enumerate(ALL_TAGS):
            stat = tag_stats.get(tag.value)
            if stat is None or stat.next_review_at is None or stat.seen == 0:
                continue

            review_day = parse_timestamp(stat.next_review_at).date()
            if review_day > today:
                continue

            queue.append((index, ReviewQueueItem(
                tag=tag.value,
                mastery=stat.mastery,
                next_review_at=stat.next_review_at,
                is_overdue=True,
                days_overdue=(today - review_day).days,
            )))

        queue.sort(key=lambda pair: (-pair[1].days_overdue, pair[1].mastery, pair[0]))
        return [item for _, item in queue]

    # ==================== Tag selection ====================

    def weakest_tags(self, tag_stats: Dict[str, TagStat], limit: Optional[int] = None) -> List[TagStat]:
        """Seen tags, lowest mastery first."""
        seen = [
            tag_stats[tag.value] for tag in ALL_TAGS
            if tag.value in tag_stats and tag_stats[tag.value].seen > 0
        ]
        # sort() is stable, so equal mastery keeps taxonomy order
        seen.sort(key=lambda stat: stat.mastery)
        return seen if limit is None else seen[:limit]

    def unseen_tags(self, tag_stats: Dict[str, TagStat]) -> List[str]:
        """Tags never answered, in taxonomy order."""
        return [
            tag.value for tag in ALL_TAGS
            if tag.value not in tag_stats or tag_stats[tag.value].seen == 0
        ]

    def overall_mastery(self, tag_stats: Dict[str, TagStat]) -> float:
        """Average mastery across seen tags (0.0 when nothing was answered)."""
        seen = self.weakest_tags(tag_stats)
        if not seen:
            return 0.0
        return sum(stat.mastery for stat in seen) / len(seen)
