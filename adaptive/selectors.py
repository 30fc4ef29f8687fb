"""
Selectors - side-effect-free reads over tracker state for dashboards.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .misconception_detector import MisconceptionDetector
from .models import (
    MisconceptionFlag,
    QuestionAttempt,
    Recommendation,
    RecommendationReason,
    RecommendationState,
    TagStat,
    parse_timestamp,
)
from .review_scheduler import ReviewScheduler
from .tags import ALL_TAGS, TAG_GROUPS, group_of, tag_label

RECENT_ACCURACY_WINDOW = 50


# ==================== Tag stats ====================

def tag_stats_sorted_by_mastery(tag_stats: Dict[str, TagStat]) -> List[TagStat]:
    stats = [tag_stats[tag.value] for tag in ALL_TAGS if tag.value in tag_stats]
    stats.sort(key=lambda s: s.mastery)
    return stats


def tag_stats_sorted_by_recent(tag_stats: Dict[str, TagStat]) -> List[TagStat]:
    """Practised tags, most recently seen first."""
    stats = [
        tag_stats[tag.value] for tag in ALL_TAGS
        if tag.value in tag_stats and tag_stats[tag.value].last_seen_at is not None
    ]
    stats.sort(key=lambda s: s.last_seen_at, reverse=True)
    return stats


def tag_stats_grouped(tag_stats: Dict[str, TagStat]) -> Dict[str, dict]:
    return {
        group_id: {
            "label": group["label"],
            "stats": [tag_stats[tag.value] for tag in group["tags"] if tag.value in tag_stats],
        }
        for group_id, group in TAG_GROUPS.items()
    }


def mastery_level(mastery: float) -> Dict[str, str]:
    if mastery >= 0.8:
        return {"level": "expert", "label": "Expert"}
    if mastery >= 0.6:
        return {"level": "proficient", "label": "Proficient"}
    if mastery >= 0.3:
        return {"level": "developing", "label": "Developing"}
    return {"level": "beginner", "label": "Beginner"}


def progress_summary(tag_stats: Dict[str, TagStat], history: List[QuestionAttempt],
                     flags: List[MisconceptionFlag],
                     detector: Optional[MisconceptionDetector] = None,
                     scheduler: Optional[ReviewScheduler] = None) -> dict:
    """Numbers for the progress dashboard."""
    detector = detector or MisconceptionDetector()
    scheduler = scheduler or ReviewScheduler()

    unseen = scheduler.unseen_tags(tag_stats)
    overall = scheduler.overall_mastery(tag_stats)
    recent = history[-RECENT_ACCURACY_WINDOW:]
    accuracy = sum(1 for a in recent if a.is_correct) / len(recent) if recent else 0.0

    return {
        "tagsExplored": len(ALL_TAGS) - len(unseen),
        "tagsTotal": len(ALL_TAGS),
        "tagsRemaining": len(unseen),
        "overallMastery": overall,
        "masteryLevel": mastery_level(overall),
        "weakestTags": [
            {"tag": s.tag, "label": tag_label(s.tag), "group": group_of(s.tag), "mastery": s.mastery}
            for s in scheduler.weakest_tags(tag_stats, 3)
        ],
        "totalQuestions": len(history),
        "recentAccuracy": accuracy,
        "activeMisconceptions": len(detector.active(flags)),
    }


# ==================== History ====================

def attempts_for_tag(history: List[QuestionAttempt], tag: str) -> List[QuestionAttempt]:
    return [a for a in history if tag in a.tags]


def recent_attempts(history: List[QuestionAttempt], days: int, now: datetime) -> List[QuestionAttempt]:
    cutoff = parse_timestamp(now) - timedelta(days=days)
    return [a for a in history if a.attempted_at > cutoff]


def accuracy_by_tag(history: List[QuestionAttempt]) -> Dict[str, dict]:
    stats = {}
    for tag in ALL_TAGS:
        attempts = attempts_for_tag(history, tag.value)
        correct = sum(1 for a in attempts if a.is_correct)
        stats[tag.value] = {
            "correct": correct,
            "total": len(attempts),
            "accuracy": correct / len(attempts) if attempts else 0.0,
        }
    return stats


# ==================== Recommendations ====================

def recommendations_by_type(state: Optional[RecommendationState], rec_type: str) -> List[Recommendation]:
    if state is None:
        return []
    return [r for r in state.items if r.type == rec_type]


def top_recommendation(state: Optional[RecommendationState]) -> Optional[Recommendation]:
    if state is None or not state.items:
        return None
    return state.items[0]


def has_recommendations(state: Optional[RecommendationState]) -> bool:
    return state is not None and len(state.items) > 0


REASON_PREFIXES = {
    "low_mastery": "Low mastery",
    "review_due": "Review due",
    "misconception": "Misconception",
    "not_started": "New",
    "incomplete": "Continue",
}


def reason_text(reason: RecommendationReason) -> str:
    prefix = REASON_PREFIXES.get(reason.type)
    return f"{prefix}: {reason.details}" if prefix else reason.details
