"""
Adaptive module - Mastery tracking, spaced review, misconception detection
and recommendations for a single learner.

Components:
    - tags: Fixed astronomy topic taxonomy
    - mastery_tracker: Per-tag statistics and the answer update rule
    - review_scheduler: Review due dates and the review queue
    - misconception_detector: Rule-based error pattern detection
    - recommendations: "3 things to do today" with a time-boxed cache
    - selectors: Read-only dashboard helpers
    - engine: Snapshot-in/snapshot-out facade over all of the above
"""

from .config import AdaptiveConfig, DEFAULT_CONFIG
from .engine import AdaptiveEngine
from .mastery_tracker import MasteryTracker
from .misconception_detector import MISCONCEPTION_RULES, MisconceptionDetector, MisconceptionRule
from .models import (
    AdaptiveState,
    Cached,
    CatalogLesson,
    CatalogQuiz,
    Invalidated,
    LessonProgress,
    MasteryUpdateParams,
    MasteryUpdateResult,
    QuestionAttempt,
    RecommendationState,
    TagStat,
)
from .recommendations import RecommendationGenerator
from .review_scheduler import ReviewScheduler
from .tags import ALL_TAGS, AdaptiveTag

__all__ = [
    "AdaptiveConfig",
    "DEFAULT_CONFIG",
    "AdaptiveEngine",
    "MasteryTracker",
    "ReviewScheduler",
    "MisconceptionDetector",
    "MisconceptionRule",
    "MISCONCEPTION_RULES",
    "RecommendationGenerator",
    "AdaptiveState",
    "Cached",
    "Invalidated",
    "CatalogLesson",
    "CatalogQuiz",
    "LessonProgress",
    "MasteryUpdateParams",
    "MasteryUpdateResult",
    "QuestionAttempt",
    "RecommendationState",
    "TagStat",
    "AdaptiveTag",
    "ALL_TAGS",
]
