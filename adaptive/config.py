"""
Engine configuration - mastery deltas, review intervals and cache policy.

Defaults live on the dataclass; `AdaptiveConfig.from_env()` lets a deployment
override them through environment variables (or a .env file).
"""

import os
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv


def _default_multipliers() -> Dict[int, float]:
    return {1: 0.9, 2: 1.0, 3: 1.15}


@dataclass(frozen=True)
class AdaptiveConfig:
    """Tunable parameters of the adaptive engine."""
    # Mastery deltas
    base_correct_delta: float = 0.15
    base_wrong_delta: float = -0.12
    difficulty_multipliers: Dict[int, float] = field(default_factory=_default_multipliers)

    # Review intervals (days)
    review_interval_wrong: float = 1
    review_interval_low_mastery: float = 3
    review_interval_high_mastery: float = 7
    mastery_threshold: float = 0.6

    # Recommendations
    recommendation_cache_hours: float = 6
    recommendation_limit: int = 3
    weak_tag_limit: int = 3
    recent_quiz_days: int = 3

    @classmethod
    def from_env(cls) -> "AdaptiveConfig":
        """Build a config, overriding defaults from ADAPTIVE_* variables."""
        load_dotenv()
        defaults = cls()
        return cls(
            base_correct_delta=float(os.getenv("ADAPTIVE_BASE_CORRECT_DELTA", defaults.base_correct_delta)),
            base_wrong_delta=float(os.getenv("ADAPTIVE_BASE_WRONG_DELTA", defaults.base_wrong_delta)),
            review_interval_wrong=float(os.getenv("ADAPTIVE_REVIEW_INTERVAL_WRONG", defaults.review_interval_wrong)),
            review_interval_low_mastery=float(
                os.getenv("ADAPTIVE_REVIEW_INTERVAL_LOW", defaults.review_interval_low_mastery)
            ),
            review_interval_high_mastery=float(
                os.getenv("ADAPTIVE_REVIEW_INTERVAL_HIGH", defaults.review_interval_high_mastery)
            ),
            mastery_threshold=float(os.getenv("ADAPTIVE_MASTERY_THRESHOLD", defaults.mastery_threshold)),
            recommendation_cache_hours=float(
                os.getenv("ADAPTIVE_RECOMMENDATION_CACHE_HOURS", defaults.recommendation_cache_hours)
            ),
            recommendation_limit=int(os.getenv("ADAPTIVE_RECOMMENDATION_LIMIT", defaults.recommendation_limit)),
        )


DEFAULT_CONFIG = AdaptiveConfig()
