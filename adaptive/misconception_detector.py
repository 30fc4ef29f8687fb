"""
Misconception Detection System

A wrong answer is rarely random. When the same kind of mistake keeps
coming back - three misses in a row on gravity, always picking "unit of
time" for a light-year - the learner most likely holds a specific wrong
belief, and the fix is a targeted lesson rather than more questions.

Rules are static configuration. Each rule carries one pattern from a small
closed set, evaluated by a dispatcher against the full attempt history:

    RepeatedErrors        - enough wrong answers on the rule's topics
    ConsecutiveWrong      - N wrong in a row on the same topic
    ConfusedPair          - the same wrong choice picked over the right one
    LowMasteryPersistent  - accuracy stays low over a window of attempts

Every pattern requires the newest attempt to take part in it, so one
answered question counts as at most one occurrence. A rule is "active"
only after its pattern has occurred `min_trigger_count` times.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple, Union

from .models import ActiveMisconception, MisconceptionFlag, QuestionAttempt
from .tags import AdaptiveTag

logger = logging.getLogger(__name__)


# ==================== Patterns ====================

@dataclass(frozen=True)
class RepeatedErrors:
    min_errors: int = 2
    kind: str = "repeated_errors"


@dataclass(frozen=True)
class ConsecutiveWrong:
    streak: int = 3
    kind: str = "consecutive_wrong"


@dataclass(frozen=True)
class ConfusedPair:
    selected_answer_id: str
    correct_answer_id: str
    question_id: Optional[str] = None
    min_occurrences: int = 2
    kind: str = "confused_pair"


@dataclass(frozen=True)
class LowMasteryPersistent:
    window: int = 4
    max_accuracy: float = 0.25
    kind: str = "low_mastery_persistent"


Pattern = Union[RepeatedErrors, ConsecutiveWrong, ConfusedPair, LowMasteryPersistent]


@dataclass(frozen=True)
class MisconceptionRule:
    """A named error pattern and what to tell the learner about it."""
    id: str
    title: str
    description: str
    pattern: Pattern
    related_tags: Tuple[str, ...]
    user_message: str
    min_trigger_count: int = 1
    recommended_lesson_slug: Optional[str] = None


def _touches(attempt: QuestionAttempt, tags) -> bool:
    return any(t in tags for t in attempt.tags)


def _match_repeated_errors(pattern: RepeatedErrors, rule: MisconceptionRule,
                           attempts: List[QuestionAttempt]) -> bool:
    latest = attempts[-1]
    if latest.is_correct or not _touches(latest, rule.related_tags):
        return False
    errors = [a for a in attempts if not a.is_correct and _touches(a, rule.related_tags)]
    return len(errors) >= pattern.min_errors


def _match_consecutive_wrong(pattern: ConsecutiveWrong, rule: MisconceptionRule,
                             attempts: List[QuestionAttempt]) -> bool:
    latest = attempts[-1]
    if latest.is_correct:
        return False

    for tag in latest.tags:
        if tag not in rule.related_tags:
            continue
        on_tag = [a for a in attempts if tag in a.tags][-pattern.streak:]
        if len(on_tag) == pattern.streak and not any(a.is_correct for a in on_tag):
            return True
    return False


def _is_confusion(pattern: ConfusedPair, attempt: QuestionAttempt) -> bool:
    if attempt.is_correct:
        return False
    if pattern.question_id is not None and attempt.question_id != pattern.question_id:
        return False
    return (attempt.selected_answer_id == pattern.selected_answer_id
            and attempt.correct_answer_id == pattern.correct_answer_id)


def _match_confused_pair(pattern: ConfusedPair, rule: MisconceptionRule,
                         attempts: List[QuestionAttempt]) -> bool:
    if not _is_confusion(pattern, attempts[-1]):
        return False
    occurrences = sum(1 for a in attempts if _is_confusion(pattern, a))
    return occurrences >= pattern.min_occurrences


def _match_low_mastery_persistent(pattern: LowMasteryPersistent, rule: MisconceptionRule,
                                  attempts: List[QuestionAttempt]) -> bool:
    if not _touches(attempts[-1], rule.related_tags):
        return False
    window = [a for a in attempts if _touches(a, rule.related_tags)][-pattern.window:]
    if len(window) < pattern.window:
        return False
    accuracy = sum(1 for a in window if a.is_correct) / len(window)
    return accuracy <= pattern.max_accuracy


_MATCHERS: Dict[type, Callable] = {
    RepeatedErrors: _match_repeated_errors,
    ConsecutiveWrong: _match_consecutive_wrong,
    ConfusedPair: _match_confused_pair,
    LowMasteryPersistent: _match_low_mastery_persistent,
}


def pattern_holds(rule: MisconceptionRule, attempts: List[QuestionAttempt]) -> bool:
    """Dispatch a rule's pattern. Empty history never matches."""
    if not attempts:
        return False
    matcher = _MATCHERS.get(type(rule.pattern))
    if matcher is None:
        return False
    return matcher(rule.pattern, rule, attempts)


# ==================== RULE LIBRARY ====================

MISCONCEPTION_RULES: Tuple[MisconceptionRule, ...] = (
    MisconceptionRule(
        id="orbit_rotation_confusion",
        title="Orbits vs rotation",
        description="Confusing the orbital period (a year) with the rotation period (a day)",
        pattern=RepeatedErrors(min_errors=2),
        related_tags=(AdaptiveTag.ORBITS.value, AdaptiveTag.PLANETS.value),
        min_trigger_count=2,
        recommended_lesson_slug="solar-system-intro",
        user_message=(
            "You may be mixing up a planet's orbital period (its year) with its rotation "
            "period (its day). A year is one trip around the Sun; a day is one spin "
            "around the planet's own axis."
        ),
    ),
    MisconceptionRule(
        id="distance_scale_confusion",
        title="Distance scales",
        description="Trouble telling apart distance units (km, AU, light-years)",
        pattern=RepeatedErrors(min_errors=2),
        related_tags=(AdaptiveTag.SCALES_DISTANCES.value,),
        min_trigger_count=2,
        recommended_lesson_slug="solar-system-intro",
        user_message=(
            "Cosmic distances seem to be tripping you up. One AU is the Earth-Sun "
            "distance (~150 million km); a light-year is how far light travels in a "
            "year (~9.46 trillion km)."
        ),
    ),
    MisconceptionRule(
        id="star_color_temperature",
        title="Star colour and temperature",
        description="Believing red stars are hotter than blue ones",
        pattern=RepeatedErrors(min_errors=2),
        related_tags=(AdaptiveTag.STARS_BASICS.value, AdaptiveTag.STAR_TYPES.value),
        min_trigger_count=2,
        recommended_lesson_slug="life-of-stars",
        user_message=(
            "Against intuition, blue stars are the HOTTEST (over 10,000 K) and red "
            "stars are the coolest (~3,000 K)."
        ),
    ),
    MisconceptionRule(
        id="stellar_remnants_confusion",
        title="Stellar remnants",
        description="Mixing up the end products of stellar evolution (white dwarf vs black hole)",
        pattern=RepeatedErrors(min_errors=2),
        related_tags=(AdaptiveTag.STELLAR_EVOLUTION.value, AdaptiveTag.BLACK_HOLES.value),
        min_trigger_count=2,
        recommended_lesson_slug="life-of-stars",
        user_message=(
            "Sun-like stars end as white dwarfs. Only very massive stars (over ~25 "
            "solar masses) collapse into black holes."
        ),
    ),
    MisconceptionRule(
        id="rocket_propulsion_confusion",
        title="Rocket propulsion",
        description="Not applying Newton's third law to how rockets move",
        pattern=RepeatedErrors(min_errors=2),
        related_tags=(AdaptiveTag.ROCKETS.value, AdaptiveTag.PHYSICS_NEWTON.value),
        min_trigger_count=2,
        recommended_lesson_slug="how-rockets-work",
        user_message=(
            "Rockets work by Newton's third law: action equals reaction. They throw "
            "gas out one way and move the opposite way - no air to push against needed."
        ),
    ),
    MisconceptionRule(
        id="light_year_as_time",
        title="Light-year is a distance",
        description="Treating the light-year as a unit of time",
        pattern=ConfusedPair(selected_answer_id="a", correct_answer_id="b",
                             question_id="qq1-3", min_occurrences=1),
        related_tags=(AdaptiveTag.SCALES_DISTANCES.value, AdaptiveTag.LIGHT_SPECTRUM.value),
        min_trigger_count=1,
        recommended_lesson_slug="solar-system-intro",
        user_message=(
            "Despite the word 'year', a light-year measures distance: how far light "
            "travels in one year."
        ),
    ),
    MisconceptionRule(
        id="gravity_error_streak",
        title="Gravity basics",
        description="Several gravity questions missed in a row",
        pattern=ConsecutiveWrong(streak=3),
        related_tags=(AdaptiveTag.GRAVITY.value, AdaptiveTag.PHYSICS_NEWTON.value),
        min_trigger_count=1,
        recommended_lesson_slug="how-rockets-work",
        user_message=(
            "The last few gravity questions did not go well. Gravity pulls every mass "
            "toward every other mass, and it weakens with the square of distance."
        ),
    ),
    MisconceptionRule(
        id="black_hole_persistent_gap",
        title="Black holes",
        description="Accuracy on black hole and galaxy questions stays very low",
        pattern=LowMasteryPersistent(window=4, max_accuracy=0.25),
        related_tags=(AdaptiveTag.BLACK_HOLES.value, AdaptiveTag.GALAXIES.value),
        min_trigger_count=1,
        recommended_lesson_slug="galaxies-of-the-universe",
        user_message=(
            "Black holes keep causing trouble. A black hole is not a cosmic vacuum "
            "cleaner: from far away it pulls like any object of the same mass."
        ),
    ),
)


class MisconceptionDetector:
    """
    Evaluates the rule library against the attempt history and maintains
    the persisted flags. All methods return new lists; inputs are not mutated.
    """

    def __init__(self, rules: Optional[Tuple[MisconceptionRule, ...]] = None):
        self.rules = tuple(rules) if rules is not None else MISCONCEPTION_RULES
        self._by_id = {rule.id: rule for rule in self.rules}

    def rule_by_id(self, rule_id: str) -> Optional[MisconceptionRule]:
        return self._by_id.get(rule_id)

    # ==================== Detection ====================

    def evaluate(self, attempts: List[QuestionAttempt], flags: List[MisconceptionFlag],
                 now: datetime) -> List[MisconceptionFlag]:
        """
        Re-evaluate every rule after a new attempt.

        A matching rule creates its flag (trigger_count=1) or bumps the
        count of its open flag. Resolved flags stay resolved.
        """
        result = list(flags)
        index = {flag.rule_id: i for i, flag in enumerate(result)}

        for rule in self.rules:
            existing = result[index[rule.id]] if rule.id in index else None
            if existing is not None and existing.resolved:
                continue
            if not pattern_holds(rule, attempts):
                continue

            if existing is None:
                logger.info("Misconception detected: %s", rule.id)
                index[rule.id] = len(result)
                result.append(MisconceptionFlag(rule_id=rule.id, detected_at=now, trigger_count=1))
            else:
                result[index[rule.id]] = replace(existing, trigger_count=existing.trigger_count + 1)

        return result

    # ==================== Resolution ====================

    def resolve(self, flags: List[MisconceptionFlag], rule_id: str,
                now: datetime) -> List[MisconceptionFlag]:
        """Mark a flag as fixed by the learner. No-op if absent or already resolved."""
        return [
            replace(flag, resolved=True, resolved_at=now)
            if flag.rule_id == rule_id and not flag.resolved else flag
            for flag in flags
        ]

    def reopen(self, flags: List[MisconceptionFlag], rule_id: str) -> List[MisconceptionFlag]:
        """
        Make a resolved flag eligible for detection again.

        The count restarts at zero, so the pattern has to recur before the
        flag shows up as active.
        """
        return [
            replace(flag, resolved=False, resolved_at=None, trigger_count=0)
            if flag.rule_id == rule_id and flag.resolved else flag
            for flag in flags
        ]

    # ==================== Queries ====================

    def active(self, flags: List[MisconceptionFlag]) -> List[ActiveMisconception]:
        """Open flags past their rule's trigger threshold, in library order."""
        open_flags = {flag.rule_id: flag for flag in flags if not flag.resolved}
        active = []

        for rule in self.rules:
            flag = open_flags.get(rule.id)
            if flag is None or flag.trigger_count < rule.min_trigger_count:
                continue
            active.append(ActiveMisconception(
                rule_id=rule.id,
                title=rule.title,
                description=rule.description,
                user_message=rule.user_message,
                related_tags=list(rule.related_tags),
                recommended_lesson_slug=rule.recommended_lesson_slug,
                detected_at=flag.detected_at,
                trigger_count=flag.trigger_count,
            ))

        return active

    def active_tags(self, flags: List[MisconceptionFlag]) -> List[str]:
        tags: List[str] = []
        for misconception in self.active(flags):
            for tag in misconception.related_tags:
                if tag not in tags:
                    tags.append(tag)
        return tags

    def with_rules(self, flags: List[MisconceptionFlag]) -> List[Tuple[MisconceptionFlag, MisconceptionRule]]:
        """Every stored flag, resolved or not, paired with its rule. Flags of retired rules are left out."""
        pairs = []
        for flag in flags:
            rule = self.rule_by_id(flag.rule_id)
            if rule is not None:
                pairs.append((flag, rule))
        return pairs
