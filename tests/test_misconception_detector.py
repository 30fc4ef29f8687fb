"""Tests for adaptive/misconception_detector.py"""

from datetime import timedelta

from adaptive.engine import AdaptiveEngine
from adaptive.models import MisconceptionFlag
from adaptive.misconception_detector import (
    MISCONCEPTION_RULES,
    ConfusedPair,
    MisconceptionDetector,
    MisconceptionRule,
    RepeatedErrors,
    pattern_holds,
)


def _flag(state, rule_id):
    return next((f for f in state.misconceptions if f.rule_id == rule_id), None)


def _active_ids(engine, state):
    return [m.rule_id for m in engine.active_misconceptions(state)]


# ==================== Rule library ====================

def test_rule_ids_are_unique():
    ids = [rule.id for rule in MISCONCEPTION_RULES]
    assert len(ids) == len(set(ids))


def test_every_rule_points_at_a_catalog_lesson(catalog):
    for rule in MISCONCEPTION_RULES:
        assert catalog.get_lesson(rule.recommended_lesson_slug) is not None, rule.id


def test_empty_history_never_matches(now):
    detector = MisconceptionDetector()
    for rule in MISCONCEPTION_RULES:
        assert not pattern_holds(rule, [])
    assert detector.evaluate([], [], now) == []


# ==================== Trigger threshold ====================

def test_threshold_of_three(answer, now):
    rule = MisconceptionRule(
        id="orbit_slips",
        title="Orbit slips",
        description="Any wrong answer on orbits",
        pattern=RepeatedErrors(min_errors=1),
        related_tags=("orbits",),
        user_message="Orbits again.",
        min_trigger_count=3,
    )
    engine = AdaptiveEngine(rules=(rule,))
    state = engine.initial_state()

    for _ in range(2):
        state, _ = engine.update_mastery(state, answer(["orbits"], False), now=now)
    assert _flag(state, "orbit_slips").trigger_count == 2
    assert engine.active_misconceptions(state) == []

    state, _ = engine.update_mastery(state, answer(["orbits"], False), now=now)
    active = engine.active_misconceptions(state)
    assert [m.rule_id for m in active] == ["orbit_slips"]
    assert active[0].trigger_count == 3


def test_orbit_confusion_needs_two_occurrences(engine, answer, play, now):
    wrong = answer(["orbits"], False)

    state = play([(wrong, now)])
    assert state.misconceptions == []

    state = play([(wrong, now)] * 2)
    assert _flag(state, "orbit_rotation_confusion").trigger_count == 1
    assert "orbit_rotation_confusion" not in _active_ids(engine, state)

    state = play([(wrong, now)] * 3)
    assert _flag(state, "orbit_rotation_confusion").trigger_count == 2
    assert "orbit_rotation_confusion" in _active_ids(engine, state)


def test_correct_answer_is_not_an_occurrence(engine, answer, play, now):
    wrong = answer(["orbits"], False)
    right = answer(["orbits"], True)

    state = play([(wrong, now), (wrong, now), (right, now), (right, now)])

    assert _flag(state, "orbit_rotation_confusion").trigger_count == 1


def test_one_flag_per_rule(engine, answer, play, now):
    state = play([(answer(["orbits"], False), now)] * 6)
    rule_ids = [f.rule_id for f in state.misconceptions]
    assert rule_ids.count("orbit_rotation_confusion") == 1


# ==================== Pattern kinds ====================

def test_consecutive_wrong_on_gravity(engine, answer, play, now):
    wrong = answer(["gravity"], False)
    right = answer(["gravity"], True)

    state = play([(wrong, now), (wrong, now), (right, now), (wrong, now), (wrong, now)])
    assert _flag(state, "gravity_error_streak") is None

    state = play([(wrong, now)], state=state)
    assert _flag(state, "gravity_error_streak").trigger_count == 1
    assert "gravity_error_streak" in _active_ids(engine, state)


def test_confused_pair_light_year(engine, answer, play, now):
    confusion = answer(["scales_distances"], False, question_id="qq1-3",
                       selected_answer_id="a", correct_answer_id="b")

    state = play([(confusion, now)])

    assert "light_year_as_time" in _active_ids(engine, state)
    assert "distance_scale_confusion" not in _active_ids(engine, state)


def test_confused_pair_ignores_other_choices(engine, answer, play, now):
    other_choice = answer(["scales_distances"], False, question_id="qq1-3",
                          selected_answer_id="c", correct_answer_id="b")
    other_question = answer(["scales_distances"], False, question_id="qq1-4",
                            selected_answer_id="a", correct_answer_id="b")

    state = play([(other_choice, now), (other_question, now)])

    assert _flag(state, "light_year_as_time") is None


def test_confused_pair_min_occurrences(answer, now):
    rule = MisconceptionRule(
        id="swap",
        title="Swapped answers",
        description="Picks a over b",
        pattern=ConfusedPair(selected_answer_id="a", correct_answer_id="b"),
        related_tags=("moons",),
        user_message="Check the question again.",
    )
    engine = AdaptiveEngine(rules=(rule,))
    first, _ = engine.update_mastery(engine.initial_state(), answer(["moons"], False, question_id="m1"), now=now)
    assert first.misconceptions == []

    second, _ = engine.update_mastery(first, answer(["moons"], False, question_id="m2"), now=now)
    assert _flag(second, "swap").trigger_count == 1


def test_low_mastery_persistent_black_holes(engine, answer, play, now):
    wrong = answer(["black_holes"], False)
    right = answer(["black_holes"], True)

    state = play([(wrong, now), (wrong, now), (right, now)])
    assert _flag(state, "black_hole_persistent_gap") is None

    state = play([(wrong, now)], state=state)
    assert _flag(state, "black_hole_persistent_gap").trigger_count == 1
    assert "black_hole_persistent_gap" in _active_ids(engine, state)


# ==================== Resolution ====================

def _orbit_confusion_active(play, answer, now):
    return play([(answer(["orbits"], False), now)] * 3)


def test_resolve_hides_and_stays_resolved(engine, answer, play, now):
    state = _orbit_confusion_active(play, answer, now)
    count_before = _flag(state, "orbit_rotation_confusion").trigger_count

    state = engine.resolve_misconception(state, "orbit_rotation_confusion", now=now + timedelta(hours=1))
    flag = _flag(state, "orbit_rotation_confusion")
    assert flag.resolved
    assert flag.resolved_at == now + timedelta(hours=1)
    assert "orbit_rotation_confusion" not in _active_ids(engine, state)

    state = play([(answer(["orbits"], False), now)] * 3, state=state)
    flag = _flag(state, "orbit_rotation_confusion")
    assert flag.resolved
    assert flag.trigger_count == count_before
    assert [f.rule_id for f in state.misconceptions].count("orbit_rotation_confusion") == 1


def test_resolve_is_idempotent(engine, answer, play, now):
    state = _orbit_confusion_active(play, answer, now)

    once = engine.resolve_misconception(state, "orbit_rotation_confusion", now=now)
    twice = engine.resolve_misconception(once, "orbit_rotation_confusion", now=now + timedelta(days=1))

    assert twice.misconceptions == once.misconceptions


def test_resolve_unknown_rule_is_noop(engine, answer, play, now):
    state = _orbit_confusion_active(play, answer, now)
    resolved = engine.resolve_misconception(state, "no_such_rule", now=now)
    assert resolved.misconceptions == state.misconceptions


def test_reopen_restarts_the_count(engine, answer, play, now):
    state = _orbit_confusion_active(play, answer, now)
    state = engine.resolve_misconception(state, "orbit_rotation_confusion", now=now)

    state = engine.reopen_misconception(state, "orbit_rotation_confusion")
    flag = _flag(state, "orbit_rotation_confusion")
    assert not flag.resolved
    assert flag.resolved_at is None
    assert flag.trigger_count == 0

    state = play([(answer(["orbits"], False), now)], state=state)
    assert _flag(state, "orbit_rotation_confusion").trigger_count == 1
    assert "orbit_rotation_confusion" not in _active_ids(engine, state)

    state = play([(answer(["orbits"], False), now)], state=state)
    assert "orbit_rotation_confusion" in _active_ids(engine, state)


# ==================== Queries ====================

def test_active_carries_rule_metadata(engine, answer, play, now):
    state = _orbit_confusion_active(play, answer, now)
    misconception = engine.active_misconceptions(state)[0]

    assert misconception.rule_id == "orbit_rotation_confusion"
    assert misconception.recommended_lesson_slug == "solar-system-intro"
    assert misconception.related_tags == ["orbits", "planets"]
    assert misconception.to_dict()["id"] == "orbit_rotation_confusion"


def test_active_tags(engine, answer, play, now):
    state = _orbit_confusion_active(play, answer, now)
    assert engine.detector.active_tags(state.misconceptions) == ["orbits", "planets"]


def test_rule_by_id(engine):
    rule = engine.detector.rule_by_id("orbit_rotation_confusion")

    assert rule.title == "Orbits vs rotation"
    assert engine.detector.rule_by_id("no_such_rule") is None


def test_with_rules_keeps_resolved_and_skips_retired(engine, answer, play, now):
    state = _orbit_confusion_active(play, answer, now)
    state = engine.resolve_misconception(state, "orbit_rotation_confusion", now=now)
    flags = state.misconceptions + [MisconceptionFlag(rule_id="retired_rule", detected_at=now)]

    pairs = engine.detector.with_rules(flags)

    assert [(flag.rule_id, rule.id) for flag, rule in pairs] == [
        ("orbit_rotation_confusion", "orbit_rotation_confusion")
    ]
    assert pairs[0][0].resolved
