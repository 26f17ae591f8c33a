"""
Tests for session time estimation and accessory trimming.

Covers:
- Per-set work and rest estimates, ramp sets included
- Accessory retention order
- Trimming to a budget, disabled budgets and over-budget sessions
- Whole-session fit: prep drills, then sets, then accessories
"""

import pytest

from liftplan.engine import build_prep_exercise
from liftplan.plan_schemas import ExerciseRole, WorkoutExercise, WorkoutSet
from liftplan.prescription import build_warmup_sets
from liftplan.schemas import TrainingAge
from liftplan.timeboxing import (
    estimate_exercise_seconds,
    estimate_work_seconds,
    estimate_workout_minutes,
    fit_session_to_budget,
    fit_to_time_budget,
    retention_order,
    trim_accessories_by_priority,
    trim_sets_to_budget,
)


def _entry(exercise, sets, reps, is_main_lift=False, warmups=False):
    role = ExerciseRole.MAIN if is_main_lift else ExerciseRole.ACCESSORY
    return WorkoutExercise(
        id=f"{exercise.id}-0",
        exercise=exercise,
        order_index=0,
        is_main_lift=is_main_lift,
        role=role,
        sets=[WorkoutSet(set_index=i + 1, target_reps=reps, role=role) for i in range(sets)],
        warmup_sets=build_warmup_sets(TrainingAge.INTERMEDIATE, 185) if warmups else [],
    )


@pytest.fixture
def by_id(library):
    return {e.id: e for e in library}


@pytest.fixture
def push_day(by_id):
    bench = _entry(by_id["barbell_bench_press"], 4, 8, is_main_lift=True)
    accessories = [
        _entry(by_id["cable_fly"], 3, 12),
        _entry(by_id["dumbbell_lateral_raise"], 3, 12),
        _entry(by_id["cable_triceps_pushdown"], 3, 12),
    ]
    return bench, accessories


def test_work_seconds_are_clamped():
    assert estimate_work_seconds(8, 40) == 26
    assert estimate_work_seconds(1, 40) == 20
    assert estimate_work_seconds(50, 40) == 90
    assert estimate_work_seconds(None, 40) == 40


def test_accessory_seconds(by_id):
    """Three sets of 12: (34s work + 60s rest) x 3."""
    assert estimate_exercise_seconds(_entry(by_id["cable_fly"], 3, 12)) == 282


def test_ramp_sets_count_toward_duration(by_id):
    plain = _entry(by_id["barbell_bench_press"], 4, 8, is_main_lift=True)
    ramped = _entry(by_id["barbell_bench_press"], 4, 8, is_main_lift=True, warmups=True)

    assert estimate_exercise_seconds(plain) == 824
    # Ramp sets carry their own rest: 60s, 60s, then 90s before the top set
    assert estimate_exercise_seconds(ramped) == 824 + 86 + 80 + 110
    assert estimate_workout_minutes([ramped]) == 18


def test_explicit_rest_wins(by_id):
    entry = _entry(by_id["cable_fly"], 1, 12)
    entry.sets[0].rest_seconds = 0

    assert estimate_exercise_seconds(entry) == 34


def test_retention_order_keeps_uncovered_muscles(push_day):
    bench, accessories = push_day

    order = retention_order(accessories, [bench])

    # The fly repeats the bench's primary muscle, so it goes first
    assert order[0].exercise.id == "cable_fly"
    assert trim_accessories_by_priority(accessories, [bench], 0) == accessories


def test_fit_trims_until_under_budget(push_day):
    bench, accessories = push_day

    kept, minutes = fit_to_time_budget([bench], accessories, 20)

    assert [entry.exercise.id for entry in kept] == ["cable_triceps_pushdown"]
    assert minutes == 18


def test_zero_budget_disables_trimming(push_day):
    bench, accessories = push_day

    kept, minutes = fit_to_time_budget([bench], accessories, 0)

    assert kept == accessories
    assert minutes == 28


def test_over_budget_with_nothing_left(push_day):
    bench, accessories = push_day

    kept, minutes = fit_to_time_budget([bench], accessories, 5)

    assert kept == []
    assert minutes == 14


@pytest.fixture
def prep(by_id, config):
    return [
        build_prep_exercise(by_id["band_pull_apart"], 0, config),
        build_prep_exercise(by_id["hip_airplane"], 1, config),
    ]


def test_prep_drills_go_before_accessories(push_day, prep):
    """Two drills add 75s each to a 28-minute push day."""
    bench, accessories = push_day

    kept_prep, mains, kept, minutes = fit_session_to_budget(prep, [bench], accessories, 29)

    assert [entry.exercise.id for entry in kept_prep] == ["band_pull_apart"]
    assert kept == accessories
    assert mains == [bench]
    assert minutes == 29

    kept_prep, _, kept, minutes = fit_session_to_budget(prep, [bench], accessories, 28)

    assert kept_prep == []
    assert kept == accessories
    assert minutes == 28


def test_sets_shrink_before_accessories_drop(push_day, prep):
    bench, accessories = push_day

    kept_prep, mains, kept, minutes = fit_session_to_budget(prep, [bench], accessories, 25)

    assert kept_prep == []
    assert len(mains[0].sets) == 3
    assert [len(entry.sets) for entry in kept] == [3, 3, 3]
    assert minutes == 24

    _, mains, kept, minutes = fit_session_to_budget(prep, [bench], accessories, 20)

    # Main lift first at equal counts, then the earliest accessory
    assert len(mains[0].sets) == 2
    assert [len(entry.sets) for entry in kept] == [2, 3, 3]
    assert minutes == 19


def test_session_fit_bottoms_out_at_main_lifts(push_day, prep):
    bench, accessories = push_day

    kept_prep, mains, kept, minutes = fit_session_to_budget(prep, [bench], accessories, 5)

    assert kept_prep == []
    assert kept == []
    assert len(mains[0].sets) == 2
    assert minutes == 7


def test_trim_sets_keeps_two_per_exercise(push_day):
    bench, accessories = push_day

    mains, kept, minutes = trim_sets_to_budget([bench], accessories, 1)

    assert [len(entry.sets) for entry in [*mains, *kept]] == [2, 2, 2, 2]
    assert minutes == 16
    assert len(bench.sets) == 4
