"""
Tests for set/rep/RPE prescription, rest and warm-up ramps.

Covers:
- Main-lift top set and back-off shape per goal
- Readiness and missed-session set reductions
- Deload shape and RPE cap
- Week-over-week monotonicity within a block
- Rest table and warm-up ramps
- Native exercise rep ranges
"""

import pytest

from liftplan.periodization import get_periodization_modifiers
from liftplan.plan_schemas import ExerciseRole, RepRange
from liftplan.prescription import (
    build_warmup_sets,
    can_load_warmup,
    clamp_rep_range,
    exercise_rep_range,
    get_rest_seconds,
    prescribe_sets_reps,
    widen_accessory_range,
)
from liftplan.schemas import (
    FatigueState,
    Goals,
    PrimaryGoal,
    RpeTarget,
    TrainingAge,
    UserPreferences,
)

HYPERTROPHY = Goals(primary=PrimaryGoal.HYPERTROPHY)
STRENGTH = Goals(primary=PrimaryGoal.STRENGTH)
RESTED = FatigueState(readiness_score=3)


def test_main_lift_top_set_and_back_off():
    sets = prescribe_sets_reps(True, TrainingAge.INTERMEDIATE, HYPERTROPHY, RESTED)

    assert len(sets) == 4
    assert sets[0].target_reps == 6
    assert all(s.target_reps == 8 for s in sets[1:])
    assert all(s.role == ExerciseRole.MAIN for s in sets)
    assert all(s.target_rpe == 8.0 for s in sets)
    assert [s.set_index for s in sets] == [1, 2, 3, 4]


def test_strength_back_off_matches_top_set_reps():
    """A back-off multiplier of 0.9 or more keeps back-off reps at the top-set target."""
    sets = prescribe_sets_reps(True, TrainingAge.INTERMEDIATE, STRENGTH, RESTED)

    assert {s.target_reps for s in sets} == {3}


def test_exercise_range_clamps_main_reps():
    sets = prescribe_sets_reps(
        True,
        TrainingAge.INTERMEDIATE,
        HYPERTROPHY,
        RESTED,
        exercise_range=RepRange(min=8, max=12),
    )

    assert sets[0].target_reps == 8
    assert sets[1].target_reps == 10


def test_low_readiness_drops_a_set_and_half_an_rpe():
    tired = FatigueState(readiness_score=2)

    sets = prescribe_sets_reps(True, TrainingAge.INTERMEDIATE, HYPERTROPHY, tired)

    assert len(sets) == 3
    assert sets[0].target_rpe == 7.5


def test_missed_session_and_low_readiness_floor_at_two_sets():
    fatigue = FatigueState(readiness_score=1, missed_last_session=True)

    sets = prescribe_sets_reps(False, TrainingAge.BEGINNER, HYPERTROPHY, fatigue)

    assert len(sets) == 2


@pytest.mark.parametrize(
    "training_age,expected",
    [
        (TrainingAge.BEGINNER, 3),
        (TrainingAge.INTERMEDIATE, 4),
        (TrainingAge.ADVANCED, 5),
    ],
)
def test_training_age_scales_main_sets(training_age, expected):
    sets = prescribe_sets_reps(True, training_age, HYPERTROPHY, RESTED)
    assert len(sets) == expected


def test_set_count_override_replaces_base_sets():
    sets = prescribe_sets_reps(
        False, TrainingAge.INTERMEDIATE, HYPERTROPHY, RESTED, set_count_override=5
    )
    assert len(sets) == 5


def test_allocated_sets_are_not_scaled_up():
    peak = get_periodization_modifiers(3, PrimaryGoal.HYPERTROPHY)

    sets = prescribe_sets_reps(
        True,
        TrainingAge.ADVANCED,
        HYPERTROPHY,
        RESTED,
        periodization=peak,
        set_count_override=6,
    )

    assert len(sets) == 6


def test_allocated_sets_still_shrink_for_deload_and_readiness():
    deload = get_periodization_modifiers(4, PrimaryGoal.HYPERTROPHY)
    tired = FatigueState(readiness_score=2)

    deloaded = prescribe_sets_reps(
        False, TrainingAge.ADVANCED, HYPERTROPHY, RESTED, periodization=deload, set_count_override=6
    )
    autoregulated = prescribe_sets_reps(
        False, TrainingAge.ADVANCED, HYPERTROPHY, tired, set_count_override=5
    )

    assert len(deloaded) == 3
    assert len(autoregulated) == 4


def test_hypertrophy_isolation_runs_harder():
    compound = prescribe_sets_reps(False, TrainingAge.INTERMEDIATE, HYPERTROPHY, RESTED)
    isolation = prescribe_sets_reps(
        False, TrainingAge.INTERMEDIATE, HYPERTROPHY, RESTED, is_isolation=True
    )

    assert isolation[0].target_rpe == compound[0].target_rpe + 0.5


def test_rpe_preference_overrides_base_target():
    preferences = UserPreferences(rpe_targets=[RpeTarget(min=5, max=8, target_rpe=9.0)])
    week_one = get_periodization_modifiers(1, PrimaryGoal.HYPERTROPHY)

    sets = prescribe_sets_reps(
        True,
        TrainingAge.INTERMEDIATE,
        HYPERTROPHY,
        RESTED,
        preferences=preferences,
        periodization=week_one,
    )

    # Preference wins, then the week's offset still applies
    assert sets[0].target_rpe == 9.0 - 1.5


def test_deload_shares_top_set_reps_and_caps_rpe():
    deload = get_periodization_modifiers(4, PrimaryGoal.HYPERTROPHY)

    sets = prescribe_sets_reps(
        True, TrainingAge.ADVANCED, HYPERTROPHY, RESTED, periodization=deload
    )

    assert {s.target_reps for s in sets} == {6}
    assert all(s.target_rpe <= 6.0 for s in sets)


@pytest.mark.parametrize("is_main_lift", [True, False])
def test_block_monotonicity(is_main_lift):
    """Sets and RPE never fall before the deload; the deload cuts both below week one."""
    prescriptions = [
        prescribe_sets_reps(
            is_main_lift,
            TrainingAge.INTERMEDIATE,
            HYPERTROPHY,
            RESTED,
            periodization=get_periodization_modifiers(week, PrimaryGoal.HYPERTROPHY),
        )
        for week in (1, 2, 3, 4)
    ]
    set_counts = [len(sets) for sets in prescriptions]
    rpes = [sets[0].target_rpe for sets in prescriptions]

    assert set_counts[:3] == sorted(set_counts[:3])
    assert rpes[:3] == sorted(rpes[:3])
    assert set_counts[3] < set_counts[0]
    assert rpes[3] <= 6.0


def test_rest_table(library):
    by_id = {e.id: e for e in library}

    assert get_rest_seconds(by_id["barbell_bench_press"], True) == 180
    assert get_rest_seconds(by_id["lat_pulldown"], True) == 150
    assert get_rest_seconds(by_id["incline_dumbbell_press"], False) == 120
    assert get_rest_seconds(by_id["cable_fly"], False) == 60


def test_warmup_ramp_by_training_age():
    beginner = build_warmup_sets(TrainingAge.BEGINNER, 200)
    intermediate = build_warmup_sets(TrainingAge.INTERMEDIATE, 200)

    assert [(s.target_reps, s.target_load) for s in beginner] == [(8, 120.0), (3, 160.0)]
    assert [(s.target_reps, s.target_load) for s in intermediate] == [
        (8, 100.0),
        (5, 140.0),
        (3, 170.0),
    ]
    assert all(s.role == ExerciseRole.WARMUP for s in intermediate)


def test_warmup_ramp_without_load():
    sets = build_warmup_sets(TrainingAge.ADVANCED)
    assert all(s.target_load is None for s in sets)


def test_bodyweight_exercise_gets_no_loaded_ramp(library):
    by_id = {e.id: e for e in library}

    assert can_load_warmup(by_id["push_up"]) is False
    assert can_load_warmup(by_id["barbell_bench_press"]) is True


def test_exercise_rep_range_needs_both_ends(library):
    crunch = next(e for e in library if e.id == "cable_crunch")

    assert crunch.rep_range == {"min": 10, "max": 20}
    assert exercise_rep_range(crunch) == RepRange(min=10, max=20)
    assert exercise_rep_range(crunch.model_copy(update={"rep_range_max": None})) is None


def test_clamp_rep_range_falls_back_when_disjoint():
    assert clamp_rep_range((3, 6), RepRange(min=10, max=20)) == (10, 20)
    assert clamp_rep_range((6, 10), RepRange(min=8, max=15)) == (8, 10)
    assert clamp_rep_range((6, 10)) == (6, 10)


def test_widen_accessory_range():
    assert widen_accessory_range((10, 10), RepRange(min=5, max=10)) == (8, 10)
    assert widen_accessory_range((10, 11), RepRange(min=10, max=20)) == (10, 12)
