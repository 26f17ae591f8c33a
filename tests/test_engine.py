"""
End-to-end tests for the workout generator.

Covers:
- Deterministic plans for identical inputs
- Split rotation and forced splits
- Main-lift prescription shape, loads and deload weeks
- Time budget, prep work, injuries and autoregulation
- Decision log coverage
"""

from datetime import datetime

import pytest

from liftplan.engine import (
    AUTOREGULATION_NOTE,
    PREP_NOTE,
    GenerationOptions,
    WorkoutGenerator,
    generate_workout,
    merge_injury_pain,
    resolve_split_intent,
)
from liftplan.library import LibraryIntegrityError
from liftplan.plan_schemas import ExerciseRole
from liftplan.schemas import (
    FatigueState,
    InjuryFlag,
    SessionCheckIn,
    SessionIntent,
    SplitType,
    TrainingAge,
    UserPreferences,
    UserProfile,
)

SESSION_DATE = datetime(2026, 3, 13, 18, 0)


@pytest.fixture
def options():
    return GenerationOptions(scheduled_date=SESSION_DATE, week_in_block=2)


@pytest.fixture
def plan(profile, goals, constraints, history, raw_library, options):
    return WorkoutGenerator().generate(
        profile, goals, constraints, history, raw_library, options=options
    )


def test_identical_inputs_give_identical_plans(
    profile, goals, constraints, history, raw_library, options
):
    first = generate_workout(profile, goals, constraints, history, raw_library, options=options)
    second = generate_workout(profile, goals, constraints, history, raw_library, options=options)

    assert first.model_dump() == second.model_dump()
    assert first.id == second.id


def test_rotation_follows_completed_sessions(plan):
    """Four completed sessions put a push/pull/legs rotation on pull."""
    assert plan.session_intent == SessionIntent.PULL
    assert plan.scheduled_date == SESSION_DATE
    assert plan.week_in_block == 2


def test_resolve_split_intent(history):
    assert resolve_split_intent(SplitType.PPL, history) == (SessionIntent.PULL, 1)
    assert resolve_split_intent(SplitType.UPPER_LOWER, history) == (SessionIntent.UPPER, 0)
    assert resolve_split_intent(SplitType.FULL_BODY, []) == (SessionIntent.FULL_BODY, 0)
    assert resolve_split_intent(SplitType.PPL, history, SessionIntent.LEGS) == (
        SessionIntent.LEGS,
        1,
    )


def test_forced_split(profile, goals, constraints, history, raw_library):
    options = GenerationOptions(scheduled_date=SESSION_DATE, forced_split=SessionIntent.LEGS)

    plan = generate_workout(profile, goals, constraints, history, raw_library, options=options)

    assert plan.session_intent == SessionIntent.LEGS
    for entry in [*plan.main_lifts, *plan.accessories]:
        assert "legs" in [tag.value for tag in entry.exercise.split_tags]


def test_no_duplicate_exercises(plan):
    ids = plan.exercise_ids()
    assert len(ids) == len(set(ids))


def test_main_lifts_shape(plan):
    assert plan.main_lifts
    for entry in plan.main_lifts:
        assert entry.is_main_lift
        assert entry.role == ExerciseRole.MAIN
        assert len(entry.sets) >= 2
        top, back_off = entry.sets[0], entry.sets[1]
        if top.target_load is not None:
            assert back_off.target_load < top.target_load
        assert all(s.rest_seconds for s in entry.sets)


def test_time_budget_is_respected(plan, constraints, config):
    assert plan.estimated_minutes <= constraints.session_minutes
    assert len(plan.main_lifts) + len(plan.accessories) >= config.min_intent_exercises


def test_peak_week_keeps_set_caps_and_exercise_floor(goals, constraints, history, raw_library, config):
    """Allocated sets for an advanced lifter are not scaled past the six-set cap."""
    advanced = UserProfile(id="lifter_003", training_age=TrainingAge.ADVANCED, weight_kg=90.0)
    options = GenerationOptions(scheduled_date=SESSION_DATE, week_in_block=3)

    plan = generate_workout(advanced, goals, constraints, history, raw_library, options=options)

    working = [*plan.main_lifts, *plan.accessories]
    assert all(2 <= len(entry.sets) <= 6 for entry in working)
    assert len(working) >= config.min_intent_exercises
    assert plan.estimated_minutes <= constraints.session_minutes
    for entry in working:
        allocated = plan.selection.per_exercise_set_targets[entry.exercise.id]
        assert len(entry.sets) <= allocated



def test_low_readiness_adds_autoregulation_note(plan):
    """The skipped pull day was logged with readiness 2."""
    assert plan.notes == AUTOREGULATION_NOTE


def test_check_in_overrides_history(profile, goals, constraints, history, raw_library):
    options = GenerationOptions(
        scheduled_date=SESSION_DATE,
        check_in=SessionCheckIn(date=SESSION_DATE, readiness=5),
    )

    plan = generate_workout(profile, goals, constraints, history, raw_library, options=options)

    assert plan.notes is None


def test_prep_work(profile, goals, constraints, history, raw_library, options):
    unbounded = constraints.model_copy(update={"session_minutes": 0})
    plan = generate_workout(profile, goals, unbounded, history, raw_library, options=options)

    # Two mobility/prehab drills, then one core drill
    assert [entry.exercise.id for entry in plan.warmup] == [
        "band_pull_apart",
        "hip_airplane",
        "cable_crunch",
    ]
    for entry in plan.warmup:
        assert entry.role == ExerciseRole.WARMUP
        assert entry.notes == PREP_NOTE
        assert len(entry.sets) == 1


def test_conditioning_extras_can_be_turned_off(profile, goals, constraints, history, raw_library):
    options = GenerationOptions(
        scheduled_date=SESSION_DATE,
        preferences=UserPreferences(optional_conditioning=False),
    )
    unbounded = constraints.model_copy(update={"session_minutes": 0})

    plan = generate_workout(profile, goals, unbounded, history, raw_library, options=options)

    assert [entry.exercise.id for entry in plan.warmup] == ["band_pull_apart", "hip_airplane"]


def test_leg_day_adds_a_conditioning_drill(profile, goals, constraints, history, raw_library):
    library = raw_library + [
        {
            "id": "burpee",
            "name": "Burpee",
            "movement_patterns": ["squat"],
            "split_tags": ["conditioning"],
            "joint_stress": "medium",
            "fatigue_cost": 3,
            "primary_muscles": ["Quads"],
            "equipment": ["bodyweight"],
        }
    ]
    unbounded = constraints.model_copy(update={"session_minutes": 0})

    def warmup_ids(split):
        options = GenerationOptions(scheduled_date=SESSION_DATE, forced_split=split)
        plan = generate_workout(profile, goals, unbounded, history, library, options=options)
        return [entry.exercise.id for entry in plan.warmup]

    assert warmup_ids(SessionIntent.LEGS)[-1] == "burpee"
    assert "burpee" not in warmup_ids(SessionIntent.PUSH)


def test_favorite_prep_drill_goes_first(profile, goals, constraints, history, raw_library):
    options = GenerationOptions(
        scheduled_date=SESSION_DATE,
        preferences=UserPreferences(favorite_exercise_ids=["thoracic_rotation"]),
    )
    unbounded = constraints.model_copy(update={"session_minutes": 0})

    plan = generate_workout(profile, goals, unbounded, history, raw_library, options=options)

    assert plan.warmup[0].exercise.id == "thoracic_rotation"


def test_deload_week(profile, goals, constraints, history, raw_library):
    options = GenerationOptions(scheduled_date=SESSION_DATE, week_in_block=4)

    plan = generate_workout(profile, goals, constraints, history, raw_library, options=options)

    for entry in [*plan.main_lifts, *plan.accessories]:
        assert all(s.target_rpe <= 6.0 for s in entry.sets)
    for entry in plan.main_lifts:
        loads = {s.target_load for s in entry.sets}
        assert len(loads) == 1
    periodization = next(d for d in plan.decisions if d.decision_point == "Periodization Week")
    assert "deload=True" in periodization.outcome


def test_injuries_become_pain_flags(profile):
    injured = profile.model_copy(
        update={
            "injuries": [
                InjuryFlag(body_part="knee", severity=5),
                InjuryFlag(body_part="elbow", severity=2, is_active=False),
            ]
        }
    )

    merged = merge_injury_pain(FatigueState(pain_flags={"knee": 1, "shoulder": 2}), injured)

    assert merged.pain_flags == {"knee": 3, "shoulder": 2}


def test_injured_knee_avoids_contraindicated_lifts(goals, constraints, history, raw_library):
    profile = UserProfile(
        id="lifter_002",
        training_age=TrainingAge.INTERMEDIATE,
        injuries=[InjuryFlag(body_part="knee", severity=3)],
    )
    options = GenerationOptions(scheduled_date=SESSION_DATE, forced_split=SessionIntent.LEGS)

    plan = generate_workout(profile, goals, constraints, history, raw_library, options=options)

    for entry in plan.all_exercises():
        assert "knee" not in entry.exercise.contraindications


def test_template_session(profile, goals, constraints, history, raw_library):
    template = ["barbell_row", "lat_pulldown", "face_pull"]
    options = GenerationOptions(scheduled_date=SESSION_DATE, template_exercise_ids=template)

    plan = generate_workout(profile, goals, constraints, history, raw_library, options=options)

    assert [e.exercise.id for e in [*plan.main_lifts, *plan.accessories]] == template


def test_empty_history_starts_the_rotation(profile, goals, constraints, raw_library):
    options = GenerationOptions(scheduled_date=SESSION_DATE)

    plan = generate_workout(profile, goals, constraints, [], raw_library, options=options)

    assert plan.session_intent == SessionIntent.PUSH
    assert plan.main_lifts
    assert plan.notes is None


def test_decisions_are_recorded(plan):
    points = [d.decision_point for d in plan.decisions]

    for expected in (
        "Readiness Assessment",
        "Session Intent",
        "Periodization Week",
        "Exercise Selection",
        "Session Time Budget",
    ):
        assert expected in points
    assert plan.selection is not None


def test_corrupt_library_fails_fast(profile, goals, constraints, history, raw_library):
    records = raw_library + [
        {"id": "clean_and_press", "name": "Clean and Press", "split_tags": ["push", "pull"]}
    ]

    with pytest.raises(LibraryIntegrityError):
        generate_workout(profile, goals, constraints, history, records)
