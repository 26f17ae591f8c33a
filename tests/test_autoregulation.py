"""
Tests for check-in autoregulation and the stall-intervention ladder.

Covers:
- Subjective, performance and per-muscle fatigue scoring
- Action thresholds and the lifter's autoregulation policy
- Scale down/up, accessory volume cuts and the automatic deload
- Sessions without a PR, ladder levels and swap suggestions
- Engine wiring: decisions, fatigue score and interventions on the plan
"""

from datetime import datetime, timedelta

import pytest

from liftplan.autoregulation import (
    AutoregulationResult,
    PerformanceSignals,
    apply_stall_ladder,
    autoregulate_session,
    best_set_e1rm,
    compute_fatigue_score,
    compute_performance_signals,
    count_sessions_without_pr,
    detect_stalls,
    fatigue_level_label,
    resolve_intervention_level,
    select_action,
    suggest_intervention,
)
from liftplan.engine import AUTOREGULATION_NOTE, GenerationOptions, generate_workout
from liftplan.plan_schemas import (
    AutoregulationAction,
    ExerciseRole,
    FatigueScore,
    InterventionLevel,
    WorkoutExercise,
    WorkoutSet,
)
from liftplan.prescription import build_warmup_sets
from liftplan.readiness import estimate_one_rep_max
from liftplan.schemas import (
    Aggressiveness,
    AutoregulationPolicy,
    EquipmentType,
    HistoryExercise,
    SessionCheckIn,
    SessionIntent,
    SetLog,
    TrainingAge,
    WorkoutHistoryEntry,
    WorkoutStatus,
)

SESSION_DATE = datetime(2026, 3, 13, 18, 0)
FULL_GYM = list(EquipmentType)


def _entry(exercise, sets, load=None, rpe=None, is_main_lift=False):
    role = ExerciseRole.MAIN if is_main_lift else ExerciseRole.ACCESSORY
    return WorkoutExercise(
        id=f"{exercise.id}-0",
        exercise=exercise,
        order_index=0,
        is_main_lift=is_main_lift,
        role=role,
        sets=[
            WorkoutSet(set_index=i + 1, target_reps=8, role=role, target_load=load, target_rpe=rpe)
            for i in range(sets)
        ],
        warmup_sets=build_warmup_sets(TrainingAge.INTERMEDIATE, load) if is_main_lift else [],
    )


def _bench_history(loads, start=datetime(2026, 1, 5, 18, 0)):
    """One bench session of three sets of eight per load, every other day."""
    return [
        WorkoutHistoryEntry(
            date=start + timedelta(days=2 * index),
            session_intent=SessionIntent.PUSH,
            exercises=[
                HistoryExercise(
                    exercise_id="barbell_bench_press",
                    sets=[SetLog(set_index=i + 1, reps=8, load=load) for i in range(3)],
                )
            ],
        )
        for index, load in enumerate(loads)
    ]


def _score(overall):
    return FatigueScore(overall=overall)


@pytest.fixture
def by_id(library):
    return {e.id: e for e in library}


@pytest.fixture
def session(by_id):
    mains = [_entry(by_id["barbell_bench_press"], 4, load=200, rpe=8.0, is_main_lift=True)]
    accessories = [
        _entry(by_id["cable_fly"], 3, load=50, rpe=8.0),
        _entry(by_id["push_up"], 3),
    ]
    return mains, accessories


# ----------------------------------------------------------------------------
# Fatigue score
# ----------------------------------------------------------------------------


def test_fresh_check_in_scores_high():
    score = compute_fatigue_score(
        SessionCheckIn(date=SESSION_DATE, readiness=5, motivation=5), PerformanceSignals()
    )

    assert score.overall == pytest.approx(0.9)
    assert score.components == pytest.approx({"subjective": 0.6, "performance": 0.3})
    assert score.weights == {"subjective": 0.6, "performance": 0.4}
    assert fatigue_level_label(score.overall) == "very fresh"


def test_motivation_defaults_to_readiness():
    score = compute_fatigue_score(SessionCheckIn(date=SESSION_DATE, readiness=2), PerformanceSignals())

    # 0.25 x 0.6 subjective plus 0.75 x 0.4 performance
    assert score.overall == pytest.approx(0.45)
    assert fatigue_level_label(score.overall) == "moderately fatigued"


def test_poor_performance_drags_the_score_down():
    performance = PerformanceSignals(rpe_deviation=2.0, stall_count=5, volume_compliance_rate=0.5)
    score = compute_fatigue_score(SessionCheckIn(date=SESSION_DATE, readiness=1), performance)

    # rpe 0.0, stalls capped at 0.3 penalty, compliance 0.5: 0.31 x 0.4
    assert score.overall == pytest.approx(0.124)
    assert fatigue_level_label(score.overall) == "significantly fatigued"


def test_soreness_maps_to_per_muscle_freshness():
    check_in = SessionCheckIn(
        date=SESSION_DATE, readiness=4, soreness={"chest": 3, "lats": 2, "quads": 1}
    )

    score = compute_fatigue_score(check_in, PerformanceSignals())

    assert score.per_muscle == {"chest": 0.0, "lats": 0.5, "quads": 1.0}


def test_soreness_outside_range_is_rejected():
    with pytest.raises(ValueError):
        SessionCheckIn(date=SESSION_DATE, readiness=4, soreness={"chest": 4})


def test_performance_signals_from_recent_sessions(config):
    entry = WorkoutHistoryEntry(
        date=SESSION_DATE,
        exercises=[
            HistoryExercise(
                exercise_id="barbell_bench_press",
                sets=[
                    SetLog(set_index=1, reps=8, load=185, rpe=9.0),
                    SetLog(set_index=2, reps=8, load=185, rpe=9.0),
                    SetLog(set_index=3, reps=0, load=185),
                ],
            )
        ],
    )
    skipped = WorkoutHistoryEntry(
        date=SESSION_DATE - timedelta(days=1),
        status=WorkoutStatus.SKIPPED,
        exercises=[
            HistoryExercise(exercise_id="barbell_row", sets=[SetLog(set_index=1, reps=0, rpe=10.0)])
        ],
    )

    signals = compute_performance_signals([entry, skipped], 8.0, stall_count=1, config=config)

    assert signals.rpe_deviation == pytest.approx(1.0)
    assert signals.volume_compliance_rate == pytest.approx(2 / 3)
    assert signals.stall_count == 1


def test_performance_signals_without_history():
    signals = compute_performance_signals([], 8.0)

    assert signals.rpe_deviation == 0.0
    assert signals.volume_compliance_rate == 1.0


# ----------------------------------------------------------------------------
# Actions
# ----------------------------------------------------------------------------


@pytest.mark.parametrize(
    "overall,expected",
    [
        (0.1, AutoregulationAction.TRIGGER_DELOAD),
        (0.4, AutoregulationAction.SCALE_DOWN),
        (0.6, AutoregulationAction.MAINTAIN),
        (0.9, AutoregulationAction.SCALE_UP),
    ],
)
def test_action_thresholds(overall, expected):
    assert select_action(overall) == expected


def test_policy_controls_direction():
    aggressive = AutoregulationPolicy(aggressiveness=Aggressiveness.AGGRESSIVE)
    no_down = AutoregulationPolicy(allow_down_regulation=False)
    no_up = AutoregulationPolicy(allow_up_regulation=False)

    assert select_action(0.4, aggressive) == AutoregulationAction.REDUCE_VOLUME
    assert select_action(0.1, no_down) == AutoregulationAction.MAINTAIN
    assert select_action(0.4, no_down) == AutoregulationAction.MAINTAIN
    assert select_action(0.9, no_up) == AutoregulationAction.MAINTAIN


def test_scale_down_cuts_load_and_rpe(session):
    mains, accessories = session

    result = autoregulate_session(mains, accessories, _score(0.4))

    assert isinstance(result, AutoregulationResult)
    assert result.action == AutoregulationAction.SCALE_DOWN
    bench = result.main_lifts[0]
    assert [s.target_load for s in bench.sets] == [180.0] * 4
    assert [s.target_rpe for s in bench.sets] == [7.0] * 4
    assert [s.target_load for s in bench.warmup_sets] == [90.0, 126.0, 153.0]
    assert [s.target_load for s in result.accessories[0].sets] == [45.0] * 3
    # Unloaded work is left alone
    assert result.accessories[1] == accessories[1]
    assert [m.exercise_id for m in result.modifications] == ["barbell_bench_press", "cable_fly"]
    assert result.modifications[0].original_load == 200
    assert result.modifications[0].adjusted_load == 180


def test_scale_up_raises_load_and_rpe(session):
    mains, accessories = session

    result = autoregulate_session(mains, accessories, _score(0.9))

    assert result.action == AutoregulationAction.SCALE_UP
    assert [s.target_load for s in result.main_lifts[0].sets] == [210.0] * 4
    assert [s.target_rpe for s in result.main_lifts[0].sets] == [8.5] * 4
    # Inputs are not mutated
    assert mains[0].sets[0].target_load == 200


def test_reduce_volume_trims_accessories_only(session, by_id):
    mains, accessories = session
    accessories = [*accessories, _entry(by_id["cable_triceps_pushdown"], 5, load=40, rpe=8.0)]
    policy = AutoregulationPolicy(aggressiveness=Aggressiveness.AGGRESSIVE)

    result = autoregulate_session(mains, accessories, _score(0.4), policy)

    assert result.action == AutoregulationAction.REDUCE_VOLUME
    assert len(result.main_lifts[0].sets) == 4
    assert [len(e.sets) for e in result.accessories] == [2, 2, 3]
    assert result.accessories[0].sets[0].target_load == 50


def test_deload_halves_sets_and_load(session):
    mains, accessories = session

    result = autoregulate_session(mains, accessories, _score(0.1))

    assert result.action == AutoregulationAction.TRIGGER_DELOAD
    bench = result.main_lifts[0]
    assert [s.target_load for s in bench.sets] == [120.0, 120.0]
    assert [s.target_rpe for s in bench.sets] == [6.0, 6.0]
    assert [s.target_load for s in bench.warmup_sets] == [60.0, 84.0, 102.0]
    # Three sets round up to two, never below two
    assert [len(e.sets) for e in result.accessories] == [2, 2]
    assert len(result.modifications) == 3


def test_maintain_leaves_session_unchanged(session):
    mains, accessories = session

    result = autoregulate_session(mains, accessories, _score(0.6))

    assert result.action == AutoregulationAction.MAINTAIN
    assert result.main_lifts == mains
    assert result.accessories == accessories
    assert result.modifications == []


# ----------------------------------------------------------------------------
# Stall ladder
# ----------------------------------------------------------------------------


def test_best_set_caps_reps_at_ten():
    sets = [
        SetLog(set_index=1, reps=15, load=100),
        SetLog(set_index=2, reps=5, load=110),
        SetLog(set_index=3, reps=8),
    ]

    assert best_set_e1rm(sets) == pytest.approx(estimate_one_rep_max(110, 5))
    assert best_set_e1rm([SetLog(set_index=1, reps=20, load=100)]) == pytest.approx(
        estimate_one_rep_max(100, 10)
    )
    assert best_set_e1rm([SetLog(set_index=1, reps=8)]) is None


def test_count_sessions_without_pr():
    assert count_sessions_without_pr([100, 110, 105, 108, 110]) == 3
    assert count_sessions_without_pr([100, 105, 110]) == 0
    assert count_sessions_without_pr([100]) == 0
    assert count_sessions_without_pr([]) == 0


@pytest.mark.parametrize(
    "weeks,level",
    [
        (1.9, InterventionLevel.NONE),
        (2.0, InterventionLevel.MICROLOAD),
        (3.3, InterventionLevel.DELOAD),
        (5.0, InterventionLevel.VARIATION),
        (8.0, InterventionLevel.VOLUME_RESET),
    ],
)
def test_intervention_levels(weeks, level):
    assert resolve_intervention_level(weeks) == level


def test_long_plateau_is_detected(library, config):
    history = _bench_history([175] + [170] * 9)

    stalls = detect_stalls(history, library, config)

    assert len(stalls) == 1
    assert stalls[0].exercise_id == "barbell_bench_press"
    assert stalls[0].sessions_without_pr == 9
    assert stalls[0].weeks_without_progress == 3.0
    assert stalls[0].level == InterventionLevel.DELOAD


def test_short_or_progressing_history_is_not_stalled(library, config):
    assert detect_stalls(_bench_history([175, 170]), library, config) == []
    assert detect_stalls(_bench_history([165, 170, 175, 180]), library, config) == []


def test_variation_step_suggests_swaps(library, config):
    history = _bench_history([175] + [170] * 15)
    stall = detect_stalls(history, library, config)[0]
    assert stall.level == InterventionLevel.VARIATION

    suggestion = suggest_intervention(stall, library, FULL_GYM, config=config)

    assert suggestion.substitute_ids
    assert "barbell_bench_press" not in suggestion.substitute_ids
    assert suggestion.rationale.startswith("5 weeks without a PR")


def test_ladder_steps_change_the_prescription(session, library, config):
    mains, accessories = session
    deload = suggest_intervention(
        detect_stalls(_bench_history([175] + [170] * 9), library, config)[0], library, FULL_GYM
    )
    reset = suggest_intervention(
        detect_stalls(_bench_history([175] + [170] * 24), library, config)[0], library, FULL_GYM
    )
    assert reset.level == InterventionLevel.VOLUME_RESET

    deloaded, applied = apply_stall_ladder(mains, [deload], config)
    assert applied == [deload]
    assert [s.target_load for s in deloaded[0].sets] == [180.0] * 4
    assert deloaded[0].notes.startswith("Deload")

    reset_mains, _ = apply_stall_ladder(mains, [reset], config)
    assert len(reset_mains[0].sets) == 2

    untouched, applied = apply_stall_ladder(accessories, [deload], config)
    assert untouched == accessories
    assert applied == []


# ----------------------------------------------------------------------------
# Engine wiring
# ----------------------------------------------------------------------------


def test_tired_check_in_scales_the_session(profile, goals, constraints, history, raw_library):
    options = GenerationOptions(
        scheduled_date=SESSION_DATE,
        week_in_block=2,
        check_in=SessionCheckIn(date=SESSION_DATE, readiness=1, motivation=1),
    )

    plan = generate_workout(profile, goals, constraints, history, raw_library, options=options)

    assert plan.fatigue_score is not None
    assert 0.3 <= plan.fatigue_score.overall < 0.5
    assert plan.autoregulation
    assert {m.action for m in plan.autoregulation} == {AutoregulationAction.SCALE_DOWN}
    assert "Autoregulation" in [d.decision_point for d in plan.decisions]
    assert plan.notes == AUTOREGULATION_NOTE


def test_no_check_in_means_no_fatigue_score(profile, goals, constraints, history, raw_library):
    options = GenerationOptions(scheduled_date=SESSION_DATE, week_in_block=2)

    plan = generate_workout(profile, goals, constraints, history, raw_library, options=options)

    assert plan.fatigue_score is None
    assert plan.autoregulation == []
    assert "Autoregulation" not in [d.decision_point for d in plan.decisions]


def test_stalled_lift_is_flagged_in_plan(profile, goals, constraints, raw_library):
    history = _bench_history([175] + [170] * 9)
    options = GenerationOptions(
        scheduled_date=SESSION_DATE, week_in_block=2, forced_split=SessionIntent.PUSH
    )

    plan = generate_workout(profile, goals, constraints, history, raw_library, options=options)

    decision = next(d for d in plan.decisions if d.decision_point == "Stall Interventions")
    assert "barbell_bench_press=3wk" in decision.input_factors
    selected = {e.exercise.id for e in [*plan.main_lifts, *plan.accessories]}
    assert {i.exercise_id for i in plan.interventions} <= selected
