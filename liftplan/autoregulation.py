"""
Check-in autoregulation and the stall-intervention ladder.

Both run on a prescribed session after loads are resolved:
- A fatigue score (0 exhausted, 1 fresh) built from the day's check-in and
  recent performance picks one session-wide action: maintain, scale
  intensity down or up, cut accessory volume, or deload outright.
- Lifts that have stopped setting best-set PRs climb a ladder by weeks
  without progress: microload, deload, variation swap, volume reset.
"""

import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from liftplan.config import EngineConfig, resolve_config
from liftplan.history import completed_history, sort_history_desc
from liftplan.numeric import clamp, round_half_up, round_to_half
from liftplan.plan_schemas import (
    AutoregulationAction,
    AutoregulationModification,
    FatigueScore,
    InterventionLevel,
    InterventionSuggestion,
    StallState,
    WorkoutExercise,
    WorkoutSet,
)
from liftplan.readiness import estimate_one_rep_max
from liftplan.schemas import (
    Aggressiveness,
    AutoregulationPolicy,
    EquipmentType,
    Exercise,
    SessionCheckIn,
    SetLog,
    WorkoutHistoryEntry,
)
from liftplan.substitution import suggest_substitutes

logger = logging.getLogger(__name__)

MIN_SETS = 2
SUBJECTIVE_WEIGHT = 0.6
PERFORMANCE_WEIGHT = 0.4
STALL_PENALTY_PER_LIFT = 0.1
MAX_STALL_PENALTY = 0.3
E1RM_REP_CAP = 10


class PerformanceSignals(BaseModel):
    """Readiness signals taken from recent logged sessions."""

    rpe_deviation: float = Field(
        0.0, description="Mean logged RPE minus expected RPE; positive felt harder"
    )
    stall_count: int = Field(0, ge=0)
    volume_compliance_rate: float = Field(1.0, ge=0.0, le=1.0)


class AutoregulationResult(BaseModel):
    """Adjusted session blocks plus what changed and why."""

    main_lifts: List[WorkoutExercise]
    accessories: List[WorkoutExercise]
    action: AutoregulationAction
    modifications: List[AutoregulationModification] = Field(default_factory=list)
    rationale: str


# ============================================================================
# Fatigue score
# ============================================================================


def compute_performance_signals(
    history: List[WorkoutHistoryEntry],
    expected_rpe: float,
    stall_count: int = 0,
    config: Optional[EngineConfig] = None,
) -> PerformanceSignals:
    """
    Performance signals from the last few completed sessions.

    Args:
        history: Logged sessions, any order
        expected_rpe: RPE the lifter was meant to work at
        stall_count: Lifts currently on the stall ladder
        config: Engine configuration

    Returns:
        RPE deviation over every set with a logged RPE, plus the share of
        logged sets that were actually completed (reps above zero)
    """
    cfg = resolve_config(config)
    recent = sort_history_desc(completed_history(history))[: cfg.autoregulation.performance_sessions]
    logged = [s for entry in recent for exercise in entry.exercises for s in exercise.sets]

    deviations = [s.rpe - expected_rpe for s in logged if s.rpe is not None]
    rpe_deviation = sum(deviations) / len(deviations) if deviations else 0.0
    compliance = len([s for s in logged if s.reps > 0]) / len(logged) if logged else 1.0
    return PerformanceSignals(
        rpe_deviation=rpe_deviation,
        stall_count=stall_count,
        volume_compliance_rate=compliance,
    )


def compute_subjective_score(check_in: SessionCheckIn) -> float:
    """readiness x 0.6 + motivation x 0.4, each rescaled from 1-5 to 0-1."""
    readiness = (check_in.readiness - 1) / 4
    motivation_raw = check_in.motivation if check_in.motivation is not None else check_in.readiness
    motivation = (motivation_raw - 1) / 4
    return clamp(readiness * 0.6 + motivation * 0.4, 0.0, 1.0)


def compute_performance_score(performance: PerformanceSignals) -> float:
    # RPE deviation of -4 maps to 1.0, +4 to 0.0
    rpe_score = clamp(0.5 - performance.rpe_deviation / 4, 0.0, 1.0)
    stall_penalty = min(MAX_STALL_PENALTY, performance.stall_count * STALL_PENALTY_PER_LIFT)
    score = (
        rpe_score * 0.5
        + (1 - stall_penalty) * 0.3
        + performance.volume_compliance_rate * 0.2
    )
    return clamp(score, 0.0, 1.0)


def compute_muscle_freshness(soreness: Dict[str, int]) -> Dict[str, float]:
    """Soreness 1 (none) -> 1.0, 2 -> 0.5, 3 (very sore) -> 0.0."""
    return {muscle: clamp(1 - (level - 1) / 2, 0.0, 1.0) for muscle, level in sorted(soreness.items())}


def compute_fatigue_score(check_in: SessionCheckIn, performance: PerformanceSignals) -> FatigueScore:
    subjective = compute_subjective_score(check_in) * SUBJECTIVE_WEIGHT
    performed = compute_performance_score(performance) * PERFORMANCE_WEIGHT
    return FatigueScore(
        overall=clamp(subjective + performed, 0.0, 1.0),
        per_muscle=compute_muscle_freshness(check_in.soreness),
        weights={"subjective": SUBJECTIVE_WEIGHT, "performance": PERFORMANCE_WEIGHT},
        components={"subjective": subjective, "performance": performed},
    )


def fatigue_level_label(overall: float) -> str:
    if overall > 0.8:
        return "very fresh"
    if overall > 0.6:
        return "recovered"
    if overall > 0.4:
        return "moderately fatigued"
    return "significantly fatigued"


# ============================================================================
# Session-wide action
# ============================================================================


def select_action(
    overall: float,
    policy: Optional[AutoregulationPolicy] = None,
    config: Optional[EngineConfig] = None,
) -> AutoregulationAction:
    """
    Map a fatigue score onto an action.

    Below the deload threshold the session deloads; below the scale-down
    threshold it scales intensity down (aggressive policies cut accessory
    volume instead); above the scale-up threshold it scales up. Each
    direction can be switched off by the policy.
    """
    policy = policy or AutoregulationPolicy()
    thresholds = resolve_config(config).autoregulation
    if overall < thresholds.deload_below:
        return (
            AutoregulationAction.TRIGGER_DELOAD
            if policy.allow_down_regulation
            else AutoregulationAction.MAINTAIN
        )
    if overall < thresholds.scale_down_below:
        if not policy.allow_down_regulation:
            return AutoregulationAction.MAINTAIN
        if policy.aggressiveness == Aggressiveness.AGGRESSIVE:
            return AutoregulationAction.REDUCE_VOLUME
        return AutoregulationAction.SCALE_DOWN
    if overall > thresholds.scale_up_above and policy.allow_up_regulation:
        return AutoregulationAction.SCALE_UP
    return AutoregulationAction.MAINTAIN


def _scale_sets(
    sets: List[WorkoutSet], factor: float, rpe_delta: float = 0.0, rpe: Optional[float] = None
) -> List[WorkoutSet]:
    scaled = []
    for workout_set in sets:
        update: Dict[str, Optional[float]] = {}
        if workout_set.target_load is not None:
            update["target_load"] = round_to_half(workout_set.target_load * factor)
        if rpe is not None:
            update["target_rpe"] = rpe
        elif workout_set.target_rpe is not None and workout_set.target_load is not None:
            update["target_rpe"] = clamp(workout_set.target_rpe + rpe_delta, 1.0, 10.0)
        scaled.append(workout_set.model_copy(update=update))
    return scaled


def _top_loaded_set(entry: WorkoutExercise) -> Optional[WorkoutSet]:
    return next((s for s in entry.sets if s.target_load is not None), None)


def _scale_intensity(
    entries: List[WorkoutExercise],
    action: AutoregulationAction,
    factor: float,
    rpe_delta: float,
    modifications: List[AutoregulationModification],
) -> List[WorkoutExercise]:
    """Scale every loaded set; unloaded exercises are left alone."""
    adjusted = []
    for entry in entries:
        top = _top_loaded_set(entry)
        if top is None:
            adjusted.append(entry)
            continue
        sets = _scale_sets(entry.sets, factor, rpe_delta)
        new_top = _top_loaded_set(entry.model_copy(update={"sets": sets}))
        direction = "down" if factor < 1 else "up"
        modifications.append(
            AutoregulationModification(
                action=action,
                exercise_id=entry.exercise.id,
                original_load=top.target_load,
                adjusted_load=new_top.target_load,
                original_rpe=top.target_rpe,
                adjusted_rpe=new_top.target_rpe,
                reason=(
                    f"Scaled {direction} {entry.exercise.name} from {top.target_load} "
                    f"to {new_top.target_load} ({factor - 1:+.0%})"
                ),
            )
        )
        adjusted.append(
            entry.model_copy(
                update={"sets": sets, "warmup_sets": _scale_sets(entry.warmup_sets, factor)}
            )
        )
    return adjusted


def _reduce_volume(
    accessories: List[WorkoutExercise],
    max_drop: int,
    modifications: List[AutoregulationModification],
) -> List[WorkoutExercise]:
    adjusted = []
    for entry in accessories:
        original = len(entry.sets)
        drop = min(max_drop, max(0, original - MIN_SETS))
        if drop == 0:
            adjusted.append(entry)
            continue
        modifications.append(
            AutoregulationModification(
                action=AutoregulationAction.REDUCE_VOLUME,
                exercise_id=entry.exercise.id,
                original_set_count=original,
                adjusted_set_count=original - drop,
                reason=f"Reduced {entry.exercise.name} from {original} to {original - drop} sets",
            )
        )
        adjusted.append(entry.model_copy(update={"sets": entry.sets[: original - drop]}))
    return adjusted


def _deload(
    entries: List[WorkoutExercise],
    config: EngineConfig,
    modifications: List[AutoregulationModification],
) -> List[WorkoutExercise]:
    thresholds = config.autoregulation
    adjusted = []
    for entry in entries:
        original = len(entry.sets)
        count = min(original, max(MIN_SETS, round_half_up(original * thresholds.deload_volume_factor)))
        top = _top_loaded_set(entry)
        sets = _scale_sets(
            entry.sets[:count], thresholds.deload_intensity_factor, rpe=thresholds.deload_rpe
        )
        warmups = _scale_sets(entry.warmup_sets, thresholds.deload_intensity_factor)
        modifications.append(
            AutoregulationModification(
                action=AutoregulationAction.TRIGGER_DELOAD,
                exercise_id=entry.exercise.id,
                original_load=top.target_load if top else None,
                adjusted_load=sets[0].target_load if top else None,
                original_set_count=original,
                adjusted_set_count=count,
                adjusted_rpe=thresholds.deload_rpe,
                reason=(
                    f"Deload: {entry.exercise.name} cut to {count} sets at "
                    f"{thresholds.deload_intensity_factor:.0%} load, RPE {thresholds.deload_rpe:g}"
                ),
            )
        )
        adjusted.append(entry.model_copy(update={"sets": sets, "warmup_sets": warmups}))
    return adjusted


def autoregulate_session(
    main_lifts: List[WorkoutExercise],
    accessories: List[WorkoutExercise],
    fatigue_score: FatigueScore,
    policy: Optional[AutoregulationPolicy] = None,
    config: Optional[EngineConfig] = None,
) -> AutoregulationResult:
    """
    Apply the action a fatigue score calls for.

    Args:
        main_lifts: Prescribed main lifts, loads resolved
        accessories: Prescribed accessories, loads resolved
        fatigue_score: Score from ``compute_fatigue_score``
        policy: Which directions the lifter allows
        config: Engine configuration

    Returns:
        AutoregulationResult with the adjusted blocks and one modification
        per changed exercise
    """
    cfg = resolve_config(config)
    thresholds = cfg.autoregulation
    action = select_action(fatigue_score.overall, policy, cfg)
    percent = round_half_up(fatigue_score.overall * 100)
    label = fatigue_level_label(fatigue_score.overall)
    modifications: List[AutoregulationModification] = []

    if action == AutoregulationAction.SCALE_DOWN:
        main_lifts = _scale_intensity(main_lifts, action, thresholds.scale_down_factor, -1.0, modifications)
        accessories = _scale_intensity(accessories, action, thresholds.scale_down_factor, -1.0, modifications)
        rationale = f"Fatigue score {percent}% ({label}): loads -10%, RPE -1."
    elif action == AutoregulationAction.SCALE_UP:
        main_lifts = _scale_intensity(main_lifts, action, thresholds.scale_up_factor, 0.5, modifications)
        accessories = _scale_intensity(accessories, action, thresholds.scale_up_factor, 0.5, modifications)
        rationale = f"Fatigue score {percent}% ({label}): loads +5%, RPE +0.5."
    elif action == AutoregulationAction.REDUCE_VOLUME:
        accessories = _reduce_volume(accessories, thresholds.max_sets_to_drop, modifications)
        rationale = f"Fatigue score {percent}% ({label}): accessory sets cut, main lifts kept."
    elif action == AutoregulationAction.TRIGGER_DELOAD:
        main_lifts = _deload(main_lifts, cfg, modifications)
        accessories = _deload(accessories, cfg, modifications)
        rationale = f"Fatigue score {percent}% ({label}): session deloaded."
    else:
        rationale = f"Fatigue score {percent}% ({label}): no adjustment needed."

    logger.debug("Autoregulation %s changed %d exercises", action.value, len(modifications))
    return AutoregulationResult(
        main_lifts=main_lifts,
        accessories=accessories,
        action=action,
        modifications=modifications,
        rationale=rationale,
    )


# ============================================================================
# Stall ladder
# ============================================================================


def best_set_e1rm(sets: List[SetLog]) -> Optional[float]:
    """Highest estimated 1RM among loaded sets, reps capped at ten."""
    estimates = [
        estimate_one_rep_max(s.load, min(E1RM_REP_CAP, s.reps))
        for s in sets
        if s.load and s.reps > 0
    ]
    return max(estimates) if estimates else None


def count_sessions_without_pr(e1rms: List[float]) -> int:
    """
    Sessions since the last best-set PR, oldest first in.

    The first session sets the bar; a PR is any later session that beats
    every session before it.
    """
    best: Optional[float] = None
    last_pr = 0
    for index, value in enumerate(e1rms):
        if best is None or value > best:
            best = value
            last_pr = index
    return max(0, len(e1rms) - 1 - last_pr)


def resolve_intervention_level(weeks: float, config: Optional[EngineConfig] = None) -> InterventionLevel:
    ladder = resolve_config(config).stall_ladder
    if weeks >= ladder.volume_reset_weeks:
        return InterventionLevel.VOLUME_RESET
    if weeks >= ladder.variation_weeks:
        return InterventionLevel.VARIATION
    if weeks >= ladder.deload_weeks:
        return InterventionLevel.DELOAD
    if weeks >= ladder.microload_weeks:
        return InterventionLevel.MICROLOAD
    return InterventionLevel.NONE


def detect_stalls(
    history: List[WorkoutHistoryEntry],
    library: List[Exercise],
    config: Optional[EngineConfig] = None,
) -> List[StallState]:
    """
    Lifts that have gone at least the microload threshold without a PR.

    Weeks are sessions without a PR divided by the expected sessions per
    week, to one decimal.

    Returns:
        StallState list sorted by exercise id
    """
    cfg = resolve_config(config)
    ladder = cfg.stall_ladder
    by_id = {exercise.id: exercise for exercise in library}

    series: Dict[str, List[float]] = {}
    for entry in reversed(sort_history_desc(completed_history(history))):
        for logged in entry.exercises:
            e1rm = best_set_e1rm(logged.sets)
            if e1rm is not None:
                series.setdefault(logged.exercise_id, []).append(e1rm)

    stalls = []
    for exercise_id in sorted(series):
        e1rms = series[exercise_id]
        if len(e1rms) < ladder.min_sessions or exercise_id not in by_id:
            continue
        sessions = count_sessions_without_pr(e1rms)
        weeks = round(sessions / ladder.sessions_per_week, 1)
        level = resolve_intervention_level(weeks, cfg)
        if level == InterventionLevel.NONE:
            continue
        stalls.append(
            StallState(
                exercise_id=exercise_id,
                exercise_name=by_id[exercise_id].name,
                sessions_without_pr=sessions,
                weeks_without_progress=weeks,
                level=level,
            )
        )
    return stalls


INTERVENTION_ACTIONS = {
    InterventionLevel.MICROLOAD: (
        "Microload: add 1-2 lb per session instead of a full increment",
        "Smaller jumps can break a short plateau.",
    ),
    InterventionLevel.DELOAD: (
        "Deload: load cut by 10%, rebuild over 2-3 weeks",
        "A lift-specific deload dissipates accumulated fatigue.",
    ),
    InterventionLevel.VARIATION: (
        "Swap variation: different grip, stance or equipment",
        "A new variation gives a novel stimulus.",
    ),
    InterventionLevel.VOLUME_RESET: (
        "Volume reset: drop to two sets, rebuild over 4 weeks",
        "A long plateau calls for resensitizing with less volume.",
    ),
}


def suggest_intervention(
    stall: StallState,
    library: List[Exercise],
    available_equipment: List[EquipmentType],
    pain_flags: Optional[Dict[str, int]] = None,
    config: Optional[EngineConfig] = None,
) -> InterventionSuggestion:
    """Ladder step for one stalled lift; the variation step names swap candidates."""
    action, reason = INTERVENTION_ACTIONS.get(
        stall.level, ("Continue current progression", "Normal variation.")
    )
    substitute_ids: List[str] = []
    if stall.level == InterventionLevel.VARIATION:
        target = next((e for e in library if e.id == stall.exercise_id), None)
        if target is not None:
            suggestions = suggest_substitutes(target, library, available_equipment, pain_flags, config)
            substitute_ids = [s.exercise.id for s in suggestions]
    return InterventionSuggestion(
        exercise_id=stall.exercise_id,
        exercise_name=stall.exercise_name,
        level=stall.level,
        action=action,
        rationale=f"{stall.weeks_without_progress:g} weeks without a PR. {reason}",
        substitute_ids=substitute_ids,
    )


def _with_note(entry: WorkoutExercise, note: str) -> str:
    return f"{entry.notes}; {note}" if entry.notes else note


def apply_intervention(
    entry: WorkoutExercise, suggestion: InterventionSuggestion, config: Optional[EngineConfig] = None
) -> WorkoutExercise:
    """
    Carry one ladder step into the prescribed exercise.

    Deload scales its loads, volume reset trims it to two sets; the other
    steps leave an instruction in the exercise notes.
    """
    ladder = resolve_config(config).stall_ladder
    update: Dict[str, object] = {"notes": _with_note(entry, suggestion.action)}
    if suggestion.level == InterventionLevel.DELOAD:
        update["sets"] = _scale_sets(entry.sets, ladder.deload_load_factor)
        update["warmup_sets"] = _scale_sets(entry.warmup_sets, ladder.deload_load_factor)
    elif suggestion.level == InterventionLevel.VOLUME_RESET:
        update["sets"] = entry.sets[:MIN_SETS]
    elif suggestion.level == InterventionLevel.VARIATION and suggestion.substitute_ids:
        update["notes"] = _with_note(
            entry, f"{suggestion.action} (try {', '.join(suggestion.substitute_ids)})"
        )
    return entry.model_copy(update=update)


def apply_stall_ladder(
    entries: List[WorkoutExercise],
    suggestions: List[InterventionSuggestion],
    config: Optional[EngineConfig] = None,
) -> Tuple[List[WorkoutExercise], List[InterventionSuggestion]]:
    """
    Apply ladder steps to the exercises they name.

    Returns:
        (adjusted exercises, the suggestions that matched an exercise)
    """
    by_id = {suggestion.exercise_id: suggestion for suggestion in suggestions}
    adjusted = []
    applied = []
    for entry in entries:
        suggestion = by_id.get(entry.exercise.id)
        if suggestion is None:
            adjusted.append(entry)
            continue
        adjusted.append(apply_intervention(entry, suggestion, config))
        applied.append(suggestion)
    return adjusted, applied
