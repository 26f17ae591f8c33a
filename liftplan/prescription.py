"""
Prescription engine.

Turns an exercise's role plus the lifter's goal, training age, readiness
and the week's periodization modifiers into concrete working sets
(reps, RPE, rest), and builds the warm-up ramp for main lifts.
"""

from typing import List, Optional, Tuple

from liftplan.config import EngineConfig, resolve_config
from liftplan.numeric import round_half_up, round_to_half
from liftplan.periodization import get_base_target_rpe, get_goal_rep_ranges
from liftplan.plan_schemas import ExerciseRole, PeriodizationModifiers, RepRange, WorkoutSet
from liftplan.schemas import (
    EquipmentType,
    Exercise,
    FatigueState,
    Goals,
    PrimaryGoal,
    TrainingAge,
    UserPreferences,
)

BODYWEIGHT_ONLY_EQUIPMENT = {EquipmentType.BODYWEIGHT, EquipmentType.BENCH, EquipmentType.RACK}


# ============================================================================
# Rest
# ============================================================================


def get_rest_seconds(
    exercise: Exercise, is_main_lift: bool, config: Optional[EngineConfig] = None
) -> int:
    """
    Rest between working sets.

    Main lifts rest longer when the lift is systemically expensive;
    compound accessories sit in between; isolation work rests least.
    """
    rest = resolve_config(config).rest_seconds
    if is_main_lift:
        return rest.main_high_fatigue if exercise.fatigue_cost >= 4 else rest.main
    if exercise.is_compound:
        return rest.compound_accessory
    if exercise.fatigue_cost >= 3:
        return rest.accessory_high_fatigue
    return rest.accessory


# ============================================================================
# Rep ranges
# ============================================================================


def clamp_rep_range(
    goal_range: Tuple[int, int], exercise_range: Optional[RepRange] = None
) -> Tuple[int, int]:
    """Intersect the goal range with the exercise's range, falling back to the exercise's when disjoint."""
    if exercise_range is None:
        return goal_range
    low = max(goal_range[0], exercise_range.min)
    high = min(goal_range[1], exercise_range.max)
    if low > high:
        return exercise_range.min, exercise_range.max
    return low, high


def widen_accessory_range(
    rep_range: Tuple[int, int],
    exercise_range: Optional[RepRange] = None,
    minimum_span: int = 2,
) -> Tuple[int, int]:
    """Give accessories room for rep progression, widening upward first."""
    if exercise_range is None:
        return rep_range
    low, high = rep_range
    if high - low >= minimum_span:
        return low, high
    high = max(high, min(exercise_range.max, low + minimum_span))
    if high - low >= minimum_span:
        return low, high
    low = min(low, max(exercise_range.min, high - minimum_span))
    return low, high


def exercise_rep_range(exercise: Exercise) -> Optional[RepRange]:
    """The exercise's native rep range, when the library gives both ends."""
    native = exercise.rep_range
    return RepRange(**native) if native is not None else None


# ============================================================================
# Set count and RPE
# ============================================================================


def resolve_set_count(
    is_main_lift: bool,
    training_age: TrainingAge,
    fatigue_state: FatigueState,
    set_multiplier: float = 1.0,
    base_sets: Optional[int] = None,
    config: Optional[EngineConfig] = None,
) -> int:
    """
    Working set count.

    Without a base: round(provisional sets x training-age modifier x
    periodization multiplier). A base from the set allocator is already
    capped and budgeted, so it is only scaled down (deload weeks), never up.
    Either way one set fewer for low readiness and one more fewer after a
    missed session, never below two.
    """
    cfg = resolve_config(config)
    if base_sets is None:
        base_sets = cfg.provisional_main_sets if is_main_lift else cfg.provisional_accessory_sets
        age_modifier = cfg.age_set_modifiers.get(TrainingAge(training_age), 1.0)
        sets = max(2, round_half_up(base_sets * age_modifier * set_multiplier))
    else:
        sets = max(2, round_half_up(base_sets * min(1.0, set_multiplier)))
    if fatigue_state.readiness_score <= 2:
        sets = max(2, sets - 1)
    if fatigue_state.missed_last_session:
        sets = max(2, sets - 1)
    return sets


def _preferred_rpe(preferences: Optional[UserPreferences], reps: int) -> Optional[float]:
    if preferences is None:
        return None
    for band in preferences.rpe_targets:
        if band.min <= reps <= band.max:
            return band.target_rpe
    return None


def resolve_target_rpe(
    reps: int,
    training_age: TrainingAge,
    goals: Goals,
    fatigue_state: FatigueState,
    preferences: Optional[UserPreferences] = None,
    periodization: Optional[PeriodizationModifiers] = None,
    is_isolation: bool = False,
    config: Optional[EngineConfig] = None,
) -> float:
    cfg = resolve_config(config)
    target = get_base_target_rpe(goals.primary, training_age, cfg)
    if goals.primary == PrimaryGoal.HYPERTROPHY and is_isolation:
        target += 0.5
    if fatigue_state.readiness_score <= 2:
        target -= 0.5

    preferred = _preferred_rpe(preferences, reps)
    if preferred is not None:
        target = preferred

    if periodization is not None:
        target += periodization.rpe_offset
        if periodization.is_deload:
            target = min(target, cfg.deload_rpe_cap)
    return target


# ============================================================================
# Prescription
# ============================================================================


def prescribe_sets_reps(
    is_main_lift: bool,
    training_age: TrainingAge,
    goals: Goals,
    fatigue_state: FatigueState,
    preferences: Optional[UserPreferences] = None,
    periodization: Optional[PeriodizationModifiers] = None,
    exercise_range: Optional[RepRange] = None,
    is_isolation: bool = False,
    set_count_override: Optional[int] = None,
    config: Optional[EngineConfig] = None,
) -> List[WorkoutSet]:
    """
    Prescribe working sets for one exercise.

    Args:
        is_main_lift: Main lifts get a top set plus back-off sets
        training_age: Lifter experience
        goals: Training goals (the primary goal picks rep ranges and RPE)
        fatigue_state: Readiness for this session
        preferences: Optional RPE preference bands
        periodization: Week-level modifiers
        exercise_range: The exercise's native rep range, if any
        is_isolation: Hypertrophy isolation work runs slightly harder
        set_count_override: Allocated set count, used as-is apart from
            deload scaling and readiness decrements
        config: Engine configuration

    Returns:
        WorkoutSet list, 1-indexed
    """
    cfg = resolve_config(config)
    ranges = get_goal_rep_ranges(goals.primary, cfg)
    set_multiplier = periodization.set_multiplier if periodization else 1.0
    is_deload = bool(periodization and periodization.is_deload)
    set_count = resolve_set_count(
        is_main_lift, training_age, fatigue_state, set_multiplier, set_count_override, cfg
    )

    if is_main_lift:
        low, high = clamp_rep_range(ranges.main, exercise_range)
        top_reps = low
        back_off_multiplier = (
            periodization.back_off_multiplier if periodization else cfg.back_off_multipliers[goals.primary]
        )
        if is_deload or back_off_multiplier >= 0.9:
            back_off_reps = top_reps
        else:
            back_off_reps = min(low + 2, high)
        target_rpe = resolve_target_rpe(
            top_reps, training_age, goals, fatigue_state, preferences, periodization, False, cfg
        )
        return [
            WorkoutSet(
                set_index=index + 1,
                target_reps=top_reps if index == 0 else back_off_reps,
                target_rep_range=RepRange(min=low, max=high),
                role=ExerciseRole.MAIN,
                target_rpe=target_rpe,
            )
            for index in range(set_count)
        ]

    low, high = widen_accessory_range(
        clamp_rep_range(ranges.accessory, exercise_range), exercise_range
    )
    target_rpe = resolve_target_rpe(
        low, training_age, goals, fatigue_state, preferences, periodization, is_isolation, cfg
    )
    return [
        WorkoutSet(
            set_index=index + 1,
            target_reps=low,
            target_rep_range=RepRange(min=low, max=high),
            role=ExerciseRole.ACCESSORY,
            target_rpe=target_rpe,
        )
        for index in range(set_count)
    ]


def apply_rest(sets: List[WorkoutSet], rest_seconds: int) -> List[WorkoutSet]:
    return [s.model_copy(update={"rest_seconds": rest_seconds}) for s in sets]


# ============================================================================
# Warm-up ramp
# ============================================================================


def can_load_warmup(exercise: Exercise) -> bool:
    """Whether ramp sets can carry a load (not bodyweight-only equipment)."""
    if not exercise.equipment:
        return True
    return not all(item in BODYWEIGHT_ONLY_EQUIPMENT for item in exercise.equipment)


def build_warmup_sets(
    training_age: TrainingAge,
    top_set_load: Optional[float] = None,
    config: Optional[EngineConfig] = None,
) -> List[WorkoutSet]:
    """
    Ramp-up sets ahead of a main lift's top set.

    Beginners ramp 60% x 8 then 80% x 3; everyone else 50% x 8, 70% x 5,
    85% x 3. Loads are only filled when the top-set load is known.
    """
    cfg = resolve_config(config)
    ramp = cfg.warmup_ramp_beginner if training_age == TrainingAge.BEGINNER else cfg.warmup_ramp
    return [
        WorkoutSet(
            set_index=index + 1,
            target_reps=step.reps,
            role=ExerciseRole.WARMUP,
            target_load=round_to_half(top_set_load * step.percent) if top_set_load else None,
            rest_seconds=step.rest_seconds,
        )
        for index, step in enumerate(ramp)
    ]
