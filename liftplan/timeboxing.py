"""
Time-boxing estimator.

Estimates session duration from prescribed sets and fits a session into
its time budget: prep drills go first, then working sets down to two per
exercise, then accessories by lowest retention value. Main lifts are
never dropped.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from liftplan.config import EngineConfig, resolve_config
from liftplan.numeric import clamp, round_half_up
from liftplan.plan_schemas import ExerciseRole, WorkoutExercise, WorkoutSet
from liftplan.prescription import get_rest_seconds

logger = logging.getLogger(__name__)

WARMUP_WORK_CAP_SECONDS = 30
MIN_WORKING_SETS = 2


def estimate_work_seconds(reps: Optional[int], fallback: float) -> float:
    """Time under load for one set: two seconds per rep plus setup, 20-90s."""
    if reps is None:
        return fallback
    return clamp(reps * 2 + 10, 20, 90)


def _set_seconds(
    workout_set: WorkoutSet,
    entry: WorkoutExercise,
    is_warmup: bool,
    config: EngineConfig,
) -> float:
    if workout_set.rest_seconds is not None:
        rest = workout_set.rest_seconds
    elif is_warmup:
        rest = config.rest_seconds.warmup
    else:
        rest = get_rest_seconds(entry.exercise, entry.is_main_lift, config)

    fallback = entry.exercise.time_per_set_sec or (60 if entry.is_main_lift else 40)
    reps = workout_set.target_reps
    if reps is None and workout_set.target_rep_range is not None:
        reps = workout_set.target_rep_range.min
    work = estimate_work_seconds(reps, fallback)
    if is_warmup:
        work = min(WARMUP_WORK_CAP_SECONDS, work)
    return work + rest


def estimate_exercise_seconds(entry: WorkoutExercise, config: Optional[EngineConfig] = None) -> float:
    cfg = resolve_config(config)
    warmup = sum(_set_seconds(s, entry, True, cfg) for s in entry.warmup_sets)
    working = sum(
        _set_seconds(s, entry, s.role == ExerciseRole.WARMUP, cfg) for s in entry.sets
    )
    return warmup + working


def estimate_workout_minutes(
    exercises: List[WorkoutExercise], config: Optional[EngineConfig] = None
) -> int:
    """
    Estimated session minutes, ramp sets included.

    Args:
        exercises: Every exercise in the session (warm-up, main, accessory)

    Returns:
        Whole minutes, rounded
    """
    cfg = resolve_config(config)
    total = sum(estimate_exercise_seconds(entry, cfg) for entry in exercises)
    return round_half_up(total / 60)


# ============================================================================
# Accessory trimming
# ============================================================================


def build_accessory_muscle_counts(accessories: List[WorkoutExercise]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for accessory in accessories:
        for muscle in accessory.exercise.primary_muscles:
            counts[muscle] = counts.get(muscle, 0) + 1
    return counts


def score_accessory_retention(
    accessory: WorkoutExercise,
    covered_muscles: Set[str],
    muscle_counts: Dict[str, int],
) -> float:
    """
    How much an accessory is worth keeping.

    fatigue cost + 2 per primary muscle no main lift covers
    - the number of other accessories sharing each primary muscle
    """
    primary = accessory.exercise.primary_muscles
    novelty = 2 * len([m for m in primary if m not in covered_muscles])
    redundancy = sum(max(0, muscle_counts.get(m, 0) - 1) for m in primary)
    return accessory.exercise.fatigue_cost + novelty - redundancy


def retention_order(
    accessories: List[WorkoutExercise], main_lifts: List[WorkoutExercise]
) -> List[WorkoutExercise]:
    """Accessories ordered from first-to-drop to last-to-drop."""
    covered = {m for entry in main_lifts for m in entry.exercise.primary_muscles}
    counts = build_accessory_muscle_counts(accessories)
    scored = [
        (score_accessory_retention(entry, covered, counts), index, entry)
        for index, entry in enumerate(accessories)
    ]
    scored.sort(key=lambda item: (item[0], item[1]))
    return [entry for _, _, entry in scored]


def trim_accessories_by_priority(
    accessories: List[WorkoutExercise],
    main_lifts: List[WorkoutExercise],
    count: int = 1,
) -> List[WorkoutExercise]:
    """Remove the ``count`` lowest-retention accessories."""
    if not accessories or count <= 0:
        return list(accessories)
    dropped = {entry.id for entry in retention_order(accessories, main_lifts)[:count]}
    return [entry for entry in accessories if entry.id not in dropped]


def fit_to_time_budget(
    main_lifts: List[WorkoutExercise],
    accessories: List[WorkoutExercise],
    session_minutes: int,
    other: Optional[List[WorkoutExercise]] = None,
    config: Optional[EngineConfig] = None,
) -> Tuple[List[WorkoutExercise], int]:
    """
    Trim accessories one at a time until the session fits.

    A budget of 0 disables trimming. When even zero accessories exceed the
    budget the session is returned over budget.

    Returns:
        (kept accessories, estimated minutes)
    """
    other = other or []
    kept = list(accessories)
    minutes = estimate_workout_minutes([*other, *main_lifts, *kept], config)
    if session_minutes <= 0:
        return kept, minutes

    while minutes > session_minutes and kept:
        kept = trim_accessories_by_priority(kept, main_lifts, 1)
        minutes = estimate_workout_minutes([*other, *main_lifts, *kept], config)

    if minutes > session_minutes:
        logger.warning(
            "Session estimated at %d minutes exceeds the %d minute budget with no accessories left to trim",
            minutes,
            session_minutes,
        )
    return kept, minutes


# ============================================================================
# Whole-session fit
# ============================================================================


def trim_sets_to_budget(
    main_lifts: List[WorkoutExercise],
    accessories: List[WorkoutExercise],
    session_minutes: int,
    other: Optional[List[WorkoutExercise]] = None,
    config: Optional[EngineConfig] = None,
) -> Tuple[List[WorkoutExercise], List[WorkoutExercise], int]:
    """
    Drop working sets until the session fits, never below two per exercise.

    Largest set counts go first, main lifts before accessories at equal
    counts, then earlier exercises. The last set of an exercise is removed.

    Returns:
        (main lifts, accessories, estimated minutes)
    """
    cfg = resolve_config(config)
    other = other or []
    mains, kept = list(main_lifts), list(accessories)
    minutes = estimate_workout_minutes([*other, *mains, *kept], cfg)
    if session_minutes <= 0:
        return mains, kept, minutes

    for _ in range(cfg.time_reduction_guard):
        if minutes <= session_minutes:
            break
        candidates = [
            (-len(entry.sets), 0 if entry.is_main_lift else 1, position, entry)
            for position, entry in enumerate([*mains, *kept])
            if len(entry.sets) > MIN_WORKING_SETS
        ]
        if not candidates:
            break
        target = min(candidates, key=lambda item: item[:3])[3]
        trimmed = target.model_copy(update={"sets": target.sets[:-1]})
        mains = [trimmed if entry is target else entry for entry in mains]
        kept = [trimmed if entry is target else entry for entry in kept]
        minutes = estimate_workout_minutes([*other, *mains, *kept], cfg)
    return mains, kept, minutes


def fit_session_to_budget(
    prep: List[WorkoutExercise],
    main_lifts: List[WorkoutExercise],
    accessories: List[WorkoutExercise],
    session_minutes: int,
    config: Optional[EngineConfig] = None,
) -> Tuple[List[WorkoutExercise], List[WorkoutExercise], List[WorkoutExercise], int]:
    """
    Fit a prescribed session into its time budget.

    Cheapest losses first: prep drills (last picked first), then working
    sets down to two per exercise, then whole accessories by retention.

    Returns:
        (prep drills, main lifts, accessories, estimated minutes)
    """
    cfg = resolve_config(config)
    prep = list(prep)
    minutes = estimate_workout_minutes([*prep, *main_lifts, *accessories], cfg)
    if session_minutes <= 0:
        return prep, list(main_lifts), list(accessories), minutes

    while prep and minutes > session_minutes:
        logger.debug("Dropping prep drill %s to fit the budget", prep[-1].exercise.id)
        prep = prep[:-1]
        minutes = estimate_workout_minutes([*prep, *main_lifts, *accessories], cfg)

    mains, kept, minutes = trim_sets_to_budget(main_lifts, accessories, session_minutes, prep, cfg)
    kept, minutes = fit_to_time_budget(mains, kept, session_minutes, other=prep, config=cfg)
    return prep, mains, kept, minutes
