"""
Volume target resolution and volume safety.

Weekly per-muscle targets ramp from MEV in week 1 to MAV in the last
accumulation week and drop to MV on deload. Secondary muscles always count
at the indirect multiplier, never as a full direct set.
"""

import logging
from typing import Dict, Iterable, List, Optional

from liftplan.config import EngineConfig, VolumeLandmark, resolve_config
from liftplan.history import VolumeContext
from liftplan.numeric import round_half_up
from liftplan.plan_schemas import MuscleVolumePlan, WorkoutExercise
from liftplan.schemas import Exercise
from liftplan.timeboxing import retention_order

logger = logging.getLogger(__name__)


def compute_weekly_volume_target(
    landmark: VolumeLandmark,
    week: int,
    mesocycle_length: int,
    is_deload: bool = False,
) -> int:
    """
    Weekly set target for a muscle at a 1-indexed block week.

    Args:
        landmark: The muscle's volume landmarks
        week: 1-indexed week in the mesocycle
        mesocycle_length: Weeks in the mesocycle, deload included
        is_deload: Deload weeks return maintenance volume

    Returns:
        Target weekly sets
    """
    if is_deload:
        return landmark.mv
    accumulation_weeks = max(1, mesocycle_length - 1)
    span = accumulation_weeks - 1 or 1
    progress = min(1.0, max(0.0, (week - 1) / span))
    return round_half_up(landmark.mev + progress * (landmark.mav - landmark.mev))


def target_for_muscle(
    muscle: str,
    week: int,
    mesocycle_length: int,
    is_deload: bool = False,
    config: Optional[EngineConfig] = None,
) -> float:
    """Weekly target, falling back to a flat default for muscles without landmarks."""
    cfg = resolve_config(config)
    landmark = cfg.landmark_for(muscle)
    if landmark is None:
        return float(cfg.fallback_target_volume)
    return float(compute_weekly_volume_target(landmark, week, mesocycle_length, is_deload))


def build_target_by_muscle(
    week: int,
    mesocycle_length: int,
    is_deload: bool = False,
    extra_muscles: Iterable[str] = (),
    config: Optional[EngineConfig] = None,
) -> Dict[str, float]:
    """Targets for every landmark muscle plus any extra (e.g. body-part) muscles."""
    cfg = resolve_config(config)
    targets = {
        muscle: float(compute_weekly_volume_target(landmark, week, mesocycle_length, is_deload))
        for muscle, landmark in sorted(cfg.landmarks.items())
    }
    for muscle in extra_muscles:
        canonical = cfg.canonical_muscle(muscle)
        if canonical not in targets:
            targets[canonical] = float(cfg.fallback_target_volume)
    return targets


def base_planned_effective(
    volume_context: VolumeContext, config: Optional[EngineConfig] = None
) -> Dict[str, float]:
    """Effective sets already logged this week, per muscle."""
    cfg = resolve_config(config)
    planned = {
        muscle: state.effective_sets(cfg.indirect_set_multiplier)
        for muscle, state in sorted(volume_context.muscle_volume.items())
    }
    for muscle, sets in sorted(volume_context.recent.items()):
        planned.setdefault(muscle, sets)
    return planned


def apply_effective_contribution(
    planned: Dict[str, float],
    exercise: Exercise,
    sets: float,
    config: Optional[EngineConfig] = None,
) -> None:
    """Add an exercise's sets to a running per-muscle effective total, in place."""
    cfg = resolve_config(config)
    for muscle in exercise.primary_muscles:
        planned[muscle] = planned.get(muscle, 0.0) + sets
    for muscle in exercise.secondary_muscles:
        planned[muscle] = planned.get(muscle, 0.0) + sets * cfg.indirect_set_multiplier


def _planned_primary_sets(
    exercises: List[WorkoutExercise], volume_context: VolumeContext
) -> Dict[str, float]:
    planned = dict(volume_context.recent)
    for entry in exercises:
        for muscle in entry.exercise.primary_muscles:
            planned[muscle] = planned.get(muscle, 0) + len(entry.sets)
    return planned


def _exceeds_mrv(planned: Dict[str, float], config: EngineConfig) -> List[str]:
    over = []
    for muscle, sets in sorted(planned.items()):
        landmark = config.landmark_for(muscle)
        if landmark is not None and sets > landmark.mrv:
            over.append(muscle)
    return over


def enforce_volume_caps(
    accessories: List[WorkoutExercise],
    main_lifts: List[WorkoutExercise],
    volume_context: VolumeContext,
    config: Optional[EngineConfig] = None,
) -> List[WorkoutExercise]:
    """
    Drop accessories while any muscle's weekly sets would pass its MRV.

    Weekly sets are the last seven days' primary sets plus this session's.
    Accessories go lowest-retention first; main lifts are never removed.
    """
    cfg = resolve_config(config)
    adjusted = list(accessories)
    while adjusted:
        over = _exceeds_mrv(_planned_primary_sets(main_lifts + adjusted, volume_context), cfg)
        if not over:
            break
        dropped = retention_order(adjusted, main_lifts)[0]
        logger.debug(
            "Dropping %s: weekly volume over MRV for %s", dropped.exercise.id, ", ".join(over)
        )
        adjusted = [entry for entry in adjusted if entry.id != dropped.id]
    return adjusted


def build_volume_plan_by_muscle(
    main_lifts: List[WorkoutExercise],
    accessories: List[WorkoutExercise],
    volume_context: VolumeContext,
    is_deload: bool = False,
    config: Optional[EngineConfig] = None,
) -> Dict[str, MuscleVolumePlan]:
    """
    Weekly volume picture for every muscle the session or the week touches.

    Only muscles with a landmark, logged volume or planned sets are included.
    """
    cfg = resolve_config(config)
    week = volume_context.mesocycle_week
    length = volume_context.mesocycle_length

    planned_direct: Dict[str, float] = {}
    planned_indirect: Dict[str, float] = {}
    for entry in [*main_lifts, *accessories]:
        sets = len(entry.sets)
        for muscle in entry.exercise.primary_muscles:
            planned_direct[muscle] = planned_direct.get(muscle, 0) + sets
        for muscle in entry.exercise.secondary_muscles:
            planned_indirect[muscle] = planned_indirect.get(muscle, 0) + sets

    muscles = sorted(
        set(volume_context.muscle_volume) | set(planned_direct) | set(planned_indirect)
    )
    plan: Dict[str, MuscleVolumePlan] = {}
    for muscle in muscles:
        state = volume_context.muscle_volume.get(muscle)
        weekly_direct = state.weekly_direct_sets if state else 0.0
        weekly_indirect = state.weekly_indirect_sets if state else 0.0
        direct = planned_direct.get(muscle, 0.0)
        indirect = planned_indirect.get(muscle, 0.0)
        landmark = cfg.landmark_for(muscle)
        projected = (
            weekly_direct
            + direct
            + (weekly_indirect + indirect) * cfg.indirect_set_multiplier
        )
        plan[muscle] = MuscleVolumePlan(
            weekly_target=target_for_muscle(muscle, week, length, is_deload, cfg),
            weekly_direct_sets=weekly_direct,
            weekly_indirect_sets=weekly_indirect,
            planned_direct_sets=direct,
            planned_indirect_sets=indirect,
            projected_effective_sets=round(projected, 3),
            mrv=landmark.mrv if landmark else None,
        )
    return plan
