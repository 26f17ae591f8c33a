"""
SRA recovery estimator.

Stimulus-recovery-adaptation: each muscle has a recovery window in hours
(from its volume landmark). Recovery is the share of that window elapsed
since the muscle was last trained. Warnings are advisory only; they never
gate selection.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from liftplan.config import EngineConfig, resolve_config
from liftplan.history import (
    completed_history,
    entry_primary_muscles,
    resolve_reference_time,
)
from liftplan.numeric import clamp, round_half_up
from liftplan.plan_schemas import MuscleRecovery, SraWarning
from liftplan.schemas import Exercise, WorkoutHistoryEntry


def build_last_trained(
    history: List[WorkoutHistoryEntry],
    library: List[Exercise],
    config: Optional[EngineConfig] = None,
) -> Dict[str, datetime]:
    """Most recent completed session date per primary muscle."""
    cfg = resolve_config(config)
    library_index = {exercise.id: exercise for exercise in library}
    last_trained: Dict[str, datetime] = {}
    for entry in completed_history(history):
        for logged in entry.exercises:
            muscles = entry_primary_muscles(
                logged.exercise_id, logged.primary_muscles, library_index, cfg
            )
            for muscle in muscles:
                previous = last_trained.get(muscle)
                if previous is None or entry.date > previous:
                    last_trained[muscle] = entry.date
    return last_trained


def build_recovery_map(
    history: List[WorkoutHistoryEntry],
    library: List[Exercise],
    reference_time: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> Dict[str, MuscleRecovery]:
    """
    Recovery state for every muscle with a landmark.

    Args:
        history: Logged sessions
        library: Exercise library used to resolve primary muscles
        reference_time: "Now"; defaults to the latest history date

    Returns:
        muscle -> MuscleRecovery, sorted by muscle name
    """
    cfg = resolve_config(config)
    now = resolve_reference_time(history, reference_time)
    last_trained = build_last_trained(history, library, cfg)

    recovery: Dict[str, MuscleRecovery] = {}
    for muscle in sorted(cfg.landmarks):
        window = cfg.landmarks[muscle].sra_hours
        trained_at = last_trained.get(muscle)
        hours: Optional[float] = None
        percent = 100
        if trained_at is not None and now is not None:
            elapsed = max(0.0, (now - trained_at).total_seconds() / 3600.0)
            hours = float(round_half_up(elapsed))
            percent = int(clamp(round_half_up(elapsed / window * 100), 0, 100))
        recovery[muscle] = MuscleRecovery(
            muscle=muscle,
            hours_since_trained=hours,
            sra_hours=window,
            recovery_percent=percent,
            is_recovered=percent >= 100,
        )
    return recovery


def check_sra_warnings(
    recovery_map: Dict[str, MuscleRecovery], target_muscles: Iterable[str]
) -> List[SraWarning]:
    """Warnings for targeted muscles still inside their recovery window."""
    warnings = []
    seen = set()
    for muscle in target_muscles:
        if muscle in seen:
            continue
        seen.add(muscle)
        state = recovery_map.get(muscle)
        if state is None or state.is_recovered or state.hours_since_trained is None:
            continue
        warnings.append(
            SraWarning(
                muscle=muscle,
                recovery_percent=state.recovery_percent,
                hours_since_trained=state.hours_since_trained,
                sra_hours=state.sra_hours,
            )
        )
    return warnings
