"""
History aggregation.

Turns raw workout history into the signals selection and prescription use:
- Volume context: per-muscle direct/indirect sets over rolling 7-day windows
- Recency: hours since each exercise was last performed
- Continuity: appearances in the last three same-intent sessions
- Stalls: exercises whose recent sessions show no volume improvement
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from liftplan.config import EngineConfig, VolumeLandmark, resolve_config
from liftplan.schemas import Exercise, SessionIntent, WorkoutHistoryEntry

VOLUME_WINDOW = timedelta(days=7)
CONTINUITY_SESSIONS = 3
STALL_SESSIONS = 3


class MuscleVolumeState(BaseModel):
    """Logged weekly volume for one muscle."""

    weekly_direct_sets: float = 0.0
    weekly_indirect_sets: float = 0.0
    landmark: Optional[VolumeLandmark] = None

    def effective_sets(self, indirect_multiplier: float) -> float:
        return self.weekly_direct_sets + self.weekly_indirect_sets * indirect_multiplier


class VolumeContext(BaseModel):
    """Per-muscle volume derived from history for a single generation call."""

    recent: Dict[str, float] = Field(
        default_factory=dict, description="Primary-muscle sets in the last 7 days"
    )
    previous: Dict[str, float] = Field(
        default_factory=dict, description="Primary-muscle sets 7-14 days ago"
    )
    muscle_volume: Dict[str, MuscleVolumeState] = Field(default_factory=dict)
    mesocycle_week: int = Field(1, ge=1)
    mesocycle_length: int = Field(4, ge=1)


# ============================================================================
# History helpers
# ============================================================================


def sort_history_desc(history: Iterable[WorkoutHistoryEntry]) -> List[WorkoutHistoryEntry]:
    """Newest first. Python's sort is stable, so same-day entries keep input order."""
    return sorted(history, key=lambda entry: entry.date, reverse=True)


def completed_history(history: Iterable[WorkoutHistoryEntry]) -> List[WorkoutHistoryEntry]:
    return [entry for entry in history if entry.is_completed]


def most_recent_entry(history: Iterable[WorkoutHistoryEntry]) -> Optional[WorkoutHistoryEntry]:
    ordered = sort_history_desc(history)
    return ordered[0] if ordered else None


def resolve_reference_time(
    history: Iterable[WorkoutHistoryEntry], reference_time: Optional[datetime] = None
) -> Optional[datetime]:
    """
    Resolve the 'now' used for recency windows.

    An explicit reference time wins; otherwise the latest history date is
    used so that identical inputs always yield identical output.
    """
    if reference_time is not None:
        return reference_time
    latest = most_recent_entry(history)
    return latest.date if latest else None


def _hours_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 3600.0


def entry_primary_muscles(
    entry_exercise_id: str,
    logged_muscles: List[str],
    library_index: Dict[str, Exercise],
    config: EngineConfig,
) -> List[str]:
    """Primary muscles for a logged exercise, preferring the library record."""
    exercise = library_index.get(entry_exercise_id)
    muscles = exercise.primary_muscles if exercise else logged_muscles
    return sorted({config.canonical_muscle(m) for m in muscles if m.strip()})


# ============================================================================
# Volume context
# ============================================================================


def build_volume_context(
    history: List[WorkoutHistoryEntry],
    exercise_library: List[Exercise],
    reference_time: Optional[datetime] = None,
    mesocycle_week: int = 1,
    mesocycle_length: int = 4,
    config: Optional[EngineConfig] = None,
) -> VolumeContext:
    """
    Aggregate completed sessions into rolling weekly volume.

    Sessions within 7 days of the reference time count as recent, 7-14 days
    as previous. Only the recent window feeds the weekly direct/indirect
    totals used for volume targeting.
    """
    cfg = resolve_config(config)
    now = resolve_reference_time(history, reference_time)
    by_id = {exercise.id: exercise for exercise in exercise_library}

    recent: Dict[str, float] = {}
    previous: Dict[str, float] = {}
    weekly_direct: Dict[str, float] = {}
    weekly_indirect: Dict[str, float] = {}

    if now is not None:
        for entry in sorted(completed_history(history), key=lambda e: e.date):
            delta = now - entry.date
            if delta < timedelta(0):
                continue
            is_recent = delta <= VOLUME_WINDOW
            if not is_recent and delta > VOLUME_WINDOW * 2:
                continue
            window = recent if is_recent else previous

            for logged in entry.exercises:
                set_count = len(logged.sets)
                if set_count == 0:
                    continue
                exercise = by_id.get(logged.exercise_id)
                primary = entry_primary_muscles(
                    logged.exercise_id, logged.primary_muscles, by_id, cfg
                )
                for muscle in primary:
                    window[muscle] = window.get(muscle, 0) + set_count
                    if is_recent:
                        weekly_direct[muscle] = weekly_direct.get(muscle, 0) + set_count
                if is_recent and exercise is not None:
                    for muscle in exercise.secondary_muscles:
                        muscle = cfg.canonical_muscle(muscle)
                        weekly_indirect[muscle] = weekly_indirect.get(muscle, 0) + set_count

    muscles = sorted(set(cfg.landmarks) | set(weekly_direct) | set(weekly_indirect))
    muscle_volume = {
        muscle: MuscleVolumeState(
            weekly_direct_sets=weekly_direct.get(muscle, 0.0),
            weekly_indirect_sets=weekly_indirect.get(muscle, 0.0),
            landmark=cfg.landmarks.get(muscle),
        )
        for muscle in muscles
    }

    return VolumeContext(
        recent=recent,
        previous=previous,
        muscle_volume=muscle_volume,
        mesocycle_week=max(1, mesocycle_week),
        mesocycle_length=max(1, mesocycle_length),
    )


# ============================================================================
# Recency and continuity
# ============================================================================


def build_recency_hours(
    history: List[WorkoutHistoryEntry], reference_time: Optional[datetime] = None
) -> Dict[str, float]:
    """Hours since each exercise last appeared in a completed session."""
    now = resolve_reference_time(history, reference_time)
    if now is None:
        return {}

    recency: Dict[str, float] = {}
    for entry in completed_history(history):
        hours_ago = max(0.0, _hours_between(now, entry.date))
        for logged in entry.exercises:
            previous = recency.get(logged.exercise_id)
            if previous is None or hours_ago < previous:
                recency[logged.exercise_id] = hours_ago
    return recency


def matches_intent(
    entry: WorkoutHistoryEntry,
    intent: SessionIntent,
    target_muscles: Optional[List[str]] = None,
    config: Optional[EngineConfig] = None,
) -> bool:
    """
    Whether a logged session trained the same split day.

    Sessions tagged with an intent match on the tag. Untagged sessions match
    a full-body intent outright and otherwise match when they trained any of
    the intent's critical muscles.
    """
    cfg = resolve_config(config)
    entry_intent = entry.session_intent or entry.forced_split
    if intent != SessionIntent.BODY_PART:
        if entry_intent is not None:
            return entry_intent == intent
        if intent == SessionIntent.FULL_BODY:
            return True

    if intent == SessionIntent.BODY_PART:
        intent_muscles = {cfg.canonical_muscle(m) for m in (target_muscles or [])}
    else:
        intent_muscles = set(cfg.critical_muscles.get(intent, []))
    if not intent_muscles:
        return False

    entry_muscles = {
        cfg.canonical_muscle(muscle)
        for logged in entry.exercises
        for muscle in logged.primary_muscles
    }
    return bool(entry_muscles & intent_muscles)


def build_continuity_counts(
    history: List[WorkoutHistoryEntry],
    intent: SessionIntent,
    target_muscles: Optional[List[str]] = None,
    config: Optional[EngineConfig] = None,
) -> Dict[str, int]:
    """Appearances of each exercise in the last three completed same-intent sessions."""
    same_intent = [
        entry
        for entry in sort_history_desc(completed_history(history))
        if matches_intent(entry, intent, target_muscles, config)
    ][:CONTINUITY_SESSIONS]

    counts: Dict[str, int] = {}
    for entry in same_intent:
        for exercise_id in {logged.exercise_id for logged in entry.exercises}:
            counts[exercise_id] = counts.get(exercise_id, 0) + 1
    return counts


# ============================================================================
# Stall detection
# ============================================================================


def session_volume(sets) -> float:
    """Reps x load, with unloaded sets counting their reps."""
    return sum(s.reps * (s.load if s.load else 1) for s in sets)


def find_stalled_exercises(history: List[WorkoutHistoryEntry]) -> List[str]:
    """
    Exercises whose last three completed sessions show no volume improvement.

    Returns:
        Sorted exercise ids
    """
    volumes: Dict[str, List[float]] = {}
    for entry in sort_history_desc(completed_history(history)):
        for logged in entry.exercises:
            if not logged.sets:
                continue
            series = volumes.setdefault(logged.exercise_id, [])
            if len(series) < STALL_SESSIONS:
                series.append(session_volume(logged.sets))

    stalled = []
    for exercise_id, newest_first in volumes.items():
        if len(newest_first) < STALL_SESSIONS:
            continue
        oldest_first = list(reversed(newest_first))
        improved = any(
            later > earlier for earlier, later in zip(oldest_first, oldest_first[1:])
        )
        if not improved:
            stalled.append(exercise_id)
    return sorted(stalled)
