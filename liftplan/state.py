"""
Selection working state.

A ``SelectionState`` is built once per selection call and mutated in place
by the selector phases:
- Selected exercises with their role, selection step and order
- Remaining main/accessory slot counts
- Running planned effective volume per muscle
- Pattern and primary-muscle coverage used by scoring and filtering
- Rationale for every pick

It never outlives the call that created it.
"""

from typing import Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field

from liftplan.config import EngineConfig
from liftplan.history import (
    VolumeContext,
    build_continuity_counts,
    build_recency_hours,
    build_volume_context,
    find_stalled_exercises,
    resolve_reference_time,
)
from liftplan.library import index_library, normalize_name
from liftplan.periodization import get_goal_rep_ranges
from liftplan.plan_schemas import (
    ExerciseRationale,
    ExerciseRole,
    SelectionInput,
    SelectionPhase,
    SelectionStep,
    WorkoutExercise,
    WorkoutSet,
)
from liftplan.prescription import get_rest_seconds
from liftplan.schemas import Exercise, MovementPattern, SelectionMode, SessionIntent
from liftplan.volume import (
    apply_effective_contribution,
    base_planned_effective,
    build_target_by_muscle,
)

CORE_PATTERNS = {
    MovementPattern.HORIZONTAL_PUSH,
    MovementPattern.VERTICAL_PUSH,
    MovementPattern.HORIZONTAL_PULL,
    MovementPattern.VERTICAL_PULL,
    MovementPattern.SQUAT,
    MovementPattern.HINGE,
    MovementPattern.LUNGE,
    MovementPattern.CARRY,
}


def pattern_keys(exercise: Exercise) -> List[str]:
    """Pattern buckets for redundancy tracking; unpatterned exercises share 'none'."""
    keys = sorted({pattern.value for pattern in exercise.movement_patterns})
    return keys or ["none"]


def primary_pattern_keys(exercise: Exercise) -> List[str]:
    return [
        f"{muscle}|{pattern}"
        for muscle in exercise.primary_muscles
        for pattern in pattern_keys(exercise)
    ]


class SlotTarget(BaseModel):
    """How many exercises a session should hold."""

    slot_count: int = Field(..., ge=0)
    main_slots: int = Field(..., ge=0)
    accessory_slots: int = Field(..., ge=0)


class SelectedExercise(BaseModel):
    exercise: Exercise
    role: ExerciseRole
    selected_step: SelectionStep
    order_index: int = Field(..., ge=0)

    @property
    def is_main_lift(self) -> bool:
        return self.role == ExerciseRole.MAIN


class ScoredCandidate(BaseModel):
    """A filter survivor with its weighted score and component breakdown."""

    exercise: Exercise
    score: float
    components: Dict[str, float] = Field(default_factory=dict)


class SelectionState:
    """
    Mutable working set for one selection call.

    Derived aggregates (planned volume, coverage, running minutes) are
    updated incrementally on ``add`` and rebuilt from scratch by
    ``recompute`` whenever exercises are removed.
    """

    def __init__(
        self,
        selection_input: SelectionInput,
        library: List[Exercise],
        slot_target: SlotTarget,
        critical_muscles: Set[str],
        config: EngineConfig,
    ):
        self.input = selection_input
        self.config = config
        self.library = library
        self.library_index = index_library(library)
        self.slot_target = slot_target
        self.critical_muscles = critical_muscles

        week = selection_input.week_in_block
        length = selection_input.mesocycle_length
        self.is_deload = week >= length and length > 1
        history = selection_input.history
        self.reference_time = resolve_reference_time(history, selection_input.reference_time)

        self.volume_context: VolumeContext = build_volume_context(
            history, library, self.reference_time, week, length, config
        )
        extra_muscles = list(self.volume_context.muscle_volume)
        if selection_input.intent == SessionIntent.BODY_PART:
            extra_muscles.extend(selection_input.target_muscles)
        self.target_by_muscle = build_target_by_muscle(
            week, length, self.is_deload, extra_muscles, config
        )
        self.base_planned_effective = base_planned_effective(self.volume_context, config)
        self.planned_effective: Dict[str, float] = dict(self.base_planned_effective)

        self.recency_hours = build_recency_hours(history, self.reference_time)
        self.continuity_counts = build_continuity_counts(
            history, selection_input.intent, selection_input.target_muscles, config
        )
        self.stalled_ids = set(find_stalled_exercises(history))

        preferences = selection_input.preferences
        self.favorites_by_id = set(preferences.favorite_exercise_ids)
        self.favorites_by_name = {normalize_name(n) for n in preferences.favorite_exercises}
        self.avoid_by_id = set(preferences.avoid_exercise_ids)
        self.avoid_by_name = {normalize_name(n) for n in preferences.avoid_exercises}

        ranges = get_goal_rep_ranges(selection_input.goals.primary, config)
        self.provisional_reps = {
            ExerciseRole.MAIN: ranges.main[0],
            ExerciseRole.ACCESSORY: ranges.accessory[0],
        }

        self.selected: List[SelectedExercise] = []
        self.selected_ids: Set[str] = set()
        self.selected_patterns: Set[MovementPattern] = set()
        self.covered_primary_muscles: Set[str] = set()
        self.primary_pattern_overlap: Dict[str, int] = {}
        self.rationale: Dict[str, ExerciseRationale] = {}
        self.main_slots_remaining = slot_target.main_slots
        self.accessory_slots_remaining = slot_target.accessory_slots
        self.running_minutes = 0.0
        self.set_targets: Dict[str, int] = {}
        self.cold_start_stage = (
            selection_input.cold_start_stage
            if selection_input.mode == SelectionMode.INTENT
            else 2
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def week_in_block(self) -> int:
        return self.input.week_in_block

    @property
    def session_minutes(self) -> int:
        return self.input.session_minutes

    @property
    def is_first_week(self) -> bool:
        return self.input.week_in_block <= 1

    def provisional_sets(self, role: ExerciseRole) -> int:
        if role == ExerciseRole.MAIN:
            return self.config.provisional_main_sets
        return self.config.provisional_accessory_sets

    def slot_progress(self, phase: SelectionPhase) -> Tuple[int, int]:
        """(filled, total) slot counts for a phase."""
        if phase == SelectionPhase.MAIN:
            total = self.slot_target.main_slots
            return max(0, total - self.main_slots_remaining), total
        total = self.slot_target.accessory_slots
        return max(0, total - self.accessory_slots_remaining), total

    def is_critical(self, muscle: str) -> bool:
        return not self.critical_muscles or muscle in self.critical_muscles

    def remaining_deficit(self, muscle: str, planned: Optional[Dict[str, float]] = None) -> float:
        """Weekly sets still needed for a muscle (never negative)."""
        planned = self.planned_effective if planned is None else planned
        return max(0.0, self.target_by_muscle.get(muscle, 0.0) - planned.get(muscle, 0.0))

    def estimate_exercise_minutes(
        self, exercise: Exercise, sets: int, is_main_lift: bool
    ) -> float:
        """Quick per-exercise estimate: (work + rest) x sets, in minutes."""
        if sets <= 0:
            return 0.0
        work = exercise.time_per_set_sec or (60 if is_main_lift else 40)
        rest = get_rest_seconds(exercise, is_main_lift, self.config)
        return (work + rest) * sets / 60.0

    def to_workout_exercises(self, set_targets: Dict[str, int]) -> List[WorkoutExercise]:
        """Provisional workout built from the selection, reps at each range floor."""
        workout = []
        for index, entry in enumerate(self.selected):
            default_sets = self.provisional_sets(entry.role)
            set_count = max(1, set_targets.get(entry.exercise.id, default_sets))
            reps = self.provisional_reps[entry.role]
            workout.append(
                WorkoutExercise(
                    id=f"selection-{entry.exercise.id}-{index}",
                    exercise=entry.exercise,
                    order_index=index,
                    is_main_lift=entry.is_main_lift,
                    role=entry.role,
                    sets=[
                        WorkoutSet(set_index=i + 1, target_reps=reps, role=entry.role)
                        for i in range(set_count)
                    ],
                )
            )
        return workout

    def main_lift_ids(self) -> List[str]:
        return [entry.exercise.id for entry in self.selected if entry.is_main_lift]

    def accessory_ids(self) -> List[str]:
        return [entry.exercise.id for entry in self.selected if not entry.is_main_lift]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _track(self, exercise: Exercise, role: ExerciseRole, sets: int) -> None:
        self.selected_patterns.update(exercise.movement_patterns)
        self.covered_primary_muscles.update(exercise.primary_muscles)
        for key in primary_pattern_keys(exercise):
            self.primary_pattern_overlap[key] = self.primary_pattern_overlap.get(key, 0) + 1
        apply_effective_contribution(self.planned_effective, exercise, sets, self.config)
        self.running_minutes += self.estimate_exercise_minutes(
            exercise, sets, role == ExerciseRole.MAIN
        )

    def add(self, candidate: ScoredCandidate, role: ExerciseRole, step: SelectionStep) -> None:
        """Place a candidate and consume one slot of its role."""
        exercise = candidate.exercise
        self.selected.append(
            SelectedExercise(
                exercise=exercise,
                role=role,
                selected_step=step,
                order_index=len(self.selected),
            )
        )
        self.selected_ids.add(exercise.id)
        self._track(exercise, role, self.provisional_sets(role))

        if role == ExerciseRole.MAIN:
            self.main_slots_remaining = max(0, self.main_slots_remaining - 1)
        else:
            self.accessory_slots_remaining = max(0, self.accessory_slots_remaining - 1)

        self.rationale[exercise.id] = ExerciseRationale(
            score=round(candidate.score, 3),
            components=candidate.components,
            hard_filter_pass=True,
            selected_step=step,
        )

    def recompute(self, set_targets: Optional[Dict[str, int]] = None) -> None:
        """Rebuild every derived aggregate from the current selection."""
        set_targets = set_targets or {}
        self.selected_ids = {entry.exercise.id for entry in self.selected}
        self.planned_effective = dict(self.base_planned_effective)
        self.selected_patterns = set()
        self.covered_primary_muscles = set()
        self.primary_pattern_overlap = {}
        self.running_minutes = 0.0

        for index, entry in enumerate(self.selected):
            entry.order_index = index
            sets = set_targets.get(entry.exercise.id, self.provisional_sets(entry.role))
            self._track(entry.exercise, entry.role, max(1, sets))

    def remove(self, exercise_id: str, set_targets: Optional[Dict[str, int]] = None) -> None:
        """Drop one exercise and recompute; used for the rollback path."""
        self.selected = [entry for entry in self.selected if entry.exercise.id != exercise_id]
        if set_targets is not None:
            set_targets.pop(exercise_id, None)
        self.recompute(set_targets)

    def keep_only(self, kept_ids: Set[str], set_targets: Optional[Dict[str, int]] = None) -> None:
        """Keep main lifts plus the listed accessories."""
        self.selected = [
            entry
            for entry in self.selected
            if entry.is_main_lift or entry.exercise.id in kept_ids
        ]
        if set_targets is not None:
            remaining = {entry.exercise.id for entry in self.selected}
            for exercise_id in [eid for eid in set_targets if eid not in remaining]:
                del set_targets[exercise_id]
        self.recompute(set_targets)
