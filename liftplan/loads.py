"""
Load resolution module.

Fills target loads into prescribed sets:
- History: progress the most recent logged load
- Baselines: user-entered working weights
- Estimates: donor baselines, bodyweight ratios, equipment defaults

Loads are total implement weight in pounds; dumbbell loads are the
per-hand value, as logged in history.
"""

import logging
import statistics
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from liftplan.config import EngineConfig, resolve_config
from liftplan.history import completed_history, sort_history_desc
from liftplan.numeric import clamp, round_to_half
from liftplan.periodization import get_base_target_rpe, get_goal_rep_ranges
from liftplan.plan_schemas import PeriodizationModifiers, WorkoutExercise
from liftplan.prescription import BODYWEIGHT_ONLY_EQUIPMENT, build_warmup_sets, can_load_warmup
from liftplan.schemas import (
    Baseline,
    EquipmentType,
    Exercise,
    MovementPattern,
    PrimaryGoal,
    SetLog,
    TrainingAge,
    WorkoutHistoryEntry,
)

logger = logging.getLogger(__name__)

KG_TO_LB = 2.20462
EFFECTIVE_RPE_MIN = 6.0
HIGH_VARIANCE_THRESHOLD = 0.2
OUTLIER_TRIM_RANGE = 0.15
REGRESSION_CHANGE = -0.06
DEFAULT_DELOAD_MULTIPLIER = 0.75
RECENT_SESSION_WINDOW = 3

# Advanced lifters wave load across the block: week 1 re-entry, then build.
ADVANCED_WEEKLY_CHANGE = {1: -0.02, 2: 0.0, 3: 0.02, 0: 0.03}

LOWER_BODY_PATTERNS = {MovementPattern.SQUAT, MovementPattern.HINGE, MovementPattern.LUNGE}

LOAD_EQUIPMENT_PRIORITY = (
    EquipmentType.BARBELL,
    EquipmentType.MACHINE,
    EquipmentType.CABLE,
    EquipmentType.DUMBBELL,
    EquipmentType.KETTLEBELL,
    EquipmentType.SLED,
    EquipmentType.BAND,
    EquipmentType.BODYWEIGHT,
)
BARBELL_VARIANTS = {EquipmentType.EZ_BAR, EquipmentType.TRAP_BAR}

BODYWEIGHT_RATIOS: Dict[EquipmentType, Tuple[float, float]] = {
    # (compound, isolation)
    EquipmentType.BARBELL: (0.65, 0.35),
    EquipmentType.MACHINE: (0.55, 0.3),
    EquipmentType.CABLE: (0.4, 0.2),
    EquipmentType.DUMBBELL: (0.28, 0.1),
    EquipmentType.KETTLEBELL: (0.3, 0.1),
    EquipmentType.BAND: (0.2, 0.1),
    EquipmentType.SLED: (0.7, 0.4),
    EquipmentType.BODYWEIGHT: (0.0, 0.0),
    EquipmentType.OTHER: (0.3, 0.15),
}

PATTERN_MULTIPLIERS = {
    MovementPattern.SQUAT: 1.2,
    MovementPattern.HINGE: 1.15,
    MovementPattern.LUNGE: 1.1,
    MovementPattern.CARRY: 1.1,
    MovementPattern.ROTATION: 0.6,
}

EQUIPMENT_DEFAULT_LOADS = {
    EquipmentType.BARBELL: 65,
    EquipmentType.DUMBBELL: 20,
    EquipmentType.MACHINE: 60,
    EquipmentType.CABLE: 40,
    EquipmentType.KETTLEBELL: 24,
    EquipmentType.BAND: 15,
    EquipmentType.SLED: 90,
    EquipmentType.BODYWEIGHT: 0,
    EquipmentType.OTHER: 30,
}

EQUIPMENT_SCALES = {
    (EquipmentType.MACHINE, EquipmentType.CABLE): 0.9,
    (EquipmentType.CABLE, EquipmentType.MACHINE): 0.9,
    (EquipmentType.BARBELL, EquipmentType.MACHINE): 0.85,
    (EquipmentType.MACHINE, EquipmentType.BARBELL): 1.1,
    (EquipmentType.BARBELL, EquipmentType.CABLE): 0.8,
    (EquipmentType.CABLE, EquipmentType.BARBELL): 1.1,
    (EquipmentType.BARBELL, EquipmentType.DUMBBELL): 0.7,
    (EquipmentType.DUMBBELL, EquipmentType.BARBELL): 1.3,
    (EquipmentType.DUMBBELL, EquipmentType.CABLE): 0.85,
    (EquipmentType.CABLE, EquipmentType.DUMBBELL): 0.9,
    (EquipmentType.DUMBBELL, EquipmentType.MACHINE): 0.8,
    (EquipmentType.MACHINE, EquipmentType.DUMBBELL): 0.9,
    (EquipmentType.KETTLEBELL, EquipmentType.DUMBBELL): 0.95,
    (EquipmentType.DUMBBELL, EquipmentType.KETTLEBELL): 0.95,
}
DEFAULT_EQUIPMENT_SCALE = 0.8


class ProgressionPath(str, Enum):
    """Which double-progression rule decided the next load."""

    HOLD_HIGH_RPE = "hold_high_rpe"
    INCREASE_EASY = "increase_easy"
    INCREASE_ON_TARGET = "increase_on_target"
    HOLD_BUILD_REPS = "hold_build_reps"
    HOLD = "hold"


class ProgressionDecision(BaseModel):
    """Outcome of a double-progression check."""

    next_load: float = Field(..., ge=0)
    anchor_load: float = Field(..., ge=0)
    path: ProgressionPath
    decision_log: List[str] = Field(default_factory=list)


# ============================================================================
# Exercise classification
# ============================================================================


def resolve_load_equipment(exercise: Exercise) -> EquipmentType:
    """The implement that determines how an exercise is loaded."""
    equipment = set(exercise.equipment)
    if equipment & BARBELL_VARIANTS:
        equipment.add(EquipmentType.BARBELL)
    for item in LOAD_EQUIPMENT_PRIORITY:
        if item in equipment:
            return item
    return EquipmentType.OTHER


def is_bodyweight_only(exercise: Exercise) -> bool:
    if not exercise.equipment:
        return False
    return all(item in BODYWEIGHT_ONLY_EQUIPMENT for item in exercise.equipment)


def is_upper_body(exercise: Exercise) -> bool:
    return not (set(exercise.movement_patterns) & LOWER_BODY_PATTERNS)


# ============================================================================
# Progression
# ============================================================================


def _first_load(sets: List[SetLog]) -> Optional[float]:
    return next((s.load for s in sets if s.load is not None), None)


def _total_reps(sets: List[SetLog]) -> int:
    return sum(s.reps for s in sets)


def _linear_increment(last_load: float, upper_body: bool) -> float:
    if upper_body:
        return 5.0 if last_load >= 185 else 2.5
    return 10.0 if last_load >= 275 else 5.0


def _has_beginner_stall(sessions: List[List[SetLog]]) -> bool:
    """Three sessions at one load with total reps not rising."""
    if len(sessions) < RECENT_SESSION_WINDOW:
        return False
    recent = sessions[:RECENT_SESSION_WINDOW]
    loads = [_first_load(sets) for sets in recent]
    if any(load is None for load in loads) or len(set(loads)) != 1:
        return False
    totals = [_total_reps(sets) for sets in recent]
    return totals[0] <= totals[1] <= totals[2]


def _has_rep_regression(sessions: List[List[SetLog]]) -> bool:
    """Total reps strictly falling across the last three sessions."""
    if len(sessions) < RECENT_SESSION_WINDOW:
        return False
    totals = [_total_reps(sets) for sets in sessions[:RECENT_SESSION_WINDOW]]
    return totals[0] < totals[1] < totals[2]


def _modal_load(sets: List[SetLog]) -> Optional[float]:
    """Most frequent load; ties go to the load nearest the median, then the lighter."""
    frequency: Dict[float, int] = {}
    for s in sets:
        if s.load is not None:
            frequency[s.load] = frequency.get(s.load, 0) + 1
    if not frequency:
        return None
    center = statistics.median(frequency)
    return sorted(
        frequency.items(), key=lambda item: (-item[1], abs(item[0] - center), item[0])
    )[0][0]


def _modal_rpe(sets: List[SetLog]) -> Optional[float]:
    frequency: Dict[float, int] = {}
    for s in sets:
        if s.rpe is not None:
            rpe = round(s.rpe, 1)
            frequency[rpe] = frequency.get(rpe, 0) + 1
    if not frequency:
        return None
    return sorted(frequency.items(), key=lambda item: (-item[1], item[0]))[0][0]


def compute_double_progression_decision(
    last_sets: List[SetLog],
    rep_range: Tuple[int, int],
    equipment: EquipmentType = EquipmentType.OTHER,
) -> Optional[ProgressionDecision]:
    """
    Double progression: add reps at a load, then add load once reps top out.

    Only sets at RPE 6 or above (or without an RPE) count as signal. When
    loads vary by 20% or more across four or more sets, sets more than 15%
    from the median are trimmed before anchoring on the modal load.

    Returns:
        The decision, or None when no set carries a usable load
    """
    signal = [
        s
        for s in last_sets
        if s.load is not None and s.reps > 0 and (s.rpe is None or s.rpe >= EFFECTIVE_RPE_MIN)
    ]
    if not signal:
        return None

    loads = [s.load for s in signal]
    median_load = statistics.median(loads)
    decision_log: List[str] = []
    high_variance = (
        len(loads) >= 4
        and median_load > 0
        and (max(loads) - min(loads)) / median_load >= HIGH_VARIANCE_THRESHOLD
    )
    if high_variance:
        trimmed = [
            s for s in signal if abs(s.load - median_load) / median_load <= OUTLIER_TRIM_RANGE
        ]
        signal = trimmed or signal
        decision_log.append(
            f"High load variance ({min(loads)}-{max(loads)}); trimmed outlier sets"
        )

    anchor = _modal_load(signal)
    if anchor is None:
        return None
    modal_rpe = _modal_rpe(signal)
    median_reps = statistics.median([s.reps for s in signal])
    top = rep_range[1]
    increment = 5.0 if equipment == EquipmentType.BARBELL else 2.5
    decision_log.append(
        f"Anchor load {anchor}, modal RPE {modal_rpe if modal_rpe is not None else 'n/a'}, "
        f"median reps {median_reps:.1f}, range top {top}"
    )

    if anchor == 0:
        decision_log.append("Bodyweight exercise: progress reps only")
        return ProgressionDecision(
            next_load=0.0, anchor_load=0.0, path=ProgressionPath.HOLD, decision_log=decision_log
        )

    if modal_rpe is not None and modal_rpe >= 9:
        path, next_load = ProgressionPath.HOLD_HIGH_RPE, anchor
    elif median_reps >= top and modal_rpe is not None and modal_rpe <= 7:
        path, next_load = ProgressionPath.INCREASE_EASY, anchor + increment
    elif median_reps >= top and (modal_rpe is None or modal_rpe <= 8):
        path, next_load = ProgressionPath.INCREASE_ON_TARGET, anchor + increment
    elif modal_rpe is not None and 7 <= modal_rpe <= 8:
        path, next_load = ProgressionPath.HOLD_BUILD_REPS, anchor
    else:
        path, next_load = ProgressionPath.HOLD, anchor

    decision_log.append(f"Path {path.value}: next load {round_to_half(next_load)}")
    return ProgressionDecision(
        next_load=round_to_half(next_load),
        anchor_load=anchor,
        path=path,
        decision_log=decision_log,
    )


def compute_next_load(
    last_sets: List[SetLog],
    rep_range: Tuple[int, int],
    target_rpe: float,
    max_load_increase_pct: float = 0.07,
    training_age: TrainingAge = TrainingAge.INTERMEDIATE,
    upper_body: bool = True,
    week_in_block: Optional[int] = None,
    is_deload: bool = False,
    deload_multiplier: float = DEFAULT_DELOAD_MULTIPLIER,
    recent_sessions: Optional[List[List[SetLog]]] = None,
    equipment: EquipmentType = EquipmentType.OTHER,
) -> Optional[float]:
    """
    Next working load from the most recent session.

    Beginners add a fixed increment each session until three sessions
    stall at one load. Advanced lifters follow a weekly percentage wave.
    Everyone else uses double progression, backing off 6% after three
    sessions of falling reps. Percentage changes are capped at
    ``max_load_increase_pct``.

    Args:
        last_sets: Sets from the most recent session
        rep_range: Goal rep range for the exercise's role
        target_rpe: RPE the sets were meant to hit
        recent_sessions: Earlier sessions, newest first

    Returns:
        Load rounded to 0.5, or None when no set carries a load
    """
    last_load = _first_load(last_sets)
    if last_load is None:
        return None
    sessions = [last_sets, *(recent_sessions or [])]

    def apply_change(pct: float) -> float:
        capped = min(abs(pct), max_load_increase_pct)
        return round_to_half(last_load * (1 + (-capped if pct < 0 else capped)))

    def hold_or_top_out() -> float:
        all_at_top = all(s.reps >= rep_range[1] for s in last_sets)
        rpe_ok = all(s.rpe is None or s.rpe <= target_rpe for s in last_sets)
        if all_at_top and rpe_ok:
            return apply_change(0.025)
        return round_to_half(last_load)

    if training_age == TrainingAge.BEGINNER:
        if _has_beginner_stall(sessions):
            return hold_or_top_out()
        return round_to_half(last_load + _linear_increment(last_load, upper_body))

    if training_age == TrainingAge.ADVANCED:
        if is_deload:
            return round_to_half(last_load * deload_multiplier)
        week = week_in_block or 1
        return apply_change(ADVANCED_WEEKLY_CHANGE[week % 4])

    if _has_rep_regression(sessions):
        return apply_change(REGRESSION_CHANGE)
    decision = compute_double_progression_decision(last_sets, rep_range, equipment)
    if decision is not None:
        logger.debug("Double progression: %s", "; ".join(decision.decision_log))
        return decision.next_load
    return hold_or_top_out()


# ============================================================================
# Baselines and estimates
# ============================================================================


def resolve_baseline_load(baseline: Baseline) -> Optional[float]:
    """Working-weight midpoint, else the top set, else either working bound."""
    low, high = baseline.working_weight_min, baseline.working_weight_max
    if low is not None and high is not None:
        return round_to_half((low + high) / 2)
    for value in (baseline.top_set_weight, low, high):
        if value is not None:
            return round_to_half(value)
    return None


def build_baseline_index(baselines: List[Baseline], goal: PrimaryGoal) -> Dict[str, float]:
    """One load per exercise, preferring the baseline recorded for the goal's context."""
    preferred = "strength" if goal == PrimaryGoal.STRENGTH else "volume"
    grouped: Dict[str, List[Baseline]] = {}
    for baseline in baselines:
        grouped.setdefault(baseline.exercise_id, []).append(baseline)

    index = {}
    for exercise_id, group in grouped.items():
        pick = next(
            (b for b in group if b.context == preferred),
            next((b for b in group if b.context == "default"), group[0]),
        )
        load = resolve_baseline_load(pick)
        if load is not None:
            index[exercise_id] = load
    return index


def build_history_index(history: List[WorkoutHistoryEntry]) -> Dict[str, List[List[SetLog]]]:
    """Logged set lists per exercise, newest session first."""
    index: Dict[str, List[List[SetLog]]] = {}
    for entry in sort_history_desc(completed_history(history)):
        for logged in entry.exercises:
            if logged.sets:
                index.setdefault(logged.exercise_id, []).append(list(logged.sets))
    return index


def _overlap(a: List[str], b: List[str]) -> int:
    lowered = {item.lower() for item in b}
    return len([item for item in a if item.lower() in lowered])


def estimate_from_donors(
    target: Exercise,
    baseline_index: Dict[str, float],
    library_index: Dict[str, Exercise],
) -> Optional[float]:
    """
    Borrow a load from the closest exercise with a baseline.

    Donors must share a primary muscle. The best donor (muscle overlap x 4,
    +2 same implement, +1 same compound/isolation class, ties by name) is
    scaled for implement, compound class and relative fatigue cost.
    """
    target_muscles = target.primary_muscles
    if not target_muscles:
        return None
    target_equipment = resolve_load_equipment(target)

    candidates = []
    for donor_id in sorted(baseline_index):
        donor = library_index.get(donor_id)
        if donor is None:
            continue
        overlap = _overlap(target_muscles, donor.primary_muscles)
        if overlap == 0:
            continue
        donor_equipment = resolve_load_equipment(donor)
        if donor_equipment == target_equipment:
            equipment_scale = 1.0
        else:
            equipment_scale = EQUIPMENT_SCALES.get(
                (donor_equipment, target_equipment), DEFAULT_EQUIPMENT_SCALE
            )
        if donor.is_compound == target.is_compound:
            compound_scale = 1.0
        elif donor.is_compound:
            compound_scale = 0.5
        else:
            compound_scale = 1.15
        fatigue_scale = clamp(target.fatigue_cost / donor.fatigue_cost, 0.45, 0.9)

        load = baseline_index[donor_id] * equipment_scale * compound_scale * fatigue_scale
        score = (
            overlap * 4
            + (2 if donor_equipment == target_equipment else 0)
            + (1 if donor.is_compound == target.is_compound else 0)
        )
        candidates.append((score, donor.name, load))

    if not candidates:
        return None
    candidates.sort(key=lambda item: (-item[0], item[1]))
    return candidates[0][2]


def estimate_load(
    exercise: Exercise,
    baseline_index: Dict[str, float],
    library_index: Dict[str, Exercise],
    weight_kg: Optional[float] = None,
) -> Optional[float]:
    """Starting load with no history: donor, then bodyweight ratio, then equipment default."""
    if is_bodyweight_only(exercise):
        return None

    donor = estimate_from_donors(exercise, baseline_index, library_index)
    if donor is not None:
        return round_to_half(donor)

    equipment = resolve_load_equipment(exercise)
    if weight_kg is not None:
        compound, isolation = BODYWEIGHT_RATIOS[equipment]
        ratio = compound if exercise.is_compound else isolation
        multiplier = max(
            (PATTERN_MULTIPLIERS.get(p, 1.0) for p in exercise.movement_patterns), default=1.0
        )
        if ratio > 0:
            return round_to_half(weight_kg * KG_TO_LB * ratio * multiplier)

    return round_to_half(EQUIPMENT_DEFAULT_LOADS[equipment])


# ============================================================================
# Applying loads
# ============================================================================


class LoadResolver:
    """
    Resolves and applies target loads for one generated session.

    Order of preference per exercise: progression from history, the user's
    baseline, then an estimate.
    """

    def __init__(
        self,
        history: List[WorkoutHistoryEntry],
        baselines: List[Baseline],
        library: List[Exercise],
        goal: PrimaryGoal,
        training_age: TrainingAge,
        periodization: PeriodizationModifiers,
        weight_kg: Optional[float] = None,
        max_load_increase_pct: float = 0.07,
        config: Optional[EngineConfig] = None,
    ):
        self.config = resolve_config(config)
        self.history_index = build_history_index(history)
        self.baseline_index = build_baseline_index(baselines, goal)
        self.library_index = {exercise.id: exercise for exercise in library}
        self.goal = goal
        self.training_age = training_age
        self.periodization = periodization
        self.weight_kg = weight_kg
        self.max_load_increase_pct = max_load_increase_pct

    def resolve_load(self, entry: WorkoutExercise) -> Optional[float]:
        exercise = entry.exercise
        ranges = get_goal_rep_ranges(self.goal, self.config)
        rep_range = ranges.main if entry.is_main_lift else ranges.accessory
        first = entry.sets[0] if entry.sets else None
        target_rpe = (
            first.target_rpe
            if first is not None and first.target_rpe is not None
            else get_base_target_rpe(self.goal, self.training_age, self.config)
        )

        sessions = self.history_index.get(exercise.id)
        if sessions:
            load = compute_next_load(
                sessions[0],
                rep_range,
                target_rpe,
                max_load_increase_pct=self.max_load_increase_pct,
                training_age=self.training_age,
                upper_body=is_upper_body(exercise),
                week_in_block=self.periodization.week_in_block,
                recent_sessions=sessions[1:RECENT_SESSION_WINDOW],
                equipment=resolve_load_equipment(exercise),
            )
            if load is not None:
                return load

        if exercise.id in self.baseline_index:
            return self.baseline_index[exercise.id]
        return estimate_load(exercise, self.baseline_index, self.library_index, self.weight_kg)

    def apply(self, entry: WorkoutExercise) -> WorkoutExercise:
        """
        Fill missing set loads for one exercise.

        Main lifts: top set at the resolved load, back-off sets at the
        back-off multiplier; on deload every set sits at the deload load.
        Main lifts that end up loaded get a warm-up ramp.
        """
        existing = entry.sets[0].target_load if entry.sets else None
        load = existing if existing is not None else self.resolve_load(entry)
        if load is None:
            return entry.model_copy(update={"warmup_sets": []}) if entry.is_main_lift else entry

        multiplier = self.periodization.back_off_multiplier
        if entry.is_main_lift:
            if self.periodization.is_deload:
                top = round_to_half(load * multiplier)
                back_off = top
            else:
                top = load
                back_off = round_to_half(load * multiplier)
            sets = [
                s if s.target_load is not None
                else s.model_copy(update={"target_load": top if s.set_index == 1 else back_off})
                for s in entry.sets
            ]
            warmups = (
                build_warmup_sets(self.training_age, top, self.config)
                if can_load_warmup(entry.exercise)
                else []
            )
            return entry.model_copy(update={"sets": sets, "warmup_sets": warmups})

        sets = [
            s if s.target_load is not None else s.model_copy(update={"target_load": load})
            for s in entry.sets
        ]
        return entry.model_copy(update={"sets": sets})


def apply_loads(
    exercises: List[WorkoutExercise], resolver: LoadResolver
) -> List[WorkoutExercise]:
    return [resolver.apply(entry) for entry in exercises]
