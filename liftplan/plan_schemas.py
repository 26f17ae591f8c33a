"""
Data schemas for generated sessions.

This module contains Pydantic models for representing prescribed workouts,
exercise selection results with their rationale, periodization modifiers,
and the decision log attached to every generated plan.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from liftplan.schemas import (
    Exercise,
    FatigueState,
    Goals,
    SelectionMode,
    SessionIntent,
    TrainingAge,
    UserPreferences,
    WorkoutHistoryEntry,
    EquipmentType,
)


class ExerciseRole(str, Enum):
    """Role an exercise plays inside a session."""

    WARMUP = "warmup"
    MAIN = "main"
    ACCESSORY = "accessory"


class SelectionStep(str, Enum):
    """Selector phase that placed an exercise."""

    PIN = "pin"
    ANCHOR = "anchor"
    MAIN_PICK = "main_pick"
    ACCESSORY_PICK = "accessory_pick"


class SelectionPhase(str, Enum):
    """Slot type being filled."""

    MAIN = "main"
    ACCESSORY = "accessory"


class HardFilterReason(str, Enum):
    """Why a candidate was rejected by the hard filters."""

    ALREADY_SELECTED = "already_selected"
    EQUIPMENT = "equipment"
    AVOID = "avoid"
    PAIN_CONFLICT = "pain_conflict"
    SFR_BELOW_THRESHOLD = "sfr_below_threshold"
    CRITICAL_MUSCLE_OVERLAP = "critical_muscle_overlap"
    BODY_PART_PRIMARY_OVERLAP = "body_part_primary_overlap"
    INTENT_SCOPE_PRIMARY_OVERLAP = "intent_scope_primary_overlap"
    SAME_PRIMARY_PATTERN_DUPLICATE = "same_primary_pattern_duplicate"
    MAIN_LIFT_ELIGIBILITY = "main_lift_eligibility"
    MAIN_REP_RANGE = "main_rep_range"


class AutoregulationAction(str, Enum):
    """Session-wide adjustment picked from a check-in fatigue score."""

    MAINTAIN = "maintain"
    SCALE_DOWN = "scale_down"  # -10% load, -1 RPE
    SCALE_UP = "scale_up"  # +5% load, +0.5 RPE
    REDUCE_VOLUME = "reduce_volume"  # Drop accessory sets
    TRIGGER_DELOAD = "trigger_deload"  # Half the sets at 60% load


class InterventionLevel(str, Enum):
    """Escalation step for a lift that has stopped setting PRs."""

    NONE = "none"
    MICROLOAD = "microload"
    DELOAD = "deload"
    VARIATION = "variation"
    VOLUME_RESET = "volume_reset"

# ============================================================================
# Periodization
# ============================================================================


class PeriodizationModifiers(BaseModel):
    """Week-level adjustments applied on top of the base prescription."""

    rpe_offset: float = Field(0.0, description="Added to the base target RPE")
    set_multiplier: float = Field(1.0, gt=0.0, description="Scales base set counts")
    back_off_multiplier: float = Field(
        0.85, gt=0.0, le=1.0, description="Back-off load as a fraction of the top set"
    )
    is_deload: bool = False
    week_in_block: Optional[int] = Field(None, ge=1)


# ============================================================================
# Prescribed Workout
# ============================================================================


class RepRange(BaseModel):
    """Inclusive rep range."""

    min: int = Field(..., ge=1)
    max: int = Field(..., ge=1)


class WorkoutSet(BaseModel):
    """A single prescribed set."""

    set_index: int = Field(..., ge=1)
    target_reps: int = Field(..., ge=1)
    target_rep_range: Optional[RepRange] = None
    role: ExerciseRole = ExerciseRole.MAIN
    target_rpe: Optional[float] = None
    target_load: Optional[float] = Field(None, ge=0)
    rest_seconds: Optional[int] = Field(None, ge=0)


class WorkoutExercise(BaseModel):
    """An exercise placed in a session with its prescribed sets."""

    id: str
    exercise: Exercise
    order_index: int = Field(..., ge=0)
    is_main_lift: bool = False
    role: ExerciseRole = ExerciseRole.ACCESSORY
    notes: Optional[str] = None
    sets: List[WorkoutSet] = Field(default_factory=list)
    warmup_sets: List[WorkoutSet] = Field(default_factory=list)


class PlanDecision(BaseModel):
    """
    Documents a specific decision made during workout generation.

    Used for the reasoning trace to explain why certain choices were made.
    """

    decision_point: str = Field(
        ..., min_length=5, description="The decision that was made"
    )
    input_factors: List[str] = Field(
        ..., min_length=1, description="Factors that influenced this decision"
    )
    reasoning: str = Field(
        ..., min_length=20, description="Explanation of why this decision was made"
    )
    outcome: str = Field(
        ..., min_length=5, description="The resulting choice or action taken"
    )


class SraWarning(BaseModel):
    """Advisory notice that a targeted muscle has not fully recovered."""

    muscle: str
    recovery_percent: int = Field(..., ge=0, le=100)
    hours_since_trained: float = Field(..., ge=0)
    sra_hours: int = Field(..., gt=0)


class MuscleRecovery(BaseModel):
    """Recovery status of one muscle."""

    muscle: str
    hours_since_trained: Optional[float] = None
    sra_hours: int = Field(..., gt=0)
    recovery_percent: int = Field(..., ge=0, le=100)
    is_recovered: bool


# ============================================================================
# Exercise Selection
# ============================================================================


class ExerciseRationale(BaseModel):
    """Why a selected exercise was chosen."""

    score: float
    components: Dict[str, float] = Field(default_factory=dict)
    hard_filter_pass: bool = True
    selected_step: SelectionStep


class MuscleVolumePlan(BaseModel):
    """Weekly volume picture for one muscle after selection."""

    weekly_target: float = Field(..., ge=0)
    weekly_direct_sets: float = Field(0.0, ge=0)
    weekly_indirect_sets: float = Field(0.0, ge=0)
    planned_direct_sets: float = Field(0.0, ge=0)
    planned_indirect_sets: float = Field(0.0, ge=0)
    projected_effective_sets: float = Field(0.0, ge=0)
    mrv: Optional[int] = None


class CandidateRanking(BaseModel):
    """Scored candidate, as exposed for calibration and explainability."""

    exercise_id: str
    name: str
    score: float
    fatigue_cost: int
    components: Dict[str, float] = Field(default_factory=dict)


class SelectionInput(BaseModel):
    """Everything the selector needs for one session."""

    mode: SelectionMode = SelectionMode.INTENT
    intent: SessionIntent
    target_muscles: List[str] = Field(
        default_factory=list, description="Muscles for body-part sessions"
    )
    pinned_exercise_ids: List[str] = Field(default_factory=list)
    template_exercise_ids: List[str] = Field(default_factory=list)
    week_in_block: int = Field(1, ge=1, description="1-based week in the training block")
    mesocycle_length: int = Field(4, ge=1, description="Weeks in the block, deload included")
    session_minutes: int = Field(60, ge=0)
    training_age: TrainingAge = TrainingAge.INTERMEDIATE
    goals: Goals
    available_equipment: List[EquipmentType] = Field(default_factory=list)
    cold_start_stage: int = Field(
        2, ge=0, le=2, description="0 = starter session, 1 = accessories only, 2 = full"
    )
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    fatigue_state: FatigueState = Field(default_factory=FatigueState)
    history: List[WorkoutHistoryEntry] = Field(default_factory=list)
    exercise_library: List[Exercise] = Field(default_factory=list)
    reference_time: Optional[datetime] = Field(
        None, description="'Now' for recency windows; defaults to the latest history date"
    )
    random_seed: Optional[int] = Field(
        None, description="Varies ordering among exactly tied candidates"
    )

    @field_validator("week_in_block", mode="before")
    @classmethod
    def clamp_week(cls, v):
        """Weeks before the first clamp to week 1."""
        if isinstance(v, int) and v < 1:
            return 1
        return v


class SelectionOutput(BaseModel):
    """Selector result; the sole contract with the explainability layer."""

    selected_exercise_ids: List[str] = Field(default_factory=list)
    main_lift_ids: List[str] = Field(default_factory=list)
    accessory_ids: List[str] = Field(default_factory=list)
    per_exercise_set_targets: Dict[str, int] = Field(default_factory=dict)
    volume_plan_by_muscle: Dict[str, MuscleVolumePlan] = Field(default_factory=dict)
    rationale: Dict[str, ExerciseRationale] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_partition(self):
        """Main and accessory ids must partition the selection."""
        if sorted(self.main_lift_ids + self.accessory_ids) != sorted(self.selected_exercise_ids):
            raise ValueError("main_lift_ids and accessory_ids must partition selected_exercise_ids")
        return self


# ============================================================================
# Workout Plan
# ============================================================================


# ============================================================================
# Readiness Adjustments
# ============================================================================


class FatigueScore(BaseModel):
    """
    Continuous readiness score built from a check-in and recent performance.

    0 is exhausted, 1 is completely fresh. Weights and per-source
    contributions are kept so the score can be explained.
    """

    overall: float = Field(..., ge=0.0, le=1.0)
    per_muscle: Dict[str, float] = Field(default_factory=dict)
    weights: Dict[str, float] = Field(default_factory=dict)
    components: Dict[str, float] = Field(default_factory=dict)


class AutoregulationModification(BaseModel):
    """One change autoregulation made to a prescribed exercise."""

    action: AutoregulationAction
    exercise_id: str
    original_load: Optional[float] = None
    adjusted_load: Optional[float] = None
    original_rpe: Optional[float] = None
    adjusted_rpe: Optional[float] = None
    original_set_count: Optional[int] = None
    adjusted_set_count: Optional[int] = None
    reason: str


class StallState(BaseModel):
    """How long a lift has gone without a best-set PR."""

    exercise_id: str
    exercise_name: str
    sessions_without_pr: int = Field(..., ge=0)
    weeks_without_progress: float = Field(..., ge=0.0)
    level: InterventionLevel


class InterventionSuggestion(BaseModel):
    """What to do about a stalled lift, and what was applied to this session."""

    exercise_id: str
    exercise_name: str
    level: InterventionLevel
    action: str
    rationale: str
    substitute_ids: List[str] = Field(
        default_factory=list, description="Swap candidates for the variation step"
    )


class WorkoutPlan(BaseModel):
    """
    A single generated session.

    Contains warm-up, main-lift and accessory blocks plus the estimated
    duration, advisory warnings and the decision log.
    """

    id: str = Field(..., min_length=1)
    scheduled_date: datetime
    session_intent: SessionIntent
    week_in_block: int = Field(..., ge=1)
    warmup: List[WorkoutExercise] = Field(default_factory=list)
    main_lifts: List[WorkoutExercise] = Field(default_factory=list)
    accessories: List[WorkoutExercise] = Field(default_factory=list)
    estimated_minutes: int = Field(..., ge=0)
    notes: Optional[str] = None
    sra_warnings: List[SraWarning] = Field(default_factory=list)
    decisions: List[PlanDecision] = Field(
        default_factory=list,
        description="Key decisions made during generation (for reasoning trace)",
    )
    fatigue_score: Optional[FatigueScore] = None
    autoregulation: List[AutoregulationModification] = Field(default_factory=list)
    interventions: List[InterventionSuggestion] = Field(default_factory=list)
    selection: Optional[SelectionOutput] = None

    def all_exercises(self) -> List[WorkoutExercise]:
        """Warm-up, main lifts and accessories in session order."""
        return [*self.warmup, *self.main_lifts, *self.accessories]

    def exercise_ids(self) -> List[str]:
        return [entry.exercise.id for entry in self.all_exercises()]

    def total_working_sets(self) -> int:
        return sum(len(entry.sets) for entry in [*self.main_lifts, *self.accessories])


class SubstituteSuggestion(BaseModel):
    """Replacement candidate for an exercise."""

    exercise: Exercise
    score: float
