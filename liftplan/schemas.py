"""
Pydantic models for training input data.

This module defines the core data structures for:
- Exercise Library: Immutable reference records describing each exercise
- User Context: Profile, goals, constraints and preferences
- Training History: Logged sessions, sets and readiness signals
- Fatigue State: Readiness derived from check-ins and history
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================================
# Enumerations
# ============================================================================

class TrainingAge(str, Enum):
    """Lifting experience bucket."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class PrimaryGoal(str, Enum):
    """Main objective for the current training block."""
    HYPERTROPHY = "hypertrophy"
    STRENGTH = "strength"
    FAT_LOSS = "fat_loss"
    ATHLETICISM = "athleticism"
    GENERAL_HEALTH = "general_health"


class SecondaryGoal(str, Enum):
    """Optional secondary emphasis."""
    NONE = "none"
    STRENGTH = "strength"
    CONDITIONING = "conditioning"
    MOBILITY = "mobility"


class Aggressiveness(str, Enum):
    """How hard autoregulation leans on a moderately fatigued check-in."""
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"  # Cuts accessory volume instead of intensity


class SplitType(str, Enum):
    """Weekly split layout."""
    PPL = "ppl"
    UPPER_LOWER = "upper_lower"
    FULL_BODY = "full_body"
    CUSTOM = "custom"


class SessionIntent(str, Enum):
    """What a single session is meant to train (split day)."""
    PUSH = "push"
    PULL = "pull"
    LEGS = "legs"
    UPPER = "upper"
    LOWER = "lower"
    FULL_BODY = "full_body"
    BODY_PART = "body_part"


class SelectionMode(str, Enum):
    """How the exercise list for a session is produced."""
    INTENT = "intent"  # Scored from the whole library
    TEMPLATE = "template"  # Slot sizing taken from a fixed exercise list


class MovementPattern(str, Enum):
    """Movement pattern classification."""
    HORIZONTAL_PUSH = "horizontal_push"
    VERTICAL_PUSH = "vertical_push"
    HORIZONTAL_PULL = "horizontal_pull"
    VERTICAL_PULL = "vertical_pull"
    SQUAT = "squat"
    HINGE = "hinge"
    LUNGE = "lunge"
    CARRY = "carry"
    ROTATION = "rotation"
    ANTI_ROTATION = "anti_rotation"
    FLEXION = "flexion"
    EXTENSION = "extension"
    ABDUCTION = "abduction"
    ADDUCTION = "adduction"
    ISOLATION = "isolation"


class SplitTag(str, Enum):
    """Which split day an exercise belongs to."""
    PUSH = "push"
    PULL = "pull"
    LEGS = "legs"
    CORE = "core"
    MOBILITY = "mobility"
    PREHAB = "prehab"
    CONDITIONING = "conditioning"


class StimulusBias(str, Enum):
    """Dominant hypertrophy stimulus of an exercise."""
    MECHANICAL = "mechanical"
    METABOLIC = "metabolic"
    STRETCH = "stretch"
    STABILITY = "stability"


class JointStress(str, Enum):
    """Joint stress rating."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EquipmentType(str, Enum):
    """Equipment required by an exercise."""
    BARBELL = "barbell"
    DUMBBELL = "dumbbell"
    MACHINE = "machine"
    CABLE = "cable"
    BODYWEIGHT = "bodyweight"
    KETTLEBELL = "kettlebell"
    BAND = "band"
    SLED = "sled"
    BENCH = "bench"
    RACK = "rack"
    EZ_BAR = "ez_bar"
    TRAP_BAR = "trap_bar"
    OTHER = "other"


class WorkoutStatus(str, Enum):
    """Lifecycle status of a logged workout."""
    PLANNED = "planned"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class PolicyVersion(str, Enum):
    """Rule-set version for behaviour that changed between releases."""
    V1 = "v1"  # Plateau = non-increasing total reps
    V2 = "v2"  # Plateau = main-lift estimated 1RM stagnation


# ============================================================================
# Exercise Library
# ============================================================================


class Exercise(BaseModel):
    """
    Immutable exercise reference record.

    Legacy fields (``is_main_lift``) are folded into their current names at
    validation time so downstream code never has to fall back between them.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable exercise identifier")
    name: str = Field(..., min_length=1, description="Display name")
    movement_patterns: List[MovementPattern] = Field(default_factory=list)
    split_tags: List[SplitTag] = Field(default_factory=list)
    joint_stress: JointStress = Field(JointStress.MEDIUM)
    is_main_lift_eligible: bool = Field(
        False, description="Whether the exercise may fill a main-lift slot"
    )
    is_compound: bool = Field(False, description="Multi-joint movement")
    fatigue_cost: int = Field(3, ge=1, le=5, description="Systemic fatigue cost (1-5)")
    stimulus_bias: List[StimulusBias] = Field(default_factory=list)
    primary_muscles: List[str] = Field(default_factory=list)
    secondary_muscles: List[str] = Field(default_factory=list)
    equipment: List[EquipmentType] = Field(default_factory=list)
    rep_range_min: Optional[int] = Field(None, ge=1)
    rep_range_max: Optional[int] = Field(None, ge=1)
    sfr_score: int = Field(3, ge=1, le=5, description="Stimulus-to-fatigue ratio (1-5)")
    length_position_score: int = Field(
        3, ge=1, le=5, description="Lengthened-position loading (1-5)"
    )
    contraindications: Dict[str, Any] = Field(
        default_factory=dict, description="Body part -> contraindication flag"
    )
    time_per_set_sec: Optional[int] = Field(None, gt=0)

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_fields(cls, data: Any) -> Any:
        """Resolve legacy eligibility/compound flags once, at load time."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        legacy_main = data.pop("is_main_lift", None)
        if data.get("is_main_lift_eligible") is None:
            data["is_main_lift_eligible"] = bool(legacy_main)
        if data.get("is_compound") is None:
            data["is_compound"] = bool(data["is_main_lift_eligible"])
        if data.get("fatigue_cost") is None:
            data.pop("fatigue_cost", None)
        return data

    @model_validator(mode="after")
    def validate_rep_range(self):
        """Ensure the native rep range is ordered."""
        if (
            self.rep_range_min is not None
            and self.rep_range_max is not None
            and self.rep_range_min > self.rep_range_max
        ):
            raise ValueError(
                f"Exercise '{self.id}' has rep_range_min {self.rep_range_min} "
                f"greater than rep_range_max {self.rep_range_max}"
            )
        return self

    @property
    def rep_range(self) -> Optional[Dict[str, int]]:
        if self.rep_range_min is None or self.rep_range_max is None:
            return None
        return {"min": self.rep_range_min, "max": self.rep_range_max}

    @property
    def is_isolation(self) -> bool:
        return not self.is_compound


# ============================================================================
# User Context
# ============================================================================


class InjuryFlag(BaseModel):
    """A reported injury."""

    body_part: str
    severity: int = Field(..., ge=1, le=5)
    is_active: bool = True


class UserProfile(BaseModel):
    """Lifter profile."""

    id: str = Field(..., description="Unique user identifier")
    training_age: TrainingAge = Field(TrainingAge.INTERMEDIATE)
    weight_kg: Optional[float] = Field(None, gt=0)
    injuries: List[InjuryFlag] = Field(default_factory=list)


class Goals(BaseModel):
    """Primary and secondary training goals."""

    primary: PrimaryGoal
    secondary: SecondaryGoal = SecondaryGoal.NONE


class Constraints(BaseModel):
    """Scheduling and equipment constraints."""

    days_per_week: int = Field(3, ge=1, le=7)
    session_minutes: int = Field(
        60, ge=0, description="Session time budget; 0 disables time-boxing"
    )
    split_type: SplitType = SplitType.FULL_BODY
    available_equipment: List[EquipmentType] = Field(default_factory=list)


class RpeTarget(BaseModel):
    """User RPE preference for a rep band."""

    min: int = Field(..., ge=1)
    max: int = Field(..., ge=1)
    target_rpe: float = Field(..., ge=5.0, le=10.0)

    @model_validator(mode="after")
    def validate_band(self):
        if self.min > self.max:
            raise ValueError(f"RPE band min {self.min} exceeds max {self.max}")
        return self


class AutoregulationPolicy(BaseModel):
    """Which check-in adjustments the lifter allows."""

    aggressiveness: Aggressiveness = Aggressiveness.MODERATE
    allow_up_regulation: bool = True
    allow_down_regulation: bool = True


class UserPreferences(BaseModel):
    """Exercise likes, dislikes and effort preferences."""

    favorite_exercises: List[str] = Field(default_factory=list)
    avoid_exercises: List[str] = Field(default_factory=list)
    favorite_exercise_ids: List[str] = Field(default_factory=list)
    avoid_exercise_ids: List[str] = Field(default_factory=list)
    rpe_targets: List[RpeTarget] = Field(default_factory=list)
    optional_conditioning: bool = True
    autoregulation: AutoregulationPolicy = Field(default_factory=AutoregulationPolicy)


# ============================================================================
# Training History
# ============================================================================


class SetLog(BaseModel):
    """A single logged set."""

    set_index: int = Field(1, ge=1)
    reps: int = Field(..., ge=0)
    load: Optional[float] = Field(None, ge=0)
    rpe: Optional[float] = Field(None, ge=1.0, le=10.0)


class HistoryExercise(BaseModel):
    """An exercise as performed in a logged session."""

    exercise_id: str
    movement_patterns: List[MovementPattern] = Field(default_factory=list)
    primary_muscles: List[str] = Field(default_factory=list)
    sets: List[SetLog] = Field(default_factory=list)


def _validate_pain_flags(flags: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
    if flags is None:
        return flags
    for body_part, severity in flags.items():
        if not 0 <= severity <= 3:
            raise ValueError(
                f"Pain flag '{body_part}' must be between 0 and 3, got {severity}"
            )
    return flags


class WorkoutHistoryEntry(BaseModel):
    """One logged workout. History is append-only, read-only input."""

    date: datetime
    status: WorkoutStatus = WorkoutStatus.COMPLETED
    exercises: List[HistoryExercise] = Field(default_factory=list)
    readiness_score: Optional[int] = Field(None, ge=1, le=5)
    soreness_notes: Optional[str] = None
    pain_flags: Optional[Dict[str, int]] = None
    selection_mode: Optional[SelectionMode] = None
    session_intent: Optional[SessionIntent] = None
    forced_split: Optional[SessionIntent] = None
    advances_split: bool = True

    @field_validator("pain_flags")
    @classmethod
    def validate_pain_flags(cls, v: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
        """Ensure pain severities are on the 0-3 scale."""
        return _validate_pain_flags(v)

    @property
    def is_completed(self) -> bool:
        return self.status == WorkoutStatus.COMPLETED


class SessionCheckIn(BaseModel):
    """Pre-session readiness check-in."""

    date: datetime
    readiness: int = Field(..., ge=1, le=5)
    motivation: Optional[int] = Field(
        None, ge=1, le=5, description="1 = no motivation, 5 = eager; defaults to readiness"
    )
    soreness: Dict[str, int] = Field(
        default_factory=dict, description="Muscle -> soreness (1 none, 2 moderate, 3 very sore)"
    )
    pain_flags: Optional[Dict[str, int]] = None
    notes: Optional[str] = None

    @field_validator("pain_flags")
    @classmethod
    def validate_pain_flags(cls, v: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
        return _validate_pain_flags(v)

    @field_validator("soreness")
    @classmethod
    def validate_soreness(cls, v: Dict[str, int]) -> Dict[str, int]:
        for muscle, level in v.items():
            if not 1 <= level <= 3:
                raise ValueError(f"Soreness for {muscle} must be between 1 and 3, got {level}")
        return v


class FatigueState(BaseModel):
    """Readiness snapshot derived for a single generation call."""

    readiness_score: int = Field(3, ge=1, le=5)
    soreness_notes: Optional[str] = None
    missed_last_session: bool = False
    pain_flags: Dict[str, int] = Field(default_factory=dict)


class ProgressionRule(BaseModel):
    """Optional coach-supplied progression override."""

    name: str
    primary_goal: PrimaryGoal
    target_rpe: Optional[float] = Field(None, ge=5.0, le=10.0)
    max_load_increase_pct: float = Field(0.07, gt=0.0, le=0.25)


class Baseline(BaseModel):
    """Known working weights for an exercise, used to seed loads."""

    exercise_id: str
    context: Optional[str] = Field(None, description="'strength', 'volume' or 'default'")
    working_weight_min: Optional[float] = Field(None, ge=0)
    working_weight_max: Optional[float] = Field(None, ge=0)
    top_set_weight: Optional[float] = Field(None, ge=0)
