"""
Engine configuration.

Every lookup table the engine consults (volume landmarks, rep ranges, RPE
tables, scoring weights, rest times, thresholds) lives on one immutable
``EngineConfig``. The default instance is built once and shared; callers
that need different numbers load a JSON override with
``EngineConfig.from_file`` and pass it explicitly.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from liftplan.schemas import PolicyVersion, PrimaryGoal, SessionIntent, TrainingAge


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ============================================================================
# Volume Landmarks
# ============================================================================


class VolumeLandmark(FrozenModel):
    """Weekly set landmarks for one muscle."""

    mv: int = Field(..., ge=0, description="Maintenance volume")
    mev: int = Field(..., ge=0, description="Minimum effective volume")
    mav: int = Field(..., ge=0, description="Maximum adaptive volume")
    mrv: int = Field(..., ge=0, description="Maximum recoverable volume")
    sra_hours: int = Field(..., gt=0, description="Stimulus-recovery-adaptation window")

    @model_validator(mode="after")
    def validate_order(self):
        """MEV <= MAV <= MRV."""
        if not (self.mev <= self.mav <= self.mrv):
            raise ValueError(
                f"Landmarks must satisfy mev <= mav <= mrv, got "
                f"mev={self.mev}, mav={self.mav}, mrv={self.mrv}"
            )
        return self


def _lm(mv: int, mev: int, mav: int, mrv: int, sra_hours: int) -> VolumeLandmark:
    return VolumeLandmark(mv=mv, mev=mev, mav=mav, mrv=mrv, sra_hours=sra_hours)


DEFAULT_LANDMARKS: Dict[str, VolumeLandmark] = {
    "Chest": _lm(6, 10, 16, 22, 60),
    "Lats": _lm(6, 8, 16, 24, 60),
    "Upper Back": _lm(6, 6, 14, 22, 48),
    "Front Delts": _lm(0, 0, 7, 14, 48),
    "Side Delts": _lm(6, 8, 19, 26, 36),
    "Rear Delts": _lm(6, 4, 12, 20, 36),
    "Quads": _lm(6, 8, 18, 26, 72),
    "Hamstrings": _lm(6, 6, 16, 24, 72),
    "Glutes": _lm(0, 0, 8, 16, 72),
    "Biceps": _lm(6, 8, 17, 26, 36),
    "Triceps": _lm(4, 6, 12, 20, 48),
    "Calves": _lm(6, 8, 14, 20, 36),
    "Core": _lm(0, 0, 12, 20, 36),
    "Lower Back": _lm(0, 0, 4, 10, 72),
    "Forearms": _lm(0, 0, 6, 12, 36),
    "Adductors": _lm(0, 0, 8, 16, 48),
    "Abductors": _lm(0, 0, 6, 12, 36),
    "Abs": _lm(0, 0, 10, 16, 36),
}

DEFAULT_SPLIT_MAP: Dict[str, str] = {
    "Chest": "push",
    "Front Delts": "push",
    "Side Delts": "push",
    "Triceps": "push",
    "Lats": "pull",
    "Upper Back": "pull",
    "Rear Delts": "pull",
    "Biceps": "pull",
    "Forearms": "pull",
    "Quads": "legs",
    "Hamstrings": "legs",
    "Glutes": "legs",
    "Calves": "legs",
    "Adductors": "legs",
    "Abductors": "legs",
    "Core": "legs",
    "Abs": "legs",
    "Lower Back": "legs",
}


# ============================================================================
# Prescription Tables
# ============================================================================


class GoalRepRanges(FrozenModel):
    """Main-lift and accessory rep ranges for a goal."""

    main: Tuple[int, int]
    accessory: Tuple[int, int]


class RpeOffsets(FrozenModel):
    """Training-age RPE offsets across block progress."""

    early: float
    middle: float
    late: float


class DeloadModifiers(FrozenModel):
    rpe_offset: float = -2.0
    set_multiplier: float = 0.5
    back_off_multiplier: float = 0.75


class RestSeconds(FrozenModel):
    """Rest between sets, by role and fatigue cost."""

    main_high_fatigue: int = 180
    main: int = 150
    compound_accessory: int = 120
    accessory_high_fatigue: int = 90
    accessory: int = 60
    warmup: int = 45


class WarmupStep(FrozenModel):
    percent: float = Field(..., gt=0.0, lt=1.0)
    reps: int = Field(..., ge=1)
    rest_seconds: int = Field(..., ge=0)


class DeloadThresholds(FrozenModel):
    low_readiness_score: int = 2
    consecutive_low_readiness: int = 4
    plateau_sessions: int = 5


class AutoregulationThresholds(FrozenModel):
    """Fatigue-score cut-offs and the adjustments each one triggers."""

    deload_below: float = Field(0.3, ge=0.0, le=1.0)
    scale_down_below: float = Field(0.5, ge=0.0, le=1.0)
    scale_up_above: float = Field(0.85, ge=0.0, le=1.0)
    scale_down_factor: float = 0.9
    scale_up_factor: float = 1.05
    deload_intensity_factor: float = 0.6
    deload_volume_factor: float = 0.5
    deload_rpe: float = 6.0
    max_sets_to_drop: int = 2
    performance_sessions: int = 3


class StallLadder(FrozenModel):
    """Weeks without a best-set PR before each intervention applies."""

    microload_weeks: float = 2.0
    deload_weeks: float = 3.0
    variation_weeks: float = 5.0
    volume_reset_weeks: float = 8.0
    sessions_per_week: int = Field(3, ge=1)
    deload_load_factor: float = 0.9
    min_sessions: int = 3


# ============================================================================
# Selection Tables
# ============================================================================


class ScoringWeights(FrozenModel):
    """Weights combining the candidate score components."""

    muscle_deficit: float = 3.0
    targetedness: float = 0.9
    sfr: float = 1.2
    lengthened: float = 0.8
    preference: float = 1.0
    movement_diversity: float = 0.9
    continuity: float = 1.1
    time_fit: float = 0.6
    recency_penalty: float = 1.2
    redundancy_penalty: float = 1.0
    fatigue_cost_penalty: float = 1.3


class AccessoryWeightRamp(FrozenModel):
    """End-of-fill weights; accessory picks interpolate toward these."""

    muscle_deficit: float = 2.0
    fatigue_cost_penalty: float = 2.0
    sfr: float = 1.8
    redundancy_penalty: float = 1.5


class SlotRange(FrozenModel):
    main: Tuple[int, int]
    accessory: Tuple[int, int]


DEFAULT_SLOT_RANGES: Dict[SessionIntent, SlotRange] = {
    SessionIntent.PUSH: SlotRange(main=(1, 2), accessory=(3, 5)),
    SessionIntent.PULL: SlotRange(main=(1, 2), accessory=(3, 5)),
    SessionIntent.LEGS: SlotRange(main=(1, 2), accessory=(3, 5)),
    SessionIntent.UPPER: SlotRange(main=(1, 2), accessory=(4, 6)),
    SessionIntent.LOWER: SlotRange(main=(1, 2), accessory=(3, 5)),
    SessionIntent.FULL_BODY: SlotRange(main=(1, 2), accessory=(4, 6)),
    SessionIntent.BODY_PART: SlotRange(main=(0, 2), accessory=(4, 6)),
}

DEFAULT_CRITICAL_MUSCLES: Dict[SessionIntent, List[str]] = {
    SessionIntent.PUSH: ["Chest", "Front Delts", "Side Delts", "Triceps"],
    SessionIntent.PULL: ["Lats", "Upper Back", "Rear Delts", "Biceps", "Forearms"],
    SessionIntent.LEGS: [
        "Quads", "Hamstrings", "Glutes", "Calves", "Adductors", "Abductors", "Core", "Abs",
    ],
    SessionIntent.UPPER: [
        "Chest", "Front Delts", "Side Delts", "Triceps",
        "Lats", "Upper Back", "Rear Delts", "Biceps", "Forearms",
    ],
    SessionIntent.LOWER: [
        "Quads", "Hamstrings", "Glutes", "Calves", "Adductors", "Abductors", "Core", "Lower Back",
    ],
}


# ============================================================================
# Engine Configuration
# ============================================================================


class EngineConfig(FrozenModel):
    """
    Read-only lookup service injected into every engine call.

    Defaults reproduce the standard rule set; a JSON file may override any
    subset of fields.
    """

    policy_version: PolicyVersion = PolicyVersion.V1

    landmarks: Dict[str, VolumeLandmark] = Field(default_factory=lambda: dict(DEFAULT_LANDMARKS))
    split_map: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_SPLIT_MAP))
    fallback_target_volume: int = Field(6, ge=0)
    indirect_set_multiplier: float = Field(0.5, gt=0.0, lt=1.0)

    block_length: int = Field(4, ge=2, description="Weeks per block; the last is deload")
    rep_ranges: Dict[PrimaryGoal, GoalRepRanges] = Field(
        default_factory=lambda: {
            PrimaryGoal.HYPERTROPHY: GoalRepRanges(main=(6, 10), accessory=(10, 15)),
            PrimaryGoal.STRENGTH: GoalRepRanges(main=(3, 6), accessory=(6, 10)),
            PrimaryGoal.FAT_LOSS: GoalRepRanges(main=(6, 10), accessory=(12, 20)),
            PrimaryGoal.ATHLETICISM: GoalRepRanges(main=(4, 8), accessory=(8, 12)),
            PrimaryGoal.GENERAL_HEALTH: GoalRepRanges(main=(8, 12), accessory=(10, 15)),
        }
    )
    target_rpe: Dict[PrimaryGoal, float] = Field(
        default_factory=lambda: {
            PrimaryGoal.HYPERTROPHY: 7.5,
            PrimaryGoal.STRENGTH: 8.0,
            PrimaryGoal.FAT_LOSS: 7.5,
            PrimaryGoal.ATHLETICISM: 7.5,
            PrimaryGoal.GENERAL_HEALTH: 7.0,
        }
    )
    hypertrophy_rpe_by_age: Dict[TrainingAge, float] = Field(
        default_factory=lambda: {
            TrainingAge.BEGINNER: 7.0,
            TrainingAge.INTERMEDIATE: 8.0,
            TrainingAge.ADVANCED: 8.5,
        }
    )
    rpe_offsets_by_age: Dict[TrainingAge, RpeOffsets] = Field(
        default_factory=lambda: {
            TrainingAge.BEGINNER: RpeOffsets(early=-0.5, middle=0.0, late=0.5),
            TrainingAge.INTERMEDIATE: RpeOffsets(early=-1.0, middle=-0.5, late=0.5),
            TrainingAge.ADVANCED: RpeOffsets(early=-1.5, middle=-0.5, late=1.0),
        }
    )
    back_off_multipliers: Dict[PrimaryGoal, float] = Field(
        default_factory=lambda: {
            PrimaryGoal.HYPERTROPHY: 0.88,
            PrimaryGoal.STRENGTH: 0.90,
            PrimaryGoal.FAT_LOSS: 0.85,
            PrimaryGoal.ATHLETICISM: 0.85,
            PrimaryGoal.GENERAL_HEALTH: 0.85,
        }
    )
    default_back_off_multiplier: float = 0.85
    deload: DeloadModifiers = Field(default_factory=DeloadModifiers)
    deload_rpe_cap: float = 6.0
    age_set_modifiers: Dict[TrainingAge, float] = Field(
        default_factory=lambda: {
            TrainingAge.BEGINNER: 0.85,
            TrainingAge.INTERMEDIATE: 1.0,
            TrainingAge.ADVANCED: 1.15,
        }
    )
    fat_loss_set_multiplier: float = Field(0.75, gt=0.0, le=1.0)
    max_sets_by_age: Dict[TrainingAge, int] = Field(
        default_factory=lambda: {
            TrainingAge.BEGINNER: 4,
            TrainingAge.INTERMEDIATE: 5,
            TrainingAge.ADVANCED: 6,
        }
    )
    rest_seconds: RestSeconds = Field(default_factory=RestSeconds)
    warmup_ramp_beginner: List[WarmupStep] = Field(
        default_factory=lambda: [
            WarmupStep(percent=0.6, reps=8, rest_seconds=60),
            WarmupStep(percent=0.8, reps=3, rest_seconds=90),
        ]
    )
    warmup_ramp: List[WarmupStep] = Field(
        default_factory=lambda: [
            WarmupStep(percent=0.5, reps=8, rest_seconds=60),
            WarmupStep(percent=0.7, reps=5, rest_seconds=60),
            WarmupStep(percent=0.85, reps=3, rest_seconds=90),
        ]
    )
    deload_thresholds: DeloadThresholds = Field(default_factory=DeloadThresholds)
    autoregulation: AutoregulationThresholds = Field(default_factory=AutoregulationThresholds)
    stall_ladder: StallLadder = Field(default_factory=StallLadder)

    scoring_weights: ScoringWeights = Field(default_factory=ScoringWeights)
    accessory_weight_ramp: AccessoryWeightRamp = Field(default_factory=AccessoryWeightRamp)
    slot_ranges: Dict[SessionIntent, SlotRange] = Field(
        default_factory=lambda: dict(DEFAULT_SLOT_RANGES)
    )
    critical_muscles: Dict[SessionIntent, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_CRITICAL_MUSCLES.items()}
    )
    provisional_main_sets: int = 4
    provisional_accessory_sets: int = 3
    min_intent_exercises: int = 3
    pain_flag_threshold: int = Field(1, ge=1, le=3)
    time_reduction_guard: int = 120
    rebalance_guard: int = 60

    @model_validator(mode="after")
    def validate_split_map(self):
        """Every landmark muscle needs a push/pull/legs classification."""
        missing = sorted(set(self.landmarks) - set(self.split_map))
        if missing:
            raise ValueError(f"Muscles missing from split_map: {', '.join(missing)}")
        bad = sorted(m for m, s in self.split_map.items() if s not in ("push", "pull", "legs"))
        if bad:
            raise ValueError(f"split_map values must be push/pull/legs: {', '.join(bad)}")
        return self

    @classmethod
    def from_file(cls, config_path: Path) -> "EngineConfig":
        """
        Load configuration overrides from a JSON file.

        Args:
            config_path: Path to a JSON object whose keys are EngineConfig fields

        Returns:
            EngineConfig with defaults for any field the file omits

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the JSON is invalid or fails validation
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid config file: {e}") from e

        try:
            return cls(**data)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid config file: {e}") from e

    def canonical_muscle(self, muscle: str) -> str:
        """Map a muscle name onto its landmark spelling when one exists."""
        cleaned = muscle.strip()
        return _canonical_lookup(self).get(cleaned.lower(), cleaned)

    def landmark_for(self, muscle: str) -> Optional[VolumeLandmark]:
        return self.landmarks.get(self.canonical_muscle(muscle))


@lru_cache(maxsize=8)
def _canonical_lookup_cached(names: Tuple[str, ...]) -> Dict[str, str]:
    return {name.lower(): name for name in names}


def _canonical_lookup(config: EngineConfig) -> Dict[str, str]:
    return _canonical_lookup_cached(tuple(config.landmarks))


@lru_cache(maxsize=1)
def get_default_config() -> EngineConfig:
    """Return the shared default configuration (built once)."""
    return EngineConfig()


def resolve_config(config: Optional[EngineConfig]) -> EngineConfig:
    return config if config is not None else get_default_config()
