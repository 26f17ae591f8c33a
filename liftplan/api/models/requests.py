"""
API Request Models

Pydantic models for API request validation.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from liftplan.engine import GenerationOptions
from liftplan.plan_schemas import SelectionInput, SelectionPhase
from liftplan.schemas import (
    Constraints,
    EquipmentType,
    Exercise,
    Goals,
    ProgressionRule,
    UserProfile,
    WorkoutHistoryEntry,
)


class WorkoutRequest(BaseModel):
    """Request model for workout generation."""

    profile: UserProfile = Field(..., description="Lifter profile")
    goals: Goals = Field(..., description="Training goals")
    constraints: Constraints = Field(default_factory=Constraints)
    history: List[WorkoutHistoryEntry] = Field(default_factory=list)
    exercise_library: List[Exercise] = Field(..., description="Exercise library")
    progression_rule: Optional[ProgressionRule] = None
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    include_trace: bool = Field(False, description="Attach a Markdown trace to the response")


class SelectionRequest(BaseModel):
    """Request model for exercise selection."""

    selection_input: SelectionInput = Field(..., description="Selector input")
    include_ranking: bool = Field(False, description="Also return the scored candidate list")
    ranking_phase: SelectionPhase = Field(SelectionPhase.ACCESSORY)


class SubstitutesRequest(BaseModel):
    """Request model for substitute suggestions."""

    exercise_id: str = Field(..., description="Exercise to replace")
    exercise_library: List[Exercise] = Field(..., description="Exercise library")
    available_equipment: List[EquipmentType] = Field(default_factory=list)
    pain_flags: Dict[str, int] = Field(default_factory=dict)
