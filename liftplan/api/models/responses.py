"""
API Response Models

Pydantic models for API responses.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from liftplan.plan_schemas import (
    CandidateRanking,
    SelectionOutput,
    SubstituteSuggestion,
    WorkoutPlan,
)


class WorkoutResponse(BaseModel):
    """Response for POST /api/workouts."""

    plan: WorkoutPlan = Field(..., description="Generated session")
    warnings: List[str] = Field(default_factory=list, description="Recovery warnings")
    trace_markdown: Optional[str] = Field(None, description="Markdown reasoning trace")


class SelectionResponse(BaseModel):
    """Response for POST /api/selection."""

    selection: SelectionOutput = Field(..., description="Selected exercises and rationale")
    ranking: List[CandidateRanking] = Field(default_factory=list)


class SubstitutesResponse(BaseModel):
    """Response for POST /api/substitutes."""

    exercise_id: str
    suggestions: List[SubstituteSuggestion] = Field(default_factory=list)
    count: int = Field(..., description="Number of suggestions")
