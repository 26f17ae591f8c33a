"""
Periodization API Routes

Endpoint for week-level periodization modifiers.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from liftplan.api.dependencies import get_engine_config
from liftplan.config import EngineConfig
from liftplan.periodization import get_periodization_modifiers
from liftplan.plan_schemas import PeriodizationModifiers
from liftplan.schemas import PrimaryGoal, TrainingAge

router = APIRouter()


@router.get("/periodization/{week}", response_model=PeriodizationModifiers)
async def periodization(
    week: int,
    goal: PrimaryGoal = PrimaryGoal.HYPERTROPHY,
    training_age: Optional[TrainingAge] = None,
    config: EngineConfig = Depends(get_engine_config),
) -> PeriodizationModifiers:
    """
    Modifiers for a 1-indexed week of the block.

    Raises:
        HTTPException: 400 if week is below 1
    """
    if week < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="week must be 1 or greater",
        )
    return get_periodization_modifiers(week, goal, training_age, config)
