"""
Workout API Routes

Endpoint for single-session workout generation.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from liftplan.api.dependencies import get_engine_config
from liftplan.api.models.requests import WorkoutRequest
from liftplan.api.models.responses import WorkoutResponse
from liftplan.config import EngineConfig
from liftplan.engine import WorkoutGenerator
from liftplan.library import LibraryIntegrityError
from liftplan.trace import WorkoutTraceBuilder

router = APIRouter()


@router.post("/workouts", response_model=WorkoutResponse)
async def generate_workout(
    request: WorkoutRequest, config: EngineConfig = Depends(get_engine_config)
) -> WorkoutResponse:
    """
    Generate the next training session.

    Workflow:
    1. Normalize the exercise library (corrupt libraries are rejected)
    2. Generate the session with its decision log
    3. Surface recovery warnings and, on request, a Markdown trace

    Raises:
        HTTPException: 422 for a corrupt library, 500 if generation fails
    """
    try:
        generator = WorkoutGenerator(config)
        plan = generator.generate(
            request.profile,
            request.goals,
            request.constraints,
            request.history,
            request.exercise_library,
            progression_rule=request.progression_rule,
            options=request.options,
        )

        warnings = [
            f"{w.muscle} is {w.recovery_percent}% recovered ({w.hours_since_trained:g}h of {w.sra_hours}h)"
            for w in plan.sra_warnings
        ]
        trace = WorkoutTraceBuilder(plan).export_to_markdown() if request.include_trace else None
        return WorkoutResponse(plan=plan, warnings=warnings, trace_markdown=trace)

    except LibraryIntegrityError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Workout generation failed: {str(e)}",
        )
