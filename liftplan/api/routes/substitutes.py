"""
Substitutes API Routes

Endpoint for swap suggestions.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from liftplan.api.dependencies import get_engine_config
from liftplan.api.models.requests import SubstitutesRequest
from liftplan.api.models.responses import SubstitutesResponse
from liftplan.config import EngineConfig
from liftplan.library import LibraryIntegrityError, index_library, normalize_library
from liftplan.substitution import suggest_substitutes

router = APIRouter()


@router.post("/substitutes", response_model=SubstitutesResponse)
async def substitutes(
    request: SubstitutesRequest, config: EngineConfig = Depends(get_engine_config)
) -> SubstitutesResponse:
    """
    Suggest up to three replacements for an exercise.

    Raises:
        HTTPException: 404 if the exercise is not in the library, 422 for a
            corrupt library
    """
    try:
        library = normalize_library(request.exercise_library, config)
    except LibraryIntegrityError as e:
        raise HTTPException(status_code=422, detail=str(e))

    target = index_library(library).get(request.exercise_id)
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Exercise '{request.exercise_id}' not found in library",
        )

    suggestions = suggest_substitutes(
        target, library, request.available_equipment, request.pain_flags, config
    )
    return SubstitutesResponse(
        exercise_id=request.exercise_id,
        suggestions=suggestions,
        count=len(suggestions),
    )
