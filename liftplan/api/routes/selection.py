"""
Selection API Routes

Endpoint for running the exercise selector on its own.
"""

from fastapi import APIRouter, Depends, HTTPException

from liftplan.api.dependencies import get_engine_config
from liftplan.api.models.requests import SelectionRequest
from liftplan.api.models.responses import SelectionResponse
from liftplan.config import EngineConfig
from liftplan.library import LibraryIntegrityError
from liftplan.selection import rank_candidates, select_exercises

router = APIRouter()


@router.post("/selection", response_model=SelectionResponse)
async def select(
    request: SelectionRequest, config: EngineConfig = Depends(get_engine_config)
) -> SelectionResponse:
    """
    Select exercises for one session, optionally with the candidate ranking.

    Raises:
        HTTPException: 422 for a corrupt library
    """
    try:
        selection = select_exercises(request.selection_input, config)
        ranking = (
            rank_candidates(request.selection_input, request.ranking_phase, config=config)
            if request.include_ranking
            else []
        )
    except LibraryIntegrityError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return SelectionResponse(selection=selection, ranking=ranking)
