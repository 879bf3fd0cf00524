"""
Turn endpoint: one player message in, narration and choices out.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from pokedm.engine.orchestrator import TurnResponse
from pokedm.errors import TurnError
from pokedm.services import Services, get_services
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

TURN_ERROR_STATUS = {
    "validation": 422,
    "external": 502,
    "storage": 500,
    "transient": 503,
}


class TurnRequest(BaseModel):
    """Request for one turn"""

    message: str = Field(..., min_length=1, description="Player input or quick-action command")
    session_id: Optional[str] = Field(None, description="Existing session; omit to start one")
    campaign_id: Optional[str] = Field(None, description="Campaign for a new session")
    character_ids: Optional[List[str]] = Field(None, description="Characters for a new session")


@router.post("/turn", response_model=TurnResponse)
async def process_turn(request: TurnRequest, services: Services = Depends(get_services)):
    """
    Process a turn.

    Raises:
        HTTPException: status by failure kind (422 validation, 502 generation
            service, 500 storage, 503 concurrent modification)
    """
    logger.info(f"Turn request for session {request.session_id or '(new)'}")
    try:
        return await services.orchestrator.process_turn(
            request.message,
            session_id=request.session_id,
            campaign_id=request.campaign_id,
            character_ids=request.character_ids,
        )
    except TurnError as e:
        logger.error(f"Turn failed ({e.kind}): {e.message}")
        raise HTTPException(status_code=TURN_ERROR_STATUS[e.kind], detail=e.to_dict())
