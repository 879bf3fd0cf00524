"""
Campaign API endpoints
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from pokedm.services import Services, get_services
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


class CampaignCreateRequest(BaseModel):
    """Request to create a campaign together with its first session"""

    campaign: Dict[str, Any] = Field(
        default_factory=dict, description="Campaign fields (region, locations, ...)"
    )
    character_ids: List[str] = Field(default_factory=list)


@router.post("", status_code=201)
async def create_campaign(request: CampaignCreateRequest, services: Services = Depends(get_services)):
    return await services.campaigns.create(request.campaign, request.character_ids)


@router.get("")
async def list_campaigns(services: Services = Depends(get_services)):
    return await services.campaigns.list()


@router.get("/{campaign_id}")
async def get_campaign(campaign_id: str, services: Services = Depends(get_services)):
    campaign = await services.campaigns.get(campaign_id)
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


@router.patch("/{campaign_id}")
async def update_campaign(
    campaign_id: str, update: Dict[str, Any], services: Services = Depends(get_services)
):
    """Merge fields into the campaign of every session that shares it"""
    campaign = await services.campaigns.update(campaign_id, update)
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


@router.delete("/{campaign_id}")
async def delete_campaign(campaign_id: str, services: Services = Depends(get_services)):
    """Delete a campaign and all of its sessions"""
    deleted = await services.campaigns.delete(campaign_id)
    if deleted == 0:
        raise HTTPException(status_code=404, detail="Campaign not found")
    logger.info(f"Campaign {campaign_id} deleted via API ({deleted} sessions)")
    return {"deleted": True, "campaign_id": campaign_id, "sessions_deleted": deleted}
