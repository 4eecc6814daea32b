"""
Pydantic schemas for API requests and responses
"""

from typing import Optional
from pydantic import BaseModel, Field

from ..campaigns import Campaign, CampaignPhase


class LaunchCampaignRequest(BaseModel):
    goal: int = Field(..., description="Target amount in token base units")
    start_offset: int = Field(..., description="Seconds from now until the campaign opens")
    end_offset: int = Field(..., description="Seconds from now until the campaign closes")


class AmountRequest(BaseModel):
    amount: int = Field(..., description="Amount in token base units")


class CampaignModel(BaseModel):
    id: int
    creator: str
    goal: int
    pledged: int
    start_at: int
    end_at: int
    claimed: bool
    phase: Optional[str] = None

    @classmethod
    def from_campaign(cls, campaign: Campaign, phase: Optional[CampaignPhase] = None) -> 'CampaignModel':
        return cls(
            id=campaign.id,
            creator=campaign.creator,
            goal=campaign.goal,
            pledged=campaign.pledged,
            start_at=campaign.start_at,
            end_at=campaign.end_at,
            claimed=campaign.claimed,
            phase=phase.value if phase else None
        )
