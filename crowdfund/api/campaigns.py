"""
Campaign endpoints
"""

from fastapi import APIRouter, Depends, status

from .deps import CrowdfundSystem, get_system, get_caller
from .schemas import LaunchCampaignRequest, AmountRequest, CampaignModel


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def launch_campaign(
    request: LaunchCampaignRequest,
    caller: str = Depends(get_caller),
    system: CrowdfundSystem = Depends(get_system)
):
    """Launch a new campaign"""
    campaign_id = system.ledger.launch(
        goal=request.goal,
        start_offset=request.start_offset,
        end_offset=request.end_offset,
        caller=caller
    )
    campaign = system.ledger.get_campaign(campaign_id)

    return {
        "campaign_id": campaign_id,
        "start_at": campaign.start_at,
        "end_at": campaign.end_at,
        "message": "Campaign launched successfully"
    }


@router.get("")
def list_campaigns(system: CrowdfundSystem = Depends(get_system)):
    """List live campaigns and the total number ever launched"""
    now = system.ledger.clock.now()
    return {
        "count": system.ledger.campaign_count(),
        "campaigns": [
            CampaignModel.from_campaign(c, c.phase_at(now)).model_dump()
            for c in system.ledger.list_campaigns()
        ]
    }


@router.get("/{campaign_id}")
def get_campaign(campaign_id: int, system: CrowdfundSystem = Depends(get_system)):
    """Get campaign details"""
    campaign = system.ledger.get_campaign(campaign_id)
    phase = campaign.phase_at(system.ledger.clock.now())
    return CampaignModel.from_campaign(campaign, phase).model_dump()


@router.delete("/{campaign_id}")
def cancel_campaign(
    campaign_id: int,
    caller: str = Depends(get_caller),
    system: CrowdfundSystem = Depends(get_system)
):
    """Cancel a campaign that has not started"""
    system.ledger.cancel(campaign_id, caller)
    return {"campaign_id": campaign_id, "message": "Campaign cancelled"}


@router.post("/{campaign_id}/pledge")
def pledge(
    campaign_id: int,
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: CrowdfundSystem = Depends(get_system)
):
    """Pledge tokens to an active campaign"""
    system.ledger.pledge(campaign_id, request.amount, caller)
    return {
        "campaign_id": campaign_id,
        "backer": caller,
        "amount": system.ledger.pledged_amount(campaign_id, caller),
        "total_pledged": system.ledger.get_campaign(campaign_id).pledged
    }


@router.post("/{campaign_id}/unpledge")
def unpledge(
    campaign_id: int,
    request: AmountRequest,
    caller: str = Depends(get_caller),
    system: CrowdfundSystem = Depends(get_system)
):
    """Withdraw part of a pledge before the campaign ends"""
    system.ledger.unpledge(campaign_id, request.amount, caller)
    return {
        "campaign_id": campaign_id,
        "backer": caller,
        "amount": system.ledger.pledged_amount(campaign_id, caller),
        "total_pledged": system.ledger.get_campaign(campaign_id).pledged
    }


@router.post("/{campaign_id}/claim")
def claim(
    campaign_id: int,
    caller: str = Depends(get_caller),
    system: CrowdfundSystem = Depends(get_system)
):
    """Pay pledged funds to the creator of a successful campaign"""
    amount = system.ledger.claim(campaign_id, caller)
    return {"campaign_id": campaign_id, "amount": amount, "message": "Funds claimed"}


@router.post("/{campaign_id}/refund")
def refund(
    campaign_id: int,
    caller: str = Depends(get_caller),
    system: CrowdfundSystem = Depends(get_system)
):
    """Return the caller's pledge after a failed campaign"""
    amount = system.ledger.refund(campaign_id, caller)
    return {"campaign_id": campaign_id, "backer": caller, "amount": amount}


@router.get("/{campaign_id}/pledges/{backer}")
def get_pledge(campaign_id: int, backer: str, system: CrowdfundSystem = Depends(get_system)):
    """Get one backer's pledge to a campaign"""
    return {
        "campaign_id": campaign_id,
        "backer": backer,
        "amount": system.ledger.pledged_amount(campaign_id, backer)
    }


@router.get("/{campaign_id}/backers")
def get_backers(campaign_id: int, system: CrowdfundSystem = Depends(get_system)):
    """Get the pledge ledger of a campaign"""
    system.ledger.get_campaign(campaign_id)
    return {"campaign_id": campaign_id, "backers": system.ledger.get_backers(campaign_id)}
