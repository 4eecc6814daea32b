"""
Audit trail endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException

from .deps import CrowdfundSystem, get_system


router = APIRouter()


def _require_audit(system: CrowdfundSystem):
    if system.audit_trail is None:
        raise HTTPException(status_code=404, detail="Audit logging is disabled")
    return system.audit_trail


@router.get("/events")
def get_audit_events(
    campaign_id: Optional[int] = None,
    limit: Optional[int] = 50,
    system: CrowdfundSystem = Depends(get_system)
):
    """Get audit events, optionally for a single campaign"""
    audit_trail = _require_audit(system)
    if campaign_id is not None:
        events = audit_trail.get_events_for_entity("campaign", str(campaign_id), limit=limit)
    else:
        events = audit_trail.get_all_events(limit=limit)

    return {
        "events": [
            {
                "id": event.id,
                "sequence": event.sequence,
                "event_type": event.event_type.value,
                "entity_type": event.entity_type,
                "entity_id": event.entity_id,
                "user_id": event.user_id,
                "metadata": event.metadata,
                "created_at": event.created_at.isoformat()
            }
            for event in events
        ]
    }


@router.get("/verify")
def verify_audit_integrity(system: CrowdfundSystem = Depends(get_system)):
    """Verify the audit hash chain"""
    return _require_audit(system).verify_integrity()
