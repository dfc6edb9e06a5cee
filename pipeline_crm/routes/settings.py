"""
Routes Settings (admin)
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Dict, List

from pipeline_crm.routes.auth import require_admin
from pipeline_crm.services.activity_logger import log_activity
from pipeline_crm.services.settings import get_lead_transitions, set_lead_transitions

router = APIRouter(prefix="/settings", tags=["Settings"])


class LeadTransitionsUpdate(BaseModel):
    transitions: Dict[str, List[str]]


@router.get("/lead-transitions")
async def get_transitions(user: dict = Depends(require_admin)):
    return {"transitions": await get_lead_transitions()}


@router.put("/lead-transitions")
async def put_transitions(data: LeadTransitionsUpdate, user: dict = Depends(require_admin)):
    doc = await set_lead_transitions(data.transitions, updated_by=user["email"])
    await log_activity(
        user=user,
        action="update",
        entity_type="settings",
        entity_id="lead_transitions",
        details={"transitions": doc["transitions"]}
    )
    return {"transitions": doc["transitions"]}
