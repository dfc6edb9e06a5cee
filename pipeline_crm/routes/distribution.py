"""
Routes Distribution des leads (admin)
- attribution par lot
- configuration round-robin
- roster des vendedores
"""

from fastapi import APIRouter, Depends

from pipeline_crm.models.distribution import (
    BatchAssign,
    DistributionConfigUpdate,
    RosterMemberCreate,
    RosterMemberUpdate,
)
from pipeline_crm.routes.auth import require_admin
from pipeline_crm.services.lead_distribution import (
    add_to_roster,
    assign_leads_batch,
    ensure_distribution_config,
    list_roster,
    remove_from_roster,
    update_distribution_config,
    update_roster_member,
)

router = APIRouter(prefix="/distribution", tags=["Distribution"])


@router.post("/assign-batch")
async def post_assign_batch(data: BatchAssign, user: dict = Depends(require_admin)):
    """Rapport: {requested, assigned, failed: [{lead_id, error}]}"""
    return await assign_leads_batch(data.lead_ids, data.vendedor_id, user)


# ==================== CONFIG ====================

@router.get("/config")
async def get_config(user: dict = Depends(require_admin)):
    return await ensure_distribution_config()


@router.put("/config")
async def put_config(data: DistributionConfigUpdate, user: dict = Depends(require_admin)):
    mode = data.distribution_mode.value if data.distribution_mode else None
    return await update_distribution_config(data.enabled, mode, user)


# ==================== ROSTER ====================

@router.get("/roster")
async def get_roster(user: dict = Depends(require_admin)):
    roster = await list_roster()
    return {"roster": roster, "count": len(roster)}


@router.post("/roster")
async def post_roster_member(data: RosterMemberCreate, user: dict = Depends(require_admin)):
    return await add_to_roster(data.vendedor_id, data.priority, user)


@router.patch("/roster/{member_id}")
async def patch_roster_member(member_id: str, data: RosterMemberUpdate, user: dict = Depends(require_admin)):
    return await update_roster_member(member_id, data.active, data.priority, user)


@router.delete("/roster/{member_id}")
async def delete_roster_member(member_id: str, user: dict = Depends(require_admin)):
    await remove_from_roster(member_id, user)
    return {"success": True}
