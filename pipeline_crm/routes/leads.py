"""
Routes pour les Leads (pipeline interne)

- vendedor: uniquement les leads qui lui sont attribués
- admin: tous les leads, attribution, suppression
Le statut ne change QUE via /transition.
"""

from fastapi import APIRouter, HTTPException, Depends
from typing import Optional
import logging

from pipeline_crm.config import get_db, now_iso
from pipeline_crm.models.lead import (
    LeadStatus,
    LeadTransition,
    LeadUpdate,
    ParcelaUpdate,
    SoldServicesReplace,
    TagsReplace,
    VendedorAssign,
)
from pipeline_crm.routes.auth import is_admin, require_admin, require_pipeline_user
from pipeline_crm.services.activity_logger import log_activity
from pipeline_crm.services.closers import ensure_assignable_closer
from pipeline_crm.services.lead_distribution import assign_vendedor, auto_distribute_lead
from pipeline_crm.services.lead_state_machine import (
    compute_action_window,
    mark_installment_paid,
    transition_lead,
)
from pipeline_crm.services.service_ledger import (
    LEDGERS,
    set_lead_sold_services,
    set_lead_tags,
    sold_services_for_lead,
    tags_for_lead,
)

router = APIRouter(tags=["Leads"])
logger = logging.getLogger("leads")


def present_lead(lead: dict) -> dict:
    """Ajoute la projection du délai de 48h (jamais stockée)."""
    lead["action_window"] = compute_action_window(lead)
    return lead


async def get_visible_lead(lead_id: str, user: dict) -> dict:
    lead = await get_db().leads.find_one({"id": lead_id}, {"_id": 0})
    if not lead:
        raise HTTPException(status_code=404, detail="Lead não encontrado")
    if not is_admin(user) and lead.get("vendedor_id") != user["id"]:
        raise HTTPException(status_code=403, detail="Lead atribuído a outro vendedor")
    return lead


# ==================== LECTURE ====================

@router.get("/leads")
async def list_leads(
    status: Optional[LeadStatus] = None,
    vendedor_id: str = None,
    unassigned: bool = False,
    limit: int = 500,
    user: dict = Depends(require_pipeline_user)
):
    """Liste les leads, plus récents d'abord"""
    query = {}
    if status:
        query["status"] = status.value

    if is_admin(user):
        if unassigned:
            query["vendedor_id"] = None
        elif vendedor_id:
            query["vendedor_id"] = vendedor_id
    else:
        query["vendedor_id"] = user["id"]

    db = get_db()
    leads = await db.leads.find(query, {"_id": 0}).sort("created_at", -1).to_list(min(limit, 1000))
    total = await db.leads.count_documents(query)

    return {"leads": [present_lead(l) for l in leads], "count": len(leads), "total": total}


@router.get("/leads/{lead_id}")
async def get_lead(lead_id: str, user: dict = Depends(require_pipeline_user)):
    return present_lead(await get_visible_lead(lead_id, user))


# ==================== ÉDITION ====================

@router.patch("/leads/{lead_id}")
async def update_lead(lead_id: str, data: LeadUpdate, user: dict = Depends(require_pipeline_user)):
    """Notes, coordonnées, closer. Le statut passe par /transition."""
    await get_visible_lead(lead_id, user)

    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("closer_id"):
        closer = await ensure_assignable_closer(update_data["closer_id"])
        if not is_admin(user) and closer["vendedor_id"] != user["id"]:
            raise HTTPException(status_code=403, detail="Closer pertence a outro vendedor")
    if update_data.get("data_pagamento"):
        update_data["data_pagamento"] = update_data["data_pagamento"].isoformat()

    if update_data:
        update_data["updated_at"] = now_iso()
        await get_db().leads.update_one({"id": lead_id}, {"$set": update_data})
        await log_activity(
            user=user,
            action="update",
            entity_type="lead",
            entity_id=lead_id,
            details={"fields": sorted(k for k in update_data if k != "updated_at")}
        )

    return present_lead(await get_visible_lead(lead_id, user))


@router.post("/leads/{lead_id}/transition")
async def post_transition(lead_id: str, data: LeadTransition, user: dict = Depends(require_pipeline_user)):
    await get_visible_lead(lead_id, user)
    return present_lead(await transition_lead(lead_id, data, user))


@router.patch("/leads/{lead_id}/parcelas/{numero}")
async def patch_parcela(lead_id: str, numero: int, data: ParcelaUpdate, user: dict = Depends(require_pipeline_user)):
    await get_visible_lead(lead_id, user)
    return present_lead(await mark_installment_paid(lead_id, numero, data.pago, user))


# ==================== SERVICES DU LEAD ====================

@router.get("/leads/{lead_id}/tags")
async def get_tags(lead_id: str, user: dict = Depends(require_pipeline_user)):
    await get_visible_lead(lead_id, user)
    return {"tags": await tags_for_lead(lead_id)}


@router.put("/leads/{lead_id}/tags")
async def put_tags(lead_id: str, data: TagsReplace, user: dict = Depends(require_pipeline_user)):
    await get_visible_lead(lead_id, user)
    tags = await set_lead_tags(lead_id, data.service_ids)
    await log_activity(
        user=user,
        action="replace_tags",
        entity_type="lead",
        entity_id=lead_id,
        details={"service_ids": [t["service_id"] for t in tags]}
    )
    return {"tags": tags}


@router.get("/leads/{lead_id}/servicos-vendidos")
async def get_sold_services(lead_id: str, user: dict = Depends(require_pipeline_user)):
    await get_visible_lead(lead_id, user)
    return {"servicos": await sold_services_for_lead(lead_id)}


@router.put("/leads/{lead_id}/servicos-vendidos")
async def put_sold_services(lead_id: str, data: SoldServicesReplace, user: dict = Depends(require_pipeline_user)):
    await get_visible_lead(lead_id, user)
    servicos = await set_lead_sold_services(lead_id, [e.model_dump() for e in data.servicos])
    await log_activity(
        user=user,
        action="replace_servicos_vendidos",
        entity_type="lead",
        entity_id=lead_id,
        details={"service_ids": [s["service_id"] for s in servicos]}
    )
    return {"servicos": servicos}


# ==================== ATTRIBUTION (admin) ====================

@router.put("/leads/{lead_id}/vendedor")
async def put_vendedor(lead_id: str, data: VendedorAssign, user: dict = Depends(require_admin)):
    return present_lead(await assign_vendedor(lead_id, data.vendedor_id, user))


@router.post("/leads/{lead_id}/auto-assign")
async def post_auto_assign(lead_id: str, user: dict = Depends(require_admin)):
    vendedor_id = await auto_distribute_lead(lead_id)
    return {"success": vendedor_id is not None, "vendedor_id": vendedor_id}


# ==================== SUPPRESSION (admin) ====================

@router.delete("/leads/{lead_id}")
async def archive_lead(lead_id: str, user: dict = Depends(require_admin)):
    """Archive le lead puis le supprime, avec ses tags et services vendus"""
    db = get_db()
    lead = await db.leads.find_one({"id": lead_id}, {"_id": 0})
    if not lead:
        raise HTTPException(status_code=404, detail="Lead não encontrado")

    lead["archived_at"] = now_iso()
    lead["archived_by"] = user["id"]
    await db.leads_archived.insert_one(lead)

    await db.leads.delete_one({"id": lead_id})
    for ledger in LEDGERS.values():
        await db[ledger["collection"]].delete_many({"lead_id": lead_id})

    await log_activity(
        user=user,
        action="delete",
        entity_type="lead",
        entity_id=lead_id,
        entity_name=lead.get("nome_completo")
    )
    logger.info(f"[LEADS] Lead {lead_id} archivé par {user['email']}")

    return {"success": True}
