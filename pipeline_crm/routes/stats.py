"""
Routes Stats (dashboard)
"""

from fastapi import APIRouter, Depends

from pipeline_crm.config import get_db
from pipeline_crm.routes.auth import is_admin, require_admin, require_pipeline_user
from pipeline_crm.services.lead_stats import (
    daily_evolution,
    filter_by_period,
    summarize,
    vendedor_breakdown,
)
from pipeline_crm.services.provisioning import list_vendedores

router = APIRouter(prefix="/stats", tags=["Stats"])

LEAD_FIELDS = {"_id": 0, "id": 1, "status": 1, "valor_ganho": 1, "vendedor_id": 1, "closer_id": 1, "created_at": 1}


async def _load_leads(query: dict) -> list:
    return await get_db().leads.find(query, LEAD_FIELDS).to_list(100000)


@router.get("/overview")
async def get_overview(period: str = "30d", user: dict = Depends(require_pipeline_user)):
    """Totaux par statut + valeur gagnée. Un vendedor ne voit que ses leads."""
    query = {} if is_admin(user) else {"vendedor_id": user["id"]}
    leads = filter_by_period(await _load_leads(query), period)

    return {
        "period": period,
        **summarize(leads),
        "evolucao": daily_evolution(leads, 7 if period == "7d" else 30),
    }


@router.get("/vendedores")
async def get_vendedores_stats(period: str = "all", user: dict = Depends(require_admin)):
    leads = filter_by_period(await _load_leads({}), period)
    return {"period": period, "vendedores": vendedor_breakdown(leads, await list_vendedores())}
