"""
Routes Publiques
Endpoint SANS authentification pour la landing page.
La réponse ne contient jamais le lead créé.
"""

from fastapi import APIRouter
import logging
import uuid

from pipeline_crm.config import get_db, now_iso
from pipeline_crm.models.lead import LeadPublicSubmit, LeadStatus
from pipeline_crm.services.errors import PipelineError
from pipeline_crm.services.lead_distribution import auto_distribute_lead

router = APIRouter(prefix="/public", tags=["Public"])
logger = logging.getLogger("public")


@router.post("/leads")
async def submit_lead(data: LeadPublicSubmit):
    """
    Soumission du formulaire public.

    1. Lead enregistré en novo_lead (données déjà normalisées par le modèle)
    2. Tentative de distribution automatique: un échec n'annule pas le lead
    """
    now = now_iso()
    lead_doc = {
        "id": str(uuid.uuid4()),
        "nome_completo": data.nome_completo,
        "telefone": data.telefone,
        "email": data.email,
        "cpf_cnpj": data.cpf_cnpj,
        "status": LeadStatus.NOVO_LEAD.value,
        "notas": None,
        "vendedor_id": None,
        "closer_id": None,
        "created_at": now,
        "updated_at": now,
    }
    await get_db().leads.insert_one(lead_doc)
    logger.info(f"[PUBLIC] Lead reçu {lead_doc['id']}")

    try:
        await auto_distribute_lead(lead_doc["id"])
    except PipelineError as e:
        logger.error(f"[PUBLIC] Distribution automatique échouée pour {lead_doc['id']}: {e.message}")

    return {"success": True}
