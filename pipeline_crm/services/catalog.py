"""
Pipeline CRM - Catalogue de services

CRUD des services vendables.
- Désactivation = masqué des sélecteurs, JAMAIS retiré de l'historique
- Suppression refusée tant qu'un tag ou une vente y fait référence
"""

import logging
import uuid
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from pipeline_crm.config import get_db, now_iso
from pipeline_crm.services.errors import (
    LeadValidationError,
    NotFoundError,
    PersistenceError,
    ReferentialError,
)

logger = logging.getLogger("catalog")


async def list_services(active_only: bool = False) -> List[Dict]:
    query = {"ativo": True} if active_only else {}
    return await get_db().services.find(query, {"_id": 0}).sort("nome", 1).to_list(1000)


async def get_service(service_id: str) -> Dict:
    service = await get_db().services.find_one({"id": service_id}, {"_id": 0})
    if not service:
        raise NotFoundError("Serviço não encontrado", {"service_id": service_id})
    return service


async def resolve_services(service_ids: List[str], active_only: bool = True) -> List[Dict]:
    """
    Retourne les services dans l'ordre de service_ids.
    Ids inconnus (ou inactifs si active_only) -> LeadValidationError.
    """
    unique_ids = list(dict.fromkeys(service_ids))
    docs = await get_db().services.find({"id": {"$in": unique_ids}}, {"_id": 0}).to_list(1000)
    by_id = {d["id"]: d for d in docs}

    missing = [sid for sid in unique_ids if sid not in by_id]
    if missing:
        raise LeadValidationError("Serviço não encontrado", {"service_ids": missing})

    if active_only:
        inactive = [sid for sid in unique_ids if not by_id[sid].get("ativo", True)]
        if inactive:
            raise LeadValidationError("Serviço inativo", {"service_ids": inactive})

    return [by_id[sid] for sid in unique_ids]


async def create_service(nome: str) -> Dict:
    now = now_iso()
    service = {
        "id": str(uuid.uuid4()),
        "nome": nome.strip(),
        "ativo": True,
        "created_at": now,
        "updated_at": now,
    }
    try:
        await get_db().services.insert_one(service)
    except PyMongoError as e:
        logger.error(f"[CATALOG] create_service: {e}")
        raise PersistenceError("Falha ao criar serviço") from e

    service.pop("_id", None)
    logger.info(f"[CATALOG] Service créé: {service['nome']} ({service['id']})")
    return service


async def update_service(service_id: str, nome: Optional[str] = None, ativo: Optional[bool] = None) -> Dict:
    await get_service(service_id)

    update_data = {"updated_at": now_iso()}
    if nome is not None:
        update_data["nome"] = nome.strip()
    if ativo is not None:
        update_data["ativo"] = ativo

    try:
        await get_db().services.update_one({"id": service_id}, {"$set": update_data})
    except PyMongoError as e:
        logger.error(f"[CATALOG] update_service {service_id}: {e}")
        raise PersistenceError("Falha ao atualizar serviço") from e

    return await get_service(service_id)


async def count_service_references(service_id: str) -> Dict[str, int]:
    db = get_db()
    return {
        "tags": await db.lead_service_tags.count_documents({"service_id": service_id}),
        "servicos_vendidos": await db.lead_servicos_vendidos.count_documents({"service_id": service_id}),
    }


async def delete_service(service_id: str) -> None:
    service = await get_service(service_id)

    refs = await count_service_references(service_id)
    if refs["tags"] or refs["servicos_vendidos"]:
        raise ReferentialError(
            "Serviço ainda referenciado por leads. Desative-o em vez de excluir.",
            {"service_id": service_id, **refs}
        )

    try:
        await get_db().services.delete_one({"id": service_id})
    except PyMongoError as e:
        logger.error(f"[CATALOG] delete_service {service_id}: {e}")
        raise PersistenceError("Falha ao excluir serviço") from e

    logger.info(f"[CATALOG] Service supprimé: {service['nome']} ({service_id})")
