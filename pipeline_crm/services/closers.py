"""
Pipeline CRM - Closers

Un closer appartient à un vendedor.
- vendedor: ne voit et ne modifie que ses closers
- admin: tout, et peut créer un closer pour un vendedor
"""

import logging
import uuid
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from pipeline_crm.config import get_db, now_iso
from pipeline_crm.models.auth import Role
from pipeline_crm.services.activity_logger import log_activity
from pipeline_crm.services.errors import (
    AuthorizationError,
    LeadValidationError,
    NotFoundError,
    PersistenceError,
    ReferentialError,
)
from pipeline_crm.services.provisioning import get_active_vendedor

logger = logging.getLogger("closers")


def _is_admin(user: Dict) -> bool:
    return Role.ADMIN.value in (user.get("roles") or [])


async def get_closer(closer_id: str) -> Dict:
    closer = await get_db().closers.find_one({"id": closer_id}, {"_id": 0})
    if not closer:
        raise NotFoundError("Closer não encontrado", {"closer_id": closer_id})
    return closer


async def _get_owned_closer(closer_id: str, user: Dict) -> Dict:
    closer = await get_closer(closer_id)
    if not _is_admin(user) and closer["vendedor_id"] != user.get("id"):
        raise AuthorizationError("Closer pertence a outro vendedor")
    return closer


async def list_closers(user: Dict, vendedor_id: Optional[str] = None, active_only: bool = False) -> List[Dict]:
    query = {}
    if _is_admin(user):
        if vendedor_id:
            query["vendedor_id"] = vendedor_id
    else:
        query["vendedor_id"] = user.get("id")
    if active_only:
        query["ativo"] = True

    return await get_db().closers.find(query, {"_id": 0}).sort("nome", 1).to_list(1000)


async def create_closer(nome: str, user: Dict, vendedor_id: Optional[str] = None) -> Dict:
    if vendedor_id and vendedor_id != user.get("id"):
        if not _is_admin(user):
            raise AuthorizationError("Apenas administradores podem criar closers para outro vendedor")
        await get_active_vendedor(vendedor_id)
    owner_id = vendedor_id or user.get("id")

    closer = {
        "id": str(uuid.uuid4()),
        "vendedor_id": owner_id,
        "nome": nome.strip(),
        "ativo": True,
        "created_at": now_iso(),
    }
    try:
        await get_db().closers.insert_one(closer)
    except PyMongoError as e:
        logger.error(f"[CLOSERS] create {nome}: {e}")
        raise PersistenceError("Falha ao criar closer") from e

    closer.pop("_id", None)
    await log_activity(
        user=user,
        action="create",
        entity_type="closer",
        entity_id=closer["id"],
        entity_name=closer["nome"],
        details={"vendedor_id": owner_id}
    )
    return closer


async def update_closer(closer_id: str, user: Dict, nome: Optional[str] = None, ativo: Optional[bool] = None) -> Dict:
    await _get_owned_closer(closer_id, user)

    update_data = {}
    if nome is not None:
        if not nome.strip():
            raise LeadValidationError("Nome do closer obrigatório")
        update_data["nome"] = nome.strip()
    if ativo is not None:
        update_data["ativo"] = ativo

    if update_data:
        await get_db().closers.update_one({"id": closer_id}, {"$set": update_data})
    return await get_closer(closer_id)


async def delete_closer(closer_id: str, user: Dict) -> None:
    closer = await _get_owned_closer(closer_id, user)

    db = get_db()
    refs = await db.leads.count_documents({"closer_id": closer_id})
    if refs:
        raise ReferentialError(
            "Closer ainda vinculado a leads. Desative-o em vez de excluir.",
            {"closer_id": closer_id, "leads": refs}
        )

    await db.closers.delete_one({"id": closer_id})
    await log_activity(
        user=user,
        action="delete",
        entity_type="closer",
        entity_id=closer_id,
        entity_name=closer["nome"]
    )


async def ensure_assignable_closer(closer_id: str) -> Dict:
    """Un lead ne peut pointer que vers un closer existant et actif."""
    closer = await get_db().closers.find_one({"id": closer_id}, {"_id": 0})
    if not closer or not closer.get("ativo", True):
        raise LeadValidationError("Closer inválido ou inativo", {"closer_id": closer_id})
    return closer
