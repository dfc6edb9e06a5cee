"""
Pipeline CRM - Comptes et rôles

- Rôles: collection user_roles (user_id, role), séparée du compte (users)
- Création d'un vendedor réservée aux admins (vérifié ICI, côté serveur)
- Si l'attribution du rôle échoue, le compte créé est supprimé:
  jamais de compte sans rôle
"""

import logging
import uuid
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from pipeline_crm.config import get_db, hash_password, is_valid_email_format, now_iso
from pipeline_crm.models.auth import Role
from pipeline_crm.services.activity_logger import log_activity
from pipeline_crm.services.errors import (
    AuthorizationError,
    LeadValidationError,
    NotFoundError,
    PersistenceError,
    ProvisioningError,
)

logger = logging.getLogger("provisioning")


# ==================== ROLES ====================

async def get_user_roles(user_id: str) -> List[str]:
    docs = await get_db().user_roles.find({"user_id": user_id}, {"_id": 0, "role": 1}).to_list(10)
    return [d["role"] for d in docs]


async def has_role(user_id: str, role: str) -> bool:
    return await get_db().user_roles.find_one({"user_id": user_id, "role": role}) is not None


async def grant_role(user_id: str, role: str) -> None:
    await get_db().user_roles.insert_one({
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "role": role,
        "created_at": now_iso(),
    })


async def get_active_vendedor(vendedor_id: str) -> Dict:
    """Compte actif ayant le rôle vendedor, sinon LeadValidationError."""
    user = await get_db().users.find_one({"id": vendedor_id}, {"_id": 0, "password": 0})
    if not user or not user.get("is_active", True) or not await has_role(vendedor_id, Role.VENDEDOR.value):
        raise LeadValidationError("Vendedor inválido ou inativo", {"vendedor_id": vendedor_id})
    return user


async def eligible_vendedor_ids(user_ids: List[str]) -> List[str]:
    """Filtre user_ids (ordre conservé): comptes actifs ayant encore le rôle vendedor."""
    db = get_db()
    roles = await db.user_roles.find(
        {"user_id": {"$in": user_ids}, "role": Role.VENDEDOR.value}, {"_id": 0, "user_id": 1}
    ).to_list(1000)
    users = await db.users.find(
        {"id": {"$in": [r["user_id"] for r in roles]}}, {"_id": 0, "id": 1, "is_active": 1}
    ).to_list(1000)
    active = {u["id"] for u in users if u.get("is_active", True)}
    return [uid for uid in user_ids if uid in active]


async def list_vendedores() -> List[Dict]:
    db = get_db()
    roles = await db.user_roles.find({"role": Role.VENDEDOR.value}, {"_id": 0}).to_list(1000)
    user_ids = [r["user_id"] for r in roles]
    users = await db.users.find({"id": {"$in": user_ids}}, {"_id": 0, "password": 0}).to_list(1000)
    user_map = {u["id"]: u for u in users}

    return [
        {
            "user_id": r["user_id"],
            "email": user_map.get(r["user_id"], {}).get("email", ""),
            "nome": user_map.get(r["user_id"], {}).get("nome"),
            "is_active": user_map.get(r["user_id"], {}).get("is_active", True),
            "role": r["role"],
            "created_at": r.get("created_at") or now_iso(),
        }
        for r in roles
    ]


# ==================== PROVISIONING ====================

async def create_vendedor(email: str, password: str, nome: Optional[str], caller: Dict) -> Dict:
    """
    Crée un compte vendedor.

    1. caller doit être admin (vérifié en base)
    2. création du compte
    3. attribution du rôle vendedor -> si échec, suppression du compte
    """
    if not caller or not await has_role(caller.get("id", ""), Role.ADMIN.value):
        raise AuthorizationError("Apenas administradores podem criar vendedores")

    email = (email or "").strip().lower()
    if not is_valid_email_format(email):
        raise LeadValidationError("Email inválido")
    if not password or len(password) < 6:
        raise LeadValidationError("Senha deve ter pelo menos 6 caracteres")

    db = get_db()
    if await db.users.find_one({"email": email}):
        raise LeadValidationError(
            "Este e-mail já está cadastrado no sistema. Se o usuário não é vendedor, "
            "peça para ele fazer login e entre em contato com o administrador para atribuir a role."
        )

    new_user = {
        "id": str(uuid.uuid4()),
        "email": email,
        "password": hash_password(password),
        "nome": (nome or "").strip() or email,
        "is_active": True,
        "created_at": now_iso(),
        "created_by": caller.get("id"),
    }

    try:
        await db.users.insert_one(new_user)
    except PyMongoError as e:
        logger.error(f"[PROVISIONING] Création compte {email}: {e}")
        raise PersistenceError("Erro ao criar usuário") from e

    logger.info(f"[PROVISIONING] Compte créé: {email} ({new_user['id']})")

    try:
        await grant_role(new_user["id"], Role.VENDEDOR.value)
    except PyMongoError as e:
        logger.error(f"[PROVISIONING] Attribution rôle vendedor {new_user['id']}: {e}")
        await _rollback_account(new_user["id"])
        raise ProvisioningError("Erro ao atribuir role de vendedor") from e

    await log_activity(
        user=caller,
        action="create_vendedor",
        entity_type="user",
        entity_id=new_user["id"],
        entity_name=email
    )

    return {"success": True, "user_id": new_user["id"], "email": email}


async def _rollback_account(user_id: str) -> None:
    db = get_db()
    try:
        await db.user_roles.delete_many({"user_id": user_id})
        await db.users.delete_one({"id": user_id})
    except PyMongoError as e:
        logger.error(f"[PROVISIONING] ROLLBACK IMPOSSIBLE compte {user_id}: {e}")
        raise ProvisioningError("Erro ao atribuir role e ao remover conta criada") from e
    logger.warning(f"[PROVISIONING] Compte {user_id} supprimé (rollback)")


async def revoke_vendedor(user_id: str, caller: Dict) -> None:
    """Retire le rôle vendedor. Les leads déjà attribués ne bougent pas."""
    db = get_db()
    result = await db.user_roles.delete_many({"user_id": user_id, "role": Role.VENDEDOR.value})
    if result.deleted_count == 0:
        raise NotFoundError("Vendedor não encontrado", {"user_id": user_id})

    await db.sessions.delete_many({"user_id": user_id})
    # Plus aucun nouveau lead par round-robin
    await db.vendedor_distribution.delete_many({"vendedor_id": user_id})

    await log_activity(
        user=caller,
        action="revoke_vendedor",
        entity_type="user",
        entity_id=user_id
    )
