"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  SERVICE DE DISTRIBUTION DES LEADS                                           ║
║                                                                              ║
║  - Attribution manuelle par admin (toujours disponible)                      ║
║  - Distribution manuelle par lot: chaque lead indépendant, rapport n/N       ║
║  - Distribution automatique round-robin sur le roster actif                  ║
║    (priority ASC puis ordre d'insertion)                                     ║
║                                                                              ║
║  Le pas "choisir le suivant + avancer last_assigned_vendedor_id" est un      ║
║  compare-and-set sur config.version (3 tentatives max).                      ║
║  Roster vide / tout inactif / config désactivée: lead non attribué, pas      ║
║  d'erreur.                                                                   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from typing import Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from pipeline_crm.config import get_db, now_iso
from pipeline_crm.models.distribution import DistributionMode
from pipeline_crm.services.activity_logger import log_activity
from pipeline_crm.services.errors import (
    DistributionConflictError,
    LeadValidationError,
    NotFoundError,
    PersistenceError,
    PipelineError,
)
from pipeline_crm.services.provisioning import eligible_vendedor_ids, get_active_vendedor

logger = logging.getLogger("lead_distribution")

CONFIG_ID = "default"
MAX_CAS_ATTEMPTS = 3

DEFAULT_CONFIG = {
    "enabled": False,
    "distribution_mode": DistributionMode.ROUND_ROBIN.value,
    "last_assigned_vendedor_id": None,
    "version": 0,
}


# ==================== CONFIG (singleton) ====================

async def ensure_distribution_config() -> Dict:
    """Crée le document config s'il n'existe pas encore."""
    db = get_db()
    now = now_iso()
    await db.lead_distribution_config.update_one(
        {"id": CONFIG_ID},
        {"$setOnInsert": {**DEFAULT_CONFIG, "id": CONFIG_ID, "created_at": now, "updated_at": now}},
        upsert=True
    )
    return await db.lead_distribution_config.find_one({"id": CONFIG_ID}, {"_id": 0})


async def get_distribution_config() -> Dict:
    config = await get_db().lead_distribution_config.find_one({"id": CONFIG_ID}, {"_id": 0})
    if not config:
        return {**DEFAULT_CONFIG, "id": CONFIG_ID}
    return config


async def _compare_and_set(expected_version: int, updates: Dict) -> Optional[Dict]:
    """Update gardé par version. None si un autre écrivain est passé avant."""
    db = get_db()
    result = await db.lead_distribution_config.update_one(
        {"id": CONFIG_ID, "version": expected_version},
        {"$set": {**updates, "updated_at": now_iso()}, "$inc": {"version": 1}}
    )
    if result.modified_count != 1:
        return None
    return await db.lead_distribution_config.find_one({"id": CONFIG_ID}, {"_id": 0})


async def update_distribution_config(
    enabled: Optional[bool] = None,
    distribution_mode: Optional[str] = None,
    user: Optional[Dict] = None
) -> Dict:
    """
    Set idempotent de enabled / distribution_mode.
    Aucun effet rétroactif: seuls les prochains leads sont distribués.
    """
    updates = {}
    if enabled is not None:
        updates["enabled"] = enabled
    if distribution_mode is not None:
        mode = DistributionMode(distribution_mode).value
        updates["distribution_mode"] = mode

    config = await ensure_distribution_config()
    if not updates:
        return config

    for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
        if all(config.get(k) == v for k, v in updates.items()):
            return config

        updated = await _compare_and_set(config["version"], updates)
        if updated:
            logger.info(f"[DISTRIBUTION] Config mise à jour: {updates}")
            await log_activity(
                user=user,
                action="update_config",
                entity_type="distribution",
                entity_id=CONFIG_ID,
                details=updates
            )
            return updated

        logger.warning(f"[DISTRIBUTION] Conflit config (tentative {attempt}/{MAX_CAS_ATTEMPTS})")
        config = await get_distribution_config()

    raise DistributionConflictError("Configuração alterada por outro usuário, tente novamente")


# ==================== ROSTER ====================

async def list_roster(active_only: bool = False) -> List[Dict]:
    query = {"active": True} if active_only else {}
    return await get_db().vendedor_distribution.find(query, {"_id": 0}) \
        .sort([("priority", 1), ("seq", 1)]) \
        .to_list(1000)


async def _next_seq() -> int:
    counter = await get_db().counters.find_one_and_update(
        {"id": "vendedor_distribution"},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return counter["seq"]


async def _get_member(member_id: str) -> Dict:
    member = await get_db().vendedor_distribution.find_one({"id": member_id}, {"_id": 0})
    if not member:
        raise NotFoundError("Vendedor não está na distribuição", {"member_id": member_id})
    return member


async def add_to_roster(vendedor_id: str, priority: int = 0, user: Optional[Dict] = None) -> Dict:
    await get_active_vendedor(vendedor_id)

    db = get_db()
    if await db.vendedor_distribution.find_one({"vendedor_id": vendedor_id}):
        raise LeadValidationError("Vendedor já está na distribuição", {"vendedor_id": vendedor_id})

    member = {
        "id": str(uuid.uuid4()),
        "vendedor_id": vendedor_id,
        "active": True,
        "priority": priority,
        "seq": await _next_seq(),
        "created_at": now_iso(),
    }
    await db.vendedor_distribution.insert_one(member)
    member.pop("_id", None)

    await log_activity(
        user=user,
        action="roster_add",
        entity_type="distribution",
        entity_id=member["id"],
        details={"vendedor_id": vendedor_id, "priority": priority}
    )
    return member


async def update_roster_member(
    member_id: str,
    active: Optional[bool] = None,
    priority: Optional[int] = None,
    user: Optional[Dict] = None
) -> Dict:
    await _get_member(member_id)

    updates = {}
    if active is not None:
        updates["active"] = active
    if priority is not None:
        updates["priority"] = priority

    if updates:
        await get_db().vendedor_distribution.update_one({"id": member_id}, {"$set": updates})
        await log_activity(
            user=user,
            action="roster_update",
            entity_type="distribution",
            entity_id=member_id,
            details=updates
        )

    return await _get_member(member_id)


async def remove_from_roster(member_id: str, user: Optional[Dict] = None) -> None:
    """Retire du roster. Les leads déjà distribués restent à leur vendedor."""
    member = await _get_member(member_id)
    await get_db().vendedor_distribution.delete_one({"id": member_id})

    await log_activity(
        user=user,
        action="roster_remove",
        entity_type="distribution",
        entity_id=member_id,
        details={"vendedor_id": member["vendedor_id"]}
    )


# ==================== ROUND-ROBIN ====================

def pick_next_vendedor(roster_ids: List[str], last_assigned: Optional[str]) -> Optional[str]:
    """
    Membre strictement après last_assigned dans l'ordre du roster, en bouclant.
    Premier membre si last_assigned est vide ou n'est plus dans le roster.
    """
    if not roster_ids:
        return None
    if last_assigned not in roster_ids:
        return roster_ids[0]
    return roster_ids[(roster_ids.index(last_assigned) + 1) % len(roster_ids)]


async def _claim_next_vendedor() -> Optional[str]:
    """
    Choisit le prochain vendedor et avance le pointeur de façon atomique.
    None si la distribution ne s'applique pas.
    """
    for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
        config = await get_distribution_config()
        if not config.get("enabled"):
            return None
        if config.get("distribution_mode") != DistributionMode.ROUND_ROBIN.value:
            logger.warning(f"[DISTRIBUTION] Mode non supporté: {config.get('distribution_mode')}")
            return None

        roster = await list_roster(active_only=True)
        roster_ids = await eligible_vendedor_ids([m["vendedor_id"] for m in roster])
        chosen = pick_next_vendedor(roster_ids, config.get("last_assigned_vendedor_id"))
        if chosen is None:
            logger.info("[DISTRIBUTION] Roster vide ou inactif, lead non attribué")
            return None

        if await _compare_and_set(config["version"], {"last_assigned_vendedor_id": chosen}):
            return chosen

        logger.warning(f"[DISTRIBUTION] Conflit round-robin (tentative {attempt}/{MAX_CAS_ATTEMPTS})")

    raise DistributionConflictError("Não foi possível distribuir o lead (conflito concorrente)")


async def auto_distribute_lead(lead_id: str) -> Optional[str]:
    """
    Distribution automatique d'un lead (nouveau lead ou déclenchement manuel).

    Returns: vendedor_id attribué, ou None (lead laissé non attribué)
    Raises: NotFoundError, DistributionConflictError, PersistenceError
    """
    db = get_db()
    if not await db.leads.find_one({"id": lead_id}, {"_id": 0, "id": 1}):
        raise NotFoundError("Lead não encontrado", {"lead_id": lead_id})

    try:
        vendedor_id = await _claim_next_vendedor()
    except PyMongoError as e:
        logger.error(f"[DISTRIBUTION] Lecture/écriture config: {e}")
        raise PersistenceError("Falha na distribuição automática") from e

    if vendedor_id is None:
        return None

    try:
        await db.leads.update_one(
            {"id": lead_id},
            {"$set": {"vendedor_id": vendedor_id, "updated_at": now_iso()}}
        )
    except PyMongoError as e:
        # Le pointeur a avancé mais le lead reste non attribué: reprise manuelle
        logger.error(f"[DISTRIBUTION] Attribution lead {lead_id} -> {vendedor_id}: {e}")
        raise PersistenceError("Falha ao atribuir lead") from e

    logger.info(f"[DISTRIBUTION] Lead {lead_id} -> vendedor {vendedor_id} (round_robin)")
    await log_activity(
        user=None,
        action="auto_assign",
        entity_type="lead",
        entity_id=lead_id,
        details={"vendedor_id": vendedor_id, "mode": DistributionMode.ROUND_ROBIN.value}
    )
    return vendedor_id


# ==================== ATTRIBUTION MANUELLE ====================

async def assign_vendedor(lead_id: str, vendedor_id: Optional[str], user: Optional[Dict] = None) -> Dict:
    """Attribue (ou retire si None) le vendedor d'un lead."""
    if vendedor_id is not None:
        await get_active_vendedor(vendedor_id)

    db = get_db()
    try:
        result = await db.leads.update_one(
            {"id": lead_id},
            {"$set": {"vendedor_id": vendedor_id, "updated_at": now_iso()}}
        )
    except PyMongoError as e:
        logger.error(f"[DISTRIBUTION] assign {lead_id} -> {vendedor_id}: {e}")
        raise PersistenceError("Falha ao atribuir vendedor") from e

    if result.matched_count == 0:
        raise NotFoundError("Lead não encontrado", {"lead_id": lead_id})

    await log_activity(
        user=user,
        action="assign",
        entity_type="lead",
        entity_id=lead_id,
        details={"vendedor_id": vendedor_id}
    )
    return await db.leads.find_one({"id": lead_id}, {"_id": 0})


async def assign_leads_batch(lead_ids: List[str], vendedor_id: str, user: Optional[Dict] = None) -> Dict:
    """
    Distribution manuelle d'un lot. Best-effort: un échec n'annule pas les
    leads déjà attribués.

    Returns: {requested, assigned, failed: [{lead_id, error}]}
    """
    if not lead_ids:
        raise LeadValidationError("Escolha pelo menos um lead e um vendedor para distribuir.")
    await get_active_vendedor(vendedor_id)

    results = {"requested": len(lead_ids), "assigned": 0, "assigned_ids": [], "failed": []}

    for lead_id in lead_ids:
        try:
            await assign_vendedor(lead_id, vendedor_id, user)
        except PipelineError as e:
            logger.warning(f"[DISTRIBUTION] Lot: lead {lead_id} non attribué: {e.message}")
            results["failed"].append({"lead_id": lead_id, "error": e.message})
            continue
        results["assigned"] += 1
        results["assigned_ids"].append(lead_id)

    logger.info(
        f"[DISTRIBUTION] Lot -> {vendedor_id}: {results['assigned']}/{results['requested']} attribués"
    )
    return results
