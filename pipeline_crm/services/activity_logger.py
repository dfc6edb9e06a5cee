"""
Service de journalisation des activités
"""

import logging
import uuid

from pymongo.errors import PyMongoError

from pipeline_crm.config import get_db, now_iso

logger = logging.getLogger("activity_logger")


async def log_activity(
    user: dict,
    action: str,
    entity_type: str,
    entity_id: str = None,
    entity_name: str = None,
    details: dict = None,
):
    """
    Enregistre une activité dans le journal

    Actions: transition, assign, auto_assign, update, delete, create_vendedor, ...
    Entity types: lead, service, closer, distribution, user, settings
    """
    user = user or {}
    log_entry = {
        "id": str(uuid.uuid4()),
        "user_id": user.get("id", "system"),
        "user_email": user.get("email", "system"),
        "user_nome": user.get("nome", "Sistema"),
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "entity_name": entity_name,
        "details": details or {},
        "created_at": now_iso()
    }

    # Le journal ne doit jamais faire échouer l'action métier déjà commitée
    try:
        await get_db().activity_logs.insert_one(log_entry)
    except PyMongoError as e:
        logger.error(f"[ACTIVITY] Impossible d'écrire le log {action}/{entity_id}: {e}")
    log_entry.pop("_id", None)
    return log_entry


async def get_activity_logs(
    user_id: str = None,
    entity_type: str = None,
    action: str = None,
    limit: int = 100,
    skip: int = 0
):
    """
    Récupère les logs d'activité avec filtres optionnels
    """
    query = {}

    if user_id:
        query["user_id"] = user_id
    if entity_type:
        query["entity_type"] = entity_type
    if action:
        query["action"] = action

    db = get_db()
    logs = await db.activity_logs.find(query, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)

    total = await db.activity_logs.count_documents(query)

    return {"logs": logs, "total": total, "limit": limit, "skip": skip}
