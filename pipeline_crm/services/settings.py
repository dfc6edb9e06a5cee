"""
Pipeline CRM - Service Settings

Gestion des parametres systeme dynamiques.
Collection: settings (chaque doc identifie par key)

Settings disponibles:
- lead_transitions: table from_status -> [to_status] autorisés
"""

import logging
from typing import Dict, Any, List, Optional

from pipeline_crm.config import get_db, now_iso
from pipeline_crm.models.lead import VALID_LEAD_STATUSES
from pipeline_crm.services.errors import LeadValidationError

logger = logging.getLogger("settings")


async def get_setting(key: str) -> Optional[Dict]:
    """Recupere un setting par sa cle"""
    return await get_db().settings.find_one({"key": key}, {"_id": 0})


async def upsert_setting(key: str, data: Dict[str, Any], updated_by: str = "system") -> Dict:
    """Cree ou met a jour un setting"""
    db = get_db()
    data = {**data, "key": key, "updated_at": now_iso(), "updated_by": updated_by}

    await db.settings.update_one(
        {"key": key},
        {"$set": data, "$setOnInsert": {"created_at": now_iso()}},
        upsert=True
    )
    return await db.settings.find_one({"key": key}, {"_id": 0})


# ---- Lead transitions ----

# Graphe complet: tout statut peut aller vers tout autre (comportement du pipeline)
DEFAULT_LEAD_TRANSITIONS: Dict[str, List[str]] = {
    status: [s for s in VALID_LEAD_STATUSES if s != status]
    for status in VALID_LEAD_STATUSES
}


async def get_lead_transitions() -> Dict[str, List[str]]:
    """Retourne la table de transitions (avec defaults)"""
    doc = await get_setting("lead_transitions")
    if not doc or not doc.get("transitions"):
        return DEFAULT_LEAD_TRANSITIONS
    return doc["transitions"]


def validate_transition_table(transitions: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """Refuse les statuts inconnus; chaque statut doit avoir une entrée."""
    unknown = [
        s for s in list(transitions) + [t for targets in transitions.values() for t in targets]
        if s not in VALID_LEAD_STATUSES
    ]
    if unknown:
        raise LeadValidationError(
            f"Status desconhecido na tabela de transições: {sorted(set(unknown))}"
        )

    return {
        status: sorted(set(transitions.get(status, [])) - {status})
        for status in VALID_LEAD_STATUSES
    }


async def set_lead_transitions(transitions: Dict[str, List[str]], updated_by: str = "system") -> Dict:
    table = validate_transition_table(transitions)
    logger.info(f"[SETTINGS] lead_transitions mis à jour par {updated_by}")
    return await upsert_setting("lead_transitions", {"transitions": table}, updated_by)


async def is_transition_allowed(from_status: str, to_status: str) -> bool:
    # Rester dans le même statut est toujours permis (re-soumission idempotente)
    if from_status == to_status:
        return True
    transitions = await get_lead_transitions()
    return to_status in transitions.get(from_status, [])
