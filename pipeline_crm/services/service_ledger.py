"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  PIPELINE CRM - Ledger Services (tags d'intérêt + services vendus)           ║
║                                                                              ║
║  REMPLACEMENT TOTAL (replace-all), jamais de diff incrémental.               ║
║                                                                              ║
║  Chaque lot de lignes porte une "version". Le lead pointe vers la version    ║
║  courante (tags_version / vendidos_version).                                 ║
║  1. insert_many de la nouvelle version (invisible)                           ║
║  2. bascule du pointeur = UN SEUL update de document (atomique)              ║
║  3. suppression de l'ancienne version                                        ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - un échec en 1 ou 2 laisse l'ancien lot faisant autorité                   ║
║  - lead ganho: somme(valor des services vendus) == valor_ganho               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import math
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from pipeline_crm.config import get_db, now_iso
from pipeline_crm.models.lead import LeadStatus
from pipeline_crm.services.catalog import resolve_services
from pipeline_crm.services.errors import (
    LeadValidationError,
    NotFoundError,
    PersistenceError,
)

logger = logging.getLogger("service_ledger")

TAGS = "tags"
VENDIDOS = "vendidos"

LEDGERS = {
    TAGS: {"collection": "lead_service_tags", "pointer": "tags_version"},
    VENDIDOS: {"collection": "lead_servicos_vendidos", "pointer": "vendidos_version"},
}

# Tolérance de comparaison des montants (centimes)
AMOUNT_TOLERANCE = 0.005


# ════════════════════════════════════════════════════════════════════════════
# MONTANTS
# ════════════════════════════════════════════════════════════════════════════

def to_cents(value: float) -> int:
    return int(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) * 100)


def split_evenly(total: float, service_ids: List[str]) -> List[Dict]:
    """
    Répartit total entre les services, au centime.
    Le reste de la division va sur la dernière ligne: la somme est exacte.
    """
    if not service_ids:
        return []

    base, remainder = divmod(to_cents(total), len(service_ids))
    entries = [{"service_id": sid, "valor": base / 100} for sid in service_ids]
    entries[-1]["valor"] = (base + remainder) / 100
    return entries


def amounts_match(a: float, b: float) -> bool:
    return abs(a - b) < AMOUNT_TOLERANCE


def build_sold_entries(total: float, service_ids: List[str], valores: Optional[Dict[str, float]] = None) -> List[Dict]:
    """
    Lignes de services vendus pour un ganho.
    - valores absent: répartition égale
    - valores présent: doit couvrir exactement service_ids et sommer à total
    """
    service_ids = list(dict.fromkeys(service_ids))
    if not valores:
        return split_evenly(total, service_ids)

    if set(valores) != set(service_ids):
        raise LeadValidationError(
            "Informe o valor de cada serviço vendido",
            {"service_ids": service_ids, "valores": sorted(valores)}
        )
    if not all(math.isfinite(v) for v in valores.values()):
        raise LeadValidationError("Valor de serviço inválido")
    if any(v < 0 for v in valores.values()):
        raise LeadValidationError("Valor de serviço não pode ser negativo")

    entries = [{"service_id": sid, "valor": round(float(valores[sid]), 2)} for sid in service_ids]
    if not amounts_match(sum(e["valor"] for e in entries), total):
        raise LeadValidationError(
            "A soma dos valores por serviço deve ser igual ao valor total",
            {"valor_total": total, "soma": round(sum(e["valor"] for e in entries), 2)}
        )
    return entries


# ════════════════════════════════════════════════════════════════════════════
# REPLACE-ALL GÉNÉRIQUE
# ════════════════════════════════════════════════════════════════════════════

async def _discard_version(collection, lead_id: str, version: str) -> None:
    try:
        await collection.delete_many({"lead_id": lead_id, "version": version})
    except PyMongoError as e:
        # Lignes orphelines invisibles: aucun lead ne pointe vers cette version
        logger.error(f"[LEDGER] Nettoyage version {version} du lead {lead_id} impossible: {e}")


async def replace_ledger(kind: str, lead_id: str, rows: List[Dict], lead_fields: Optional[Dict] = None) -> str:
    """
    Remplace l'ensemble des lignes `kind` du lead par `rows`.

    lead_fields: champs du lead à écrire dans le MÊME update que la bascule
    (statut, valor_ganho...). Le changement de statut et le nouveau lot
    deviennent visibles ensemble ou pas du tout.

    Returns: la nouvelle version
    Raises: NotFoundError, PersistenceError
    """
    ledger = LEDGERS[kind]
    db = get_db()
    collection = db[ledger["collection"]]
    pointer = ledger["pointer"]

    version = str(uuid.uuid4())
    now = now_iso()
    docs = [
        {
            "id": str(uuid.uuid4()),
            "lead_id": lead_id,
            "version": version,
            "position": position,
            "created_at": now,
            **row,
        }
        for position, row in enumerate(rows)
    ]

    # 1. Nouvelle version (pas encore visible)
    if docs:
        try:
            await collection.insert_many(docs)
        except PyMongoError as e:
            logger.error(f"[LEDGER] insert {kind} lead={lead_id}: {e}")
            await _discard_version(collection, lead_id, version)
            raise PersistenceError("Falha ao gravar serviços do lead") from e

    # 2. Bascule atomique du pointeur (+ champs du lead)
    update_data = {**(lead_fields or {}), pointer: version, "updated_at": now}
    try:
        previous = await db.leads.find_one_and_update(
            {"id": lead_id},
            {"$set": update_data},
            projection={"_id": 0, "id": 1, pointer: 1},
            return_document=ReturnDocument.BEFORE,
        )
    except PyMongoError as e:
        logger.error(f"[LEDGER] bascule {pointer} lead={lead_id}: {e}")
        await _discard_version(collection, lead_id, version)
        raise PersistenceError("Falha ao atualizar lead") from e

    if previous is None:
        await _discard_version(collection, lead_id, version)
        raise NotFoundError("Lead não encontrado", {"lead_id": lead_id})

    # 3. Ancienne version: plus référencée, on la supprime
    old_version = previous.get(pointer)
    if old_version:
        await _discard_version(collection, lead_id, old_version)

    logger.info(f"[LEDGER] {kind} lead={lead_id} -> version {version} ({len(docs)} lignes)")
    return version


async def current_rows(kind: str, lead_id: str) -> List[Dict]:
    """Lignes de la version courante (liste vide si aucune)."""
    ledger = LEDGERS[kind]
    db = get_db()
    pointer = ledger["pointer"]

    lead = await db.leads.find_one({"id": lead_id}, {"_id": 0, pointer: 1})
    if lead is None:
        raise NotFoundError("Lead não encontrado", {"lead_id": lead_id})

    version = lead.get(pointer)
    if not version:
        return []

    return await db[ledger["collection"]].find(
        {"lead_id": lead_id, "version": version},
        {"_id": 0}
    ).sort("position", 1).to_list(1000)


# ════════════════════════════════════════════════════════════════════════════
# API LEDGER
# ════════════════════════════════════════════════════════════════════════════

async def replace_tags_for_lead(lead_id: str, service_ids: List[str], lead_fields: Optional[Dict] = None) -> str:
    rows = [{"service_id": sid} for sid in dict.fromkeys(service_ids)]
    return await replace_ledger(TAGS, lead_id, rows, lead_fields)


async def replace_sold_services_for_lead(lead_id: str, entries: List[Dict], lead_fields: Optional[Dict] = None) -> str:
    rows = [{"service_id": e["service_id"], "valor": e.get("valor")} for e in entries]
    return await replace_ledger(VENDIDOS, lead_id, rows, lead_fields)


async def tags_for_lead(lead_id: str) -> List[Dict]:
    return await current_rows(TAGS, lead_id)


async def sold_services_for_lead(lead_id: str) -> List[Dict]:
    return await current_rows(VENDIDOS, lead_id)


async def _get_lead(lead_id: str) -> Dict:
    lead = await get_db().leads.find_one({"id": lead_id}, {"_id": 0})
    if not lead:
        raise NotFoundError("Lead não encontrado", {"lead_id": lead_id})
    return lead


async def set_lead_tags(lead_id: str, service_ids: List[str]) -> List[Dict]:
    """
    Mise à jour directe des tags d'un lead (hors transition).
    Si le lead est en interesse_outros, servico_interesse suit et la
    sélection ne peut pas être vide.
    """
    lead = await _get_lead(lead_id)
    services = await resolve_services(service_ids) if service_ids else []

    lead_fields = {}
    if lead["status"] == LeadStatus.INTERESSE_OUTROS.value:
        if not services:
            raise LeadValidationError("Selecione ao menos um serviço")
        lead_fields["servico_interesse"] = ", ".join(s["nome"] for s in services)

    await replace_tags_for_lead(lead_id, [s["id"] for s in services], lead_fields)
    return await tags_for_lead(lead_id)


async def set_lead_sold_services(lead_id: str, entries: List[Dict]) -> List[Dict]:
    """
    Mise à jour directe des services vendus d'un lead ganho.
    Entrées sans valor: valor_ganho réparti également.
    """
    lead = await _get_lead(lead_id)
    if lead["status"] != LeadStatus.GANHO.value:
        raise LeadValidationError("Serviços vendidos só podem ser registrados para leads ganhos")
    if not entries:
        raise LeadValidationError("Selecione ao menos um serviço vendido")

    service_ids = [e["service_id"] for e in entries]
    if len(set(service_ids)) != len(service_ids):
        raise LeadValidationError("Serviço duplicado na lista de vendidos")

    # Services vendus historiques: un service désactivé depuis reste accepté
    services = await resolve_services(service_ids, active_only=False)
    total = float(lead.get("valor_ganho") or 0)

    with_value = [e for e in entries if e.get("valor") is not None]
    if with_value and len(with_value) != len(entries):
        raise LeadValidationError("Informe o valor de todos os serviços ou de nenhum")

    valores = {e["service_id"]: e["valor"] for e in with_value} or None
    sold = build_sold_entries(total, service_ids, valores)

    await replace_sold_services_for_lead(
        lead_id,
        sold,
        {"servico_realizado": ", ".join(s["nome"] for s in services)}
    )
    return await sold_services_for_lead(lead_id)
