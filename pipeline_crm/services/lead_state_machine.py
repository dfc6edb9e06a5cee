"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  PIPELINE CRM - Lead State Machine                                           ║
║                                                                              ║
║  SEUL CE MODULE change le statut d'un lead.                                  ║
║                                                                              ║
║  TRANSITIONS AVEC PAYLOAD OBLIGATOIRE:                                       ║
║  - interesse_outros: service_ids non vide -> tags remplacés                  ║
║  - ganho: forma_pagamento + valor_total > 0 + service_ids non vide           ║
║           -> services vendus remplacés (somme == valor_ganho)                ║
║           -> boleto_parcelado: échéancier parcelas_info                      ║
║                                                                              ║
║  Validation AVANT toute écriture. Statut + lot de lignes = un seul update.   ║
║  Les autres transitions ne touchent que le statut.                           ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from pymongo.errors import PyMongoError

from pipeline_crm.config import get_db, now_iso, parse_iso
from pipeline_crm.models.lead import (
    ACTION_REQUIRED_STATUSES,
    MAX_PARCELAS,
    MIN_PARCELAS,
    LeadStatus,
    LeadTransition,
    PaymentMethod,
)
from pipeline_crm.services.activity_logger import log_activity
from pipeline_crm.services.catalog import resolve_services
from pipeline_crm.services.errors import (
    LeadValidationError,
    NotFoundError,
    PersistenceError,
)
from pipeline_crm.services.service_ledger import (
    build_sold_entries,
    replace_sold_services_for_lead,
    replace_tags_for_lead,
)
from pipeline_crm.services.settings import is_transition_allowed

logger = logging.getLogger("lead_state_machine")

INSTALLMENT_INTERVAL_DAYS = 30

# Délai de prise en charge
ACTION_WINDOW_HOURS = 48
WARNING_HOURS = 24
CRITICAL_HOURS = 12


# ════════════════════════════════════════════════════════════════════════════
# FONCTIONS PURES
# ════════════════════════════════════════════════════════════════════════════

def generate_installments(valor_total: float, qtd_parcelas: int, data_inicio: Optional[date] = None) -> List[Dict]:
    """
    Échéancier boleto parcelado.
    Parcelle i (0-based): valor = V/N, échéance = D + 30*i jours, pago = False
    """
    if qtd_parcelas < MIN_PARCELAS or qtd_parcelas > MAX_PARCELAS:
        raise LeadValidationError(
            f"Quantidade de parcelas deve estar entre {MIN_PARCELAS} e {MAX_PARCELAS}"
        )

    start = data_inicio or datetime.now(timezone.utc).date()
    valor_parcela = valor_total / qtd_parcelas

    return [
        {
            "numero": i + 1,
            "valor": valor_parcela,
            "data_vencimento": (start + timedelta(days=INSTALLMENT_INTERVAL_DAYS * i)).isoformat(),
            "pago": False,
        }
        for i in range(qtd_parcelas)
    ]


def compute_action_window(lead: Dict, now: Optional[datetime] = None) -> Optional[Dict]:
    """
    Délai de 48h pour novo_lead / em_atendimento (projection en lecture).
    Recalculé à chaque lecture, jamais stocké, ne change jamais le statut.

    bucket: normal (>= 24h) | warning (< 24h) | critical (< 12h) | expired
    """
    if lead.get("status") not in ACTION_REQUIRED_STATUSES:
        return None

    created_at = lead.get("created_at")
    if not created_at:
        return None
    if isinstance(created_at, str):
        created_at = parse_iso(created_at)

    deadline = created_at + timedelta(hours=ACTION_WINDOW_HOURS)
    now = now or datetime.now(timezone.utc)
    remaining = (deadline - now).total_seconds()

    if remaining <= 0:
        bucket = "expired"
    elif remaining < CRITICAL_HOURS * 3600:
        bucket = "critical"
    elif remaining < WARNING_HOURS * 3600:
        bucket = "warning"
    else:
        bucket = "normal"

    return {
        "deadline": deadline.isoformat(),
        "remaining_seconds": max(0, int(remaining)),
        "bucket": bucket,
        "expired": remaining <= 0,
    }


def validate_transition_payload(payload: LeadTransition) -> None:
    """Vérifie le payload requis par le statut cible. Aucune écriture."""
    target = payload.status

    if target == LeadStatus.INTERESSE_OUTROS:
        if not payload.service_ids:
            raise LeadValidationError("Selecione ao menos um serviço")

    elif target == LeadStatus.GANHO:
        missing = []
        if payload.forma_pagamento is None:
            missing.append("forma_pagamento")
        if payload.valor_total is None:
            missing.append("valor_total")
        if not payload.service_ids:
            missing.append("service_ids")
        if payload.forma_pagamento == PaymentMethod.BOLETO_PARCELADO and payload.qtd_parcelas is None:
            missing.append("qtd_parcelas")
        if missing:
            raise LeadValidationError("Preencha todos os campos obrigatórios", {"missing": missing})

        if not math.isfinite(payload.valor_total):
            raise LeadValidationError("Valor total inválido")
        # Comparé au centime: c'est la valeur enregistrée
        if round(payload.valor_total, 2) <= 0:
            raise LeadValidationError("Valor total deve ser maior que zero")

        if payload.forma_pagamento == PaymentMethod.BOLETO_PARCELADO:
            if payload.qtd_parcelas < MIN_PARCELAS or payload.qtd_parcelas > MAX_PARCELAS:
                raise LeadValidationError(
                    f"Quantidade de parcelas deve estar entre {MIN_PARCELAS} e {MAX_PARCELAS}"
                )


# ════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ════════════════════════════════════════════════════════════════════════════

async def get_lead(lead_id: str) -> Dict:
    lead = await get_db().leads.find_one({"id": lead_id}, {"_id": 0})
    if not lead:
        raise NotFoundError("Lead não encontrado", {"lead_id": lead_id})
    return lead


async def _set_lead_fields(lead_id: str, fields: Dict) -> None:
    try:
        result = await get_db().leads.update_one(
            {"id": lead_id},
            {"$set": {**fields, "updated_at": now_iso()}}
        )
    except PyMongoError as e:
        logger.error(f"[STATE_MACHINE] update lead {lead_id}: {e}")
        raise PersistenceError("Falha ao atualizar lead") from e

    if result.matched_count == 0:
        raise NotFoundError("Lead não encontrado", {"lead_id": lead_id})


async def transition_lead(lead_id: str, payload: LeadTransition, user: Optional[Dict] = None) -> Dict:
    """
    Change le statut d'un lead et applique les effets de bord du statut cible.

    Raises:
        LeadValidationError: payload incomplet, service inconnu/inactif,
                             transition hors table
        NotFoundError, PersistenceError
    """
    lead = await get_lead(lead_id)
    from_status = lead["status"]
    to_status = payload.status.value

    validate_transition_payload(payload)

    if not await is_transition_allowed(from_status, to_status):
        raise LeadValidationError(
            f"Transição não permitida: {from_status} -> {to_status}",
            {"from": from_status, "to": to_status}
        )

    fields = {"status": to_status}

    if payload.status == LeadStatus.INTERESSE_OUTROS:
        services = await resolve_services(payload.service_ids)
        fields["servico_interesse"] = ", ".join(s["nome"] for s in services)
        await replace_tags_for_lead(lead_id, [s["id"] for s in services], fields)

    elif payload.status == LeadStatus.GANHO:
        services = await resolve_services(payload.service_ids)
        service_ids = [s["id"] for s in services]
        valor_total = round(payload.valor_total, 2)
        sold = build_sold_entries(valor_total, service_ids, payload.valores)

        parcelado = payload.forma_pagamento == PaymentMethod.BOLETO_PARCELADO
        fields.update({
            "valor_ganho": valor_total,
            "servico_realizado": ", ".join(s["nome"] for s in services),
            "forma_pagamento": payload.forma_pagamento.value,
            "data_pagamento": payload.data_pagamento.isoformat() if payload.data_pagamento else None,
            "qtd_parcelas": payload.qtd_parcelas if parcelado else None,
            "parcelas_info": (
                generate_installments(valor_total, payload.qtd_parcelas, payload.data_pagamento)
                if parcelado else None
            ),
        })
        await replace_sold_services_for_lead(lead_id, sold, fields)

    else:
        await _set_lead_fields(lead_id, fields)

    logger.info(f"[STATE_MACHINE] Lead {lead_id}: {from_status} -> {to_status}")

    await log_activity(
        user=user,
        action="transition",
        entity_type="lead",
        entity_id=lead_id,
        entity_name=lead.get("nome_completo"),
        details={"from": from_status, "to": to_status}
    )

    return await get_lead(lead_id)


async def mark_installment_paid(lead_id: str, numero: int, pago: bool, user: Optional[Dict] = None) -> Dict:
    """Marque une parcelle (boleto parcelado) payée / non payée."""
    lead = await get_lead(lead_id)
    parcelas = lead.get("parcelas_info") or []
    if not any(p.get("numero") == numero for p in parcelas):
        raise NotFoundError("Parcela não encontrada", {"lead_id": lead_id, "numero": numero})

    try:
        await get_db().leads.update_one(
            {"id": lead_id, "parcelas_info.numero": numero},
            {"$set": {"parcelas_info.$.pago": pago, "updated_at": now_iso()}}
        )
    except PyMongoError as e:
        logger.error(f"[STATE_MACHINE] parcela {numero} lead {lead_id}: {e}")
        raise PersistenceError("Falha ao atualizar parcela") from e

    await log_activity(
        user=user,
        action="parcela_pago" if pago else "parcela_pendente",
        entity_type="lead",
        entity_id=lead_id,
        entity_name=lead.get("nome_completo"),
        details={"numero": numero}
    )
    return await get_lead(lead_id)
