"""
Pipeline CRM - Statistiques (dashboard)

Fonctions pures sur une liste de leads déjà chargée.
valor_ganho n'est compté que pour les leads actuellement en ganho.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from pipeline_crm.config import parse_iso
from pipeline_crm.models.lead import LeadStatus, VALID_LEAD_STATUSES
from pipeline_crm.services.errors import LeadValidationError

PERIODS = ("7d", "30d", "this_month", "all")


def period_start(period: str, now: Optional[datetime] = None) -> Optional[datetime]:
    now = now or datetime.now(timezone.utc)
    if period == "7d":
        return now - timedelta(days=7)
    if period == "30d":
        return now - timedelta(days=30)
    if period == "this_month":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if period == "all":
        return None
    raise LeadValidationError(f"Período inválido: {period}", {"periods": list(PERIODS)})


def filter_by_period(leads: List[Dict], period: str, now: Optional[datetime] = None) -> List[Dict]:
    start = period_start(period, now)
    if start is None:
        return list(leads)
    return [l for l in leads if l.get("created_at") and parse_iso(l["created_at"]) >= start]


def _ganho_value(lead: Dict) -> float:
    if lead.get("status") != LeadStatus.GANHO.value:
        return 0.0
    return float(lead.get("valor_ganho") or 0)


def count_by_status(leads: List[Dict]) -> Dict[str, int]:
    counts = {status: 0 for status in VALID_LEAD_STATUSES}
    for lead in leads:
        if lead.get("status") in counts:
            counts[lead["status"]] += 1
    return counts


def summarize(leads: List[Dict]) -> Dict:
    return {
        "total": len(leads),
        "por_status": count_by_status(leads),
        "valor_total_ganho": round(sum(_ganho_value(l) for l in leads), 2),
    }


def vendedor_breakdown(leads: List[Dict], vendedores: List[Dict]) -> List[Dict]:
    """
    Performance par vendedor, triée par valor_ganhos décroissant.

    taxa_conversao = ganhos / leads sortis de novo_lead (en %, 1 décimale)
    ticket_medio   = valor_ganhos / ganhos
    """
    rows = []
    for vendedor in vendedores:
        own = [l for l in leads if l.get("vendedor_id") == vendedor["user_id"]]
        por_status = count_by_status(own)
        ganhos = por_status[LeadStatus.GANHO.value]
        valor = round(sum(_ganho_value(l) for l in own), 2)
        atendidos = len(own) - por_status[LeadStatus.NOVO_LEAD.value]

        rows.append({
            "user_id": vendedor["user_id"],
            "email": vendedor.get("email"),
            "nome": vendedor.get("nome"),
            "total_leads": len(own),
            "leads_ganhos": ganhos,
            "valor_ganhos": valor,
            "por_status": por_status,
            "taxa_conversao": round(ganhos / atendidos * 100, 1) if atendidos else 0.0,
            "ticket_medio": round(valor / ganhos, 2) if ganhos else 0.0,
        })

    return sorted(rows, key=lambda r: r["valor_ganhos"], reverse=True)


def daily_evolution(leads: List[Dict], days: int, now: Optional[datetime] = None) -> List[Dict]:
    """Leads reçus et valeur gagnée par jour, du plus ancien au plus récent."""
    now = now or datetime.now(timezone.utc)
    buckets = {}
    for i in range(days - 1, -1, -1):
        buckets[(now - timedelta(days=i)).date().isoformat()] = {"leads": 0, "ganhos": 0.0}

    for lead in leads:
        if not lead.get("created_at"):
            continue
        day = parse_iso(lead["created_at"]).date().isoformat()
        if day in buckets:
            buckets[day]["leads"] += 1
            buckets[day]["ganhos"] += _ganho_value(lead)

    return [
        {"date": day, "leads": b["leads"], "ganhos": round(b["ganhos"], 2)}
        for day, b in buckets.items()
    ]
