"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  PIPELINE CRM - Modèle Lead                                                  ║
║                                                                              ║
║  RÈGLES FONDAMENTALES:                                                       ║
║  1. status TOUJOURS dans LeadStatus (5 valeurs)                              ║
║  2. valor_ganho / servico_realizado n'ont de sens que si status=ganho        ║
║  3. servico_interesse n'a de sens que si status=interesse_outros             ║
║  4. cpf_cnpj validé (checksum) à la création                                 ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import math
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from pipeline_crm.config import (
    is_valid_cpf_cnpj,
    is_valid_email_format,
    normalize_phone_br,
    only_digits,
)


class LeadStatus(str, Enum):
    """Colonnes du pipeline"""
    NOVO_LEAD = "novo_lead"                # Nouveau lead (formulaire public)
    EM_ATENDIMENTO = "em_atendimento"      # En cours de traitement
    FINALIZADO = "finalizado"              # Clos, perdu
    INTERESSE_OUTROS = "interesse_outros"  # Intéressé par d'autres services
    GANHO = "ganho"                        # Vente réalisée


VALID_LEAD_STATUSES = [s.value for s in LeadStatus]

# Statuts soumis au délai de 48h
ACTION_REQUIRED_STATUSES = (LeadStatus.NOVO_LEAD.value, LeadStatus.EM_ATENDIMENTO.value)


class PaymentMethod(str, Enum):
    PIX_AVISTA = "pix_avista"
    CARTAO_CREDITO = "cartao_credito"
    BOLETO_AVISTA = "boleto_avista"
    BOLETO_30DIAS = "boleto_30dias"
    BOLETO_PARCELADO = "boleto_parcelado"


MIN_PARCELAS = 2
MAX_PARCELAS = 12


class Parcela(BaseModel):
    numero: int
    valor: float
    data_vencimento: str  # YYYY-MM-DD
    pago: bool = False


class LeadPublicSubmit(BaseModel):
    """
    Lead soumis par la landing page (sans authentification).
    Mêmes règles que le formulaire public.
    """
    nome_completo: str
    telefone: str
    email: str
    cpf_cnpj: str

    @field_validator('nome_completo')
    @classmethod
    def validate_nome(cls, v):
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Nome deve ter pelo menos 3 caracteres")
        if len(v) > 100:
            raise ValueError("Nome deve ter no máximo 100 caracteres")
        return v

    @field_validator('telefone')
    @classmethod
    def validate_telefone(cls, v):
        is_valid, result = normalize_phone_br(v)
        if not is_valid:
            raise ValueError(result)
        return result

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        v = v.strip()
        if not is_valid_email_format(v):
            raise ValueError("Email inválido")
        return v.lower()

    @field_validator('cpf_cnpj')
    @classmethod
    def validate_cpf_cnpj(cls, v):
        if not is_valid_cpf_cnpj(v):
            raise ValueError("CPF ou CNPJ inválido")
        return only_digits(v)


class LeadUpdate(BaseModel):
    """
    Mise à jour partielle d'un lead.
    Le statut passe UNIQUEMENT par /transition.
    """
    nome_completo: Optional[str] = None
    telefone: Optional[str] = None
    email: Optional[str] = None
    notas: Optional[str] = None
    closer_id: Optional[str] = None
    data_pagamento: Optional[date] = None

    @field_validator('telefone')
    @classmethod
    def validate_telefone(cls, v):
        if v is None:
            return v
        is_valid, result = normalize_phone_br(v)
        if not is_valid:
            raise ValueError(result)
        return result

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v is not None and not is_valid_email_format(v):
            raise ValueError("Email inválido")
        return v


class LeadTransition(BaseModel):
    """
    Changement de statut + payload spécifique.
    - interesse_outros: service_ids
    - ganho: forma_pagamento, valor_total, service_ids (+ qtd_parcelas si parcelado)
    """
    status: LeadStatus
    service_ids: List[str] = []
    forma_pagamento: Optional[PaymentMethod] = None
    valor_total: Optional[float] = Field(default=None, allow_inf_nan=False)
    data_pagamento: Optional[date] = None
    qtd_parcelas: Optional[int] = None
    # Valeur par service (optionnel, sinon répartition égale)
    valores: Optional[Dict[str, float]] = None

    @field_validator('valores')
    @classmethod
    def validate_valores(cls, v):
        if v is not None and not all(math.isfinite(x) for x in v.values()):
            raise ValueError("Valor de serviço inválido")
        return v


class ParcelaUpdate(BaseModel):
    pago: bool


class VendedorAssign(BaseModel):
    vendedor_id: Optional[str] = None


class TagsReplace(BaseModel):
    service_ids: List[str] = []


class SoldServiceEntry(BaseModel):
    service_id: str
    valor: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)


class SoldServicesReplace(BaseModel):
    servicos: List[SoldServiceEntry] = []
