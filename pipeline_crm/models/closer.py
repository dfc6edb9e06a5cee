"""
Closers - sous-ressource d'un vendedor
"""

from typing import Optional
from pydantic import BaseModel, field_validator


class CloserCreate(BaseModel):
    nome: str
    # Admin uniquement: créer pour un autre vendedor
    vendedor_id: Optional[str] = None

    @field_validator('nome')
    @classmethod
    def validate_nome(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Nome do closer obrigatório")
        return v


class CloserUpdate(BaseModel):
    nome: Optional[str] = None
    ativo: Optional[bool] = None
