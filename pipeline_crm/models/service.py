"""
Catalogue de services vendables
"""

from typing import Optional
from pydantic import BaseModel, field_validator


class ServiceCreate(BaseModel):
    nome: str

    @field_validator('nome')
    @classmethod
    def validate_nome(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Nome do serviço obrigatório")
        return v


class ServiceUpdate(BaseModel):
    nome: Optional[str] = None
    ativo: Optional[bool] = None

    @field_validator('nome')
    @classmethod
    def validate_nome(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Nome do serviço obrigatório")
        return v
