"""
Modèles Auth
"""

from enum import Enum
from pydantic import BaseModel, field_validator

from pipeline_crm.config import is_valid_email_format


class Role(str, Enum):
    ADMIN = "admin"
    VENDEDOR = "vendedor"


VALID_ROLES = [r.value for r in Role]


class UserLogin(BaseModel):
    email: str
    password: str


class VendedorCreate(BaseModel):
    email: str
    password: str
    nome: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        v = v.strip().lower()
        if not is_valid_email_format(v):
            raise ValueError("Email inválido")
        return v

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if len(v) < 6:
            raise ValueError("Senha deve ter pelo menos 6 caracteres")
        return v

    @field_validator('nome')
    @classmethod
    def validate_nome(cls, v):
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Nome deve ter pelo menos 3 caracteres")
        return v
