"""
Configuration et utilitaires partagés
"""

import os
import re
import hashlib
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'pipeline_crm')

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
SESSION_DAYS = int(os.environ.get('SESSION_DAYS', '7'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


def get_db():
    """Base active. Le client Motor est créé au premier appel."""
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(MONGO_URL)
        _db = _client[DB_NAME]
    return _db


def set_db(database) -> None:
    """Remplace la base active (tests: AsyncMongoMockClient)."""
    global _db
    _db = database


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


# ==================== HELPERS ====================

def hash_password(password: str) -> str:
    """Hash un mot de passe avec SHA256"""
    return hashlib.sha256(password.encode()).hexdigest()

def generate_token() -> str:
    """Génère un token de session sécurisé"""
    return secrets.token_urlsafe(32)

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()

def parse_iso(value: str) -> datetime:
    """ISO -> datetime aware (UTC si pas de timezone)"""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def only_digits(value: str) -> str:
    return re.sub(r'[^0-9]', '', value or "")


def normalize_phone_br(phone: str) -> tuple[bool, str]:
    """
    Normalise un téléphone brésilien (DDD + numéro).
    FORMAT EN BASE: chiffres uniquement, 10 (fixe) ou 11 (mobile) chiffres.

    Returns: (is_valid, digits_or_error)
    """
    digits = only_digits(phone)
    if not digits:
        return False, "Telefone inválido"

    # +55 / 0055
    if digits.startswith("0055") and len(digits) in (14, 15):
        digits = digits[4:]
    elif digits.startswith("55") and len(digits) in (12, 13):
        digits = digits[2:]

    if len(digits) < 10 or len(digits) > 11:
        return False, "Telefone inválido"

    return True, digits


# ==================== CPF / CNPJ ====================

CNPJ_WEIGHTS_1 = [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]
CNPJ_WEIGHTS_2 = [6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2]


def _cpf_digit(digits: str, length: int) -> int:
    total = sum(int(digits[i]) * (length + 1 - i) for i in range(length))
    remainder = (total * 10) % 11
    return 0 if remainder == 10 else remainder


def is_valid_cpf(value: str) -> bool:
    """
    CPF (pessoa física): 11 chiffres, 2 chiffres de contrôle module 11.
    Les séquences répétées (111.111.111-11) sont refusées.
    """
    digits = only_digits(value)
    if len(digits) != 11 or len(set(digits)) == 1:
        return False

    if _cpf_digit(digits, 9) != int(digits[9]):
        return False
    return _cpf_digit(digits, 10) == int(digits[10])


def _cnpj_digit(digits: str, weights: list) -> int:
    remainder = sum(int(d) * w for d, w in zip(digits, weights)) % 11
    return 0 if remainder < 2 else 11 - remainder


def is_valid_cnpj(value: str) -> bool:
    """CNPJ (pessoa jurídica): 14 chiffres, poids 5..2/9..2 puis 6..2/9..2."""
    digits = only_digits(value)
    if len(digits) != 14 or len(set(digits)) == 1:
        return False

    if _cnpj_digit(digits[:12], CNPJ_WEIGHTS_1) != int(digits[12]):
        return False
    return _cnpj_digit(digits[:13], CNPJ_WEIGHTS_2) == int(digits[13])


def is_valid_cpf_cnpj(value: str) -> bool:
    digits = only_digits(value)
    if len(digits) == 11:
        return is_valid_cpf(digits)
    if len(digits) == 14:
        return is_valid_cnpj(digits)
    return False


EMAIL_REGEX = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def is_valid_email_format(email: str) -> bool:
    if not email or len(email) > 255:
        return False
    return bool(EMAIL_REGEX.match(email.strip()))
