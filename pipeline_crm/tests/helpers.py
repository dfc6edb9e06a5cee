"""
Helpers de test: création directe de documents en base.
"""

import uuid
from datetime import datetime, timedelta, timezone

from pymongo.errors import PyMongoError

from pipeline_crm.config import get_db, generate_token, hash_password, now_iso

TEST_PASSWORD = "senha123"
VALID_CPF = "11144477735"


async def make_user(role="vendedor", email=None, nome=None, is_active=True):
    user = {
        "id": str(uuid.uuid4()),
        "email": email or f"{role}_{uuid.uuid4().hex[:8]}@test.local",
        "password": hash_password(TEST_PASSWORD),
        "nome": nome or f"Test {role}",
        "is_active": is_active,
        "created_at": now_iso(),
    }
    db = get_db()
    await db.users.insert_one(user)
    if role:
        await db.user_roles.insert_one({"id": str(uuid.uuid4()), "user_id": user["id"], "role": role})
    user.pop("_id", None)
    user["roles"] = [role] if role else []
    return user


async def make_session(user):
    token = generate_token()
    await get_db().sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
    })
    return token


async def make_service(nome="Consultoria", ativo=True):
    service = {
        "id": str(uuid.uuid4()),
        "nome": nome,
        "ativo": ativo,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await get_db().services.insert_one(service)
    service.pop("_id", None)
    return service


async def make_lead(status="novo_lead", vendedor_id=None, created_at=None, **fields):
    lead = {
        "id": str(uuid.uuid4()),
        "nome_completo": "Maria da Silva",
        "telefone": "11987654321",
        "email": "maria@example.com",
        "cpf_cnpj": VALID_CPF,
        "status": status,
        "notas": None,
        "vendedor_id": vendedor_id,
        "closer_id": None,
        "created_at": created_at or now_iso(),
        "updated_at": now_iso(),
        **fields,
    }
    await get_db().leads.insert_one(lead)
    lead.pop("_id", None)
    return lead


async def get_lead_doc(lead_id):
    return await get_db().leads.find_one({"id": lead_id}, {"_id": 0})


class FailingCollection:
    """Collection dont les écritures échouent (panne du store)."""

    def __init__(self, collection, failing=("insert_many",)):
        self._collection = collection
        self._failing = failing

    def __getattr__(self, name):
        if name in self._failing:
            async def fail(*args, **kwargs):
                raise PyMongoError("connection lost")
            return fail
        return getattr(self._collection, name)


class FailingDb:
    """Base dont certaines collections sont en panne, le reste délègue."""

    def __init__(self, db, *names, failing=("insert_many",)):
        self._db = db
        self._names = names
        self._failing = failing

    def __getitem__(self, name):
        if name in self._names:
            return FailingCollection(self._db[name], self._failing)
        return self._db[name]

    def __getattr__(self, name):
        if name in self._names:
            return FailingCollection(getattr(self._db, name), self._failing)
        return getattr(self._db, name)
