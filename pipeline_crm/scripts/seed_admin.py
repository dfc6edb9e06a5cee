"""
Pipeline CRM - Seed comptes (dev/staging uniquement)
Crée un admin et deux vendedores avec des identifiants prévisibles,
plus un petit catalogue de services.
Run: python -m pipeline_crm.scripts.seed_admin
Reset: python -m pipeline_crm.scripts.seed_admin --reset
"""

import asyncio
import sys
import uuid

from pipeline_crm.config import close_db, get_db, hash_password, now_iso

# Même mot de passe pour tous les comptes de test
TEST_PASSWORD = "Pipeline2026!"

TEST_USERS = [
    {"email": "admin@test.local",     "nome": "Admin Teste",     "role": "admin"},
    {"email": "vendedor1@test.local", "nome": "Vendedor Um",     "role": "vendedor"},
    {"email": "vendedor2@test.local", "nome": "Vendedor Dois",   "role": "vendedor"},
]

DEFAULT_SERVICES = ["Consultoria", "Implantação", "Suporte mensal"]


async def reset(db):
    """Supprime les comptes @test.local, leurs rôles et sessions"""
    users = await db.users.find({"email": {"$regex": "@test\\.local$"}}, {"id": 1}).to_list(100)
    user_ids = [u["id"] for u in users]
    await db.user_roles.delete_many({"user_id": {"$in": user_ids}})
    await db.sessions.delete_many({"user_id": {"$in": user_ids}})
    result = await db.users.delete_many({"id": {"$in": user_ids}})
    print(f"Deleted {result.deleted_count} test users")


async def seed(db):
    for u in TEST_USERS:
        user_id = str(uuid.uuid4())
        await db.users.insert_one({
            "id": user_id,
            "email": u["email"],
            "password": hash_password(TEST_PASSWORD),
            "nome": u["nome"],
            "is_active": True,
            "created_at": now_iso(),
        })
        await db.user_roles.insert_one({
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "role": u["role"],
            "created_at": now_iso(),
        })
        print(f"  Created: {u['email']} ({u['role']})")

    for nome in DEFAULT_SERVICES:
        if not await db.services.find_one({"nome": nome}):
            await db.services.insert_one({
                "id": str(uuid.uuid4()),
                "nome": nome,
                "ativo": True,
                "created_at": now_iso(),
                "updated_at": now_iso(),
            })
            print(f"  Service: {nome}")


async def main():
    db = get_db()

    await reset(db)
    if "--reset" in sys.argv:
        print("Reset complete. Run without --reset to re-seed.")
    else:
        await seed(db)
        print(f"\n{len(TEST_USERS)} test users seeded. Password for all: {TEST_PASSWORD}")

    close_db()


if __name__ == "__main__":
    asyncio.run(main())
