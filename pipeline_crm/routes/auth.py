"""
Pipeline CRM - Routes Auth
Login / Logout / Session / Provisioning des vendedores.
"""

from fastapi import APIRouter, HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime, timezone, timedelta

from pipeline_crm.models.auth import Role, UserLogin, VendedorCreate
from pipeline_crm.config import get_db, hash_password, generate_token, now_iso, SESSION_DAYS
from pipeline_crm.services.activity_logger import log_activity, get_activity_logs as get_logs
from pipeline_crm.services.provisioning import (
    create_vendedor,
    get_user_roles,
    list_vendedores,
    revoke_vendedor,
)

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)


# ==================== HELPERS ====================

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Récupère l'utilisateur connecté depuis le token, avec ses rôles."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Não autenticado")

    db = get_db()
    session = await db.sessions.find_one({
        "token": credentials.credentials,
        "expires_at": {"$gt": now_iso()}
    })

    if not session:
        raise HTTPException(status_code=401, detail="Sessão expirada")

    user = await db.users.find_one(
        {"id": session["user_id"]},
        {"_id": 0, "password": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="Usuário não encontrado")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Conta desativada")

    user["roles"] = await get_user_roles(user["id"])
    return user


def is_admin(user: dict) -> bool:
    return Role.ADMIN.value in user.get("roles", [])


async def require_admin(user: dict = Depends(get_current_user)):
    if not is_admin(user):
        raise HTTPException(status_code=403, detail="Acesso de administrador requerido")
    return user


async def require_pipeline_user(user: dict = Depends(get_current_user)):
    """Admin ou vendedor. Un compte sans rôle (ex: vendedor révoqué) est refusé."""
    if not is_admin(user) and Role.VENDEDOR.value not in user.get("roles", []):
        raise HTTPException(status_code=403, detail="Acesso restrito a vendedores e administradores")
    return user


# ==================== LOGIN / LOGOUT ====================

@router.post("/login")
async def login(data: UserLogin, request: Request):
    """Connexion utilisateur."""
    db = get_db()
    user = await db.users.find_one(
        {"email": data.email.lower().strip()},
        {"_id": 0}
    )

    if not user or user.get("password") != hash_password(data.password):
        raise HTTPException(status_code=401, detail="Email ou senha incorretos")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Conta desativada")

    token = generate_token()
    expires_at = (datetime.now(timezone.utc) + timedelta(days=SESSION_DAYS)).isoformat()

    await db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": expires_at
    })

    await log_activity(
        user=user,
        action="login",
        entity_type="user",
        entity_id=user["id"],
        details={"ip": request.client.host if request.client else None}
    )

    return {
        "token": token,
        "user": {
            "id": user["id"],
            "email": user["email"],
            "nome": user.get("nome", ""),
            "roles": await get_user_roles(user["id"]),
        }
    }


@router.post("/logout")
async def logout(
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security)
):
    if credentials:
        await get_db().sessions.delete_one({"token": credentials.credentials})
    return {"success": True}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    return user


# ==================== VENDEDORES (admin) ====================

@router.get("/vendedores")
async def get_vendedores(user: dict = Depends(require_admin)):
    vendedores = await list_vendedores()
    return {"vendedores": vendedores, "count": len(vendedores)}


@router.post("/vendedores")
async def post_vendedor(data: VendedorCreate, user: dict = Depends(require_admin)):
    """Crée un compte vendedor (compte + rôle, rollback si le rôle échoue)."""
    return await create_vendedor(data.email, data.password, data.nome, caller=user)


@router.delete("/vendedores/{user_id}")
async def delete_vendedor(user_id: str, user: dict = Depends(require_admin)):
    await revoke_vendedor(user_id, caller=user)
    return {"success": True}


# ==================== ACTIVITY LOG ====================

@router.get("/activity-logs")
async def get_activity_logs(
    user_id: str = None,
    entity_type: str = None,
    action: str = None,
    limit: int = 100,
    skip: int = 0,
    user: dict = Depends(require_admin)
):
    return await get_logs(user_id, entity_type, action, min(limit, 1000), skip)
