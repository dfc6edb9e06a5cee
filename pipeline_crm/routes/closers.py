"""
Routes Closers
"""

from fastapi import APIRouter, Depends

from pipeline_crm.models.closer import CloserCreate, CloserUpdate
from pipeline_crm.routes.auth import require_pipeline_user
from pipeline_crm.services.closers import (
    create_closer,
    delete_closer,
    list_closers,
    update_closer,
)

router = APIRouter(prefix="/closers", tags=["Closers"])


@router.get("")
async def get_closers(vendedor_id: str = None, active_only: bool = False, user: dict = Depends(require_pipeline_user)):
    closers = await list_closers(user, vendedor_id, active_only)
    return {"closers": closers, "count": len(closers)}


@router.post("")
async def post_closer(data: CloserCreate, user: dict = Depends(require_pipeline_user)):
    return await create_closer(data.nome, user, data.vendedor_id)


@router.patch("/{closer_id}")
async def patch_closer(closer_id: str, data: CloserUpdate, user: dict = Depends(require_pipeline_user)):
    return await update_closer(closer_id, user, data.nome, data.ativo)


@router.delete("/{closer_id}")
async def remove_closer(closer_id: str, user: dict = Depends(require_pipeline_user)):
    await delete_closer(closer_id, user)
    return {"success": True}
