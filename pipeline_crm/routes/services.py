"""
Routes Catalogue de services
"""

from fastapi import APIRouter, Depends

from pipeline_crm.models.service import ServiceCreate, ServiceUpdate
from pipeline_crm.routes.auth import require_admin, require_pipeline_user
from pipeline_crm.services.activity_logger import log_activity
from pipeline_crm.services.catalog import (
    create_service,
    delete_service,
    list_services,
    update_service,
)

router = APIRouter(prefix="/services", tags=["Services"])


@router.get("")
async def get_services(active_only: bool = False, user: dict = Depends(require_pipeline_user)):
    """Services triés par nom. active_only=true pour les sélecteurs."""
    services = await list_services(active_only)
    return {"services": services, "count": len(services)}


@router.post("")
async def post_service(data: ServiceCreate, user: dict = Depends(require_admin)):
    service = await create_service(data.nome)
    await log_activity(
        user=user,
        action="create",
        entity_type="service",
        entity_id=service["id"],
        entity_name=service["nome"]
    )
    return service


@router.patch("/{service_id}")
async def patch_service(service_id: str, data: ServiceUpdate, user: dict = Depends(require_admin)):
    service = await update_service(service_id, data.nome, data.ativo)
    await log_activity(
        user=user,
        action="update",
        entity_type="service",
        entity_id=service_id,
        entity_name=service["nome"],
        details=data.model_dump(exclude_unset=True)
    )
    return service


@router.delete("/{service_id}")
async def remove_service(service_id: str, user: dict = Depends(require_admin)):
    await delete_service(service_id)
    await log_activity(
        user=user,
        action="delete",
        entity_type="service",
        entity_id=service_id
    )
    return {"success": True}
