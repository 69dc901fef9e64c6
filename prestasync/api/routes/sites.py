from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any, List, Optional

from prestasync.config.database import get_db
from prestasync.api.dependencies import get_site_service, get_stats_service
from prestasync.models.api import SiteCreate, SiteUpdate, SiteOut, ProductOut, SiteStatsOut, ModuleLogOut
from prestasync.services.site_service import SiteService
from prestasync.services.stats_service import SiteStatsService
from prestasync.services.product_service import ProductService
from prestasync.services.module_log_service import ModuleLogService

router = APIRouter()

@router.post("/maintenance/cleanup-orphans")
async def cleanup_orphans(site_service: SiteService = Depends(get_site_service)):
    """Delete price history and stock alerts left without a product"""
    deleted = await site_service.cleanup_orphans()
    return {"success": True, "deleted": deleted}

@router.get("/", response_model=List[SiteOut])
async def list_sites(
    user_id: Optional[int] = None,
    site_service: SiteService = Depends(get_site_service),
):
    return await site_service.list_sites(user_id)

@router.post("/", response_model=SiteOut, status_code=201)
async def create_site(payload: SiteCreate, site_service: SiteService = Depends(get_site_service)):
    return await site_service.create_site(payload.model_dump())

@router.get("/{site_id}", response_model=SiteOut)
async def get_site(site_id: int, site_service: SiteService = Depends(get_site_service)):
    return await site_service.get_site(site_id)

@router.patch("/{site_id}", response_model=SiteOut)
async def update_site(site_id: int, payload: SiteUpdate, site_service: SiteService = Depends(get_site_service)):
    return await site_service.update_site(site_id, payload.model_dump(exclude_unset=True))

@router.delete("/{site_id}")
async def delete_site(site_id: int, site_service: SiteService = Depends(get_site_service)):
    await site_service.delete_site(site_id)
    return {"success": True, "message": "Site deleted"}

@router.post("/{site_id}/test-connection")
async def test_connection(site_id: int, site_service: SiteService = Depends(get_site_service)) -> Dict[str, Any]:
    """Ping the store module; the outcome is reported in the body, never as an error"""
    return await site_service.test_connection(site_id)

@router.post("/{site_id}/sync")
async def sync_site(site_id: int, site_service: SiteService = Depends(get_site_service)) -> Dict[str, Any]:
    """Pull every product from the store and reconcile it"""
    report = await site_service.sync(site_id)
    return {"success": not report.all_failed, **report.as_dict()}

@router.get("/{site_id}/raw-products")
async def get_raw_products(site_id: int, site_service: SiteService = Depends(get_site_service)):
    """Product feed as the store returns it, without touching local data"""
    products = await site_service.fetch_raw_products(site_id)
    return {"products": products, "count": len(products)}

@router.post("/{site_id}/reset")
async def reset_site(site_id: int, site_service: SiteService = Depends(get_site_service)):
    await site_service.reset_site_data(site_id)
    return {"success": True, "message": "Site data reset"}

@router.get("/{site_id}/stats", response_model=Optional[SiteStatsOut])
async def get_site_stats(site_id: int, stats_service: SiteStatsService = Depends(get_stats_service)):
    return await stats_service.get_stats(site_id)

@router.post("/{site_id}/stats/fetch", response_model=SiteStatsOut)
async def fetch_site_stats(site_id: int, stats_service: SiteStatsService = Depends(get_stats_service)):
    return await stats_service.fetch_stats(site_id)

@router.get("/{site_id}/products")
async def list_site_products(
    site_id: int,
    status: Optional[str] = None,
    condition: Optional[str] = None,
    reference: Optional[str] = None,
    product_type: Optional[str] = None,
    is_attribute: Optional[bool] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    site_service: SiteService = Depends(get_site_service),
    db: AsyncSession = Depends(get_db),
):
    await site_service.get_site(site_id)
    products, total = await ProductService(db).list_products(
        site_id,
        status=status,
        condition=condition,
        reference=reference,
        product_type=product_type,
        is_attribute=is_attribute,
        page=page,
        limit=limit,
    )
    return {
        "products": [ProductOut.model_validate(product).model_dump() for product in products],
        "total": total,
    }

@router.get("/{site_id}/logs", response_model=List[ModuleLogOut])
async def list_module_logs(
    site_id: int,
    limit: int = 100,
    site_service: SiteService = Depends(get_site_service),
    db: AsyncSession = Depends(get_db),
):
    await site_service.get_site(site_id)
    return await ModuleLogService(db).list_for_site(site_id, limit)

@router.delete("/{site_id}/logs")
async def clear_module_logs(
    site_id: int,
    site_service: SiteService = Depends(get_site_service),
    db: AsyncSession = Depends(get_db),
):
    await site_service.get_site(site_id)
    deleted = await ModuleLogService(db).clear(site_id)
    return {"success": True, "deleted": deleted}

@router.post("/{site_id}/sync/schedule")
async def schedule_site_sync(site_id: int, site_service: SiteService = Depends(get_site_service)):
    """Queue a background sync on the Celery worker"""
    from prestasync.tasks.sync_tasks import sync_site_task

    await site_service.get_site(site_id)
    task = sync_site_task.delay(site_id)
    return {"message": "Synchronization queued", "task_id": task.id, "site_id": site_id}
