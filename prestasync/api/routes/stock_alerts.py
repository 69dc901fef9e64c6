from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from prestasync.config.database import get_db
from prestasync.models.api import StockAlertOut, StockAlertCreate, StockAlertUpdate
from prestasync.services.stock_alert_service import StockAlertService

router = APIRouter()

@router.get("/active")
async def list_active_alerts(
    site_id: Optional[int] = None,
    limit: int = 10,
    db: AsyncSession = Depends(get_db),
):
    """Active alerts across sites, newest first"""
    site_ids = [site_id] if site_id is not None else None
    return await StockAlertService(db).list_active(site_ids, limit)

@router.post("/", response_model=StockAlertOut, status_code=201)
async def create_alert(payload: StockAlertCreate, db: AsyncSession = Depends(get_db)):
    return await StockAlertService(db).create_alert(payload.product_id, payload.alert_type, payload.status)

@router.patch("/{alert_id}", response_model=StockAlertOut)
async def update_alert(alert_id: int, payload: StockAlertUpdate, db: AsyncSession = Depends(get_db)):
    return await StockAlertService(db).update_alert(alert_id, payload.model_dump(exclude_unset=True))

@router.post("/{alert_id}/resolve", response_model=StockAlertOut)
async def resolve_alert(alert_id: int, db: AsyncSession = Depends(get_db)):
    return await StockAlertService(db).resolve_alert(alert_id)

@router.delete("/{alert_id}")
async def delete_alert(alert_id: int, db: AsyncSession = Depends(get_db)):
    await StockAlertService(db).delete_alert(alert_id)
    return {"success": True, "message": "Stock alert deleted"}
