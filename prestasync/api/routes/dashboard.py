from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from prestasync.config.database import get_db
from prestasync.services.dashboard_service import DashboardService
from prestasync.services.price_history_service import PriceHistoryService

router = APIRouter()
price_changes_router = APIRouter()

@router.get("/")
async def get_dashboard(user_id: Optional[int] = None, db: AsyncSession = Depends(get_db)):
    """Sites, product counts, active alerts, recent price changes and stats"""
    return await DashboardService(db).overview(user_id)

@router.get("/{site_id}")
async def get_site_dashboard(site_id: int, db: AsyncSession = Depends(get_db)):
    return await DashboardService(db).site_overview(site_id)

@price_changes_router.get("/")
async def list_recent_price_changes(
    site_id: Optional[int] = None,
    limit: int = 10,
    db: AsyncSession = Depends(get_db),
):
    """Products whose latest price differs from the previous one"""
    site_ids = [site_id] if site_id is not None else None
    return await PriceHistoryService(db).recent_price_changes(site_ids, limit)
