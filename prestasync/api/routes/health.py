from fastapi import APIRouter, Depends
from sqlalchemy import text, select, func
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict

from prestasync.config.database import get_db
from prestasync.models.database import Site, SYNC_RUNNING

router = APIRouter()

@router.get("/", response_model=Dict[str, str])
async def health_check():
    """Basic health check endpoint"""
    return {"status": "healthy", "service": "prestasync-dashboard"}

@router.get("/detailed")
async def detailed_health_check(db: AsyncSession = Depends(get_db)):
    """Health check including the database and running syncs"""
    health_status = {
        "service": "healthy",
        "database": "unknown",
        "sites": None,
        "syncs_running": None,
    }

    try:
        await db.execute(text("SELECT 1"))
        health_status["database"] = "healthy"
        health_status["sites"] = await db.scalar(select(func.count(Site.id)))
        health_status["syncs_running"] = await db.scalar(
            select(func.count(Site.id)).where(Site.sync_state == SYNC_RUNNING)
        )
    except Exception as e:
        health_status["database"] = f"unhealthy: {str(e)}"

    return health_status
